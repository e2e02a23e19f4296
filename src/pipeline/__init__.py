"""Pipeline modules: orchestration layer for pagevault.

  archive: upstream content items -> cached media + dated snapshot

The content-source client and any scheduler live outside this package;
they hand a list of items to :func:`archive_content`.
"""

from pagevault.pipeline.archive import ArchiveReport, archive_content, parse_items

__all__ = ["ArchiveReport", "archive_content", "parse_items"]
