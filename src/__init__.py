"""pagevault: local media cache, block rewriting, and dated content snapshots."""

__version__ = "0.1.0"
