"""Image decoding, downscaling, and WebP re-encoding."""

from __future__ import annotations

import logging
from io import BytesIO

from filetype import guess
from pagevault.media.models import OptimizeResult
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 2560
DEFAULT_QUALITY = 80
OUTPUT_FORMAT = "WEBP"

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def detect_image_format(data: bytes) -> str | None:
    """Detect a raster image type from its signature; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


def is_svg(data: bytes) -> bool:
    """Return True when the payload looks like an SVG document."""
    head = data[:1024].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head)


def read_dimensions(data: bytes) -> tuple[int, int] | None:
    """Return ``(width, height)`` of an image payload, or None if unreadable."""
    try:
        with Image.open(BytesIO(data)) as img:
            return img.size
    except _DECODE_ERRORS:
        return None


def _fit_within(width: int, height: int, bound: int) -> tuple[int, int]:
    longest = max(width, height)
    if longest <= bound:
        return width, height
    scale = bound / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def _has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA"):
        return True
    return img.mode == "P" and "transparency" in img.info


class ImageOptimizer:
    """Shrink oversized images and re-encode them as WebP.

    Images are only ever scaled down so the longer edge fits
    ``max_dimension``; anything already within bounds keeps its size.
    """

    def __init__(
        self,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        quality: int = DEFAULT_QUALITY,
    ) -> None:
        self.max_dimension = max_dimension
        self.quality = quality

    def optimize(self, data: bytes) -> OptimizeResult:
        """Decode ``data``, resize if needed, and return WebP bytes.

        Args:
            data: Raw image bytes as downloaded.

        Returns:
            An OptimizeResult with the encoded bytes and final on-disk
            dimensions, or ``success=False`` if the payload could not be
            decoded or encoded.
        """
        try:
            with Image.open(BytesIO(data)) as source:
                source.load()
                img = ImageOps.exif_transpose(source)
                width, height = img.size
                if not width or not height:
                    return OptimizeResult(error="Image has no dimensions")

                target = _fit_within(width, height, self.max_dimension)
                resized = target != (width, height)
                if resized:
                    img = img.resize(target, Image.Resampling.LANCZOS)

                if img.mode not in ("RGB", "RGBA"):
                    img = img.convert("RGBA" if _has_alpha(img) else "RGB")

                out = BytesIO()
                img.save(out, format=OUTPUT_FORMAT, quality=self.quality, method=4)
        except _DECODE_ERRORS as exc:
            logger.debug("Image optimization failed: %s", exc)
            return OptimizeResult(error=f"Unprocessable image: {exc}")

        final_width, final_height = target
        if resized:
            logger.debug(
                "Resized image %dx%d -> %dx%d", width, height, final_width, final_height
            )
        return OptimizeResult(
            data=out.getvalue(),
            width=final_width,
            height=final_height,
            format=OUTPUT_FORMAT.lower(),
            resized=resized,
            success=True,
        )
