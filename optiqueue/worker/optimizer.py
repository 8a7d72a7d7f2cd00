"""
Image optimization work processor built on Pillow.

Uploads below the conversion threshold are stored unchanged; larger images
are downscaled to fit the configured bounds and re-encoded as WebP.
"""

import io
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError

from optiqueue.config import Settings
from optiqueue.errors import ProcessorError

logger = logging.getLogger(__name__)

# Mime subtypes that name the same format
_FORMAT_ALIASES = {"jpg": "jpeg", "pjpeg": "jpeg", "x-png": "png"}

_EXTENSIONS = {"jpeg": "jpg", "png": "png", "webp": "webp", "gif": "gif"}

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


@dataclass
class ImageUpload:
    """
    An uploaded image held in memory.
    Payload of optimize_image jobs.
    """

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def size_mb(self) -> float:
        return self.size / (1024 * 1024)

    @property
    def format(self) -> str | None:
        """Image format named by the content type (``jpeg``, ``png``, ...)."""
        if not self.content_type.startswith("image/"):
            return None
        subtype = self.content_type.split("/", 1)[1].lower()
        return _FORMAT_ALIASES.get(subtype, subtype)


class ImageOptimizer:
    """
    Resizes and recompresses uploaded images.

    Safe to call repeatedly for the same job: output files are named after
    the job id and overwritten on retry.
    """

    def __init__(
        self,
        processed_dir: str | Path,
        max_width: int = 1024,
        max_height: int = 1024,
        quality: int = 80,
        conversion_threshold_mb: float = 2.0,
        supported_formats: list[str] | None = None,
    ):
        self.processed_dir = Path(processed_dir)
        self.max_width = max_width
        self.max_height = max_height
        self.quality = quality
        self.conversion_threshold_mb = conversion_threshold_mb
        self.supported_formats = [
            fmt.lower() for fmt in (supported_formats or ["jpeg", "png", "webp", "gif"])
        ]

    @classmethod
    def from_settings(cls, settings: Settings) -> "ImageOptimizer":
        """Create an optimizer from application settings."""
        return cls(
            processed_dir=settings.processed_dir,
            max_width=settings.max_image_width,
            max_height=settings.max_image_height,
            quality=settings.compression_quality,
            conversion_threshold_mb=settings.conversion_threshold_mb,
            supported_formats=settings.supported_formats,
        )

    def is_valid_image(self, upload: ImageUpload) -> bool:
        """Check that the upload declares a supported image format."""
        return upload.format is not None and upload.format in self.supported_formats

    def estimate_processing_time(self, upload: ImageUpload) -> float:
        """
        Estimate optimization time in seconds from pixel count and file size.

        Falls back to 5 seconds when the image header cannot be read.
        """
        try:
            with Image.open(io.BytesIO(upload.data)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError):
            return 5.0

        megapixels = (width * height) / 1_000_000
        return round(0.5 + megapixels * 0.2 + upload.size_mb * 0.1, 3)

    def optimize(self, upload: ImageUpload, job_id: str) -> dict[str, Any]:
        """
        Optimize an upload and write the output to the processed directory.

        Args:
            upload: The uploaded image.
            job_id: The scheduler job id, used to name the output file.

        Returns:
            Description of the original and processed files.

        Raises:
            ProcessorError: If the data cannot be decoded as an image.
        """
        start_time = time.monotonic()
        self.processed_dir.mkdir(parents=True, exist_ok=True)

        if upload.size_mb < self.conversion_threshold_mb:
            logger.info(
                "Image below conversion threshold, storing original",
                extra={"job_id": job_id, "size_mb": round(upload.size_mb, 2)},
            )
            extension = _EXTENSIONS.get(upload.format or "", "bin")
            output_filename = f"{job_id}.{extension}"
            (self.processed_dir / output_filename).write_bytes(upload.data)
            return self._describe(
                upload,
                output_filename=output_filename,
                output_size=upload.size,
                output_format=upload.format,
                original_dimensions=None,
                new_dimensions=None,
                was_resized=False,
                start_time=start_time,
                message=f"Image below {self.conversion_threshold_mb:g}MB threshold - no processing needed",
            )

        try:
            image = Image.open(io.BytesIO(upload.data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ProcessorError(
                f"Image processing failed: {e}",
                code="invalid_image",
                details={"filename": upload.filename},
            ) from e

        with image:
            original_dimensions = image.size
            source_format = (image.format or upload.format or "unknown").lower()

            has_alpha = image.mode in ("RGBA", "LA") or (
                image.mode == "P" and "transparency" in image.info
            )
            image = image.convert("RGBA" if has_alpha else "RGB")

            was_resized = image.width > self.max_width or image.height > self.max_height
            if was_resized:
                image.thumbnail((self.max_width, self.max_height), Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            image.save(buffer, format="WEBP", quality=self.quality, method=6)
            new_dimensions = image.size

        output = buffer.getvalue()
        output_filename = f"{job_id}.webp"
        (self.processed_dir / output_filename).write_bytes(output)

        logger.info(
            "Image processing completed",
            extra={
                "job_id": job_id,
                "original": f"{original_dimensions[0]}x{original_dimensions[1]}",
                "new": f"{new_dimensions[0]}x{new_dimensions[1]}",
                "bytes": f"{upload.size} -> {len(output)}",
            },
        )

        return self._describe(
            upload,
            output_filename=output_filename,
            output_size=len(output),
            output_format="webp",
            original_dimensions=original_dimensions,
            new_dimensions=new_dimensions,
            was_resized=was_resized,
            start_time=start_time,
            source_format=source_format,
        )

    def cleanup_processed_files(self, max_age_seconds: float) -> int:
        """
        Delete processed files older than ``max_age_seconds``.

        Returns:
            Number of files removed.
        """
        if not self.processed_dir.is_dir():
            return 0

        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self.processed_dir.iterdir():
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} old processed files")
        return removed

    @staticmethod
    def is_safe_filename(filename: str) -> bool:
        """Reject names that could escape the processed directory."""
        return bool(filename) and not any(part in filename for part in ("..", "/", "\\"))

    def resolve_output(self, filename: str) -> Path | None:
        """
        Resolve a processed file by name.

        Returns:
            The file path, or None for unsafe names and missing files.
        """
        if not self.is_safe_filename(filename):
            return None
        path = self.processed_dir / filename
        return path if path.is_file() else None

    def _describe(
        self,
        upload: ImageUpload,
        output_filename: str,
        output_size: int,
        output_format: str | None,
        original_dimensions: tuple[int, int] | None,
        new_dimensions: tuple[int, int] | None,
        was_resized: bool,
        start_time: float,
        source_format: str | None = None,
        message: str | None = None,
    ) -> dict[str, Any]:
        source_format = source_format or upload.format
        saved = upload.size - output_size
        ratio = (saved / upload.size * 100) if upload.size else 0.0

        return {
            "processing_time": round(time.monotonic() - start_time, 3),
            "message": message,
            "original_file": {
                "name": upload.filename,
                "size_kb": round(upload.size / 1024),
                "format": source_format,
                "dimensions": _dimensions(original_dimensions),
            },
            "processed_file": {
                "filename": output_filename,
                "size_kb": round(output_size / 1024),
                "format": output_format,
                "dimensions": _dimensions(new_dimensions),
                "url": f"/v1/images/{output_filename}",
            },
            "optimization": {
                "was_resized": was_resized,
                "format_changed": source_format != output_format,
                "compression_ratio": f"{ratio:.1f}%",
                "size_saved_kb": round(saved / 1024),
            },
        }


def _dimensions(size: tuple[int, int] | None) -> dict[str, int | None]:
    if size is None:
        return {"width": None, "height": None}
    return {"width": size[0], "height": size[1]}
