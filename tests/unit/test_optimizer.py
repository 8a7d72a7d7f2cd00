"""
Unit tests for the image optimizer.
"""

import os
import time
from pathlib import Path

import pytest
from PIL import Image

from optiqueue.errors import ProcessorError
from optiqueue.worker.optimizer import ImageOptimizer, ImageUpload


@pytest.fixture
def optimizer(processed_dir: Path) -> ImageOptimizer:
    """Optimizer that converts everything and downsizes beyond 100px."""
    return ImageOptimizer(
        processed_dir=processed_dir,
        max_width=100,
        max_height=100,
        quality=80,
        conversion_threshold_mb=0,
    )


class TestImageUpload:
    """Tests for ImageUpload."""

    def test_format_from_content_type(self):
        assert ImageUpload("a.jpg", "image/jpg", b"").format == "jpeg"
        assert ImageUpload("a.png", "image/PNG", b"").format == "png"
        assert ImageUpload("a.txt", "text/plain", b"").format is None

    def test_size(self):
        upload = ImageUpload("a.png", "image/png", b"x" * 2048)
        assert upload.size == 2048
        assert upload.size_mb == pytest.approx(2048 / (1024 * 1024))


class TestImageOptimizer:
    """Tests for ImageOptimizer."""

    def test_is_valid_image(self, optimizer: ImageOptimizer):
        assert optimizer.is_valid_image(ImageUpload("a.png", "image/png", b""))
        assert optimizer.is_valid_image(ImageUpload("a.jpg", "image/jpeg", b""))
        assert not optimizer.is_valid_image(ImageUpload("a.bmp", "image/bmp", b""))
        assert not optimizer.is_valid_image(ImageUpload("a.pdf", "application/pdf", b""))

    def test_estimate_processing_time(self, optimizer: ImageOptimizer, make_image):
        upload = ImageUpload("a.png", "image/png", make_image(1000, 1000))
        expected = 0.5 + 1.0 * 0.2 + upload.size_mb * 0.1

        assert optimizer.estimate_processing_time(upload) == pytest.approx(expected, abs=0.001)

    def test_estimate_unreadable_image(self, optimizer: ImageOptimizer):
        upload = ImageUpload("a.png", "image/png", b"not an image")
        assert optimizer.estimate_processing_time(upload) == 5.0

    def test_resizes_and_converts_to_webp(self, optimizer: ImageOptimizer, processed_dir: Path, make_image):
        upload = ImageUpload("photo.png", "image/png", make_image(400, 200))

        result = optimizer.optimize(upload, "job-1")

        output = processed_dir / "job-1.webp"
        assert output.is_file()
        with Image.open(output) as image:
            assert image.format == "WEBP"
            assert image.size == (100, 50)

        assert result["processed_file"]["filename"] == "job-1.webp"
        assert result["processed_file"]["url"] == "/v1/images/job-1.webp"
        assert result["processed_file"]["dimensions"] == {"width": 100, "height": 50}
        assert result["original_file"]["dimensions"] == {"width": 400, "height": 200}
        assert result["original_file"]["format"] == "png"
        assert result["optimization"]["was_resized"] is True
        assert result["optimization"]["format_changed"] is True

    def test_small_image_not_resized(self, optimizer: ImageOptimizer, make_image):
        upload = ImageUpload("icon.png", "image/png", make_image(50, 40))

        result = optimizer.optimize(upload, "job-2")

        assert result["optimization"]["was_resized"] is False
        assert result["processed_file"]["dimensions"] == {"width": 50, "height": 40}

    def test_keeps_transparency(self, optimizer: ImageOptimizer, processed_dir: Path, make_image):
        upload = ImageUpload("logo.png", "image/png", make_image(20, 20, mode="RGBA"))

        optimizer.optimize(upload, "job-3")

        with Image.open(processed_dir / "job-3.webp") as image:
            assert image.mode == "RGBA"

    def test_below_threshold_stored_unchanged(self, processed_dir: Path, make_image):
        optimizer = ImageOptimizer(processed_dir=processed_dir, conversion_threshold_mb=2.0)
        data = make_image(400, 200, fmt="JPEG")
        upload = ImageUpload("photo.jpg", "image/jpeg", data)

        result = optimizer.optimize(upload, "job-4")

        assert (processed_dir / "job-4.jpg").read_bytes() == data
        assert result["processed_file"]["format"] == "jpeg"
        assert result["optimization"]["format_changed"] is False
        assert "no processing needed" in result["message"]

    def test_invalid_image_raises(self, optimizer: ImageOptimizer):
        upload = ImageUpload("broken.png", "image/png", b"definitely not a png")

        with pytest.raises(ProcessorError) as exc_info:
            optimizer.optimize(upload, "job-5")

        assert exc_info.value.code == "invalid_image"
        assert exc_info.value.details == {"filename": "broken.png"}

    def test_cleanup_processed_files(self, optimizer: ImageOptimizer, processed_dir: Path):
        old = processed_dir / "old.webp"
        fresh = processed_dir / "fresh.webp"
        old.write_bytes(b"old")
        fresh.write_bytes(b"fresh")
        two_days_ago = time.time() - 2 * 24 * 60 * 60
        os.utime(old, (two_days_ago, two_days_ago))

        assert optimizer.cleanup_processed_files(24 * 60 * 60) == 1
        assert not old.exists()
        assert fresh.exists()

    def test_cleanup_missing_directory(self, tmp_path: Path):
        optimizer = ImageOptimizer(processed_dir=tmp_path / "missing")
        assert optimizer.cleanup_processed_files(0) == 0

    @pytest.mark.parametrize("filename", ["../secret", "a/b.webp", "a\\b.webp", ""])
    def test_unsafe_filenames(self, optimizer: ImageOptimizer, filename: str):
        assert not optimizer.is_safe_filename(filename)
        assert optimizer.resolve_output(filename) is None

    def test_resolve_output(self, optimizer: ImageOptimizer, processed_dir: Path):
        (processed_dir / "job-6.webp").write_bytes(b"data")

        assert optimizer.resolve_output("job-6.webp") == processed_dir / "job-6.webp"
        assert optimizer.resolve_output("job-7.webp") is None
