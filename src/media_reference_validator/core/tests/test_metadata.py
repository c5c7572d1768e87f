"""Tests for Pillow metadata extraction."""

from datetime import datetime
from pathlib import Path

import pytest
from PIL import Image, UnidentifiedImageError

from ..metadata import PillowMetadataExtractor, _dms_to_degrees


class TestPillowMetadataExtractor:
    """Test cases for PillowMetadataExtractor."""

    def setup_method(self) -> None:
        self.extractor = PillowMetadataExtractor()

    def test_dimensions_orientation_and_date(self, tmp_path: Path) -> None:
        path = tmp_path / "photo.jpg"
        exif = Image.Exif()
        exif[0x0112] = 6
        exif[0x0132] = "2023:06:01 10:00:00"
        Image.new("RGB", (32, 16), color="blue").save(path, exif=exif)

        metadata = self.extractor.extract(path)

        assert metadata["width"] == 32
        assert metadata["height"] == 16
        assert metadata["orientation"] == 6
        assert metadata["creation_date"] == datetime(2023, 6, 1, 10, 0, 0)
        assert "gps" not in metadata

    def test_image_without_exif(self, tmp_path: Path) -> None:
        path = tmp_path / "plain.png"
        Image.new("RGB", (4, 4)).save(path)

        assert self.extractor.extract(path) == {"width": 4, "height": 4}

    def test_video_yields_nothing(self, tmp_path: Path) -> None:
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"\x00" * 16)

        assert self.extractor.extract(path) == {}

    def test_unreadable_image_raises(self, tmp_path: Path) -> None:
        """Test that decode errors propagate; the scanner tolerates them."""
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"\xff\xd8\xff" + b"\x00" * 16)

        with pytest.raises(UnidentifiedImageError):
            self.extractor.extract(path)

    def test_parse_gps(self) -> None:
        gps_ifd = {1: "N", 2: (51.0, 30.0, 0.0), 3: "W", 4: (0.0, 7.0, 30.0)}

        latitude, longitude = PillowMetadataExtractor._parse_gps(gps_ifd)

        assert latitude == pytest.approx(51.5)
        assert longitude == pytest.approx(-0.125)
        assert PillowMetadataExtractor._parse_gps({}) is None
        assert PillowMetadataExtractor._parse_gps({1: "N"}) is None

    def test_dms_to_degrees(self) -> None:
        assert _dms_to_degrees((10, 30, 0), "S") == -10.5
