"""Tests for directory scanning."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from ..models import EngineSettings
from ..scanner import DirectoryScanner


class TestDirectoryScanner:
    """Test cases for DirectoryScanner."""

    def setup_method(self) -> None:
        self.scanner = DirectoryScanner()

    def test_is_media_file(self) -> None:
        assert self.scanner.is_media_file(Path("a.JPG"))
        assert self.scanner.is_media_file(Path("clip.mov"))
        assert not self.scanner.is_media_file(Path("notes.txt"))
        assert not self.scanner.is_media_file(Path("README"))

    def test_custom_extensions(self) -> None:
        scanner = DirectoryScanner(EngineSettings(supported_extensions=["png"]))
        assert scanner.is_media_file(Path("a.png"))
        assert not scanner.is_media_file(Path("a.jpg"))

    def test_scan_is_not_recursive(self, tmp_path: Path, make_media) -> None:
        """Test that only direct children with supported extensions are returned."""
        make_media(tmp_path / "b.jpg")
        make_media(tmp_path / "a.png")
        (tmp_path / "notes.txt").write_text("hello")
        make_media(tmp_path / "nested" / "c.jpg")

        files = self.scanner.scan(tmp_path)

        assert [f.filename for f in files] == ["a.png", "b.jpg"]
        assert files[0].mime_type == "image/png"
        assert files[1].size_bytes == 1024

    def test_scan_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing directory yields an empty result."""
        assert self.scanner.scan(tmp_path / "missing") == []

    def test_enrichment_failure_keeps_file(self, tmp_path: Path, make_media) -> None:
        """Test that a failing metadata extractor does not drop the file."""
        make_media(tmp_path / "a.jpg")
        extractor = Mock()
        extractor.extract.side_effect = RuntimeError("corrupt EXIF")

        files = DirectoryScanner(metadata_extractor=extractor).scan(tmp_path)

        assert len(files) == 1
        assert files[0].creation_date is None

    def test_enrichment_applied(self, tmp_path: Path, make_media) -> None:
        make_media(tmp_path / "a.jpg")
        extractor = Mock()
        extractor.extract.return_value = {"width": 640, "height": 480}

        files = DirectoryScanner(metadata_extractor=extractor).scan(tmp_path)

        assert (files[0].width, files[0].height) == (640, 480)

    @pytest.mark.asyncio
    async def test_scan_many(self, tmp_path: Path, make_media) -> None:
        """Test scanning several directories, keyed in input order."""
        dirs = []
        for i in range(5):
            directory = tmp_path / f"dir{i}"
            make_media(directory / f"{i}.jpg")
            dirs.append(str(directory))
        dirs.append(str(tmp_path / "missing"))

        results = await self.scanner.scan_many(dirs)

        assert list(results) == dirs
        assert [len(files) for files in results.values()] == [1, 1, 1, 1, 1, 0]
