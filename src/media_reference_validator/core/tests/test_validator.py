"""Tests for the validation pipeline."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from ..collaborators import StaticDirectoryConfig
from ..exceptions import (
    ErrorKind,
    IntegrityFailureError,
    InvalidReferenceError,
    PolicyViolationError,
    ReferenceNotFoundError,
)
from ..models import MediaReference, RecoveryMethod, ValidationConfig, ValidationResult
from ..validator import ValidationPipeline, has_valid_image_header
from .conftest import PNG_HEADER


class TestImageHeaders:
    """Test cases for magic number checks."""

    @pytest.mark.parametrize(
        "mime_type, header",
        [
            ("image/jpeg", b"\xff\xd8\xff\xe0" + b"\x00" * 8),
            ("image/png", PNG_HEADER + b"\x00" * 4),
            ("image/gif", b"GIF89a" + b"\x00" * 6),
            ("image/gif", b"GIF87a" + b"\x00" * 6),
            ("image/bmp", b"BM" + b"\x00" * 10),
            ("image/webp", b"RIFF\x24\x00\x00\x00WEBP"),
            ("image/tiff", b"II*\x00" + b"\x00" * 8),
            ("image/tiff", b"MM\x00*" + b"\x00" * 8),
            ("image/heic", b"\x00\x00\x00\x18ftypheic"),
        ],
    )
    def test_valid_headers(self, mime_type: str, header: bytes) -> None:
        assert has_valid_image_header(header, mime_type)

    def test_invalid_headers(self) -> None:
        assert not has_valid_image_header(b"\x89PNG\r\n\x1a\n" + b"\x00" * 4, "image/jpeg")
        assert not has_valid_image_header(b"RIFF\x24\x00\x00\x00WAVE", "image/webp")
        assert not has_valid_image_header(b"\xff\xd8\xff", "image/jpeg")


class TestValidationPipeline:
    """Test cases for ValidationPipeline."""

    @pytest.fixture(autouse=True)
    def setup_pipeline(self, tmp_path: Path) -> None:
        self.allowed = tmp_path / "allowed"
        self.other = tmp_path / "other"
        self.allowed.mkdir()
        self.other.mkdir()
        self.config = StaticDirectoryConfig([str(self.allowed)], defaults=[str(self.other)])
        self.pipeline = ValidationPipeline(self.config)

    def test_check_format(self) -> None:
        """Test that a URI needs both a scheme and a path."""
        ValidationPipeline.check_format(MediaReference(uri="file:///a.jpg"))
        for uri in ("/no/scheme.jpg", "file://", "", "http://[::1"):
            with pytest.raises(InvalidReferenceError, match="invalid URI format"):
                ValidationPipeline.check_format(MediaReference(uri=uri))

    def test_check_exists(self, make_media) -> None:
        path = make_media(self.allowed / "a.jpg")
        ValidationPipeline.check_exists(str(path))
        with pytest.raises(ReferenceNotFoundError, match="file does not exist"):
            ValidationPipeline.check_exists(str(self.allowed / "missing.jpg"))
        with pytest.raises(ReferenceNotFoundError):
            ValidationPipeline.check_exists(str(self.allowed))

    def test_policy_follows_configuration(self, make_media) -> None:
        """Test that shrinking the allow-list rejects previously allowed files."""
        path = str(make_media(self.allowed / "a.jpg"))
        assert self.pipeline.allowed_directories() == [str(self.allowed)]
        self.pipeline.check_policy(path)

        self.config.set_enabled([str(self.other)])
        with pytest.raises(PolicyViolationError, match="file not in enabled directories"):
            self.pipeline.check_policy(path)

        self.config.set_custom_enabled(False)
        assert self.pipeline.is_allowed(str(self.other / "b.jpg"))

    def test_check_integrity(self, make_media) -> None:
        ValidationPipeline.check_integrity(str(make_media(self.allowed / "a.jpg")))
        ValidationPipeline.check_integrity(str(make_media(self.allowed / "b.png", header=PNG_HEADER)))
        ValidationPipeline.check_integrity(str(make_media(self.allowed / "c.heic", header=b"anything")))
        ValidationPipeline.check_integrity(str(make_media(self.allowed / "d.mp4", header=b"\x00\x00\x00\x18ftyp")))

    @pytest.mark.parametrize(
        "name, content",
        [
            ("empty.jpg", b""),
            ("short.jpg", b"\xff\xd8\xff"),
            ("wrong.jpg", PNG_HEADER + b"\x00" * 100),
            ("notes.txt", b"plain text content"),
        ],
    )
    def test_check_integrity_failures(self, name: str, content: bytes) -> None:
        path = self.allowed / name
        path.write_bytes(content)
        with pytest.raises(IntegrityFailureError, match="file integrity check failed"):
            ValidationPipeline.check_integrity(str(path))

    def test_declared_mime_type_wins(self, make_media) -> None:
        """Test that the header is checked against the declared format."""
        path = str(make_media(self.allowed / "a.jpg"))
        with pytest.raises(IntegrityFailureError):
            ValidationPipeline.check_integrity(path, "image/png")

    def test_real_image_passes(self) -> None:
        path = self.allowed / "real.png"
        Image.new("RGB", (8, 8), color="red").save(path)
        ValidationPipeline.check_integrity(str(path))

    @pytest.mark.asyncio
    async def test_run_valid_jpeg(self, make_media) -> None:
        """Test a 2MB JPEG in an enabled directory."""
        path = make_media(self.allowed / "photo.jpg", size=2 * 1024 * 1024)
        ref = MediaReference.from_path(path)

        result = await self.pipeline.run(ref, ValidationConfig())

        assert result.is_valid
        assert result.recovery_method is RecoveryMethod.NONE
        assert result.error_message is None

    @pytest.mark.asyncio
    async def test_run_stops_at_first_failure(self, make_media) -> None:
        """Test that a policy violation on a corrupt file reports the policy."""
        path = self.other / "corrupt.jpg"
        path.write_bytes(b"")

        result = await self.pipeline.run(MediaReference.from_path(path), ValidationConfig())

        assert result.recovery_failed
        assert result.error_message == "file not in enabled directories"
        assert result.error_kind is ErrorKind.POLICY_VIOLATION

    @pytest.mark.asyncio
    async def test_run_invalid_uri(self) -> None:
        result = await self.pipeline.run(MediaReference(uri="not a uri"), ValidationConfig())
        assert result.error_message == "invalid URI format"
        assert result.error_kind is ErrorKind.INVALID_REFERENCE

    @pytest.mark.asyncio
    async def test_run_missing_without_recovery(self) -> None:
        """Test that disabling recovery fails missing files immediately."""
        ref = MediaReference.from_path(self.allowed / "gone.jpg")
        recover = AsyncMock()
        on_missing = Mock()

        result = await self.pipeline.run(
            ref, ValidationConfig(enable_recovery=False), recover=recover, on_missing=on_missing
        )

        assert result.error_message == "file does not exist"
        assert result.error_kind is ErrorKind.NOT_FOUND
        recover.assert_not_called()
        on_missing.assert_called_once_with(ref.uri)

    @pytest.mark.asyncio
    async def test_run_missing_hands_over_to_recovery(self) -> None:
        ref = MediaReference.from_path(self.allowed / "gone.jpg")
        recovered = ValidationResult.recovered(ref.uri, "file:///x.jpg", RecoveryMethod.EXACT_FILENAME)
        recover = AsyncMock(return_value=recovered)
        config = ValidationConfig()

        result = await self.pipeline.run(ref, config, recover=recover)

        assert result is recovered
        recover.assert_awaited_once_with(ref, config)

    @pytest.mark.asyncio
    async def test_integrity_failure_is_not_recovered(self) -> None:
        path = self.allowed / "broken.png"
        path.write_bytes(b"garbage!" * 4)
        recover = AsyncMock()

        result = await self.pipeline.run(MediaReference.from_path(path), ValidationConfig(), recover=recover)

        assert result.error_message == "file integrity check failed"
        recover.assert_not_called()

    def test_is_usable(self, make_media) -> None:
        assert self.pipeline.is_usable(str(make_media(self.allowed / "a.jpg")))
        assert not self.pipeline.is_usable(str(make_media(self.other / "b.jpg")))
        assert not self.pipeline.is_usable(str(self.allowed / "missing.jpg"))
