"""Validation pipeline: format, existence, directory policy and integrity checks."""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from urllib.parse import urlparse

from .collaborators import DirectoryConfigProvider
from .exceptions import (
    IntegrityFailureError,
    InvalidReferenceError,
    MediaReferenceError,
    PolicyViolationError,
    ReferenceNotFoundError,
)
from .media_types import is_supported_mime_type, mime_type_for_path
from .models import MediaReference, ValidationConfig, ValidationResult

logger = logging.getLogger(__name__)

HEADER_BYTES = 12

# Magic numbers by MIME type. Supported types without an entry (HEIC/HEIF)
# pass on presence alone.
IMAGE_SIGNATURES: dict[str, Callable[[bytes], bool]] = {
    "image/jpeg": lambda b: b[:3] == b"\xff\xd8\xff",
    "image/png": lambda b: b[:8] == b"\x89PNG\r\n\x1a\n",
    "image/gif": lambda b: b[:6] in (b"GIF87a", b"GIF89a"),
    "image/bmp": lambda b: b[:2] == b"BM",
    "image/webp": lambda b: len(b) >= 12 and b[:4] == b"RIFF" and b[8:12] == b"WEBP",
    "image/tiff": lambda b: b[:4] in (b"II*\x00", b"MM\x00*"),
}

RecoverFn = Callable[[MediaReference, ValidationConfig], Awaitable[ValidationResult]]


def has_valid_image_header(header: bytes, mime_type: str) -> bool:
    """
    Check the first bytes of an image against the signature of its format.

    Args:
        header: Leading bytes of the file
        mime_type: Declared image MIME type

    Returns:
        True if the header matches, or the format has no known signature
    """
    check = IMAGE_SIGNATURES.get(mime_type)
    if check is None:
        return True
    if len(header) < 8:
        return False
    return check(header)


class ValidationPipeline:
    """Determines whether a reference currently resolves to a usable media file."""

    def __init__(self, directory_config: DirectoryConfigProvider):
        self.directory_config = directory_config

    @staticmethod
    def parse(reference: MediaReference | str) -> MediaReference:
        """Coerce a string into a MediaReference."""
        if isinstance(reference, MediaReference):
            return reference
        return MediaReference(uri=reference)

    @staticmethod
    def check_format(reference: MediaReference) -> None:
        """
        Raises:
            InvalidReferenceError: If the URI has no scheme or no path
        """
        try:
            parsed = urlparse(reference.uri)
        except ValueError as e:
            raise InvalidReferenceError("invalid URI format", reference.uri) from e
        if not parsed.scheme or not parsed.path:
            raise InvalidReferenceError("invalid URI format", reference.uri)

    @staticmethod
    def check_exists(path: str) -> None:
        """
        Raises:
            ReferenceNotFoundError: If no regular file exists at ``path``
        """
        if not os.path.isfile(path):
            raise ReferenceNotFoundError("file does not exist", path)

    def allowed_directories(self) -> list[str]:
        """Directories currently enabled for media discovery."""
        if self.directory_config.custom_directories_enabled():
            return list(self.directory_config.enabled_directories())
        return list(self.directory_config.platform_default_directories())

    def is_allowed(self, path: str) -> bool:
        """Whether ``path`` lies under one of the allowed directories (prefix match)."""
        return any(path.startswith(directory) for directory in self.allowed_directories())

    def check_policy(self, path: str) -> None:
        """
        Raises:
            PolicyViolationError: If the file is outside the enabled directories
        """
        if not self.is_allowed(path):
            raise PolicyViolationError("file not in enabled directories", path)

    @staticmethod
    def check_integrity(path: str, declared_mime_type: str | None = None) -> None:
        """
        Check size, MIME support and, for images, the header signature.

        Raises:
            IntegrityFailureError: If any check fails or the file cannot be read
        """
        mime_type = (declared_mime_type or mime_type_for_path(path)).lower()
        try:
            if os.path.getsize(path) == 0:
                raise IntegrityFailureError("file integrity check failed", path)
            if not is_supported_mime_type(mime_type):
                raise IntegrityFailureError("file integrity check failed", path)
            if mime_type.startswith("image/"):
                with open(path, "rb") as f:
                    header = f.read(HEADER_BYTES)
                if not has_valid_image_header(header, mime_type):
                    raise IntegrityFailureError("file integrity check failed", path)
        except OSError as e:
            raise IntegrityFailureError("file integrity check failed", path) from e

    def check(self, reference: MediaReference) -> None:
        """
        Run all four checks in order, stopping at the first failure.

        Raises:
            MediaReferenceError: The subclass matching the failed step
        """
        self.check_format(reference)
        path = reference.path
        self.check_exists(path)
        self.check_policy(path)
        self.check_integrity(path, reference.mime_type)

    def is_usable(self, path: str) -> bool:
        """Whether a recovery candidate exists, is allowed and is intact."""
        try:
            self.check_exists(path)
            self.check_policy(path)
            self.check_integrity(path)
        except MediaReferenceError:
            return False
        return True

    async def run(
        self,
        reference: MediaReference,
        config: ValidationConfig,
        recover: RecoverFn | None = None,
        on_missing: Callable[[str], None] | None = None,
    ) -> ValidationResult:
        """
        Validate one reference, handing missing files to ``recover``.

        Args:
            reference: Reference to validate
            config: Validation configuration
            recover: Recovery coroutine, used only when the file does not exist
            on_missing: Called with the reference when the existence check fails

        Returns:
            ValidationResult; failures are returned, never raised
        """
        uri = reference.uri
        try:
            await asyncio.to_thread(self.check, reference)
        except ReferenceNotFoundError as e:
            logger.log(config.log_level, f"Reference does not resolve: {uri}")
            if on_missing:
                on_missing(uri)
            if recover is None or not config.enable_recovery:
                return ValidationResult.from_error(uri, e)
            return await recover(reference, config)
        except MediaReferenceError as e:
            logger.log(config.log_level, f"Validation failed for {uri}: {e.message}")
            return ValidationResult.from_error(uri, e)

        logger.log(config.log_level, f"Reference is valid: {uri}")
        return ValidationResult.valid(uri)
