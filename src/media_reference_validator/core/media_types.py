"""Media type tables shared by the scanner and the validation pipeline."""

from pathlib import PurePath

IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
}

VIDEO_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".m4v": "video/x-m4v",
    ".3gp": "video/3gpp",
    ".flv": "video/x-flv",
    ".wmv": "video/x-ms-wmv",
    ".mpg": "video/mpeg",
    ".mpeg": "video/mpeg",
}

SUPPORTED_MIME_TYPES = frozenset(IMAGE_MIME_TYPES.values()) | frozenset(VIDEO_MIME_TYPES.values())

DEFAULT_MIME_TYPE = "application/octet-stream"


def mime_type_for_path(path: str | PurePath) -> str:
    """
    Determine the MIME type of a file from its extension.

    Args:
        path: File path or filename

    Returns:
        MIME type string, ``application/octet-stream`` for unknown extensions
    """
    extension = PurePath(path).suffix.lower()
    if extension in IMAGE_MIME_TYPES:
        return IMAGE_MIME_TYPES[extension]
    if extension in VIDEO_MIME_TYPES:
        return VIDEO_MIME_TYPES[extension]
    return DEFAULT_MIME_TYPE


def is_supported_mime_type(mime_type: str | None) -> bool:
    """Check whether a MIME type is one the engine can validate."""
    return bool(mime_type) and mime_type.lower() in SUPPORTED_MIME_TYPES


def media_kind(mime_type: str) -> str:
    """Return ``image``, ``video`` or ``unknown`` for a MIME type."""
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    return "unknown"
