"""Best-effort metadata extraction for scanned media files."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image

try:
    import pillow_heif
    pillow_heif.register_heif_opener()
    HEIF_SUPPORTED = True
except ImportError:
    HEIF_SUPPORTED = False

from .media_types import IMAGE_MIME_TYPES

logger = logging.getLogger(__name__)

EXIF_IFD = 0x8769
GPS_IFD = 0x8825
TAG_ORIENTATION = 0x0112
TAG_DATETIME = 0x0132
TAG_DATETIME_ORIGINAL = 0x9003
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


class PillowMetadataExtractor:
    """Reads dimensions, orientation, capture date and GPS position with Pillow."""

    def extract(self, file_path: Path) -> dict[str, Any]:
        """
        Extract metadata from an image file.

        Args:
            file_path: Path to the file

        Returns:
            Mapping with any of ``width``, ``height``, ``orientation``,
            ``creation_date`` and ``gps``; empty for videos and unreadable files
        """
        extension = file_path.suffix.lower()
        if extension not in IMAGE_MIME_TYPES:
            return {}
        if extension in (".heic", ".heif") and not HEIF_SUPPORTED:
            return {}

        metadata: dict[str, Any] = {}
        with Image.open(file_path) as img:
            metadata["width"], metadata["height"] = img.size
            exif = img.getexif()

        if not exif:
            return metadata

        if TAG_ORIENTATION in exif:
            metadata["orientation"] = int(exif[TAG_ORIENTATION])

        created = self._parse_date(exif.get_ifd(EXIF_IFD).get(TAG_DATETIME_ORIGINAL) or exif.get(TAG_DATETIME))
        if created:
            metadata["creation_date"] = created

        gps = self._parse_gps(exif.get_ifd(GPS_IFD))
        if gps:
            metadata["gps"] = gps

        return metadata

    @staticmethod
    def _parse_date(value: Any) -> datetime | None:
        if not value:
            return None
        try:
            return datetime.strptime(str(value).strip("\x00 "), EXIF_DATE_FORMAT)
        except ValueError:
            logger.debug(f"Unparseable EXIF date: {value!r}")
            return None

    @staticmethod
    def _parse_gps(gps_ifd: dict) -> tuple[float, float] | None:
        if not gps_ifd:
            return None
        tags = {ExifTags.GPSTAGS.get(key, key): value for key, value in gps_ifd.items()}
        try:
            latitude = _dms_to_degrees(tags["GPSLatitude"], tags.get("GPSLatitudeRef", "N"))
            longitude = _dms_to_degrees(tags["GPSLongitude"], tags.get("GPSLongitudeRef", "E"))
        except (KeyError, TypeError, ValueError, ZeroDivisionError):
            return None
        return latitude, longitude


def _dms_to_degrees(dms: Any, ref: str) -> float:
    degrees, minutes, seconds = (float(part) for part in dms)
    value = degrees + minutes / 60.0 + seconds / 3600.0
    return -value if str(ref).upper() in ("S", "W") else value
