"""Pydantic models for media reference validation and recovery."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from .exceptions import ErrorKind, MediaReferenceError

logger = logging.getLogger(__name__)


class MediaReference(BaseModel):
    """A URI pointing at a media file plus its declared MIME type."""

    model_config = ConfigDict(frozen=True)

    uri: str = Field(..., description="URI of the referenced file, e.g. file:///photos/a.jpg")
    mime_type: str | None = Field(None, description="Declared MIME type, if known")

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> "MediaReference":
        """Build a ``file://`` reference from a filesystem path."""
        return cls(uri=Path(path).absolute().as_uri(), mime_type=mime_type)

    @property
    def path(self) -> str:
        """Filesystem path component of the URI (percent-decoded)."""
        return unquote(urlparse(self.uri).path)

    @property
    def filename(self) -> str:
        """Basename of the referenced file."""
        return PurePosixPath(self.path).name

    def __str__(self) -> str:
        return self.uri


class Birthprint(BaseModel):
    """Fuzzy identity of a file used to re-identify it after a move or rename."""

    model_config = ConfigDict(frozen=True)

    creation_time: datetime = Field(..., description="Creation (or last known modification) time")
    file_size_bytes: int = Field(..., ge=0, description="File size in bytes")
    original_filename: str = Field(..., description="Filename at the time the birthprint was taken")
    mime_type: str | None = Field(None, description="MIME type, if known")

    def __str__(self) -> str:
        return f"Birthprint({self.original_filename}, {self.file_size_bytes}B, {self.creation_time})"


class MediaFileInfo(BaseModel):
    """A media file discovered by a directory scan, with lazily added metadata."""

    file_path: Path = Field(..., description="Full path to the file")
    filename: str = Field(..., description="Just the filename")
    file_uri: str = Field(..., description="file:// URI of the file")
    mime_type: str = Field(..., description="MIME type derived from the extension")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")
    last_modified: datetime = Field(..., description="File modification timestamp")
    extension: str = Field(..., description="Lower-case extension including the dot")

    # Enrichment fields, populated by the metadata extractor
    creation_date: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    place_name: str | None = None
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    orientation: int | None = None

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Ensure extension starts with a dot and is lowercase."""
        v = v.lower()
        return v if v.startswith(".") or not v else f".{v}"

    @classmethod
    def from_path(cls, path: Path, size_bytes: int, last_modified: datetime, mime_type: str) -> "MediaFileInfo":
        """Build the basic record for a file before enrichment."""
        return cls(
            file_path=path,
            filename=path.name,
            file_uri=path.absolute().as_uri(),
            mime_type=mime_type,
            size_bytes=size_bytes,
            last_modified=last_modified,
            extension=path.suffix,
        )

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def stem(self) -> str:
        return self.file_path.stem

    @property
    def directory(self) -> str:
        return str(self.file_path.parent)

    @property
    def size_mb(self) -> float:
        """File size in megabytes."""
        return self.size_bytes / (1024 * 1024)

    def enrich(self, metadata: dict[str, Any]) -> None:
        """
        Apply metadata returned by a metadata extractor.

        Unknown keys are ignored and malformed values are skipped so a bad
        extractor result never invalidates the basic record.

        Args:
            metadata: Mapping with any of ``creation_date``, ``gps``,
                ``place_name``, ``width``, ``height``, ``duration``, ``orientation``
        """
        creation = metadata.get("creation_date")
        if isinstance(creation, datetime):
            self.creation_date = creation
        elif isinstance(creation, str):
            try:
                self.creation_date = datetime.fromisoformat(creation)
            except ValueError:
                logger.debug(f"Ignoring unparseable creation date for {self.filename}: {creation!r}")

        gps = metadata.get("gps")
        if isinstance(gps, dict):
            gps = (gps.get("latitude"), gps.get("longitude"))
        if isinstance(gps, (tuple, list)) and len(gps) == 2 and None not in gps:
            try:
                self.latitude, self.longitude = float(gps[0]), float(gps[1])
            except (TypeError, ValueError):
                logger.debug(f"Ignoring malformed GPS data for {self.filename}: {gps!r}")

        if metadata.get("place_name"):
            self.place_name = str(metadata["place_name"])

        for key, cast in (("width", int), ("height", int), ("duration", float), ("orientation", int)):
            value = metadata.get(key)
            if value is None:
                continue
            try:
                setattr(self, key, cast(value))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring malformed {key} for {self.filename}: {value!r}")

    def to_index_record(self) -> dict[str, Any]:
        """Convert to the record shape consumed by the metadata index."""
        when = self.creation_date or self.last_modified
        return {
            "id": self.filename,
            "file_uri": self.file_uri,
            "mime_type": self.mime_type,
            "file_size_bytes": self.size_bytes,
            "creation_time": when.isoformat(),
            "width": self.width or 0,
            "height": self.height or 0,
            "duration": self.duration or 0.0,
            "orientation": self.orientation or 1,
            "folder": self.directory,
            "date_data": {
                "creation_date": when.isoformat(),
                "year": when.year,
                "month": when.month,
                "weekday": when.isoweekday(),
            },
            "location_data": {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "place_name": self.place_name,
            },
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MediaFileInfo):
            return NotImplemented
        return self.file_path == other.file_path

    def __hash__(self) -> int:
        return hash(self.file_path)

    def __str__(self) -> str:
        return f"{self.filename} ({self.size_mb:.1f} MB)"


class DirectoryCache(BaseModel):
    """Scan results for one directory."""

    directory_path: str = Field(..., description="Directory that was scanned")
    media_files: list[MediaFileInfo] = Field(default_factory=list, description="Media files found")
    last_scanned: datetime = Field(default_factory=datetime.now, description="When the scan finished")

    @computed_field
    @property
    def file_count(self) -> int:
        """Number of media files in this directory."""
        return len(self.media_files)

    def is_valid(self, max_age: timedelta = timedelta(hours=6), now: datetime | None = None) -> bool:
        """Whether the scan is still fresh. Advisory only; nothing is evicted."""
        return ((now or datetime.now()) - self.last_scanned) < max_age

    def files_by_extension(self, extension: str) -> list[MediaFileInfo]:
        extension = extension.lower()
        return [f for f in self.media_files if f.extension == extension]

    def __str__(self) -> str:
        return f"DirectoryCache({self.directory_path}: {self.file_count} files, scanned {self.last_scanned})"


class RecoveryMethod(str, Enum):
    """How a reference was resolved."""

    NONE = "none"
    EXACT_FILENAME = "exact_filename"
    FILENAME_PATTERN = "filename_pattern"
    BIRTHPRINT = "birthprint"
    CACHE_REFRESH = "cache_refresh"
    FAILED = "failed"


_METHOD_DESCRIPTIONS = {
    RecoveryMethod.NONE: "No recovery needed",
    RecoveryMethod.EXACT_FILENAME: "Recovered by exact filename match",
    RecoveryMethod.FILENAME_PATTERN: "Recovered by filename pattern",
    RecoveryMethod.BIRTHPRINT: "Recovered by birthprint matching",
    RecoveryMethod.CACHE_REFRESH: "Recovered after cache refresh",
    RecoveryMethod.FAILED: "Recovery failed",
}


class ValidationResult(BaseModel):
    """Outcome of validating (and possibly recovering) one reference."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool = Field(..., description="Valid originally or after recovery")
    original_reference: str = Field(..., description="Reference that was validated")
    recovered_reference: str | None = Field(None, description="Substitute reference, if recovered")
    recovery_method: RecoveryMethod = Field(..., description="How the reference was resolved")
    error_message: str | None = Field(None, description="Reason for failure")
    error_kind: ErrorKind | None = Field(None, description="Failure category")
    recovery_metadata: dict[str, Any] | None = Field(None, description="Strategy details")

    @model_validator(mode="after")
    def check_method_consistency(self) -> "ValidationResult":
        """A failed method must be invalid and every other method valid."""
        if self.recovery_method is RecoveryMethod.FAILED and self.is_valid:
            raise ValueError("a failed result cannot be valid")
        if self.recovery_method is not RecoveryMethod.FAILED and not self.is_valid:
            raise ValueError(f"an invalid result must use the failed method, got {self.recovery_method.value}")
        return self

    @classmethod
    def valid(cls, reference: str) -> "ValidationResult":
        return cls(is_valid=True, original_reference=reference, recovery_method=RecoveryMethod.NONE)

    @classmethod
    def recovered(
        cls,
        reference: str,
        recovered_reference: str,
        method: RecoveryMethod,
        metadata: dict[str, Any] | None = None,
    ) -> "ValidationResult":
        return cls(
            is_valid=True,
            original_reference=reference,
            recovered_reference=recovered_reference,
            recovery_method=method,
            recovery_metadata=metadata,
        )

    @classmethod
    def failed(cls, reference: str, message: str, kind: ErrorKind | None = None) -> "ValidationResult":
        return cls(
            is_valid=False,
            original_reference=reference,
            recovery_method=RecoveryMethod.FAILED,
            error_message=message,
            error_kind=kind,
        )

    @classmethod
    def from_error(cls, reference: str, error: MediaReferenceError) -> "ValidationResult":
        """Failed result carrying the message and kind of ``error``."""
        return cls.failed(reference, error.message, error.kind)

    @property
    def was_recovered(self) -> bool:
        """Whether a recovery strategy produced this result."""
        return self.recovery_method not in (RecoveryMethod.NONE, RecoveryMethod.FAILED)

    @property
    def recovery_failed(self) -> bool:
        return self.recovery_method is RecoveryMethod.FAILED

    @property
    def effective_reference(self) -> str:
        """The reference callers should use from now on."""
        return self.recovered_reference or self.original_reference

    @property
    def recovery_method_description(self) -> str:
        return _METHOD_DESCRIPTIONS[self.recovery_method]

    def __str__(self) -> str:
        return (
            f"ValidationResult(valid={self.is_valid}, method={self.recovery_method.value}, "
            f"original={self.original_reference}, recovered={self.recovered_reference})"
        )


class ValidationCacheEntry(BaseModel):
    """A memoized validation result."""

    model_config = ConfigDict(frozen=True)

    result: ValidationResult
    cached_at: datetime = Field(default_factory=datetime.now)

    def is_valid(self, now: datetime | None = None, ttl: timedelta = timedelta(hours=24)) -> bool:
        """Whether the entry is still within its TTL."""
        return ((now or datetime.now()) - self.cached_at) < ttl


class BatchResult(BaseModel):
    """Aggregate over a list of validation results, in input order."""

    results: list[ValidationResult] = Field(default_factory=list)

    @computed_field
    @property
    def total(self) -> int:
        return len(self.results)

    @computed_field
    @property
    def valid_count(self) -> int:
        """Results that were valid without recovery."""
        return sum(1 for r in self.results if r.is_valid and not r.was_recovered)

    @computed_field
    @property
    def recovered_count(self) -> int:
        return sum(1 for r in self.results if r.was_recovered)

    @computed_field
    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.recovery_failed)

    @computed_field
    @property
    def success_rate(self) -> float:
        """(valid + recovered) / total, 1.0 for an empty batch."""
        if not self.results:
            return 1.0
        return (self.valid_count + self.recovered_count) / self.total

    @property
    def all_valid(self) -> bool:
        return self.failed_count == 0

    def __str__(self) -> str:
        return (
            f"BatchResult(total={self.total}, valid={self.valid_count}, "
            f"recovered={self.recovered_count}, failed={self.failed_count}, "
            f"success rate={self.success_rate:.1%})"
        )


class BirthprintWeights(BaseModel):
    """Weights and time windows for birthprint similarity scoring."""

    model_config = ConfigDict(frozen=True)

    size_weight: float = Field(default=0.4, ge=0.0, le=1.0, description="Awarded on exact size match")
    exact_time_weight: float = Field(default=0.3, ge=0.0, le=1.0, description="Awarded inside the exact window")
    near_time_weight: float = Field(default=0.15, ge=0.0, le=1.0, description="Awarded inside the near window")
    filename_weight: float = Field(default=0.3, ge=0.0, le=1.0, description="Multiplied by filename similarity")
    exact_time_window_seconds: int = Field(default=1, ge=0)
    near_time_window_seconds: int = Field(default=5, ge=0)


class ValidationConfig(BaseModel):
    """Per-call configuration of validation and recovery."""

    model_config = ConfigDict(frozen=True)

    enable_recovery: bool = Field(default=True, description="Attempt recovery for missing files")
    enable_cache_refresh: bool = Field(default=True, description="Allow the forced cache refresh strategy")
    enable_metadata_matching: bool = Field(default=True, description="Allow the birthprint strategy")
    metadata_match_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Minimum birthprint similarity for a match"
    )
    max_recovery_time: float = Field(default=10.0, gt=0, description="Recovery budget in seconds")
    enable_stale_purging: bool = Field(default=True, description="Track missing references for purging")
    enable_caching: bool = Field(default=True, description="Serve and store results in the result cache")
    verbose_logging: bool = Field(default=False, description="Log per-reference progress at INFO")
    birthprint_weights: BirthprintWeights = Field(default_factory=BirthprintWeights)

    @classmethod
    def production(cls) -> "ValidationConfig":
        """Fast timeout, no forced cache refresh, stricter matching."""
        return cls(
            max_recovery_time=5.0,
            enable_cache_refresh=False,
            metadata_match_threshold=0.8,
            verbose_logging=False,
        )

    @classmethod
    def debug(cls) -> "ValidationConfig":
        """Longer timeout, cache refresh enabled, looser matching, verbose."""
        return cls(
            max_recovery_time=15.0,
            enable_cache_refresh=True,
            metadata_match_threshold=0.6,
            verbose_logging=True,
        )

    @property
    def log_level(self) -> int:
        return logging.INFO if self.verbose_logging else logging.DEBUG


class EngineSettings(BaseModel):
    """Per-engine tuning knobs."""

    supported_extensions: list[str] = Field(
        default=[
            ".jpg",
            ".jpeg",
            ".png",
            ".gif",
            ".bmp",
            ".webp",
            ".tif",
            ".tiff",  # Images
            ".heic",
            ".heif",  # Apple formats
            ".mp4",
            ".mov",
            ".avi",
            ".mkv",
            ".wmv",
            ".flv",
            ".webm",  # Videos
        ],
        description="File extensions the directory scanner picks up",
    )
    scan_concurrency: int = Field(default=3, ge=1, description="Concurrent directory walks")
    validation_concurrency: int = Field(default=5, ge=1, description="Concurrent validations per window")
    directory_cache_max_age: timedelta = Field(default=timedelta(hours=6))
    validation_ttl: timedelta = Field(default=timedelta(hours=24))
    birthprint_cache_limit: int = Field(default=1000, ge=1)
    invalidation_interval: float = Field(default=30.0, ge=0, description="Seconds between smart invalidations")
    notification_debounce: float = Field(default=0.1, ge=0, description="Debounce for notification resets")
    notification_reset_delay: float = Field(default=0.1, ge=0, description="Pause between stop and start")
    notification_settle_delay: float = Field(default=0.5, ge=0, description="Pause during a full refresh")
    index_rebuild_attempts: int = Field(default=2, ge=1)
    index_rebuild_retry_delay: float = Field(default=1.0, ge=0)
    min_pattern_length: int = Field(default=3, ge=1, description="Shortest base name used for pattern search")

    @field_validator("supported_extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        """Ensure all extensions start with a dot and are lowercase."""
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class MetadataIndexSnapshot(BaseModel):
    """Bulk payload pushed to the metadata index after a refresh."""

    media_items: dict[str, dict[str, Any]] = Field(default_factory=dict)
    media_by_date: dict[str, list[str]] = Field(default_factory=dict)
    media_by_folder: dict[str, list[str]] = Field(default_factory=dict)
    media_by_location: dict[str, list[str]] = Field(default_factory=dict)
    directories: dict[str, dict[str, Any]] = Field(default_factory=dict)
    last_update: datetime = Field(default_factory=datetime.now)


class SystemStatus(BaseModel):
    """Snapshot of engine cache state for diagnostics."""

    is_initialized: bool
    custom_directories_enabled: bool
    enabled_directories_count: int = Field(..., ge=0)
    cached_directories: int = Field(..., ge=0)
    total_cached_files: int = Field(..., ge=0)
    validation_cache_size: int = Field(..., ge=0)
    stale_references_count: int = Field(..., ge=0)
    scan_in_progress: bool = False
    last_scan_time: datetime | None = None
    cache_status: dict[str, dict[str, Any]] = Field(default_factory=dict)
