"""Core functionality for media reference validation and recovery."""

from .batch import BatchOrchestrator, run_in_windows
from .birthprint import BirthprintCache, BirthprintMatcher, filename_similarity, levenshtein_distance
from .collaborators import (
    AssetFilter,
    DirectoryConfigProvider,
    InMemoryMediaIndex,
    InMemoryMetadataIndex,
    MediaAsset,
    MediaIndex,
    MetadataExtractor,
    MetadataIndexSyncTarget,
    NullMediaIndex,
    NullMetadataExtractor,
    StaticDirectoryConfig,
)
from .directory_cache import UnifiedDirectoryCache
from .engine import MediaReferenceEngine
from .exceptions import (
    EngineNotInitializedError,
    ErrorKind,
    IntegrityFailureError,
    InvalidReferenceError,
    MediaReferenceError,
    OperationInProgressError,
    PolicyViolationError,
    RecoveryExhaustedError,
    RecoveryTimeoutError,
    ReferenceNotFoundError,
)
from .guards import Debouncer, InvalidationThrottle, OperationGuard, SingleFlight
from .metadata import PillowMetadataExtractor
from .models import (
    BatchResult,
    Birthprint,
    BirthprintWeights,
    DirectoryCache,
    EngineSettings,
    MediaFileInfo,
    MediaReference,
    MetadataIndexSnapshot,
    RecoveryMethod,
    SystemStatus,
    ValidationCacheEntry,
    ValidationConfig,
    ValidationResult,
)
from .recovery import RecoveryEngine, strip_copy_suffixes
from .result_cache import StaleReferenceTracker, ValidationResultCache
from .scanner import DirectoryScanner
from .validator import ValidationPipeline

__all__ = [
    "AssetFilter",
    "BatchOrchestrator",
    "BatchResult",
    "Birthprint",
    "BirthprintCache",
    "BirthprintMatcher",
    "BirthprintWeights",
    "Debouncer",
    "DirectoryCache",
    "DirectoryConfigProvider",
    "DirectoryScanner",
    "EngineNotInitializedError",
    "EngineSettings",
    "ErrorKind",
    "InMemoryMediaIndex",
    "InMemoryMetadataIndex",
    "IntegrityFailureError",
    "InvalidReferenceError",
    "InvalidationThrottle",
    "MediaAsset",
    "MediaFileInfo",
    "MediaIndex",
    "MediaReference",
    "MediaReferenceEngine",
    "MediaReferenceError",
    "MetadataExtractor",
    "MetadataIndexSnapshot",
    "MetadataIndexSyncTarget",
    "NullMediaIndex",
    "NullMetadataExtractor",
    "OperationGuard",
    "OperationInProgressError",
    "PillowMetadataExtractor",
    "PolicyViolationError",
    "RecoveryEngine",
    "RecoveryExhaustedError",
    "RecoveryMethod",
    "RecoveryTimeoutError",
    "ReferenceNotFoundError",
    "SingleFlight",
    "StaleReferenceTracker",
    "StaticDirectoryConfig",
    "SystemStatus",
    "UnifiedDirectoryCache",
    "ValidationCacheEntry",
    "ValidationConfig",
    "ValidationPipeline",
    "ValidationResult",
    "ValidationResultCache",
    "filename_similarity",
    "levenshtein_distance",
    "run_in_windows",
    "strip_copy_suffixes",
]
