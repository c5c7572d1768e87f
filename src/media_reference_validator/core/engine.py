"""Facade coordinating scanning, validation, recovery and cache maintenance."""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Sequence
from datetime import datetime
from typing import Any

from .batch import BatchOrchestrator
from .birthprint import BirthprintCache
from .collaborators import (
    AssetFilter,
    DirectoryConfigProvider,
    MediaIndex,
    MetadataExtractor,
    MetadataIndexSyncTarget,
    NullMediaIndex,
)
from .directory_cache import UnifiedDirectoryCache
from .exceptions import EngineNotInitializedError
from .guards import Debouncer, InvalidationThrottle, OperationGuard, SingleFlight
from .models import (
    BatchResult,
    DirectoryCache,
    EngineSettings,
    MediaReference,
    SystemStatus,
    ValidationConfig,
    ValidationResult,
)
from .recovery import RecoveryEngine
from .result_cache import StaleReferenceTracker, ValidationResultCache
from .scanner import DirectoryScanner
from .validator import ValidationPipeline

logger = logging.getLogger(__name__)

THROTTLED_LOG_INTERVAL = 60.0


class MediaReferenceEngine:
    """
    Keeps media references valid against a changing filesystem.

    One engine instance owns every cache it uses, so independent instances
    never share state. Call ``initialize()`` before anything else.

    Example:
        >>> engine = MediaReferenceEngine(StaticDirectoryConfig(["/photos"]))
        >>> await engine.initialize()
        >>> result = await engine.validate("file:///photos/a.jpg")
    """

    def __init__(
        self,
        directory_config: DirectoryConfigProvider,
        media_index: MediaIndex | None = None,
        metadata_extractor: MetadataExtractor | None = None,
        sync_target: MetadataIndexSyncTarget | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the engine.

        Args:
            directory_config: Supplies the directory allow-list
            media_index: External media index, defaults to NullMediaIndex
            metadata_extractor: Optional enrichment for scanned files
            sync_target: Downstream metadata index refreshed after scans
            settings: Engine tuning, defaults to EngineSettings()
            clock: Wall clock for cache timestamps
        """
        self.settings = settings or EngineSettings()
        self.directory_config = directory_config
        self.media_index = media_index or NullMediaIndex()

        self.scanner = DirectoryScanner(self.settings, metadata_extractor)
        self.directory_cache = UnifiedDirectoryCache(
            self.scanner, directory_config, sync_target, self.settings, clock
        )
        self.pipeline = ValidationPipeline(directory_config)
        self.birthprint_cache = BirthprintCache(self.settings.birthprint_cache_limit)
        self.result_cache = ValidationResultCache(self.settings.validation_ttl, clock)
        self.stale_references = StaleReferenceTracker()
        self.recovery = RecoveryEngine(
            self.directory_cache,
            self.pipeline,
            self.birthprint_cache,
            self.media_index,
            cache_refresher=self.comprehensive_cache_refresh,
            min_pattern_length=self.settings.min_pattern_length,
        )
        self.batch = BatchOrchestrator(
            self.validate,
            self._scan_one,
            validation_window=self.settings.validation_concurrency,
            scan_window=self.settings.scan_concurrency,
        )

        self._initialized = False
        self._init_flight = SingleFlight("initialization")
        self._validation_flight = SingleFlight("validating filesystem")
        self._invalidation_guard = OperationGuard("cache invalidation")
        self._invalidation_throttle = InvalidationThrottle(self.settings.invalidation_interval)
        self._notification_reset = Debouncer(
            self._reset_change_notifications, self.settings.notification_debounce, "notification reset"
        )
        self._background_tasks: set[asyncio.Task] = set()
        self._last_throttled_log: float | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise EngineNotInitializedError("MediaReferenceEngine not initialized. Call initialize() first.")

    async def initialize(self) -> None:
        """Perform the initial directory scan. Safe to call repeatedly and concurrently."""
        if self._initialized:
            return
        await self._init_flight.run(self._initialize)

    async def _initialize(self) -> None:
        if self._initialized:
            return
        logger.info("Initializing media reference engine")
        directories = await self.directory_cache.refresh()
        self._initialized = True
        logger.info(f"Media reference engine initialized, {len(directories)} directories scanned")

    # ========== Validation ==========

    async def validate(
        self, reference: MediaReference | str, config: ValidationConfig | None = None
    ) -> ValidationResult:
        """
        Validate one reference, recovering it if its file has gone missing.

        Results are cached by the original reference string.

        Args:
            reference: Reference or URI string
            config: Validation configuration, defaults to ValidationConfig()

        Returns:
            ValidationResult; never raises for a bad reference
        """
        self._require_initialized()
        config = config or ValidationConfig()
        reference = self.pipeline.parse(reference)

        if config.enable_caching:
            cached = self.result_cache.get(reference.uri)
            if cached is not None:
                logger.log(config.log_level, f"Validation cache hit: {reference.uri}")
                return cached

        result = await self.pipeline.run(
            reference,
            config,
            recover=self.recovery.recover,
            on_missing=self.stale_references.add if config.enable_stale_purging else None,
        )

        if config.enable_caching:
            self.result_cache.put(reference.uri, result)
            self.birthprint_cache.sweep()
        return result

    async def validate_batch(
        self, references: Sequence[MediaReference | str], config: ValidationConfig | None = None
    ) -> BatchResult:
        """
        Validate many references in bounded windows, preserving input order.

        Overlapping calls over the same reference list and config share one run.
        """
        self._require_initialized()
        config = config or ValidationConfig()
        parsed = [self.pipeline.parse(r) for r in references]
        key = (tuple(r.uri for r in parsed), config)
        return await self._validation_flight.run(lambda: self.batch.validate_batch(parsed, config), key=key)

    async def validate_and_filter(
        self, references: Sequence[MediaReference | str], config: ValidationConfig | None = None
    ) -> list[str]:
        """
        Keep only usable references, substituting recovered ones.

        References that fail are purged from tracking in the background.

        Returns:
            Effective references of every valid or recovered input, in input order
        """
        if not references:
            return []
        batch = await self.validate_batch(references, config or ValidationConfig.production())

        kept = [r.effective_reference for r in batch.results if r.is_valid]
        broken = [r.original_reference for r in batch.results if not r.is_valid]
        if broken:
            logger.info(f"Excluded {len(broken)} broken media references")
            self._spawn(self.purge_stale_references(broken))
        return kept

    def is_file_allowed(self, path: str) -> bool:
        """Whether ``path`` lies under a directory currently enabled for discovery."""
        return self.pipeline.is_allowed(path)

    # ========== Directory data ==========

    async def refresh_directory_data(
        self,
        paths: list[str] | None = None,
        force_full_scan: bool = False,
        enable_smart_caching: bool = True,
    ) -> list[str]:
        """
        Rescan directories into the unified cache.

        Returns:
            Directories that were actually scanned
        """
        self._require_initialized()
        return await self.directory_cache.refresh(paths, force_full_scan, enable_smart_caching)

    async def scan_directories(self, paths: Sequence[str]) -> list[DirectoryCache]:
        """Scan ``paths`` unconditionally, at most ``scan_concurrency`` at a time."""
        self._require_initialized()
        caches = await self.batch.scan_directories(paths)
        await asyncio.to_thread(self.directory_cache.sync)
        return caches

    async def _scan_one(self, path: str) -> DirectoryCache:
        scanned_at = time.time()
        files = await asyncio.to_thread(self.scanner.scan, path)
        return self.directory_cache.store(path, files, scanned_at)

    def get_directory_cache(self, path: str) -> DirectoryCache | None:
        self._require_initialized()
        return self.directory_cache.get(path)

    async def notify_media_change(
        self,
        changed_directories: list[str] | None = None,
        force_full_refresh: bool = False,
        source: str | None = None,
    ) -> list[str]:
        """
        Single entry point for "something on disk changed".

        Refreshes the affected directories and drops validation results that
        may no longer hold.

        Args:
            changed_directories: Directories known to have changed, or None for all
            force_full_refresh: Rescan everything and clear the media index caches
            source: Free-form description of the caller, for logging

        Returns:
            Directories that were rescanned
        """
        self._require_initialized()
        start_time = time.time()
        logger.info(
            f"Media change notification from {source or 'unknown'} "
            f"(force={force_full_refresh}, directories={len(changed_directories) if changed_directories else 'all'})"
        )

        changed = await self.refresh_directory_data(
            changed_directories,
            force_full_scan=force_full_refresh,
            enable_smart_caching=not force_full_refresh,
        )

        if force_full_refresh:
            await self._clear_media_index_caches()

        if changed_directories is not None:
            self.result_cache.remove_under(changed_directories)
        elif force_full_refresh:
            self.result_cache.clear()
            self.birthprint_cache.clear()

        logger.info(f"Media change notification processed in {(time.time() - start_time) * 1000:.0f}ms")
        return changed

    # ========== Cache maintenance ==========

    async def purge_stale_references(
        self, references: list[str] | None = None, force_full_purge: bool = False
    ) -> int:
        """
        Forget references known to be broken.

        Args:
            references: References to purge, defaults to every tracked stale reference
            force_full_purge: Also rebuild the unified cache and clear the media index caches

        Returns:
            Number of references purged
        """
        targets = list(references) if references is not None else self.stale_references.snapshot()
        if not targets and not force_full_purge:
            return 0

        for reference in targets:
            self.result_cache.remove(reference)
            self.birthprint_cache.remove(MediaReference(uri=reference).path)

        if force_full_purge:
            await self._clear_media_index_caches()
            await self.directory_cache.refresh(force_full_scan=True, replace=True)

        if references is None:
            self.stale_references.clear()
        else:
            self.stale_references.discard_many(targets)

        logger.info(f"Purged {len(targets)} stale references (full purge: {force_full_purge})")
        return len(targets)

    async def clear_cache(self, paths: list[str] | None = None) -> None:
        """Clear cached data for ``paths``, or every cache when None."""
        self.directory_cache.clear(paths)
        if paths is None:
            self.result_cache.clear()
            self.birthprint_cache.clear()
            self.stale_references.clear()
        else:
            self.result_cache.remove_under(paths)
        logger.info(f"Cleared caches for {len(paths) if paths is not None else 'all'} directories")

    async def smart_cache_invalidation(self) -> bool:
        """
        Lightweight media index refresh, at most once per invalidation interval.

        Returns:
            True if a cycle ran, False if throttled or already running
        """
        if self._invalidation_guard.in_progress:
            return False
        if not self._invalidation_throttle.try_acquire():
            self._log_throttled("Smart cache invalidation throttled")
            return False

        async with self._invalidation_guard.hold():
            self._log_throttled("Smart cache invalidation")
            try:
                await self._clear_media_index_caches()
                await self._reset_change_notifications()
                await asyncio.to_thread(self.media_index.list_assets, AssetFilter(media_types=["image"]))
            except Exception as e:
                logger.warning(f"Smart cache invalidation failed: {e}")
        return True

    def schedule_notification_reset(self) -> asyncio.Task:
        """Reset change notifications once a burst of calls has settled."""
        return self._notification_reset.trigger()

    async def comprehensive_cache_refresh(self) -> None:
        """Invalidate every cache layer and make the media index rebuild its state."""
        logger.info("Starting comprehensive cache refresh")
        await self.purge_stale_references(force_full_purge=True)

        settle = self.settings.notification_settle_delay
        try:
            await asyncio.to_thread(self.media_index.stop_change_notifications)
            await asyncio.sleep(settle)
            await asyncio.to_thread(self.media_index.start_change_notifications)
            await asyncio.sleep(settle)
        except Exception as e:
            logger.warning(f"Change notification reset failed: {e}")

        attempts = self.settings.index_rebuild_attempts
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(self.media_index.list_assets, AssetFilter())
                break
            except Exception as e:
                logger.warning(f"Media index rebuild attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self.settings.index_rebuild_retry_delay)

        self.result_cache.clear()
        self.birthprint_cache.clear()
        self.stale_references.clear()
        logger.info("Comprehensive cache refresh complete")

    async def _clear_media_index_caches(self) -> None:
        try:
            await asyncio.to_thread(self.media_index.clear_cache)
            await asyncio.to_thread(self.media_index.release_cache)
        except Exception as e:
            logger.warning(f"Failed to clear media index caches: {e}")

    async def _reset_change_notifications(self) -> None:
        await asyncio.to_thread(self.media_index.stop_change_notifications)
        await asyncio.sleep(self.settings.notification_reset_delay)
        await asyncio.to_thread(self.media_index.start_change_notifications)

    def _log_throttled(self, message: str) -> None:
        now = time.monotonic()
        if self._last_throttled_log is None or now - self._last_throttled_log > THROTTLED_LOG_INTERVAL:
            self._last_throttled_log = now
            logger.info(message)

    # ========== Status and lifecycle ==========

    def get_system_status(self) -> SystemStatus:
        entries = self.directory_cache.entries()
        max_age = self.settings.directory_cache_max_age
        return SystemStatus(
            is_initialized=self._initialized,
            custom_directories_enabled=self.directory_config.custom_directories_enabled(),
            enabled_directories_count=len(self.pipeline.allowed_directories()),
            cached_directories=len(entries),
            total_cached_files=self.directory_cache.total_files,
            validation_cache_size=len(self.result_cache),
            stale_references_count=len(self.stale_references),
            last_scan_time=self.directory_cache.last_scan_time,
            scan_in_progress=self.directory_cache.scan_in_progress,
            cache_status={
                path: {
                    "file_count": entry.file_count,
                    "last_scanned": entry.last_scanned.isoformat(),
                    "is_valid": entry.is_valid(max_age),
                }
                for path, entry in entries.items()
            },
        )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Cancel pending notification resets and wait for background purges."""
        self._notification_reset.cancel()
        await self._notification_reset.wait()
        if self._background_tasks:
            results = await asyncio.gather(*self._background_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Background task failed during shutdown: {result}")
        self._initialized = False
        logger.info("Media reference engine shut down")
