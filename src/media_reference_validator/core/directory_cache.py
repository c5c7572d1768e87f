"""Process-wide cache of directory scan results."""

import asyncio
import logging
import os
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .collaborators import DirectoryConfigProvider, MetadataIndexSyncTarget
from .guards import SingleFlight
from .models import DirectoryCache, EngineSettings, MediaFileInfo, MetadataIndexSnapshot
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)


class UnifiedDirectoryCache:
    """
    Source of truth for which media files exist in which directory.

    Holds one ``DirectoryCache`` per scanned directory, a filename index used
    by recovery, and the timestamps that drive smart rescans. After every
    refresh the downstream metadata index is replaced wholesale from here.
    """

    def __init__(
        self,
        scanner: DirectoryScanner,
        directory_config: DirectoryConfigProvider,
        sync_target: MetadataIndexSyncTarget | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.scanner = scanner
        self.directory_config = directory_config
        self.sync_target = sync_target
        self.settings = settings or EngineSettings()
        self._clock = clock

        self._entries: dict[str, DirectoryCache] = {}
        self._filename_index: dict[str, dict[str, MediaFileInfo]] = {}
        self._timestamps: dict[str, float] = {}
        self._lock = threading.Lock()
        self._scan_flight = SingleFlight("directory scan")

        # Number of directory walks performed by refresh(), for diagnostics
        self.scan_count = 0

    @property
    def scan_in_progress(self) -> bool:
        return self._scan_flight.in_progress()

    def default_directories(self) -> list[str]:
        """Enabled directories, or the platform defaults when custom directories are off."""
        if self.directory_config.custom_directories_enabled():
            return list(self.directory_config.enabled_directories())
        return list(self.directory_config.platform_default_directories())

    def needs_rescan(self, directory_path: str) -> bool:
        """
        Check whether a directory changed since it was last recorded.

        Records the new modification time when it advanced. Missing or
        unreadable directories never need a rescan.
        """
        try:
            mtime = os.stat(directory_path).st_mtime
        except OSError:
            return False

        with self._lock:
            last_known = self._timestamps.get(directory_path)
            if last_known is None or mtime > last_known:
                self._timestamps[directory_path] = mtime
                return True
        return False

    async def refresh(
        self,
        paths: list[str] | None = None,
        force_full_scan: bool = False,
        enable_smart_caching: bool = True,
        replace: bool = False,
    ) -> list[str]:
        """
        Rescan directories and update the cache.

        Concurrent non-forced callers share the refresh already in flight
        instead of starting another scan.

        Args:
            paths: Directories to refresh, defaults to default_directories()
            force_full_scan: Rescan every directory regardless of timestamps
            enable_smart_caching: Only rescan directories whose mtime advanced
            replace: Drop every directory that was not rescanned, once the new
                results are stored. The cache is never empty in between.

        Returns:
            Directories that were actually scanned
        """
        return await self._scan_flight.run(
            lambda: self._refresh(paths, force_full_scan, enable_smart_caching, replace),
            force=force_full_scan,
        )

    async def _refresh(
        self, paths: list[str] | None, force_full_scan: bool, enable_smart_caching: bool, replace: bool = False
    ) -> list[str]:
        start_time = time.time()
        directories = list(paths) if paths is not None else self.default_directories()

        if not force_full_scan and enable_smart_caching:
            changed = await asyncio.to_thread(lambda: [d for d in directories if self.needs_rescan(d)])
            if not changed:
                logger.debug("No directory changes detected, using cache")
                return []
            logger.info(f"Detected changes in {len(changed)} of {len(directories)} directories")
        else:
            changed = directories

        scanned_at = time.time()
        results = await self.scanner.scan_many(changed)
        for directory, files in results.items():
            self.store(directory, files, scanned_at)
        if replace:
            self._prune(set(results))
        self.scan_count += len(changed)

        await asyncio.to_thread(self.sync)

        logger.info(
            f"Directory refresh completed in {(time.time() - start_time) * 1000:.0f}ms: "
            f"{len(changed)} directories, {sum(len(f) for f in results.values())} media files"
        )
        return changed

    def store(self, directory_path: str, media_files: list[MediaFileInfo], scanned_at: float | None = None) -> DirectoryCache:
        """
        Record scan results for one directory and rebuild its filename index.

        Args:
            directory_path: Directory that was scanned
            media_files: Files found
            scanned_at: Epoch seconds when the walk started, defaults to now

        Returns:
            The new cache entry
        """
        scanned_at = time.time() if scanned_at is None else scanned_at
        entry = DirectoryCache(directory_path=directory_path, media_files=media_files, last_scanned=self._clock())
        exists = os.path.isdir(directory_path)

        with self._lock:
            self._entries[directory_path] = entry
            self._filename_index[directory_path] = {f.filename: f for f in media_files}
            if exists:
                self._timestamps[directory_path] = max(scanned_at, self._timestamps.get(directory_path, 0.0))
        return entry

    def _prune(self, keep: set[str]) -> None:
        with self._lock:
            for directory in set(self._entries) - keep:
                del self._entries[directory]
                self._filename_index.pop(directory, None)
                self._timestamps.pop(directory, None)

    def clear(self, paths: list[str] | None = None) -> None:
        """Drop cached entries, filename index and timestamps for ``paths``, or everything."""
        with self._lock:
            if paths is None:
                self._entries.clear()
                self._filename_index.clear()
                self._timestamps.clear()
            else:
                for directory in paths:
                    self._entries.pop(directory, None)
                    self._filename_index.pop(directory, None)
                    self._timestamps.pop(directory, None)
        logger.debug(f"Cleared directory cache for {len(paths) if paths is not None else 'all'} directories")

    def get(self, directory_path: str) -> DirectoryCache | None:
        with self._lock:
            return self._entries.get(directory_path)

    def entries(self) -> dict[str, DirectoryCache]:
        with self._lock:
            return dict(self._entries)

    def all_files(self) -> list[MediaFileInfo]:
        with self._lock:
            return [f for entry in self._entries.values() for f in entry.media_files]

    def find_by_filename(self, filename: str) -> list[MediaFileInfo]:
        """Files in any scanned directory whose basename is exactly ``filename``."""
        with self._lock:
            return [index[filename] for index in self._filename_index.values() if filename in index]

    def find_by_extension(self, extension: str) -> list[MediaFileInfo]:
        with self._lock:
            return [info for entry in self._entries.values() for info in entry.files_by_extension(extension)]

    @property
    def total_files(self) -> int:
        with self._lock:
            return sum(entry.file_count for entry in self._entries.values())

    @property
    def last_scan_time(self) -> datetime | None:
        with self._lock:
            if not self._entries:
                return None
            return max(entry.last_scanned for entry in self._entries.values())

    def build_snapshot(self) -> MetadataIndexSnapshot:
        """Shape the whole cache as a bulk payload for the metadata index."""
        media_items = {}
        media_by_date: dict[str, list[str]] = defaultdict(list)
        media_by_folder = {}
        media_by_location: dict[str, list[str]] = defaultdict(list)
        directories = {}

        for directory_path, entry in self.entries().items():
            directories[directory_path] = {
                "name": Path(directory_path).name,
                "path": directory_path,
                "media_count": entry.file_count,
            }
            folder_ids = []
            for info in entry.media_files:
                media_id = str(info.file_path)
                folder_ids.append(media_id)
                media_items[media_id] = info.to_index_record()
                if info.creation_date is not None:
                    media_by_date[info.creation_date.date().isoformat()].append(media_id)
                if info.latitude is not None and info.longitude is not None:
                    media_by_location[f"location_{info.latitude}_{info.longitude}"].append(media_id)
            media_by_folder[directory_path] = folder_ids

        return MetadataIndexSnapshot(
            media_items=media_items,
            media_by_date=dict(media_by_date),
            media_by_folder=media_by_folder,
            media_by_location=dict(media_by_location),
            directories=directories,
            last_update=self._clock(),
        )

    def sync(self) -> None:
        """Replace the downstream metadata index from this cache. Failures are logged."""
        if self.sync_target is None:
            return
        try:
            snapshot = self.build_snapshot()
            self.sync_target.replace_from_source(snapshot)
            logger.debug(f"Synced {len(snapshot.media_items)} items to the metadata index")
        except Exception as e:
            logger.error(f"Failed to sync metadata index: {e}")
