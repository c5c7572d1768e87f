"""Recovery of references whose file no longer exists at the recorded path."""

import asyncio
import logging
import os
import re
import time
from collections.abc import Awaitable, Callable
from pathlib import Path, PurePosixPath
from typing import Any

from .birthprint import BirthprintCache, BirthprintMatcher
from .collaborators import AssetFilter, MediaAsset, MediaIndex
from .directory_cache import UnifiedDirectoryCache
from .exceptions import RecoveryExhaustedError, RecoveryTimeoutError
from .models import Birthprint, MediaReference, RecoveryMethod, ValidationConfig, ValidationResult
from .validator import ValidationPipeline

logger = logging.getLogger(__name__)

# Applied in this order, each to the result of the previous one
COPY_SUFFIX_PATTERNS = [
    re.compile(r"_\d+$"),
    re.compile(r"\(\d+\)$"),
    re.compile(r"_copy$"),
    re.compile(r"_Copy$"),
    re.compile(r" copy$"),
    re.compile(r" Copy$"),
]


def strip_copy_suffixes(stem: str) -> str:
    """
    Remove common rename suffixes from a filename stem.

    Example:
        >>> strip_copy_suffixes("photo_copy")
        'photo'
        >>> strip_copy_suffixes("IMG_1234")
        'IMG'
    """
    for pattern in COPY_SUFFIX_PATTERNS:
        stem = pattern.sub("", stem)
    return stem


class RecoveryEngine:
    """
    Finds a substitute for a reference whose file is missing.

    Strategies run in a fixed order and the first match wins:

    1. exact filename in any scanned directory
    2. filename pattern after stripping copy suffixes
    3. birthprint similarity
    4. full cache refresh, then re-check the original path

    The whole chain runs under ``config.max_recovery_time``.
    """

    def __init__(
        self,
        directory_cache: UnifiedDirectoryCache,
        pipeline: ValidationPipeline,
        birthprint_cache: BirthprintCache,
        media_index: MediaIndex | None = None,
        cache_refresher: Callable[[], Awaitable[None]] | None = None,
        min_pattern_length: int = 3,
    ):
        """
        Initialize the recovery engine.

        Args:
            directory_cache: Unified cache supplying candidate files
            pipeline: Used to check that candidates are usable
            birthprint_cache: Shared birthprint cache
            media_index: External media index, for last-known asset records
            cache_refresher: Coroutine performing a full cache refresh
            min_pattern_length: Shortest stripped base name used for pattern search
        """
        self.directory_cache = directory_cache
        self.pipeline = pipeline
        self.birthprint_cache = birthprint_cache
        self.media_index = media_index
        self.cache_refresher = cache_refresher
        self.min_pattern_length = min_pattern_length

    async def recover(self, reference: MediaReference, config: ValidationConfig) -> ValidationResult:
        """
        Try every enabled strategy within the recovery time budget.

        Args:
            reference: Reference whose file does not exist
            config: Validation configuration

        Returns:
            A recovered result, or a failed one on timeout or exhaustion
        """
        uri = reference.uri
        start_time = time.monotonic()
        logger.log(config.log_level, f"Attempting recovery for {reference.filename}")

        try:
            result = await asyncio.wait_for(
                self._run_strategies(reference, config, start_time), timeout=config.max_recovery_time
            )
            if result is None:
                raise RecoveryExhaustedError("all recovery strategies failed", uri)
        except asyncio.TimeoutError:
            logger.warning(f"Recovery timed out after {config.max_recovery_time}s for {uri}")
            return ValidationResult.from_error(uri, RecoveryTimeoutError("recovery timeout", uri))
        except RecoveryExhaustedError as e:
            logger.log(config.log_level, f"All recovery strategies failed for {uri}")
            return ValidationResult.from_error(uri, e)

        logger.info(f"Recovered {uri} -> {result.recovered_reference} ({result.recovery_method.value})")
        return result

    async def _run_strategies(
        self, reference: MediaReference, config: ValidationConfig, start_time: float
    ) -> ValidationResult | None:
        strategies: list[tuple[RecoveryMethod, Callable[[], Awaitable[dict[str, Any] | None]]]] = [
            (RecoveryMethod.EXACT_FILENAME, lambda: self.by_exact_filename(reference)),
            (RecoveryMethod.FILENAME_PATTERN, lambda: self.by_filename_pattern(reference)),
        ]
        if config.enable_metadata_matching:
            strategies.append((RecoveryMethod.BIRTHPRINT, lambda: self.by_birthprint(reference, config)))
        if config.enable_cache_refresh and self.cache_refresher is not None:
            strategies.append((RecoveryMethod.CACHE_REFRESH, lambda: self.by_cache_refresh(reference)))

        for method, strategy in strategies:
            try:
                match = await strategy()
            except Exception as e:
                logger.warning(f"{method.value} recovery failed for {reference.filename}: {e}")
                continue
            if match is None:
                logger.debug(f"{method.value} recovery found no match for {reference.filename}")
                continue

            recovered_uri = match.pop("uri")
            match["strategy"] = method.value
            match["elapsed_ms"] = round((time.monotonic() - start_time) * 1000, 1)
            return ValidationResult.recovered(reference.uri, recovered_uri, method, match)
        return None

    def _usable_except(self, exclude: str) -> Callable[[str | Path], bool]:
        def accept(candidate: str | Path) -> bool:
            return os.path.normpath(str(candidate)) != exclude and self.pipeline.is_usable(str(candidate))

        return accept

    async def _first_usable(self, candidates: list[Path], exclude: str) -> Path | None:
        accept = self._usable_except(exclude)
        return await asyncio.to_thread(lambda: next((c for c in candidates if accept(c)), None))

    async def by_exact_filename(self, reference: MediaReference) -> dict[str, Any] | None:
        """Strategy 1: a file with the same basename in any scanned directory."""
        filename = reference.filename
        candidates = [info.file_path for info in self.directory_cache.find_by_filename(filename)]
        match = await self._first_usable(candidates, os.path.normpath(reference.path))
        if match is None:
            return None
        return {
            "uri": match.absolute().as_uri(),
            "filename": match.name,
            "original_filename": filename,
            "candidates_considered": len(candidates),
        }

    async def by_filename_pattern(self, reference: MediaReference) -> dict[str, Any] | None:
        """
        Strategy 2: same extension, stems containing one another after
        suffix stripping (case-insensitive).
        """
        original = PurePosixPath(reference.path)
        base = strip_copy_suffixes(original.stem)
        if len(base) < self.min_pattern_length:
            logger.debug(f"Base name {base!r} too short for pattern recovery")
            return None

        base_lower = base.lower()
        candidates = []
        for info in self.directory_cache.find_by_extension(original.suffix):
            stem = info.stem.lower()
            if base_lower in stem or stem in base_lower:
                candidates.append(info.file_path)

        match = await self._first_usable(candidates, os.path.normpath(reference.path))
        if match is None:
            return None
        return {
            "uri": match.absolute().as_uri(),
            "filename": match.name,
            "original_filename": original.name,
            "base_name": base,
            "candidates_considered": len(candidates),
        }

    async def by_birthprint(self, reference: MediaReference, config: ValidationConfig) -> dict[str, Any] | None:
        """Strategy 3: the most similar known file at or above the threshold."""
        original_path = os.path.normpath(reference.path)
        assets = await self._list_assets()

        target = await asyncio.to_thread(self._target_birthprint, original_path, assets)
        if target is None:
            logger.debug(f"No birthprint available for {reference.filename}")
            return None

        candidates = await asyncio.to_thread(self._candidate_birthprints, original_path, assets)
        matcher = BirthprintMatcher(config.birthprint_weights)
        best = await asyncio.to_thread(
            matcher.best_match,
            target,
            candidates,
            config.metadata_match_threshold,
            self._usable_except(original_path),
        )
        if best is None:
            return None

        path, similarity = best
        match = Path(path)
        return {
            "uri": match.absolute().as_uri(),
            "filename": match.name,
            "original_filename": target.original_filename,
            "similarity": similarity,
            "candidates_considered": len(candidates),
        }

    async def by_cache_refresh(self, reference: MediaReference) -> dict[str, Any] | None:
        """Strategy 4: refresh every cache layer, then re-check the original path."""
        await self.cache_refresher()
        if not await asyncio.to_thread(self.pipeline.is_usable, reference.path):
            return None
        return {"uri": reference.uri, "filename": reference.filename, "candidates_considered": 1}

    async def _list_assets(self) -> list[MediaAsset]:
        if self.media_index is None:
            return []
        try:
            return await asyncio.to_thread(self.media_index.list_assets, AssetFilter())
        except Exception as e:
            logger.warning(f"Media index listing failed during recovery: {e}")
            return []

    def _target_birthprint(self, original_path: str, assets: list[MediaAsset]) -> Birthprint | None:
        cached = self.birthprint_cache.get(original_path)
        if cached is not None:
            return cached

        birthprint = BirthprintMatcher.from_stat(original_path)
        if birthprint is None:
            for asset in assets:
                if os.path.normpath(asset.file_path) == original_path:
                    birthprint = BirthprintMatcher.from_asset(asset)
                    break

        if birthprint is not None:
            self.birthprint_cache.put(original_path, birthprint)
        return birthprint

    def _candidate_birthprints(self, original_path: str, assets: list[MediaAsset]) -> list[tuple[str, Birthprint]]:
        """Birthprints of every known file, scanned files first, in discovery order."""
        candidates: list[tuple[str, Birthprint]] = []
        seen = {original_path}

        for info in self.directory_cache.all_files():
            path = os.path.normpath(str(info.file_path))
            if path in seen:
                continue
            seen.add(path)
            birthprint = self.birthprint_cache.get(path)
            if birthprint is None:
                birthprint = BirthprintMatcher.from_file_info(info)
                self.birthprint_cache.put(path, birthprint)
            candidates.append((str(info.file_path), birthprint))

        for asset in assets:
            path = os.path.normpath(asset.file_path)
            if path in seen:
                continue
            seen.add(path)
            birthprint = self.birthprint_cache.get(path) or BirthprintMatcher.from_stat(path)
            if birthprint is None:
                continue
            self.birthprint_cache.put(path, birthprint)
            candidates.append((path, birthprint))

        return candidates
