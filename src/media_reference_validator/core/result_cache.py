"""Memoization of validation outcomes and tracking of stale references."""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from urllib.parse import unquote, urlparse

from .models import ValidationCacheEntry, ValidationResult

logger = logging.getLogger(__name__)


class ValidationResultCache:
    """
    Validation results keyed by the original reference string.

    Entries live for ``ttl``. Expired entries are swept on every write; reads
    treat them as misses.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24), clock: Callable[[], datetime] = datetime.now):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, ValidationCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, reference: str) -> ValidationResult | None:
        """Return the cached result, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(reference)
        if entry is None or not entry.is_valid(now=self._clock(), ttl=self.ttl):
            return None
        return entry.result

    def put(self, reference: str, result: ValidationResult) -> None:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._entries[reference] = ValidationCacheEntry(result=result, cached_at=now)

    def _sweep(self, now: datetime) -> None:
        expired = [ref for ref, entry in self._entries.items() if not entry.is_valid(now=now, ttl=self.ttl)]
        for ref in expired:
            del self._entries[ref]
        if expired:
            logger.debug(f"Swept {len(expired)} expired validation cache entries")

    def remove(self, reference: str) -> None:
        with self._lock:
            self._entries.pop(reference, None)

    def remove_under(self, directories: Iterable[str]) -> int:
        """
        Drop entries whose reference path lies under any of the directories.

        Returns:
            Number of entries removed
        """
        prefixes = tuple(directories)
        with self._lock:
            doomed = [ref for ref in self._entries if unquote(urlparse(ref).path).startswith(prefixes)]
            for ref in doomed:
                del self._entries[ref]
        if doomed:
            logger.debug(f"Cleared {len(doomed)} validation cache entries for changed directories")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, reference: object) -> bool:
        with self._lock:
            return reference in self._entries


class StaleReferenceTracker:
    """References known to have failed the existence check."""

    def __init__(self) -> None:
        self._references: set[str] = set()
        self._lock = threading.Lock()

    def add(self, reference: str) -> None:
        with self._lock:
            self._references.add(reference)

    def discard_many(self, references: Iterable[str]) -> None:
        with self._lock:
            self._references.difference_update(references)

    def snapshot(self) -> list[str]:
        with self._lock:
            return sorted(self._references)

    def clear(self) -> None:
        with self._lock:
            self._references.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._references)

    def __contains__(self, reference: object) -> bool:
        with self._lock:
            return reference in self._references
