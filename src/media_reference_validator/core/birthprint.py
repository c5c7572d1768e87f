"""Birthprint extraction, similarity scoring and caching."""

import logging
import os
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from .collaborators import MediaAsset
from .media_types import mime_type_for_path
from .models import Birthprint, BirthprintWeights, MediaFileInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")


def levenshtein_distance(a: str, b: str) -> int:
    """
    Compute the edit distance between two strings.

    Uses the two-row dynamic programming formulation.
    """
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def filename_similarity(a: str, b: str) -> float:
    """
    Score how alike two filenames are.

    Args:
        a: First filename
        b: Second filename

    Returns:
        1.0 for an exact match, 0.8 when one name contains the other
        (case-insensitive), otherwise 1 - normalized Levenshtein distance

    Example:
        >>> filename_similarity("IMG_1234.jpg", "img_1234 copy.jpg")
        0.8
    """
    if a == b:
        return 1.0

    a_lower = a.lower()
    b_lower = b.lower()
    if a_lower in b_lower or b_lower in a_lower:
        return 0.8

    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a_lower, b_lower) / max_len


class BirthprintMatcher:
    """Computes and compares birthprints."""

    def __init__(self, weights: BirthprintWeights | None = None):
        """
        Initialize the matcher.

        Args:
            weights: Scoring weights, defaults to BirthprintWeights()
        """
        self.weights = weights or BirthprintWeights()

    def similarity(self, a: Birthprint, b: Birthprint) -> float:
        """
        Calculate the similarity between two birthprints.

        Args:
            a: First birthprint
            b: Second birthprint

        Returns:
            Score between 0.0 (unrelated) and 1.0 (identical)
        """
        w = self.weights
        score = 0.0

        if a.file_size_bytes == b.file_size_bytes:
            score += w.size_weight

        # Whole seconds, truncated
        seconds_apart = int(abs((a.creation_time - b.creation_time).total_seconds()))
        if seconds_apart <= w.exact_time_window_seconds:
            score += w.exact_time_weight
        elif seconds_apart <= w.near_time_window_seconds:
            score += w.near_time_weight

        score += filename_similarity(a.original_filename, b.original_filename) * w.filename_weight

        return round(min(max(score, 0.0), 1.0), 6)

    def best_match(
        self,
        target: Birthprint,
        candidates: Iterable[tuple[T, Birthprint]],
        threshold: float,
        accept: Callable[[T], bool] | None = None,
    ) -> tuple[T, float] | None:
        """
        Find the candidate most similar to ``target``.

        Args:
            target: Birthprint of the missing file
            candidates: (item, birthprint) pairs in discovery order
            threshold: Minimum similarity to accept
            accept: Optional check a candidate must also pass, tried best first

        Returns:
            (item, score) of the best accepted candidate at or above threshold,
            or None. Ties keep the first-seen candidate.
        """
        for item, score in self.rank(target, candidates, threshold):
            if accept is None or accept(item):
                return item, score
        return None

    def rank(
        self,
        target: Birthprint,
        candidates: Iterable[tuple[T, Birthprint]],
        threshold: float,
    ) -> list[tuple[T, float]]:
        """All candidates at or above threshold, best first, stable on ties."""
        scored = [(item, self.similarity(target, bp)) for item, bp in candidates]
        matches = [pair for pair in scored if pair[1] >= threshold]
        matches.sort(key=lambda pair: pair[1], reverse=True)
        return matches

    @staticmethod
    def from_stat(file_path: str | Path) -> Birthprint | None:
        """
        Take the birthprint of a file on disk.

        Returns:
            Birthprint or None if the file cannot be stat'ed
        """
        path = Path(file_path)
        try:
            stat = path.stat()
        except OSError as e:
            logger.debug(f"Cannot stat {path} for birthprint: {e}")
            return None
        if not path.is_file():
            return None
        return Birthprint(
            creation_time=datetime.fromtimestamp(stat.st_mtime),
            file_size_bytes=stat.st_size,
            original_filename=path.name,
            mime_type=mime_type_for_path(path),
        )

    @staticmethod
    def from_file_info(info: MediaFileInfo) -> Birthprint:
        """Birthprint from a scanned file record, without touching the disk."""
        return Birthprint(
            creation_time=info.last_modified,
            file_size_bytes=info.size_bytes,
            original_filename=info.filename,
            mime_type=info.mime_type,
        )

    @staticmethod
    def from_asset(asset: MediaAsset) -> Birthprint | None:
        """Birthprint reconstructed from a media-index record."""
        if asset.created_at is None or asset.size_bytes is None:
            return None
        return Birthprint(
            creation_time=asset.created_at,
            file_size_bytes=asset.size_bytes,
            original_filename=Path(asset.file_path).name,
            mime_type=asset.mime_type,
        )


class BirthprintCache:
    """
    Birthprints keyed by file path.

    The cache is unbounded between sweeps; once it holds more than ``limit``
    entries it is cleared wholesale.
    """

    def __init__(self, limit: int = 1000):
        self.limit = limit
        self._entries: dict[str, Birthprint] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(file_path: str | Path) -> str:
        return os.path.normpath(str(file_path))

    def get(self, file_path: str | Path) -> Birthprint | None:
        with self._lock:
            return self._entries.get(self.key_for(file_path))

    def put(self, file_path: str | Path, birthprint: Birthprint) -> None:
        with self._lock:
            self._entries[self.key_for(file_path)] = birthprint

    def remove(self, file_path: str | Path) -> None:
        with self._lock:
            self._entries.pop(self.key_for(file_path), None)

    def sweep(self) -> bool:
        """Clear everything if over the limit. Returns True when cleared."""
        with self._lock:
            if len(self._entries) > self.limit:
                logger.debug(f"Birthprint cache over limit ({len(self._entries)}), clearing")
                self._entries.clear()
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, file_path: object) -> bool:
        if not isinstance(file_path, (str, Path)):
            return False
        with self._lock:
            return self.key_for(file_path) in self._entries
