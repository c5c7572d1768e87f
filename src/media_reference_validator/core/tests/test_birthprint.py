"""Tests for birthprint similarity and caching."""

import os
from datetime import datetime, timedelta
from pathlib import Path

from ..birthprint import BirthprintCache, BirthprintMatcher, filename_similarity, levenshtein_distance
from ..collaborators import MediaAsset
from ..models import Birthprint, BirthprintWeights, MediaFileInfo

BASE_TIME = datetime(2024, 3, 1, 9, 30, 0)


def _bp(name: str = "IMG_1234.jpg", size: int = 2_000_000, offset: float = 0.0) -> Birthprint:
    return Birthprint(
        creation_time=BASE_TIME + timedelta(seconds=offset),
        file_size_bytes=size,
        original_filename=name,
    )


class TestFilenameSimilarity:
    """Test cases for filename similarity scoring."""

    def test_levenshtein_distance(self) -> None:
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "abc") == 0

    def test_exact_match(self) -> None:
        assert filename_similarity("a.jpg", "a.jpg") == 1.0

    def test_containment(self) -> None:
        """Test that containment is case-insensitive and scores 0.8."""
        assert filename_similarity("IMG_1234.jpg", "img_1234.jpg") == 0.8
        assert filename_similarity("photo", "photo_copy.jpg") == 0.8

    def test_edit_distance(self) -> None:
        score = filename_similarity("abcd.jpg", "abxd.jpg")
        assert score == 1.0 - 1 / 8


class TestBirthprintMatcher:
    """Test cases for BirthprintMatcher."""

    def setup_method(self) -> None:
        self.matcher = BirthprintMatcher()

    def test_identical_birthprints(self) -> None:
        """Test that a birthprint is fully similar to itself."""
        for bp in (_bp(), _bp("x.png", 1), _bp("", 0)):
            assert self.matcher.similarity(bp, bp) == 1.0

    def test_symmetry(self) -> None:
        a = _bp("IMG_1234.jpg", 100, 0)
        b = _bp("IMG_9999.jpg", 100, 3)
        assert self.matcher.similarity(a, b) == self.matcher.similarity(b, a)

    def test_size_mismatch_caps_score(self) -> None:
        """Test that a size mismatch alone limits the score to 0.6."""
        a = _bp(size=100)
        b = _bp(size=101)
        assert self.matcher.similarity(a, b) == 0.6

    def test_time_windows(self) -> None:
        """Test exact and near time windows, measured in whole seconds."""
        a = _bp("a.jpg", 1, 0)
        other_name = "zzzzz"

        exact = self.matcher.similarity(a, _bp(other_name, 2, 1.9))
        near = self.matcher.similarity(a, _bp(other_name, 2, 5.5))
        far = self.matcher.similarity(a, _bp(other_name, 2, 6.0))

        assert exact == 0.3
        assert near == 0.15
        assert far == 0.0

    def test_custom_weights(self) -> None:
        matcher = BirthprintMatcher(BirthprintWeights(size_weight=0.7, filename_weight=0.0))
        assert matcher.similarity(_bp("a", 5), _bp("b", 5, 100)) == 0.7

    def test_best_match(self) -> None:
        """Test selecting the highest score at or above threshold."""
        target = _bp("IMG_1234.jpg", 500)
        candidates = [
            ("weak", _bp("other.jpg", 1, 100)),
            ("good", _bp("IMG_1234 copy.jpg", 500, 0)),
            ("perfect", _bp("IMG_1234.jpg", 500, 0)),
        ]

        assert self.matcher.best_match(target, candidates, threshold=0.7) == ("perfect", 1.0)
        assert self.matcher.best_match(target, candidates[:1], threshold=0.7) is None

    def test_best_match_tie_keeps_first(self) -> None:
        target = _bp("a.jpg", 500)
        candidates = [("first", _bp("a.jpg", 500)), ("second", _bp("a.jpg", 500))]
        assert self.matcher.best_match(target, candidates, threshold=0.5)[0] == "first"

    def test_best_match_skips_rejected(self) -> None:
        """Test that a rejected top candidate falls through to the next best."""
        target = _bp("IMG_1234.jpg", 500)
        candidates = [
            ("good", _bp("IMG_1234 copy.jpg", 500, 0)),
            ("perfect", _bp("IMG_1234.jpg", 500, 0)),
        ]

        best = self.matcher.best_match(target, candidates, threshold=0.7, accept=lambda item: item != "perfect")

        assert best[0] == "good"
        assert self.matcher.best_match(target, candidates, threshold=0.7, accept=lambda item: False) is None

    def test_rank(self) -> None:
        target = _bp("a.jpg", 500)
        candidates = [("low", _bp("a.jpg", 1, 100)), ("high", _bp("a.jpg", 500)), ("none", _bp("q", 2, 99))]
        ranked = self.matcher.rank(target, candidates, threshold=0.2)
        assert [item for item, _ in ranked] == ["high", "low"]

    def test_from_stat(self, tmp_path: Path) -> None:
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"\x00" * 42)

        bp = BirthprintMatcher.from_stat(path)

        assert bp is not None
        assert bp.file_size_bytes == 42
        assert bp.original_filename == "clip.mp4"
        assert bp.mime_type == "video/mp4"
        assert BirthprintMatcher.from_stat(tmp_path / "missing.mp4") is None

    def test_from_file_info(self) -> None:
        info = MediaFileInfo.from_path(
            Path("/photos/a.jpg"), size_bytes=10, last_modified=BASE_TIME, mime_type="image/jpeg"
        )
        bp = BirthprintMatcher.from_file_info(info)
        assert bp.creation_time == BASE_TIME
        assert bp.file_size_bytes == 10

    def test_from_asset(self) -> None:
        """Test reconstructing a birthprint from a media-index record."""
        asset = MediaAsset(asset_id="1", file_path="/photos/a.jpg", created_at=BASE_TIME, size_bytes=10)
        assert BirthprintMatcher.from_asset(asset).original_filename == "a.jpg"
        assert BirthprintMatcher.from_asset(MediaAsset(asset_id="2", file_path="/photos/b.jpg")) is None


class TestBirthprintCache:
    """Test cases for BirthprintCache."""

    def test_put_get_by_normalized_path(self) -> None:
        cache = BirthprintCache()
        cache.put("/photos/./a.jpg", _bp())

        assert cache.get(os.path.normpath("/photos/a.jpg")) == _bp()
        assert "/photos/a.jpg" in cache
        cache.remove("/photos/a.jpg")
        assert len(cache) == 0

    def test_sweep_clears_over_limit(self) -> None:
        """Test that the cache is cleared wholesale once over its limit."""
        cache = BirthprintCache(limit=3)
        for i in range(3):
            cache.put(f"/p/{i}.jpg", _bp())
        assert not cache.sweep()
        assert len(cache) == 3

        cache.put("/p/3.jpg", _bp())
        assert cache.sweep()
        assert len(cache) == 0
