"""Shared fixtures for core tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from ..models import EngineSettings

JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def make_media() -> Callable[..., Path]:
    """Factory writing a file with a valid header padded to ``size`` bytes."""

    def _make(path: Path, size: int = 1024, header: bytes = JPEG_HEADER) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(header + b"\x00" * max(size - len(header), 0))
        return path

    return _make


@pytest.fixture
def fast_settings() -> EngineSettings:
    """Engine settings without the real-world pauses."""
    return EngineSettings(
        notification_debounce=0.01,
        notification_reset_delay=0,
        notification_settle_delay=0,
        index_rebuild_retry_delay=0,
    )
