"""Interfaces of the external services the engine depends on, plus simple in-process versions."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .media_types import media_kind, mime_type_for_path
from .models import MetadataIndexSnapshot

logger = logging.getLogger(__name__)


class MediaAsset(BaseModel):
    """A record held by the external media index."""

    asset_id: str = Field(..., description="Identifier assigned by the media index")
    file_path: str = Field(..., description="Last known path of the asset")
    mime_type: str | None = None
    created_at: datetime | None = None
    size_bytes: int | None = Field(None, ge=0)


class AssetFilter(BaseModel):
    """Filter passed to ``MediaIndex.list_assets``."""

    media_types: list[str] = Field(default_factory=lambda: ["image", "video"])
    ignore_size: bool = True


@runtime_checkable
class DirectoryConfigProvider(Protocol):
    """Supplies the allow-list of directories enabled for media discovery."""

    def enabled_directories(self) -> list[str]: ...

    def platform_default_directories(self) -> list[str]: ...

    def custom_directories_enabled(self) -> bool: ...


@runtime_checkable
class MetadataExtractor(Protocol):
    """Extracts optional metadata from a media file. May raise; callers tolerate it."""

    def extract(self, file_path: Path) -> dict[str, Any]: ...


@runtime_checkable
class MediaIndex(Protocol):
    """An eventually consistent OS media index, such as a photo library provider."""

    def clear_cache(self) -> None: ...

    def release_cache(self) -> None: ...

    def stop_change_notifications(self) -> None: ...

    def start_change_notifications(self) -> None: ...

    def list_assets(self, asset_filter: AssetFilter | None = None) -> list[MediaAsset]: ...


@runtime_checkable
class MetadataIndexSyncTarget(Protocol):
    """Downstream index that is replaced wholesale from the unified directory cache."""

    def replace_from_source(self, snapshot: MetadataIndexSnapshot) -> None: ...


class StaticDirectoryConfig:
    """Directory configuration backed by fixed lists."""

    def __init__(
        self,
        enabled: list[str | Path],
        defaults: list[str | Path] | None = None,
        custom_enabled: bool = True,
    ):
        self._enabled = [str(p) for p in enabled]
        self._defaults = [str(p) for p in (defaults if defaults is not None else enabled)]
        self._custom_enabled = custom_enabled

    def enabled_directories(self) -> list[str]:
        return list(self._enabled)

    def platform_default_directories(self) -> list[str]:
        return list(self._defaults)

    def custom_directories_enabled(self) -> bool:
        return self._custom_enabled

    def set_enabled(self, enabled: list[str | Path]) -> None:
        """Replace the enabled list, e.g. when the user disables a directory."""
        self._enabled = [str(p) for p in enabled]

    def set_custom_enabled(self, enabled: bool) -> None:
        self._custom_enabled = enabled


class NullMetadataExtractor:
    """Extractor that never finds anything."""

    def extract(self, file_path: Path) -> dict[str, Any]:
        return {}


class InMemoryMediaIndex:
    """Media index holding a fixed asset list and recording lifecycle calls."""

    def __init__(self, assets: list[MediaAsset] | None = None):
        self.assets = list(assets or [])
        self.calls: list[str] = []

    def clear_cache(self) -> None:
        self.calls.append("clear_cache")

    def release_cache(self) -> None:
        self.calls.append("release_cache")

    def stop_change_notifications(self) -> None:
        self.calls.append("stop_change_notifications")

    def start_change_notifications(self) -> None:
        self.calls.append("start_change_notifications")

    def list_assets(self, asset_filter: AssetFilter | None = None) -> list[MediaAsset]:
        self.calls.append("list_assets")
        wanted = set((asset_filter or AssetFilter()).media_types)
        return [a for a in self.assets if media_kind(a.mime_type or mime_type_for_path(a.file_path)) in wanted]


class NullMediaIndex(InMemoryMediaIndex):
    """Media index for environments without an OS photo library."""

    def __init__(self) -> None:
        super().__init__([])


class InMemoryMetadataIndex:
    """Sync target that keeps the most recent snapshot."""

    def __init__(self) -> None:
        self.snapshot: MetadataIndexSnapshot | None = None
        self.sync_count = 0

    def replace_from_source(self, snapshot: MetadataIndexSnapshot) -> None:
        self.snapshot = snapshot
        self.sync_count += 1
        logger.debug(f"Metadata index replaced with {len(snapshot.media_items)} items")
