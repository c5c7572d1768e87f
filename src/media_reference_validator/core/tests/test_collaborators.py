"""Tests for the in-process collaborator implementations."""

from ..collaborators import (
    AssetFilter,
    DirectoryConfigProvider,
    InMemoryMediaIndex,
    MediaAsset,
    MediaIndex,
    StaticDirectoryConfig,
)


class TestInMemoryMediaIndex:
    """Test cases for InMemoryMediaIndex."""

    def setup_method(self) -> None:
        self.index = InMemoryMediaIndex(
            [
                MediaAsset(asset_id="1", file_path="/photos/a.jpg"),
                MediaAsset(asset_id="2", file_path="/videos/b.mp4"),
                MediaAsset(asset_id="3", file_path="/photos/c", mime_type="image/png"),
                MediaAsset(asset_id="4", file_path="/docs/d.txt"),
            ]
        )

    def test_default_filter_returns_images_and_videos(self) -> None:
        assert [a.asset_id for a in self.index.list_assets()] == ["1", "2", "3"]

    def test_image_filter(self) -> None:
        assets = self.index.list_assets(AssetFilter(media_types=["image"]))

        assert [a.asset_id for a in assets] == ["1", "3"]
        assert self.index.calls == ["list_assets"]

    def test_satisfies_protocol(self) -> None:
        assert isinstance(self.index, MediaIndex)


class TestStaticDirectoryConfig:
    """Test cases for StaticDirectoryConfig."""

    def test_defaults_follow_enabled(self) -> None:
        config = StaticDirectoryConfig(["/photos"])

        assert isinstance(config, DirectoryConfigProvider)
        assert config.platform_default_directories() == ["/photos"]
        assert config.custom_directories_enabled()

    def test_set_enabled(self) -> None:
        config = StaticDirectoryConfig(["/photos", "/videos"], defaults=["/photos"])
        config.set_enabled(["/videos"])

        assert config.enabled_directories() == ["/videos"]
        assert config.platform_default_directories() == ["/photos"]
