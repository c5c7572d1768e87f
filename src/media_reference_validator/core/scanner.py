"""Directory scanning module for discovering media files."""

import asyncio
import logging
import os
import time
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from .batch import run_in_windows
from .collaborators import MetadataExtractor, NullMetadataExtractor
from .media_types import mime_type_for_path
from .models import EngineSettings, MediaFileInfo

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Scans directories for media files and extracts metadata."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        metadata_extractor: MetadataExtractor | None = None,
    ):
        """
        Initialize the scanner.

        Args:
            settings: Engine settings, defaults to EngineSettings()
            metadata_extractor: Enrichment service, defaults to one that finds nothing
        """
        self.settings = settings or EngineSettings()
        self.metadata_extractor = metadata_extractor or NullMetadataExtractor()
        self._extensions = frozenset(self.settings.supported_extensions)

    def is_media_file(self, file_path: Path) -> bool:
        """
        Check if a file is a supported media file based on extension.

        Args:
            file_path: Path to the file to check

        Returns:
            True if the file is a supported media type, False otherwise
        """
        return file_path.suffix.lower() in self._extensions

    def get_file_info(self, file_path: Path) -> MediaFileInfo | None:
        """
        Build the record for a single file.

        Stat failures drop the file. Metadata enrichment failures are logged
        and the file is kept with default metadata.

        Args:
            file_path: Path to the file

        Returns:
            MediaFileInfo, or None if the file cannot be stat'ed
        """
        try:
            stat = file_path.stat()
        except OSError as e:
            logger.warning(f"Error accessing file {file_path}: {e}")
            return None

        info = MediaFileInfo.from_path(
            file_path,
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
            mime_type=mime_type_for_path(file_path),
        )

        try:
            info.enrich(self.metadata_extractor.extract(file_path))
        except Exception as e:
            logger.debug(f"Metadata extraction failed for {file_path}: {e}")

        return info

    def discover_files(self, directory: Path) -> Iterator[Path]:
        """
        List the regular files directly inside a directory, in name order.

        Raises:
            OSError: If the directory cannot be listed
        """
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name.lower())
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=True):
                    yield Path(entry.path)
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry.path}: {e}")

    def scan(self, directory: str | Path) -> list[MediaFileInfo]:
        """
        Scan one directory (non-recursively) for media files.

        A missing or unreadable directory yields an empty list.

        Args:
            directory: Directory to scan

        Returns:
            MediaFileInfo records for every supported media file
        """
        directory = Path(directory)
        start_time = time.time()

        if not directory.is_dir():
            logger.warning(f"Directory does not exist: {directory}")
            return []

        try:
            candidates = [p for p in self.discover_files(directory) if self.is_media_file(p)]
        except OSError as e:
            logger.error(f"Error scanning directory {directory}: {e}")
            return []

        media_files = []
        for file_path in candidates:
            info = self.get_file_info(file_path)
            if info:
                media_files.append(info)

        logger.debug(
            f"Scanned {directory}: {len(media_files)} media files in {time.time() - start_time:.2f} seconds"
        )
        return media_files

    async def scan_many(self, directories: list[str]) -> dict[str, list[MediaFileInfo]]:
        """
        Scan several directories, at most ``scan_concurrency`` at a time.

        Args:
            directories: Directories to scan

        Returns:
            Mapping of directory path to its media files, in input order
        """
        results = await run_in_windows(
            directories,
            self.settings.scan_concurrency,
            lambda path: asyncio.to_thread(self.scan, path),
        )
        return dict(zip(directories, results))
