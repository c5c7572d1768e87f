"""Windowed fan-out of scan and validation work."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from .exceptions import ErrorKind
from .models import BatchResult, DirectoryCache, MediaReference, ValidationConfig, ValidationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_in_windows(
    items: Sequence[T],
    window: int,
    worker: Callable[[T], Awaitable[R]],
    on_window: Callable[[int], None] | None = None,
) -> list[R]:
    """
    Run ``worker`` over ``items`` in consecutive windows.

    Each window of at most ``window`` items runs concurrently and is awaited
    before the next one starts. Results keep the input order.

    Args:
        items: Work items
        window: Maximum concurrent tasks per window
        worker: Coroutine function applied to each item
        on_window: Optional callback receiving each window's size

    Returns:
        One result per item, in input order
    """
    if window < 1:
        raise ValueError(f"window must be at least 1, got {window}")

    results: list[R] = []
    for start in range(0, len(items), window):
        chunk = items[start : start + window]
        if on_window:
            on_window(len(chunk))
        results.extend(await asyncio.gather(*(worker(item) for item in chunk)))
    return results


class BatchOrchestrator:
    """Runs validation and scanning over collections with bounded concurrency."""

    def __init__(
        self,
        validate: Callable[[MediaReference, ValidationConfig], Awaitable[ValidationResult]],
        scan: Callable[[str], Awaitable[DirectoryCache]],
        validation_window: int = 5,
        scan_window: int = 3,
    ):
        """
        Initialize the orchestrator.

        Args:
            validate: Coroutine validating a single reference
            scan: Coroutine scanning a single directory
            validation_window: Concurrent validations per window
            scan_window: Concurrent directory walks per window
        """
        self._validate = validate
        self._scan = scan
        self.validation_window = validation_window
        self.scan_window = scan_window
        self.last_window_sizes: list[int] = []

    async def run_in_windows(
        self, items: Sequence[T], window: int, worker: Callable[[T], Awaitable[R]]
    ) -> list[R]:
        """Run ``worker`` over ``items`` in windows, recording each window's size."""
        self.last_window_sizes = []
        return await run_in_windows(items, window, worker, self.last_window_sizes.append)

    async def validate_batch(self, references: Sequence[MediaReference], config: ValidationConfig) -> BatchResult:
        """
        Validate many references; result[i] corresponds to references[i].

        Unexpected errors from a single validation become failed results.
        """
        start_time = time.time()

        async def validate_one(reference: MediaReference) -> ValidationResult:
            try:
                return await self._validate(reference, config)
            except Exception as e:
                logger.error(f"Unexpected error validating {reference}: {e}")
                return ValidationResult.failed(str(reference), f"Validation error: {e}", ErrorKind.UNEXPECTED)

        results = await self.run_in_windows(references, self.validation_window, validate_one)
        batch = BatchResult(results=results)

        logger.log(
            config.log_level,
            f"Batch validation of {batch.total} references finished in "
            f"{(time.time() - start_time) * 1000:.0f}ms over {len(self.last_window_sizes)} windows: {batch}",
        )
        return batch

    async def scan_directories(self, paths: Sequence[str]) -> list[DirectoryCache]:
        """Scan directories, at most ``scan_window`` at a time, in input order."""
        caches = await self.run_in_windows(paths, self.scan_window, self._scan)
        logger.info(f"Scanned {len(caches)} directories, {sum(c.file_count for c in caches)} media files")
        return caches
