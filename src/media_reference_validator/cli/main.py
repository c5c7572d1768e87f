"""CLI entry point for media reference validator."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ..core import (
    BatchResult,
    DirectoryCache,
    MediaReference,
    MediaReferenceEngine,
    PillowMetadataExtractor,
    StaticDirectoryConfig,
    SystemStatus,
    ValidationConfig,
)


def setup_logging(level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_config(profile: str, no_recovery: bool = False) -> ValidationConfig:
    """Map a --profile name onto a ValidationConfig preset."""
    if profile == "production":
        config = ValidationConfig.production()
    elif profile == "debug":
        config = ValidationConfig.debug()
    else:
        config = ValidationConfig()
    if no_recovery:
        config = config.model_copy(update={"enable_recovery": False})
    return config


def parse_reference(value: str) -> MediaReference:
    """Accept either a URI or a filesystem path."""
    if "://" in value:
        return MediaReference(uri=value)
    return MediaReference.from_path(value)


def create_engine(directories: list[str]) -> MediaReferenceEngine:
    """Build an engine whose allow-list is ``directories``."""
    directory_config = StaticDirectoryConfig([str(Path(d).absolute()) for d in directories])
    return MediaReferenceEngine(directory_config, metadata_extractor=PillowMetadataExtractor())


async def validate_references_cli(
    references: list[MediaReference], directories: list[str], config: ValidationConfig
) -> BatchResult:
    """
    Validate references from the command line.

    Args:
        references: References to validate
        directories: Enabled directories; defaults to the references' parents
        config: Validation configuration

    Returns:
        BatchResult in input order
    """
    if not directories:
        directories = sorted({str(Path(r.path).parent) for r in references})

    engine = create_engine(directories)
    await engine.initialize()
    try:
        return await engine.validate_batch(references, config)
    finally:
        await engine.shutdown()


async def scan_directories_cli(directories: list[str]) -> list[DirectoryCache]:
    """
    Scan directories from the command line.

    Raises:
        FileNotFoundError: If a directory does not exist
        NotADirectoryError: If a path is not a directory
    """
    for directory in directories:
        path = Path(directory)
        if not path.exists():
            raise FileNotFoundError(f"Directory not found: {directory}")
        if not path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {directory}")

    absolute = [str(Path(d).absolute()) for d in directories]
    engine = create_engine(absolute)
    await engine.initialize()
    try:
        return [engine.get_directory_cache(d) or DirectoryCache(directory_path=d) for d in absolute]
    finally:
        await engine.shutdown()


async def system_status_cli(directories: list[str]) -> SystemStatus:
    engine = create_engine(directories or ["."])
    await engine.initialize()
    try:
        return engine.get_system_status()
    finally:
        await engine.shutdown()


def print_batch_results(batch: BatchResult) -> None:
    """
    Print validation results to console.

    Args:
        batch: Results of the validation run
    """
    print("\n" + "=" * 60)
    print("VALIDATION RESULTS")
    print("=" * 60)

    for result in batch.results:
        if result.was_recovered:
            similarity = (result.recovery_metadata or {}).get("similarity")
            confidence = f", similarity {similarity:.0%}" if similarity is not None else ""
            print(f"🔄 {result.original_reference}")
            print(f"   -> {result.recovered_reference} ({result.recovery_method_description}{confidence})")
        elif result.is_valid:
            print(f"✅ {result.original_reference}")
        else:
            print(f"❌ {result.original_reference}: {result.error_message}")

    print("\n" + "-" * 60)
    print(f"Total: {batch.total}")
    print(f"Valid: {batch.valid_count}")
    print(f"Recovered: {batch.recovered_count}")
    print(f"Failed: {batch.failed_count}")
    print(f"Success rate: {batch.success_rate:.1%}")


def print_scan_results(caches: list[DirectoryCache]) -> None:
    print("\n" + "=" * 60)
    print("SCAN RESULTS")
    print("=" * 60)

    for cache in caches:
        print(f"\n{cache.directory_path}: {cache.file_count} media files")
        for info in cache.media_files:
            print(f"    - {info} [{info.mime_type}]")


def print_status(status: SystemStatus) -> None:
    print("\n" + "=" * 60)
    print("SYSTEM STATUS")
    print("=" * 60)

    print(f"Initialized: {status.is_initialized}")
    print(f"Enabled directories: {status.enabled_directories_count}")
    print(f"Cached directories: {status.cached_directories}")
    print(f"Cached files: {status.total_cached_files}")
    print(f"Validation cache size: {status.validation_cache_size}")
    print(f"Stale references: {status.stale_references_count}")
    print(f"Last scan: {status.last_scan_time or 'never'}")
    print(f"Scan in progress: {status.scan_in_progress}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Media Reference Validator - Check media references and recover moved or renamed files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate references, allowing their own directories
  media-reference-validator validate /photos/a.jpg file:///photos/b.png

  # Validate against an explicit allow-list with production settings
  media-reference-validator --directory /photos --profile production validate /photos/a.jpg

  # List media files found in directories
  media-reference-validator scan /photos /videos

  # Show cache status as JSON
  media-reference-validator --directory /photos --output-format json status
        """,
    )

    parser.add_argument(
        "--directory",
        action="append",
        default=[],
        metavar="DIRECTORY",
        help="Directory enabled for media discovery (repeatable)",
    )

    parser.add_argument(
        "--profile",
        choices=["default", "production", "debug"],
        default="default",
        help="Validation settings preset (default: default)",
    )

    parser.add_argument("--no-recovery", action="store_true", help="Don't try to recover missing files")

    # Output options
    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        default="text",
        help="Output format for results (default: text)",
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level (default: INFO)",
    )

    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Validate media references")
    validate_parser.add_argument("references", nargs="+", help="File paths or URIs")

    scan_parser = subparsers.add_parser("scan", help="Scan directories for media files")
    scan_parser.add_argument("directories", nargs="+", help="Directories to scan")

    subparsers.add_parser("status", help="Show cache status")

    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "validate":
            config = build_config(args.profile, args.no_recovery)
            references = [parse_reference(r) for r in args.references]
            batch = asyncio.run(validate_references_cli(references, args.directory, config))

            if args.output_format == "json":
                print(json.dumps(batch.model_dump(mode="json"), indent=2))
            else:
                print_batch_results(batch)
            return 0 if batch.all_valid else 1

        if args.command == "scan":
            caches = asyncio.run(scan_directories_cli(args.directories + args.directory))

            if args.output_format == "json":
                print(json.dumps([c.model_dump(mode="json") for c in caches], indent=2))
            else:
                print_scan_results(caches)
            return 0

        status = asyncio.run(system_status_cli(args.directory))
        if args.output_format == "json":
            print(json.dumps(status.model_dump(mode="json"), indent=2))
        else:
            print_status(status)
        return 0

    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user.")
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    except NotADirectoryError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
