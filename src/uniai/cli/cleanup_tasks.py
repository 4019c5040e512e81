"""CLI command for deleting expired generation tasks.

Usage:
    python -m uniai.cli [OPTIONS]

Examples:
    # Delete tasks older than RETENTION_DAYS (default 20)
    python -m uniai.cli

    # Keep one week of tasks
    python -m uniai.cli --days 7

    # Dry run (count only, nothing deleted)
    python -m uniai.cli --dry-run

    # Verbose logging
    python -m uniai.cli -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog

from uniai.core.config import Settings, configure_logging
from uniai.core.database import setup_db_session
from uniai.services.retention import cleanup_old_tasks
from uniai.services.storage import create_blob_store, load_storage_config
from uniai.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Delete generation tasks older than the retention window",
        epilog="Relocated result images are deleted from object storage best-effort",
    )

    parser.add_argument(
        "--days",
        type=int,
        help="Retention window in days (default: RETENTION_DAYS setting)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count expired tasks without deleting anything",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    days = args.days if args.days is not None else settings.retention_days
    if days < 1:
        print("Error: --days must be at least 1", file=sys.stderr)
        return 1

    logger.info("cli.started", days=days, dry_run=args.dry_run)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        storage_config = await load_storage_config(uow_factory, settings)
        blob_store = create_blob_store(storage_config)

        result = await cleanup_old_tasks(uow_factory, blob_store, days=days, dry_run=args.dry_run)

        print("\n" + "=" * 60)
        print("Task Retention Summary")
        print("=" * 60)
        print(f"Cutoff (UTC): {result.cutoff.isoformat(sep=' ', timespec='seconds')}")
        print(f"Expired tasks: {result.expired_count}")
        print(f"Tasks deleted: {result.deleted_count}")
        print(f"Images deleted: {result.images_deleted}")
        print(f"Images skipped: {result.images_skipped}")

        if result.errors:
            print(f"\nErrors encountered: {len(result.errors)}")
            for error in result.errors[:5]:
                print(f"  - {error}")

        if args.dry_run:
            print("\n[DRY RUN] No changes were persisted to database")

        print("=" * 60 + "\n")

        logger.info("cli.success", deleted=result.deleted_count)
        return 0

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nCleanup interrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
