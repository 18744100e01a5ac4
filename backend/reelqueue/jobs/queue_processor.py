#!/usr/bin/env python
"""
Queue Processor CLI - Entry point for running generation queue passes
without the HTTP trigger.

Commands:
    process     Run one scheduling pass (or poll with --interval)
    init-db     Create the generation queue tables

Usage:
    # One pass, as the cron trigger would
    python -m reelqueue.jobs.queue_processor process

    # Local development: a pass every 10 seconds until interrupted
    python -m reelqueue.jobs.queue_processor process --interval 10

    # Fresh database
    python -m reelqueue.jobs.queue_processor init-db

Cron Example:
    * * * * * cd /app && python -m reelqueue.jobs.queue_processor process

Environment variables:
    DATABASE_URL plus the GENERATION_* settings read by QueueSettings
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from reelqueue.config.queue_settings import QueueSettings
from reelqueue.database.session import get_engine, get_session_factory
from reelqueue.db_base import Base
from reelqueue.queue.backend import build_generation_backend
from reelqueue.queue.dispatcher import run_scheduling_pass

# Import models to register them with Base.metadata
from reelqueue.models.generation_job import GenerationJob  # noqa: F401

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def process_queue(interval: Optional[float] = None) -> dict:
    """
    Run one pass, or keep running passes every `interval` seconds.

    Returns:
        Statistics of the last pass
    """
    settings = QueueSettings.from_env()
    session_factory = get_session_factory()
    backend = build_generation_backend(settings)

    try:
        while True:
            stats = await run_scheduling_pass(
                session_factory,
                backend=backend,
                settings=settings,
            )
            print(
                f"Pass {stats['run_id']}: {stats['jobs_claimed']} claimed, "
                f"{stats['jobs_completed']} completed, {stats['jobs_retrying']} retrying, "
                f"{stats['jobs_failed']} failed"
            )
            if not interval:
                return stats
            await asyncio.sleep(interval)
    finally:
        await backend.close()


def cmd_process(args) -> int:
    """Run the generation queue."""
    logger.info(
        "queue_processor.process.start",
        extra={"interval": args.interval},
    )

    try:
        stats = asyncio.run(process_queue(interval=args.interval))
    except KeyboardInterrupt:
        logger.info("queue_processor.process.interrupted")
        return 0
    except Exception as e:
        logger.exception(
            "queue_processor.process.error",
            extra={"error": str(e)},
        )
        print(f"Error processing queue: {e}", file=sys.stderr)
        return 1

    logger.info("queue_processor.process.complete", extra=stats)
    return 0 if stats["errors"] == 0 else 1


def cmd_init_db(args) -> int:
    """Create tables for all registered models."""
    try:
        engine = get_engine()
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.exception("queue_processor.init_db.error", extra={"error": str(e)})
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1

    tables = sorted(Base.metadata.tables)
    logger.info("queue_processor.init_db.complete", extra={"tables": tables})
    print(f"Initialized tables: {', '.join(tables)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Queue Processor - generation job queue runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s process                 Run one scheduling pass
  %(prog)s process --interval 10   Run a pass every 10 seconds
  %(prog)s init-db                 Create the queue tables
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser(
        "process",
        help="Run the generation queue",
    )
    process_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between passes; omit for a single pass",
    )
    process_parser.set_defaults(func=cmd_process)

    init_parser = subparsers.add_parser(
        "init-db",
        help="Create the generation queue tables",
    )
    init_parser.set_defaults(func=cmd_init_db)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the queue processor CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
