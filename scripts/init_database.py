#!/usr/bin/env python3
"""
Create indexer tables and inspect or rewind cursors.

Usage:
    python scripts/init_database.py                          # Create missing tables
    python scripts/init_database.py --show-cursors           # Print every cursor
    python scripts/init_database.py --rewind ID --to TS      # Re-index hours after TS

Rewinding only moves the cursor; the indexer overwrites its records as it
catches up again. Descendants ahead of the rewound cursor are moved back to
it when the indexer process next starts. Stop the indexer process first.
"""

import argparse
import asyncio
import sys

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tvl.config.constants import HOUR
from tvl.config.settings import settings
from tvl.models import Base
from tvl.repositories.record_store import RecordStore
from tvl.utils.datetime_utils import format_timestamp

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def show_cursors(store: RecordStore, indexer_ids: list[str]) -> None:
    for indexer_id in indexer_ids:
        state = await store.get_cursor(indexer_id)
        if state is None:
            logger.warning(f"{indexer_id}: no cursor")
            continue
        error = f" | last error: {state.last_error}" if state.last_error else ""
        logger.info(
            f"{indexer_id}: {format_timestamp(state.safe_height)} "
            f"(min {format_timestamp(state.min_height)}, errors {state.error_count}){error}"
        )


async def rewind(store: RecordStore, indexer_id: str, timestamp: int) -> bool:
    """Move a cursor back; refuses unaligned or out-of-window targets."""
    if timestamp % HOUR:
        logger.error(f"{timestamp} is not aligned to a full hour")
        return False

    state = await store.get_cursor(indexer_id)
    if state is None:
        logger.error(f"Indexer {indexer_id} has no cursor")
        return False
    if not state.min_height <= timestamp <= state.safe_height:
        logger.error(
            f"Target must be between {format_timestamp(state.min_height)} "
            f"and {format_timestamp(state.safe_height)}"
        )
        return False

    await store.set_safe_height(indexer_id, timestamp)
    logger.success(
        f"Rewound {indexer_id} from {format_timestamp(state.safe_height)} "
        f"to {format_timestamp(timestamp)}"
    )
    return True


async def main(args: argparse.Namespace) -> int:
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

        store = RecordStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
        if args.show_cursors:
            await show_cursors(store, args.show_cursors)
        if args.rewind:
            if args.to is None:
                logger.error("--rewind requires --to")
                return 1
            if not await rewind(store, args.rewind, args.to):
                return 1
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--show-cursors", nargs="+", metavar="ID", help="Print the cursor of these indexers"
    )
    parser.add_argument("--rewind", metavar="ID", help="Indexer whose cursor to move back")
    parser.add_argument("--to", type=int, metavar="TS", help="Unix timestamp of a full hour")
    sys.exit(asyncio.run(main(parser.parse_args())))
