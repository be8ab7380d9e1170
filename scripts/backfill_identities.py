"""
Script to attach registry identities to raw rows that have none (match only, never mints)
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine, async_session_maker
from core.exceptions import PipelineError
from core.logging import setup_logging
from normalization.backfill import backfill_identities
from normalization.registry import CommodityRegistry
from normalization.resolver import IdentityResolver

logger = logging.getLogger(__name__)


async def run_backfill() -> int:
    resolver = IdentityResolver(CommodityRegistry(async_session_maker))

    try:
        async with async_session_maker() as session:
            stats = await backfill_identities(session, resolver)

        for table, counts in stats.items():
            logger.info(
                f"{table}: {counts['matched']}/{counts['names']} names matched, "
                f"{counts['rows_updated']} rows updated"
            )
        return 0

    except PipelineError as e:
        logger.error(f"Identity backfill failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_backfill()))
