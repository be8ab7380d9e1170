"""
Script to seed the commodity registry from a snapshot file, or export it

Usage:
    python scripts/import_registry.py data/commodity_list.json
    python scripts/import_registry.py --export data/commodity_list.json
"""

import argparse
import asyncio
import json
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine, async_session_maker
from core.exceptions import PipelineError
from core.logging import setup_logging
from normalization.registry import CommodityRegistry

logger = logging.getLogger(__name__)


async def import_registry(path: str, export: bool) -> int:
    registry = CommodityRegistry(async_session_maker)

    try:
        if export:
            await registry.load()
            with open(path, "w", encoding="utf-8") as handle:
                json.dump(registry.export_snapshot().dict(), handle, indent=4)
            logger.info(f"Exported {len(registry)} identities to {path}")
            return 0

        snapshot = CommodityRegistry.read_snapshot(path)
        inserted = await registry.import_snapshot(snapshot)
        logger.info(
            f"Imported {inserted} of {len(snapshot.data.cmdt_data)} snapshot entries; "
            f"registry now holds {len(registry)} identities"
        )
        return 0

    except PipelineError as e:
        logger.error(f"Registry import failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import or export the commodity registry")
    parser.add_argument("path", help="Snapshot JSON file")
    parser.add_argument("--export", action="store_true", help="Write the registry to path instead")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(import_registry(args.path, args.export)))
