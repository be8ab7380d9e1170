"""
Script to print raw/canonical row counts per report date, newest first
"""

import argparse
import asyncio
import sys
import os
from datetime import date

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine, async_session_maker
from normalization.queries import get_progress


async def check_progress(since, limit):
    try:
        async with async_session_maker() as session:
            rows = await get_progress(session, since=since, limit=limit)
    finally:
        await engine.dispose()

    print(f"{'Date':<12} {'AGMARK':>8} {'eNAM':>8} {'Common':>8} {'Pending':>8}")
    for row in rows:
        print(
            f"{row.report_date.isoformat():<12} {row.agmark_count:>8} {row.enam_count:>8} "
            f"{row.common_count:>8} {row.unprocessed_count:>8}"
        )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Row counts per report date")
    parser.add_argument("--since", type=date.fromisoformat, default=None)
    parser.add_argument("--limit", type=int, default=10)
    args = parser.parse_args()

    asyncio.run(check_progress(args.since, args.limit))
