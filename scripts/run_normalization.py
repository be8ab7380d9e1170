"""
Script to normalize raw mandi rows for one report date or a date range

Usage:
    python scripts/run_normalization.py 2026-01-14
    python scripts/run_normalization.py --start 2026-01-01 --end 2026-01-14
    python scripts/run_normalization.py 2026-01-14 --policy keep_all
"""

import argparse
import asyncio
import logging
import sys
import os
from datetime import date, timedelta

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import engine, async_session_maker
from core.exceptions import PipelineError
from core.logging import setup_logging
from normalization.normalizer import IncrementalNormalizer, UnitConflictPolicy
from normalization.registry import CommodityRegistry

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Normalize raw mandi price rows")
    parser.add_argument("report_date", nargs="?", type=date.fromisoformat,
                        help="Report date (YYYY-MM-DD); defaults to yesterday")
    parser.add_argument("--start", type=date.fromisoformat, help="First date of a range")
    parser.add_argument("--end", type=date.fromisoformat, help="Last date of a range (inclusive)")
    parser.add_argument("--policy", choices=[p.value for p in UnitConflictPolicy],
                        default=settings.UNIT_CONFLICT_POLICY,
                        help="Treatment of rows whose unit lost the unit conflict")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    if bool(args.start) != bool(args.end):
        parser.error("--start and --end must be given together")
    if args.start and args.report_date:
        parser.error("give either a report date or --start/--end, not both")
    if args.start and args.start > args.end:
        parser.error("--start must not be after --end")
    return args


async def run_normalization(args) -> int:
    registry = CommodityRegistry(async_session_maker)

    try:
        async with async_session_maker() as session:
            normalizer = IncrementalNormalizer(session, registry, unit_conflict_policy=args.policy)

            if args.start:
                results = await normalizer.run_range(args.start, args.end)
                failed = [r["report_date"] for r in results if r["status"] == "failed"]
                logger.info(
                    f"Range {args.start}..{args.end} finished: "
                    f"{len(results) - len(failed)} ok, {len(failed)} failed"
                )
                retryable = [r["report_date"] for r in results if r.get("retryable")]
                if retryable:
                    logger.warning(f"Dates worth retrying: {', '.join(retryable)}")
                return 1 if failed else 0

            report_date = args.report_date or date.today() - timedelta(days=1)
            result = await normalizer.run(report_date)
            logger.info(
                f"Normalization {result['status']} for {result['report_date']}: "
                f"canonicalized={result.get('records_canonicalized', 0)}, "
                f"yield={result.get('yield_percentage', 0.0)}%"
            )
            return 0

    except PipelineError as e:
        logger.error(f"Normalization pipeline error: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    arguments = parse_args()
    setup_logging(arguments.log_level)
    sys.exit(asyncio.run(run_normalization(arguments)))
