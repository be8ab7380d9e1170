"""
Trend and yield aggregation.

Reads canonical prices and writes the two summary tables. Safe to call
again for the same date: every write is an upsert on the summary's
natural key.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.base import PeriodType
from models.canonical import CanonicalPrice
from normalization.loader import CanonicalLoader

logger = logging.getLogger(__name__)


@dataclass
class YieldCounts:
    raw_count: int = 0
    processed_count: int = 0
    deferred_count: int = 0

    @property
    def yield_percentage(self) -> float:
        return compute_yield(self.raw_count, self.processed_count)


def compute_yield(raw_count: int, processed_count: int) -> float:
    """processed / raw * 100, rounded to two places; 0 when there are no raw rows"""
    if raw_count <= 0:
        return 0.0
    return round(processed_count / raw_count * 100, 2)


class TrendYieldAggregator:
    """Maintain market_trends_summary and data_normalization_stats"""

    def __init__(self, db_session: AsyncSession, loader: CanonicalLoader = None):
        self.db = db_session
        self.loader = loader or CanonicalLoader(db_session)

    async def refresh_trends(
        self,
        report_date: date,
        commodity_codes: Iterable[str],
        period_type: str = PeriodType.DAILY.value
    ) -> int:
        """
        Recompute the average model price per identity and canonical unit.

        Returns:
            Number of summary rows written
        """
        codes = sorted(set(commodity_codes))
        if not codes:
            return 0

        result = await self.db.execute(
            select(
                CanonicalPrice.commodity_code,
                CanonicalPrice.unit,
                func.avg(CanonicalPrice.model_price),
                func.count(CanonicalPrice.model_price),
            )
            .where(
                CanonicalPrice.report_date == report_date,
                CanonicalPrice.commodity_code.in_(codes),
            )
            .group_by(CanonicalPrice.commodity_code, CanonicalPrice.unit)
            .order_by(CanonicalPrice.commodity_code, CanonicalPrice.unit)
        )

        units_by_code: Dict[str, List[str]] = {code: [] for code in codes}
        written = 0
        for code, unit, avg_price, sample_count in result.all():
            await self.loader.upsert_trend(
                commodity_code=code,
                report_date=report_date,
                period_type=period_type,
                unit=unit,
                avg_model_price=float(avg_price) if avg_price is not None else None,
                sample_count=sample_count,
            )
            units_by_code[code].append(unit)
            written += 1

        for code, units in units_by_code.items():
            await self.loader.delete_stale_trends(code, report_date, period_type, units)

        logger.info(f"Refreshed {written} {period_type} trend rows for {report_date}")
        return written

    async def record_yield(self, report_date: date, counts_by_scope: Dict[str, YieldCounts]):
        """Upsert one yield row per source scope"""
        for scope, counts in counts_by_scope.items():
            await self.loader.upsert_yield(
                report_date=report_date,
                source=scope,
                raw_count=counts.raw_count,
                processed_count=counts.processed_count,
                deferred_count=counts.deferred_count,
                yield_percentage=counts.yield_percentage,
            )
            logger.info(
                f"Yield {report_date} [{scope}]: {counts.processed_count}/{counts.raw_count} "
                f"= {counts.yield_percentage}% (deferred {counts.deferred_count})"
            )
