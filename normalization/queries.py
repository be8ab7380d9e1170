"""
Read-side queries over the canonical and summary tables.

These back the external read API: canonical prices and arrivals by date
range and commodity name, trends by identity, yield by date, and a
per-date progress report.
"""

from datetime import date
from typing import List, Optional
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.base import PeriodType
from models.canonical import CanonicalPrice, CanonicalArrival
from models.raw_data import AgmarkRaw, EnamRaw
from models.summary import TrendSummary, YieldStat
from schemas.queries import PriceRead, ArrivalRead, TrendRead, YieldRead, ProgressRow

logger = logging.getLogger(__name__)


def _canonical_filters(model, start_date, end_date, commodity_name, source):
    filters = [model.report_date >= start_date, model.report_date <= end_date]
    if commodity_name:
        filters.append(func.lower(model.commodity_name) == commodity_name.strip().lower())
    if source:
        filters.append(model.source == source)
    return filters


async def get_prices(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    commodity_name: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> List[PriceRead]:
    """Canonical prices in [start_date, end_date], optionally for one commodity name (case-insensitive)"""
    query = (
        select(CanonicalPrice)
        .where(and_(*_canonical_filters(CanonicalPrice, start_date, end_date, commodity_name, source)))
        .order_by(
            CanonicalPrice.report_date,
            CanonicalPrice.commodity_name,
            CanonicalPrice.state_name,
            CanonicalPrice.market_name,
            CanonicalPrice.source,
        )
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)
    rows = result.scalars().all()
    logger.debug(f"get_prices {start_date}..{end_date} name={commodity_name!r}: {len(rows)} rows")
    return [PriceRead.from_orm(row) for row in rows]


async def get_arrivals(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    commodity_name: Optional[str] = None,
    source: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> List[ArrivalRead]:
    query = (
        select(CanonicalArrival)
        .where(and_(*_canonical_filters(CanonicalArrival, start_date, end_date, commodity_name, source)))
        .order_by(
            CanonicalArrival.report_date,
            CanonicalArrival.commodity_name,
            CanonicalArrival.state_name,
            CanonicalArrival.market_name,
            CanonicalArrival.source,
        )
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)
    return [ArrivalRead.from_orm(row) for row in result.scalars().all()]


async def get_trends(
    db: AsyncSession,
    commodity_code: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    period_type: str = PeriodType.DAILY.value
) -> List[TrendRead]:
    query = select(TrendSummary).where(
        TrendSummary.commodity_code == commodity_code,
        TrendSummary.period_type == period_type,
    )
    if start_date:
        query = query.where(TrendSummary.report_date >= start_date)
    if end_date:
        query = query.where(TrendSummary.report_date <= end_date)

    result = await db.execute(query.order_by(TrendSummary.report_date, TrendSummary.unit))
    return [TrendRead.from_orm(row) for row in result.scalars().all()]


async def get_yield_stats(
    db: AsyncSession,
    report_date: date,
    source: Optional[str] = None
) -> List[YieldRead]:
    query = select(YieldStat).where(YieldStat.report_date == report_date)
    if source:
        query = query.where(YieldStat.source == source)

    result = await db.execute(query.order_by(YieldStat.source))
    return [YieldRead.from_orm(row) for row in result.scalars().all()]


async def get_progress(
    db: AsyncSession,
    since: Optional[date] = None,
    limit: int = 10
) -> List[ProgressRow]:
    """
    Row counts per report date, newest first.

    agmark_count / enam_count are raw rows, common_count canonical price
    rows and unprocessed_count raw rows still waiting in either table.
    """
    progress = {}

    async def _count(model, column, extra_filter=None):
        query = select(model.report_date, func.count()).group_by(model.report_date)
        if since:
            query = query.where(model.report_date >= since)
        if extra_filter is not None:
            query = query.where(extra_filter)
        for report_date, count in (await db.execute(query)).all():
            row = progress.setdefault(report_date, ProgressRow(report_date=report_date))
            setattr(row, column, getattr(row, column) + count)

    await _count(AgmarkRaw, "agmark_count")
    await _count(EnamRaw, "enam_count")
    await _count(CanonicalPrice, "common_count")
    await _count(AgmarkRaw, "unprocessed_count", AgmarkRaw.processed.is_(False))
    await _count(EnamRaw, "unprocessed_count", EnamRaw.processed.is_(False))

    ordered = sorted(progress.values(), key=lambda row: row.report_date, reverse=True)
    return ordered[:limit]
