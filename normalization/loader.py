"""
Upsert canonical rows and summaries (idempotency)
"""

from datetime import date, datetime
from typing import Iterable, Optional
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects import postgresql, sqlite
import logging

from models.canonical import CanonicalPrice, CanonicalArrival
from models.summary import TrendSummary, YieldStat
from schemas.canonical import CanonicalPriceCreate, CanonicalArrivalCreate

logger = logging.getLogger(__name__)

PRICE_KEY = ["report_date", "source", "state_name", "market_name", "commodity_name"]
ARRIVAL_KEY = PRICE_KEY
TREND_KEY = ["commodity_code", "report_date", "period_type", "unit"]
YIELD_KEY = ["report_date", "source"]


class CanonicalLoader:
    """
    Write canonical and summary rows with idempotent upserts.

    Merge policy is last-write-wins per natural key: on conflict every
    derived field is overwritten with the incoming value. Nothing here
    commits; the caller owns the transaction.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    def _insert(self, model):
        bind = getattr(self.db, "bind", None)
        dialect = getattr(getattr(bind, "dialect", None), "name", None)
        if dialect == "sqlite":
            return sqlite.insert(model)
        return postgresql.insert(model)

    async def _upsert(self, model, values: dict, key: list):
        stmt = self._insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=key,
            set_={
                column: getattr(stmt.excluded, column)
                for column in values
                if column not in key
            }
        )
        await self.db.execute(stmt)

    async def upsert_price(self, item: CanonicalPriceCreate):
        """INSERT ... ON CONFLICT (report_date, source, state_name, market_name, commodity_name) DO UPDATE"""
        await self._upsert(CanonicalPrice, item.dict(), PRICE_KEY)

    async def upsert_arrival(self, item: CanonicalArrivalCreate):
        await self._upsert(CanonicalArrival, item.dict(), ARRIVAL_KEY)

    async def upsert_trend(
        self,
        commodity_code: str,
        report_date: date,
        period_type: str,
        unit: str,
        avg_model_price: Optional[float],
        sample_count: int
    ):
        await self._upsert(
            TrendSummary,
            {
                "commodity_code": commodity_code,
                "report_date": report_date,
                "period_type": period_type,
                "unit": unit,
                "avg_model_price": avg_model_price,
                "sample_count": sample_count,
                "updated_at": datetime.utcnow(),
            },
            TREND_KEY
        )

    async def delete_stale_trends(
        self,
        commodity_code: str,
        report_date: date,
        period_type: str,
        keep_units: Iterable[str]
    ) -> int:
        """Remove summary rows for units no longer present under the identity"""
        stmt = delete(TrendSummary).where(
            TrendSummary.commodity_code == commodity_code,
            TrendSummary.report_date == report_date,
            TrendSummary.period_type == period_type,
        )
        keep_units = list(keep_units)
        if keep_units:
            stmt = stmt.where(TrendSummary.unit.not_in(keep_units))

        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def upsert_yield(
        self,
        report_date: date,
        source: str,
        raw_count: int,
        processed_count: int,
        deferred_count: int,
        yield_percentage: float
    ):
        await self._upsert(
            YieldStat,
            {
                "report_date": report_date,
                "source": source,
                "raw_count": raw_count,
                "processed_count": processed_count,
                "deferred_count": deferred_count,
                "yield_percentage": yield_percentage,
                "updated_at": datetime.utcnow(),
            },
            YIELD_KEY
        )
