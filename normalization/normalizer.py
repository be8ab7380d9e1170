# ============================================================================
# File: normalization/normalizer.py
# Description: Incremental normalizer for one report date at a time
# ============================================================================
"""
Incremental Normalizer - turns unprocessed raw rows into canonical rows.

For one report date:
1. Fetch UNPROCESSED rows from both raw tables
2. Resolve commodity identities and write them back to the raw rows
3. Group rows by identity
4. Pick one winning unit per identity
5. Upsert canonical price/arrival rows (one SAVEPOINT per row)
6. Mark canonicalized rows PROCESSED
7. Record yield statistics
8. Refresh daily trend summaries

A date is processed by one worker at a time; the grouping step has to see
every row of the date before a winner can be chosen.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Set
from collections import OrderedDict
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import enum
import logging
import time
import uuid

from core.config import settings
from core.exceptions import (
    PipelineError,
    RetryableError,
    DatabaseError,
    DatabaseConnectionError,
    RecordMappingError,
    UpsertError,
    ConcurrentRunError,
)
from models.base import SourceType, RunStatus, ALL_SOURCES_SCOPE
from models.raw_data import RAW_MODELS
from models.canonical import CanonicalPrice, CanonicalArrival
from models.normalization_run import NormalizationRun
from normalization.aggregator import TrendYieldAggregator, YieldCounts
from normalization.loader import CanonicalLoader
from normalization.mapper import RecordMapper, RawRecord, commodity_name_of, raw_unit_of
from normalization.registry import CommodityRegistry
from normalization.resolver import IdentityResolver
from normalization.units import UnitStandardizer

logger = logging.getLogger(__name__)


class UnitConflictPolicy(str, enum.Enum):
    """Treatment of rows whose unit lost the per-identity unit conflict"""
    DEFER = "defer"          # leave UNPROCESSED until their unit wins
    DISCARD = "discard"      # mark PROCESSED without canonical rows
    KEEP_ALL = "keep_all"    # canonicalize every unit


class IncrementalNormalizer:
    """
    Normalization orchestrator for a single report date.

    Responsibilities:
    - Drive identity resolution and unit conflict resolution
    - Write canonical rows idempotently
    - Flip processed flags only for rows actually consumed
    - Record yield, trend summaries and run metrics
    """

    # Dates currently being normalized in this process
    _in_flight: Set[date] = set()

    def __init__(
        self,
        db_session: AsyncSession,
        registry: CommodityRegistry,
        resolver: Optional[IdentityResolver] = None,
        standardizer: Optional[UnitStandardizer] = None,
        unit_conflict_policy: Optional[str] = None
    ):
        self.db = db_session
        self.registry = registry
        self.resolver = resolver or IdentityResolver(registry)
        self.standardizer = standardizer or UnitStandardizer()
        self.mapper = RecordMapper(self.standardizer)
        self.loader = CanonicalLoader(db_session)
        self.aggregator = TrendYieldAggregator(db_session, self.loader)
        self.policy = UnitConflictPolicy(unit_conflict_policy or settings.UNIT_CONFLICT_POLICY)
        self.run_record: Optional[NormalizationRun] = None

    async def run(self, report_date: date) -> Dict[str, Any]:
        """
        Normalize all unprocessed raw rows for ``report_date``.

        Returns:
            Dictionary with run statistics:
            - status: "success", "partial_success" or "skipped"
            - records_fetched / records_resolved / records_unresolved
            - records_canonicalized / records_deferred / records_failed
            - identities_minted, yield_percentage
            - error_details (if any row failed)

        Raises:
            ConcurrentRunError: If the date is already being normalized here
            PipelineError: For fatal setup or store failures
        """
        if report_date in self._in_flight:
            raise ConcurrentRunError(
                "Normalization already running for this date",
                context={"report_date": report_date.isoformat()}
            )

        self._in_flight.add(report_date)
        try:
            return await self._run(report_date)
        finally:
            self._in_flight.discard(report_date)

    async def run_range(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """
        Normalize every date from start to end inclusive.

        A failing date is logged and the range moves on to the next day.
        """
        results = []
        current = start_date
        while current <= end_date:
            logger.info(f"=== Normalizing {current.isoformat()} ===")
            try:
                result = await self.run(current)
            except PipelineError as e:
                logger.error(
                    f"Normalization failed for {current.isoformat()}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                result = {
                    "status": "failed",
                    "report_date": current.isoformat(),
                    "error": e.message,
                    "retryable": isinstance(e, RetryableError),
                }
            results.append(result)
            current += timedelta(days=1)
        return results

    async def _run(self, report_date: date) -> Dict[str, Any]:
        started = time.time()
        minted_before = self.registry.minted_count
        records_fetched = 0
        records_canonicalized = 0
        records_deferred = 0
        records_failed = 0
        error_details: List[Dict[str, Any]] = []

        try:
            await self._start_run(report_date)

            if not self.registry.loaded:
                await self.registry.load()

            # --------------------------------------------------
            # PHASE 1: FETCH UNPROCESSED RAW ROWS
            # --------------------------------------------------
            rows = await self._fetch_unprocessed(report_date)
            records_fetched = len(rows)
            # End the read transaction; mints write through the registry's own session
            await self.db.commit()
            logger.info(f"Found {records_fetched} unprocessed raw rows for {report_date}")

            if records_fetched == 0:
                logger.info("No unprocessed rows; nothing to do")
                await self._complete_run(RunStatus.SKIPPED, started)
                return {
                    "status": "skipped",
                    "report_date": report_date.isoformat(),
                    "records_fetched": 0,
                    "records_canonicalized": 0,
                    "message": "No unprocessed rows"
                }

            # --------------------------------------------------
            # PHASE 2: RESOLVE IDENTITIES
            # --------------------------------------------------
            records_resolved = await self._resolve_identities(rows)
            await self.db.commit()
            logger.info(
                f"Resolved {records_resolved}/{records_fetched} rows "
                f"({self.registry.minted_count - minted_before} identities minted)"
            )

            # --------------------------------------------------
            # PHASE 3 + 4: GROUP BY IDENTITY, PICK WINNING UNITS
            # --------------------------------------------------
            groups = self._group_by_identity(rows)
            established = None
            if self.policy != UnitConflictPolicy.KEEP_ALL and groups:
                established = await self._established_units(report_date, list(groups))
            selected, deferred = self._select_rows(groups, established)
            records_deferred = len(deferred)

            # --------------------------------------------------
            # PHASE 5: CANONICALIZE (IDEMPOTENT UPSERT)
            # --------------------------------------------------
            canonicalized = []
            for raw in selected:
                try:
                    await self._canonicalize(raw)
                    canonicalized.append(raw)
                except (RecordMappingError, UpsertError) as e:
                    records_failed += 1
                    error_details.append(e.to_dict())
                    logger.error(
                        f"Skipping {raw.source_type.value} row {raw.id}: {e.message}",
                        extra={"error_context": e.to_dict()}
                    )
            records_canonicalized = len(canonicalized)

            # --------------------------------------------------
            # PHASE 6: MARK CONSUMED ROWS AS PROCESSED
            # --------------------------------------------------
            consumed = list(canonicalized)
            if self.policy == UnitConflictPolicy.DISCARD:
                consumed.extend(deferred)
            self._mark_processed(consumed)
            await self.db.commit()
            logger.info(f"Marked {len(consumed)} raw rows as processed")

            # --------------------------------------------------
            # PHASE 7 + 8: YIELD AND TRENDS
            # --------------------------------------------------
            await self.aggregator.record_yield(
                report_date,
                self._yield_counts(rows, canonicalized, deferred)
            )
            await self.aggregator.refresh_trends(report_date, groups.keys())
            await self.db.commit()

            # --------------------------------------------------
            # PHASE 9: FINALIZE RUN
            # --------------------------------------------------
            status = RunStatus.SUCCESS if records_failed == 0 else RunStatus.PARTIAL
            await self._complete_run(
                status,
                started,
                records_fetched=records_fetched,
                records_resolved=records_resolved,
                records_canonicalized=records_canonicalized,
                records_deferred=records_deferred,
                records_failed=records_failed,
                identities_minted=self.registry.minted_count - minted_before,
                error_message=f"{records_failed} rows failed" if records_failed else None,
                error_details=error_details or None,
            )

            result = {
                "status": "success" if records_failed == 0 else "partial_success",
                "report_date": report_date.isoformat(),
                "records_fetched": records_fetched,
                "records_resolved": records_resolved,
                "records_unresolved": records_fetched - records_resolved,
                "records_canonicalized": records_canonicalized,
                "records_deferred": records_deferred,
                "records_failed": records_failed,
                "identities_minted": self.registry.minted_count - minted_before,
                "yield_percentage": YieldCounts(records_fetched, records_canonicalized).yield_percentage,
            }
            if error_details:
                result["error_details"] = error_details

            logger.info(
                f"Normalization {result['status']} for {report_date}: "
                f"fetched={records_fetched}, canonicalized={records_canonicalized}, "
                f"deferred={records_deferred}, failed={records_failed}"
            )
            return result

        except PipelineError as e:
            logger.error(
                f"Normalization failed for {report_date}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._fail_run(started, e.message, e.to_dict())
            raise

        except SQLAlchemyError as e:
            error = DatabaseError(
                "Store failure during normalization",
                context={"report_date": report_date.isoformat()},
                original_exception=e
            )
            logger.exception("Store failure during normalization")
            await self._fail_run(started, error.message, error.to_dict())
            raise error

        except Exception as e:
            logger.exception("Unexpected error in normalization")
            await self._fail_run(started, str(e), None)
            raise PipelineError(
                "Unexpected error in normalization",
                context={
                    "report_date": report_date.isoformat(),
                    "records_fetched": records_fetched,
                    "records_canonicalized": records_canonicalized,
                },
                original_exception=e
            )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _fetch_unprocessed(self, report_date: date) -> List[RawRecord]:
        rows: List[RawRecord] = []
        for model in RAW_MODELS:
            try:
                result = await self.db.execute(
                    select(model).where(
                        model.report_date == report_date,
                        model.processed.is_(False)
                    ).order_by(model.id)
                )
            except SQLAlchemyError as e:
                raise DatabaseError(
                    "Failed to fetch unprocessed raw rows",
                    context={
                        "report_date": report_date.isoformat(),
                        "operation": "SELECT",
                        "table_name": model.__tablename__
                    },
                    original_exception=e
                )
            rows.extend(result.scalars().all())
        return rows

    async def _resolve_identities(self, rows: List[RawRecord]) -> int:
        """Resolve rows lacking an identity and write the code back. Returns resolved row count."""
        resolved = 0
        for raw in rows:
            if raw.commodity_code:
                resolved += 1
                continue

            identity = await self.resolver.resolve(commodity_name_of(raw))
            if identity is None:
                logger.warning(
                    f"Unresolvable commodity name on {raw.source_type.value} row {raw.id}: "
                    f"{commodity_name_of(raw)!r}"
                )
                continue

            raw.commodity_code = identity.code
            resolved += 1
        return resolved

    @staticmethod
    def _group_by_identity(rows: List[RawRecord]) -> "OrderedDict[str, List[RawRecord]]":
        groups: "OrderedDict[str, List[RawRecord]]" = OrderedDict()
        for raw in rows:
            if raw.commodity_code:
                groups.setdefault(raw.commodity_code, []).append(raw)
        return groups

    async def _established_units(self, report_date: date, codes: List[str]) -> Dict[str, List[str]]:
        """Units already canonicalized per commodity code for the date"""
        try:
            result = await self.db.execute(
                select(CanonicalPrice.commodity_code, CanonicalPrice.unit).where(
                    CanonicalPrice.report_date == report_date,
                    CanonicalPrice.commodity_code.in_(codes)
                ).distinct().order_by(CanonicalPrice.commodity_code, CanonicalPrice.unit)
            )
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to read canonical units",
                context={
                    "report_date": report_date.isoformat(),
                    "operation": "SELECT",
                    "table_name": CanonicalPrice.__tablename__
                },
                original_exception=e
            )

        established: Dict[str, List[str]] = {}
        for code, unit in result.all():
            established.setdefault(code, []).append(unit)
        return established

    def _select_rows(self, groups, established: Optional[Dict[str, List[str]]] = None):
        """
        Split grouped rows into (selected, deferred) according to the unit-conflict policy.

        Units are compared by canonical label. A label already stored for
        the commodity/date takes part in the ranking, so rows left behind by
        an earlier run stay set aside unless their unit outranks it.
        """
        established = established or {}
        selected: List[RawRecord] = []
        deferred: List[RawRecord] = []

        for code, members in groups.items():
            if self.policy == UnitConflictPolicy.KEEP_ALL:
                selected.extend(members)
                continue

            winner = self.standardizer.pick_winner(
                (raw_unit_of(r) for r in members), established.get(code, ())
            )
            losers = []
            for raw in members:
                if self.standardizer.standardize(raw_unit_of(raw)) == winner:
                    selected.append(raw)
                else:
                    losers.append(raw)

            if losers:
                logger.info(
                    f"{code}: winning unit {winner!r}; {len(losers)} rows with "
                    f"{sorted({raw_unit_of(r) for r in losers})} set aside ({self.policy.value})"
                )
                deferred.extend(losers)

        return selected, deferred

    async def _canonicalize(self, raw: RawRecord):
        """
        Upsert the canonical rows for one raw row inside a SAVEPOINT.

        Raises:
            RecordMappingError: If the row cannot be mapped
            UpsertError: If the write fails; only this row is rolled back
        """
        price = self.mapper.to_price(raw)
        arrival = self.mapper.to_arrival(raw)

        table_name = CanonicalPrice.__tablename__
        try:
            async with self.db.begin_nested():
                await self.loader.upsert_price(price)
                if arrival is not None:
                    table_name = CanonicalArrival.__tablename__
                    await self.loader.upsert_arrival(arrival)
        except SQLAlchemyError as e:
            raise UpsertError(
                "Failed to upsert canonical row",
                context={
                    "source": raw.source_type.value,
                    "raw_id": raw.id,
                    "table_name": table_name,
                },
                original_exception=e
            )

    @staticmethod
    def _mark_processed(rows: List[RawRecord]):
        processed_at = datetime.utcnow()
        for raw in rows:
            raw.processed = True
            raw.processed_at = processed_at

    @staticmethod
    def _yield_counts(rows, canonicalized, deferred) -> Dict[str, YieldCounts]:
        counts = OrderedDict((scope, YieldCounts()) for scope in
                             [ALL_SOURCES_SCOPE] + [s.value for s in SourceType])

        for raw in rows:
            counts[ALL_SOURCES_SCOPE].raw_count += 1
            counts[raw.source_type.value].raw_count += 1
        for raw in canonicalized:
            counts[ALL_SOURCES_SCOPE].processed_count += 1
            counts[raw.source_type.value].processed_count += 1
        for raw in deferred:
            counts[ALL_SOURCES_SCOPE].deferred_count += 1
            counts[raw.source_type.value].deferred_count += 1

        return counts

    # ------------------------------------------------------------------
    # Run tracking
    # ------------------------------------------------------------------

    async def _start_run(self, report_date: date):
        self.run_record = NormalizationRun(
            run_id=uuid.uuid4(),
            report_date=report_date,
            status=RunStatus.RUNNING,
            unit_conflict_policy=self.policy.value,
            started_at=datetime.utcnow(),
        )
        try:
            self.db.add(self.run_record)
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            self.run_record = None
            raise DatabaseConnectionError(
                "Failed to open normalization run",
                context={"report_date": report_date.isoformat(), "table_name": "normalization_runs"},
                original_exception=e
            )

    async def _complete_run(self, status: RunStatus, started: float, **stats):
        if self.run_record is None:
            return

        self.run_record.status = status
        self.run_record.completed_at = datetime.utcnow()
        self.run_record.duration_seconds = round(time.time() - started, 3)
        for field, value in stats.items():
            setattr(self.run_record, field, value)
        await self.db.commit()

    async def _fail_run(self, started: float, message: str, details: Optional[Dict[str, Any]]):
        """Roll back the open transaction and record the failure; never masks the original error"""
        try:
            await self.db.rollback()
            if self.run_record is not None:
                await self.db.refresh(self.run_record)
                await self._complete_run(
                    RunStatus.FAILED,
                    started,
                    error_message=message,
                    error_details=details,
                )
        except SQLAlchemyError as e:
            logger.error(f"Could not record failed normalization run: {e}")
