# ============================================================================
# File: tests/integration/test_failure_recovery.py
# ============================================================================

import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from core.exceptions import (
    ConcurrentRunError,
    DatabaseError,
    DatabaseConnectionError,
    RegistryLoadError,
)
from models.base import RunStatus
from models.canonical import CanonicalPrice
from models.normalization_run import NormalizationRun
from models.raw_data import AgmarkRaw, EnamRaw
from normalization.loader import CanonicalLoader
from normalization.normalizer import IncrementalNormalizer
from normalization.registry import CommodityRegistry

REPORT_DATE = date(2026, 1, 14)


def _unreachable_store():
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(
        side_effect=OperationalError("SELECT", {}, Exception("connection refused"))
    )
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


@pytest.mark.asyncio
async def test_row_write_failure_leaves_row_unprocessed(db_session, registry, agmark_row, enam_row):
    """
    Failure Recovery Test:
    1. Every canonical upsert fails during the first run
    2. Raw rows must stay UNPROCESSED
    3. Re-run without the fault
    4. Rows are canonicalized once, no duplicate identities
    """
    db_session.add_all([agmark_row(), enam_row()])
    await db_session.commit()

    # -------------------------------------------------------
    # STEP 1: Force upsert failure on first run
    # -------------------------------------------------------
    with patch.object(
        CanonicalLoader,
        "upsert_price",
        side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    ):
        result = await IncrementalNormalizer(db_session, registry).run(REPORT_DATE)

    # -------------------------------------------------------
    # STEP 2: Validate partial state
    # -------------------------------------------------------
    assert result["status"] == "partial_success"
    assert result["records_failed"] == 2
    assert result["records_canonicalized"] == 0
    assert result["yield_percentage"] == 0.0
    assert [e["error_type"] for e in result["error_details"]] == ["UpsertError", "UpsertError"]

    rows = (await db_session.execute(select(AgmarkRaw))).scalars().all()
    rows += (await db_session.execute(select(EnamRaw))).scalars().all()
    assert all(r.processed is False for r in rows)
    # Identity was still written back
    assert all(r.commodity_code == "VAAR1" for r in rows)

    assert (await db_session.execute(select(CanonicalPrice))).scalars().all() == []

    run = (await db_session.execute(select(NormalizationRun))).scalar_one()
    assert run.status == RunStatus.PARTIAL
    assert run.records_failed == 2

    # -------------------------------------------------------
    # STEP 3: Re-run
    # -------------------------------------------------------
    result = await IncrementalNormalizer(db_session, registry).run(REPORT_DATE)

    # -------------------------------------------------------
    # STEP 4: Validate recovery
    # -------------------------------------------------------
    assert result["status"] == "success"
    assert result["records_canonicalized"] == 2
    assert result["identities_minted"] == 0

    prices = (await db_session.execute(select(CanonicalPrice))).scalars().all()
    assert len(prices) == 2
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_arrival_write_failure_names_arrival_table(db_session, registry, enam_row):
    db_session.add(enam_row())
    await db_session.commit()

    with patch.object(
        CanonicalLoader,
        "upsert_arrival",
        side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
    ):
        result = await IncrementalNormalizer(db_session, registry).run(REPORT_DATE)

    assert result["records_failed"] == 1
    details = result["error_details"][0]
    assert details["error_type"] == "UpsertError"
    assert details["context"]["table_name"] == "market_arrivals_common"

    # The price upsert shares the row's SAVEPOINT and was rolled back with it
    assert (await db_session.execute(select(CanonicalPrice))).scalars().all() == []
    raw = (await db_session.execute(select(EnamRaw))).scalar_one()
    assert raw.processed is False


@pytest.mark.asyncio
async def test_mapping_failure_skips_only_that_row(db_session, registry, agmark_row):
    db_session.add_all([
        agmark_row(),
        agmark_row(market_name="PIMPALGAON", model_price=-1.0),
    ])
    await db_session.commit()

    result = await IncrementalNormalizer(db_session, registry).run(REPORT_DATE)

    assert result["status"] == "partial_success"
    assert result["records_canonicalized"] == 1
    assert result["records_failed"] == 1
    assert result["error_details"][0]["error_type"] == "RecordMappingError"

    rows = (await db_session.execute(select(AgmarkRaw).order_by(AgmarkRaw.id))).scalars().all()
    assert [r.processed for r in rows] == [True, False]


@pytest.mark.asyncio
async def test_registry_load_failure_aborts_run(db_session, agmark_row):
    db_session.add(agmark_row())
    await db_session.commit()

    normalizer = IncrementalNormalizer(db_session, CommodityRegistry(_unreachable_store()))

    with pytest.raises(RegistryLoadError):
        await normalizer.run(REPORT_DATE)

    run = (await db_session.execute(select(NormalizationRun))).scalar_one()
    assert run.status == RunStatus.FAILED
    assert run.error_message == "Failed to read commodity registry"
    assert run.error_details["error_type"] == "RegistryLoadError"

    raw = (await db_session.execute(select(AgmarkRaw))).scalar_one()
    assert raw.processed is False
    assert raw.commodity_code is None


@pytest.mark.asyncio
async def test_unsaved_mint_does_not_block_run(db_session, session_factory, agmark_row):
    db_session.add(agmark_row())
    await db_session.commit()

    registry = CommodityRegistry(session_factory)
    await registry.load()
    registry.session_factory = _unreachable_store()

    result = await IncrementalNormalizer(db_session, registry).run(REPORT_DATE)

    assert result["status"] == "success"
    assert result["identities_minted"] == 1
    assert registry.lookup("onion").persisted is False


@pytest.mark.asyncio
async def test_same_date_is_single_flight(db_session, registry):
    normalizer = IncrementalNormalizer(db_session, registry)
    IncrementalNormalizer._in_flight.add(REPORT_DATE)
    try:
        with pytest.raises(ConcurrentRunError) as exc_info:
            await normalizer.run(REPORT_DATE)
    finally:
        IncrementalNormalizer._in_flight.discard(REPORT_DATE)

    assert exc_info.value.context["report_date"] == REPORT_DATE.isoformat()

    # Nothing was recorded for the rejected invocation
    assert (await db_session.execute(select(NormalizationRun))).scalars().all() == []


@pytest.mark.asyncio
async def test_guard_released_after_failure(db_session, agmark_row):
    db_session.add(agmark_row())
    await db_session.commit()

    normalizer = IncrementalNormalizer(db_session, CommodityRegistry(_unreachable_store()))
    with pytest.raises(RegistryLoadError):
        await normalizer.run(REPORT_DATE)

    assert REPORT_DATE not in IncrementalNormalizer._in_flight


@pytest.mark.asyncio
async def test_run_range_continues_past_failed_date():
    normalizer = IncrementalNormalizer(AsyncMock(), MagicMock())
    outcomes = [
        {"status": "success", "report_date": "2026-01-14"},
        DatabaseError("Failed to fetch unprocessed raw rows"),
        {"status": "skipped", "report_date": "2026-01-16"},
    ]

    with patch.object(normalizer, "_run", AsyncMock(side_effect=outcomes)) as mock_run:
        results = await normalizer.run_range(REPORT_DATE, REPORT_DATE + timedelta(days=2))

    assert [r["status"] for r in results] == ["success", "failed", "skipped"]
    assert results[1]["report_date"] == "2026-01-15"
    assert results[1]["retryable"] is False
    assert [c.args[0] for c in mock_run.await_args_list] == [
        REPORT_DATE,
        REPORT_DATE + timedelta(days=1),
        REPORT_DATE + timedelta(days=2),
    ]


@pytest.mark.asyncio
async def test_run_range_flags_retryable_failures():
    normalizer = IncrementalNormalizer(AsyncMock(), MagicMock())
    outcomes = [
        DatabaseConnectionError("Database unreachable"),
        {"status": "success", "report_date": "2026-01-15"},
    ]

    with patch.object(normalizer, "_run", AsyncMock(side_effect=outcomes)):
        results = await normalizer.run_range(REPORT_DATE, REPORT_DATE + timedelta(days=1))

    assert results[0] == {
        "status": "failed",
        "report_date": "2026-01-14",
        "error": "Database unreachable",
        "retryable": True,
    }
    assert results[1]["status"] == "success"


@pytest.mark.asyncio
async def test_run_range_against_store(db_session, registry, agmark_row):
    db_session.add_all([
        agmark_row(),
        agmark_row(report_date=REPORT_DATE + timedelta(days=2)),
    ])
    await db_session.commit()

    results = await IncrementalNormalizer(db_session, registry).run_range(
        REPORT_DATE, REPORT_DATE + timedelta(days=2)
    )

    assert [r["status"] for r in results] == ["success", "skipped", "success"]
    assert [r["identities_minted"] for r in (results[0], results[2])] == [1, 0]
