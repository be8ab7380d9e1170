# ============================================================================
# File: tests/integration/test_backfill_and_queries.py
# ============================================================================

import pytest
from datetime import date, timedelta
from sqlalchemy import select

from models.raw_data import AgmarkRaw, EnamRaw
from normalization.backfill import backfill_identities
from normalization.normalizer import IncrementalNormalizer
from normalization.queries import get_prices, get_arrivals, get_trends, get_yield_stats, get_progress
from normalization.resolver import IdentityResolver
from normalization.units import QUINTAL_LABEL
from schemas.registry import RegistrySnapshot

REPORT_DATE = date(2026, 1, 14)


@pytest.mark.asyncio
async def test_backfill_matches_without_minting(
    db_session, registry, agmark_row, enam_row, sample_snapshot
):
    await registry.import_snapshot(RegistrySnapshot(**sample_snapshot))
    db_session.add_all([
        agmark_row(cmdt_name="Wheat (Desi)"),
        agmark_row(cmdt_name="Wheat (Desi)", market_name="INDORE"),
        agmark_row(cmdt_name="Dragon Fruit"),
        enam_row(commodity_name="green gram"),
        enam_row(commodity_name="Onion", commodity_code="O1", apmc_name="NASHIK"),
    ])
    await db_session.commit()

    stats = await backfill_identities(db_session, IdentityResolver(registry))

    assert stats["agmark_sales_data"] == {"names": 2, "matched": 1, "rows_updated": 2}
    assert stats["enam_sales_data"] == {"names": 1, "matched": 1, "rows_updated": 1}
    assert registry.minted_count == 0

    codes = (await db_session.execute(
        select(AgmarkRaw.cmdt_name, AgmarkRaw.commodity_code).order_by(AgmarkRaw.id)
    )).all()
    assert [tuple(row) for row in codes] == [
        ("Wheat (Desi)", "W1"),
        ("Wheat (Desi)", "W1"),
        ("Dragon Fruit", None),
    ]

    enam_codes = (await db_session.execute(
        select(EnamRaw.commodity_code).order_by(EnamRaw.id)
    )).scalars().all()
    assert enam_codes == ["G1", "O1"]

    # Backfill never marks rows processed
    processed = (await db_session.execute(select(AgmarkRaw.processed))).scalars().all()
    assert not any(processed)


@pytest.mark.asyncio
async def test_read_queries(db_session, registry, agmark_row, enam_row):
    db_session.add_all([
        agmark_row(),
        enam_row(),
        agmark_row(cmdt_name="Tomato", model_price=800.0),
        enam_row(report_date=REPORT_DATE + timedelta(days=1)),
    ])
    await db_session.commit()
    normalizer = IncrementalNormalizer(db_session, registry)
    await normalizer.run(REPORT_DATE)

    # -------------------------------------------------------
    # Prices: case-insensitive name, date range, paging
    # -------------------------------------------------------
    onion = await get_prices(db_session, REPORT_DATE, REPORT_DATE, commodity_name="ONION")
    assert sorted((p.source, p.commodity_name, p.model_price) for p in onion) == [
        ("AGMARK", "Onion", 1200.0),
        ("eNAM", "onion", 1250.0),
    ]

    everything = await get_prices(db_session, REPORT_DATE, REPORT_DATE + timedelta(days=1))
    assert len(everything) == 3

    enam_only = await get_prices(db_session, REPORT_DATE, REPORT_DATE, source="eNAM")
    assert [p.market_name for p in enam_only] == ["Pune"]

    first_day = await get_prices(db_session, REPORT_DATE, REPORT_DATE)
    page = await get_prices(db_session, REPORT_DATE, REPORT_DATE, limit=1, offset=1)
    assert page == first_day[1:2]

    arrivals = await get_arrivals(db_session, REPORT_DATE, REPORT_DATE, commodity_name="onion")
    assert [(a.arrival_quantity, a.arrival_unit) for a in arrivals] == [(5.0, "MT")]

    # -------------------------------------------------------
    # Trends and yield
    # -------------------------------------------------------
    onion_code = registry.lookup("onion").code
    trends = await get_trends(db_session, onion_code)
    assert [(t.unit, t.avg_model_price, t.sample_count) for t in trends] == [
        (QUINTAL_LABEL, 1225.0, 2)
    ]
    assert await get_trends(db_session, onion_code, start_date=REPORT_DATE + timedelta(days=1)) == []

    stats = {s.source: s for s in await get_yield_stats(db_session, REPORT_DATE)}
    assert set(stats) == {"AGMARK", "ALL", "eNAM"}
    assert {s.yield_percentage for s in stats.values()} == {100.0}
    assert stats["ALL"].raw_count == 3

    agmark_stats = await get_yield_stats(db_session, REPORT_DATE, source="AGMARK")
    assert agmark_stats[0].raw_count == 2

    # -------------------------------------------------------
    # Progress, newest date first
    # -------------------------------------------------------
    progress = await get_progress(db_session)
    assert [row.report_date for row in progress] == [REPORT_DATE + timedelta(days=1), REPORT_DATE]

    latest, first = progress
    assert (latest.agmark_count, latest.enam_count, latest.common_count, latest.unprocessed_count) == (0, 1, 0, 1)
    assert (first.agmark_count, first.enam_count, first.common_count, first.unprocessed_count) == (2, 1, 3, 0)

    assert len(await get_progress(db_session, since=REPORT_DATE + timedelta(days=1))) == 1
    assert len(await get_progress(db_session, limit=1)) == 1
