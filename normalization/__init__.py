"""
Normalization and identity-resolution pipeline.

Turns raw Agmarknet and eNAM rows into the unified price/arrival tables
exactly once per row, resolving every free-text commodity name to a
durable identity and picking one unit per commodity and date.

Modules:
    registry: Durable commodity identities (lookup, mint, snapshots)
    resolver: Ordered matching cascade over the registry
    units: Unit standardization, priority ranks, metric tonne conversion
    mapper: Per-source mapping of raw rows into canonical payloads
    loader: Idempotent upserts for canonical and summary tables
    aggregator: Daily trend summaries and yield statistics
    normalizer: Incremental normalizer for one report date
    backfill: Match-only identity backfill for raw rows
    queries: Read-side queries for the external API

Architecture:
    For one report date the normalizer:

    1. Fetches UNPROCESSED raw rows from both sources
    2. Resolves identities (registry may mint new ones)
    3. Groups rows by identity and picks a winning unit per group
    4. Upserts canonical rows and marks consumed raw rows PROCESSED
    5. Records yield and refreshes trend summaries

Usage:
    from normalization.registry import CommodityRegistry
    from normalization.normalizer import IncrementalNormalizer

Example:
    registry = CommodityRegistry(async_session_maker)
    async with async_session_maker() as session:
        normalizer = IncrementalNormalizer(session, registry)
        result = await normalizer.run(date(2026, 1, 14))

    print(f"Yield {result['yield_percentage']}%")

Error Handling:
    Per-row failures are logged and the row stays UNPROCESSED for the next
    run. Fatal failures (registry unreadable, store unreachable) abort the
    date and re-raise. See core.exceptions for the hierarchy.
"""

from normalization.units import UnitStandardizer
from normalization.registry import CommodityRegistry
from normalization.resolver import IdentityResolver
from normalization.mapper import RecordMapper
from normalization.loader import CanonicalLoader
from normalization.aggregator import TrendYieldAggregator
from normalization.normalizer import IncrementalNormalizer, UnitConflictPolicy

__all__ = [
    "CommodityRegistry",
    "IdentityResolver",
    "UnitStandardizer",
    "RecordMapper",
    "CanonicalLoader",
    "TrendYieldAggregator",
    "IncrementalNormalizer",
    "UnitConflictPolicy",
]
