"""
Pydantic schemas for data validation and serialization.

Schemas:
    canonical: Canonical price/arrival payloads written by the normalizer
    registry: Commodity identities and the registry snapshot file format
    queries: Read-side results for the external query API

Usage:
    from schemas import CanonicalPriceCreate, RegistrySnapshot
    from schemas.queries import PriceRead, YieldRead

Example:
    item = CanonicalPriceCreate(
        report_date=date(2026, 1, 14),
        source="AGMARK",
        commodity_name="Onion",
        commodity_code="VAAR1",
        model_price=1200,
        unit="Rs./Quintal",
    )
"""

from schemas.canonical import CanonicalPriceCreate, CanonicalArrivalCreate
from schemas.registry import (
    IdentityRecord,
    RegistrySnapshot,
    SnapshotData,
    SnapshotGroup,
    SnapshotCommodity,
)
from schemas.queries import PriceRead, ArrivalRead, TrendRead, YieldRead, ProgressRow

__all__ = [
    "CanonicalPriceCreate",
    "CanonicalArrivalCreate",
    "IdentityRecord",
    "RegistrySnapshot",
    "SnapshotData",
    "SnapshotGroup",
    "SnapshotCommodity",
    "PriceRead",
    "ArrivalRead",
    "TrendRead",
    "YieldRead",
    "ProgressRow",
]
