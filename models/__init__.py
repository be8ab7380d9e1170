"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SourceType, RunStatus, PeriodType)
    raw_data: Raw rows per source (agmark_sales_data, enam_sales_data)
    registry: Commodity groups and durable commodity identities
    canonical: Unified price and arrival tables
    summary: Daily trend summaries and yield statistics
    normalization_run: Run tracking and metrics

Usage:
    from models import AgmarkRaw, EnamRaw, CanonicalPrice, YieldStat
    from models.base import SourceType, RunStatus

Relationships:
    - AgmarkRaw / EnamRaw -> CanonicalPrice (via trace_token, one-to-one)
    - EnamRaw -> CanonicalArrival (via trace_token, one-to-one)
    - CommodityIdentity.code -> commodity_code on every other table
"""

from models.base import Base, SourceType, RunStatus, PeriodType, ALL_SOURCES_SCOPE
from models.raw_data import AgmarkRaw, EnamRaw, RAW_MODELS
from models.registry import CommodityGroup, CommodityIdentity
from models.canonical import CanonicalPrice, CanonicalArrival
from models.summary import TrendSummary, YieldStat
from models.normalization_run import NormalizationRun

__all__ = [
    "Base",
    "SourceType",
    "RunStatus",
    "PeriodType",
    "ALL_SOURCES_SCOPE",
    "AgmarkRaw",
    "EnamRaw",
    "RAW_MODELS",
    "CommodityGroup",
    "CommodityIdentity",
    "CanonicalPrice",
    "CanonicalArrival",
    "TrendSummary",
    "YieldStat",
    "NormalizationRun",
]
