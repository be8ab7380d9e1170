from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB, "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class SourceType(str, enum.Enum):
    """Upstream price-reporting sources"""
    AGMARK = "AGMARK"
    ENAM = "eNAM"


class RunStatus(str, enum.Enum):
    """Normalization run status"""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class PeriodType(str, enum.Enum):
    """Trend summary period"""
    DAILY = "daily"


# Yield scope covering every source
ALL_SOURCES_SCOPE = "ALL"
