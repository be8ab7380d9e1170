from sqlalchemy import Column, String, BigInteger, Integer, Date, DateTime, Float, Boolean, Index
from datetime import datetime
import uuid
from models.base import Base, SourceType


def new_trace_token() -> str:
    return uuid.uuid4().hex


class AgmarkRaw(Base):
    """
    Raw daily price rows written by the Agmarknet fetcher.

    Purpose:
    - Audit trail of exactly what the source reported
    - Reprocessing capability (rows stay UNPROCESSED until canonicalized)

    Design Decisions:
    - Agmarknet reports prices only, so there is no arrival quantity
    - commodity_code is backfilled by the normalizer once resolved
    - processed flips False -> True exactly once; it never reverts
    """
    __tablename__ = "agmark_sales_data"

    source_type = SourceType.AGMARK

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    report_date = Column(Date, nullable=False, index=True)

    # Source-specific key fields
    commodity_id = Column(Integer, nullable=True)
    cmdt_name = Column(String(200), nullable=True)
    cmdt_grp_name = Column(String(200), nullable=True)
    market_name = Column(String(200), nullable=True)
    district_name = Column(String(200), nullable=True)
    state_name = Column(String(200), nullable=True)
    grade_name = Column(String(100), nullable=True)
    variety_name = Column(String(100), nullable=True)
    unit_name_price = Column(String(100), nullable=True)

    # Prices
    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    model_price = Column(Float, nullable=True)
    arrival_date = Column(String(50), nullable=True)

    # Identity and lineage
    commodity_code = Column(String(50), nullable=True)
    trace_token = Column(String(64), nullable=False, default=new_trace_token)

    # Processing tracking
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_agmark_unprocessed", "report_date", "processed"),
        Index("idx_agmark_code_date", "commodity_code", "report_date"),
        Index("idx_agmark_trace_token", "trace_token"),
    )


class EnamRaw(Base):
    """
    Raw daily trade rows written by the eNAM fetcher.

    eNAM reports modal price (not model price), the APMC instead of a market
    and district, and an arrival quantity in the row's own unit.
    """
    __tablename__ = "enam_sales_data"

    source_type = SourceType.ENAM

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    report_date = Column(Date, nullable=False, index=True)

    # Source-specific key fields
    enam_id = Column(String(100), nullable=True)
    state_name = Column(String(200), nullable=True)
    apmc_name = Column(String(200), nullable=True)
    commodity_name = Column(String(200), nullable=True)
    unit_name_price = Column(String(100), nullable=True)
    status = Column(String(50), nullable=True)
    created_at_api = Column(Date, nullable=True)

    # Prices and volumes
    min_price = Column(Float, nullable=True)
    modal_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    commodity_arrivals = Column(Float, nullable=True)
    commodity_traded = Column(Float, nullable=True)

    # Identity and lineage
    commodity_code = Column(String(50), nullable=True)
    trace_token = Column(String(64), nullable=False, default=new_trace_token)

    # Processing tracking
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_enam_unprocessed", "report_date", "processed"),
        Index("idx_enam_code_date", "commodity_code", "report_date"),
        Index("idx_enam_trace_token", "trace_token"),
    )


RAW_MODELS = (AgmarkRaw, EnamRaw)
