from sqlalchemy import Column, BigInteger, Integer, String, Date, DateTime, Float, Index
from datetime import datetime
from models.base import Base


class CanonicalPrice(Base):
    """
    Unified price table across both sources.

    Natural key: (report_date, source, state_name, market_name, commodity_name).
    Upserts are last-write-wins on every derived field, so re-running a
    date reproduces the same rows.

    Field Mapping:

    AGMARK:
    - cmdt_name -> commodity_name
    - market_name / district_name / state_name -> title-cased
    - model_price -> model_price
    - unit_name_price -> unit (standardized)

    eNAM:
    - commodity_name -> commodity_name
    - apmc_name -> market_name (title-cased), no district
    - modal_price -> model_price
    - unit_name_price -> unit (standardized)
    """
    __tablename__ = "market_prices_common"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    report_date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False)
    state_name = Column(String(200), nullable=False, default="")
    district_name = Column(String(200), nullable=False, default="")
    market_name = Column(String(200), nullable=False, default="")
    commodity_name = Column(String(200), nullable=False)
    commodity_code = Column(String(50), nullable=False)

    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    model_price = Column(Float, nullable=True)
    unit = Column(String(100), nullable=False)

    trace_token = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "uq_prices_natural_key",
            "report_date", "source", "state_name", "market_name", "commodity_name",
            unique=True,
        ),
        Index("idx_prices_code_date", "commodity_code", "report_date"),
    )


class CanonicalArrival(Base):
    """
    Unified arrivals table. Quantities are metric tonnes when arrival_unit
    is "MT"; otherwise the raw quantity is kept with its original unit.
    """
    __tablename__ = "market_arrivals_common"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    report_date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False)
    state_name = Column(String(200), nullable=False, default="")
    market_name = Column(String(200), nullable=False, default="")
    commodity_name = Column(String(200), nullable=False)
    commodity_code = Column(String(50), nullable=False)

    arrival_quantity = Column(Float, nullable=False)
    arrival_unit = Column(String(100), nullable=False)

    trace_token = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "uq_arrivals_natural_key",
            "report_date", "source", "state_name", "market_name", "commodity_name",
            unique=True,
        ),
        Index("idx_arrivals_code_date", "commodity_code", "report_date"),
    )
