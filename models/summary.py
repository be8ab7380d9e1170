from sqlalchemy import Column, BigInteger, Integer, String, Date, DateTime, Float, Index
from datetime import datetime
from models.base import Base


class TrendSummary(Base):
    """
    Pre-aggregated average price per commodity identity, date and period.

    One row per canonical unit still present under the identity, so the
    unit is part of the natural key.
    """
    __tablename__ = "market_trends_summary"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    commodity_code = Column(String(50), nullable=False)
    report_date = Column(Date, nullable=False)
    period_type = Column(String(20), nullable=False)
    unit = Column(String(100), nullable=False)

    avg_model_price = Column(Float, nullable=True)
    sample_count = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "uq_trends_natural_key",
            "commodity_code", "report_date", "period_type", "unit",
            unique=True,
        ),
    )


class YieldStat(Base):
    """
    Processing yield per report date and source scope ("ALL", "AGMARK", "eNAM").

    yield_percentage = processed_count / raw_count * 100, 0 when raw_count is 0.
    deferred_count holds rows set aside by the unit-conflict policy.
    """
    __tablename__ = "data_normalization_stats"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    report_date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False)

    raw_count = Column(Integer, nullable=False, default=0)
    processed_count = Column(Integer, nullable=False, default=0)
    deferred_count = Column(Integer, nullable=False, default=0)
    yield_percentage = Column(Float, nullable=False, default=0.0)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("uq_stats_date_source", "report_date", "source", unique=True),
    )
