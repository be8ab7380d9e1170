from sqlalchemy import Column, BigInteger, Integer, String, Enum, Date, DateTime, Float, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, RunStatus, JSONType


class NormalizationRun(Base):
    """
    Tracks metadata for each normalization invocation.

    Purpose:
    - Audit trail of all runs per report date
    - Completeness and failure tracking next to the yield stats
    """
    __tablename__ = "normalization_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False)

    report_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)
    unit_conflict_policy = Column(String(20), nullable=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_fetched = Column(Integer, default=0)
    records_resolved = Column(Integer, default=0)
    records_canonicalized = Column(Integer, default=0)
    records_deferred = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    identities_minted = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_run_date_started", "report_date", "started_at"),
    )
