from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime
from models.base import Base


class CommodityGroup(Base):
    """Commodity group classifier (cereals, pulses, vegetables, ...)"""
    __tablename__ = "commodity_groups"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(200), nullable=False)


class CommodityIdentity(Base):
    """
    Durable commodity identity.

    Design:
    - code is minted once and never reused for a different name
    - name_key is the lower-cased, trimmed name; its unique index is the
      compare-and-swap that stops two writers minting the same commodity
    - id is the numeric sequence id (max + 1 at mint time)
    """
    __tablename__ = "commodity_identities"

    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    name_key = Column(String(200), nullable=False, unique=True)
    group_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_identity_group", "group_id", "id"),
    )
