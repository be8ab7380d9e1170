"""
Pydantic schemas for read-side query results
"""

from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime


class PriceRead(BaseModel):
    """Canonical price row"""
    report_date: date
    source: str
    state_name: str
    district_name: str
    market_name: str
    commodity_name: str
    commodity_code: str
    min_price: Optional[float]
    max_price: Optional[float]
    model_price: Optional[float]
    unit: str
    trace_token: Optional[str]

    class Config:
        from_attributes = True


class ArrivalRead(BaseModel):
    """Canonical arrival row"""
    report_date: date
    source: str
    state_name: str
    market_name: str
    commodity_name: str
    commodity_code: str
    arrival_quantity: float
    arrival_unit: str
    trace_token: Optional[str]

    class Config:
        from_attributes = True


class TrendRead(BaseModel):
    commodity_code: str
    report_date: date
    period_type: str
    unit: str
    avg_model_price: Optional[float]
    sample_count: int

    class Config:
        from_attributes = True


class YieldRead(BaseModel):
    report_date: date
    source: str
    raw_count: int
    processed_count: int
    deferred_count: int
    yield_percentage: float
    updated_at: datetime

    class Config:
        from_attributes = True


class ProgressRow(BaseModel):
    """Row counts per report date across raw and canonical tables"""
    report_date: date
    agmark_count: int = 0
    enam_count: int = 0
    common_count: int = 0
    unprocessed_count: int = 0
