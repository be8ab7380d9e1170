"""
Pydantic schemas for canonical price and arrival rows with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import date


class CanonicalPriceCreate(BaseModel):
    """
    Schema for upserting a canonical price row.

    Ensures:
    - Natural key fields are present
    - Commodity identity is resolved
    - Prices are non-negative
    """

    # Natural key
    report_date: date
    source: str = Field(..., min_length=1, max_length=20)
    state_name: str = Field("", max_length=200)
    district_name: str = Field("", max_length=200)
    market_name: str = Field("", max_length=200)
    commodity_name: str = Field(..., min_length=1, max_length=200)

    # Identity
    commodity_code: str = Field(..., min_length=1, max_length=50)

    # Prices
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    model_price: Optional[float] = Field(None, ge=0)
    unit: str = Field(..., min_length=1, max_length=100)

    # Lineage
    trace_token: Optional[str] = Field(None, max_length=64)

    @validator("commodity_name", "unit")
    def strip_required_text(cls, v):
        """Reject values that are blank after stripping"""
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty after stripping")
        return v

    @validator("state_name", "district_name", "market_name", pre=True)
    def empty_location(cls, v):
        """Missing location parts are stored as empty strings so the natural key stays comparable"""
        return v or ""


class CanonicalArrivalCreate(BaseModel):
    """Schema for upserting a canonical arrival row"""

    report_date: date
    source: str = Field(..., min_length=1, max_length=20)
    state_name: str = Field("", max_length=200)
    market_name: str = Field("", max_length=200)
    commodity_name: str = Field(..., min_length=1, max_length=200)
    commodity_code: str = Field(..., min_length=1, max_length=50)

    arrival_quantity: float = Field(..., ge=0)
    arrival_unit: str = Field(..., min_length=1, max_length=100)

    trace_token: Optional[str] = Field(None, max_length=64)

    @validator("state_name", "market_name", pre=True)
    def empty_location(cls, v):
        return v or ""
