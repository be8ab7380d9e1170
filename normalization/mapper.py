"""
Map raw source rows into canonical price/arrival payloads with Pydantic validation
"""

from typing import Optional, Union
from pydantic import ValidationError
import logging
import re

from core.exceptions import RecordMappingError
from models.base import SourceType
from models.raw_data import AgmarkRaw, EnamRaw
from normalization.units import UnitStandardizer, to_metric_tonnes
from schemas.canonical import CanonicalPriceCreate, CanonicalArrivalCreate

logger = logging.getLogger(__name__)

RawRecord = Union[AgmarkRaw, EnamRaw]

_WORD_START = re.compile(r"(?:^|\s)\w")


def title_case(value: Optional[str]) -> str:
    """'NASHIK' -> 'Nashik', 'lasalgaon(niphad)' -> 'Lasalgaon(niphad)'"""
    if not value:
        return ""
    return _WORD_START.sub(lambda m: m.group(0).upper(), value.lower())


def commodity_name_of(raw: RawRecord) -> Optional[str]:
    if raw.source_type == SourceType.AGMARK:
        return raw.cmdt_name
    return raw.commodity_name


def raw_unit_of(raw: RawRecord) -> str:
    return raw.unit_name_price or ""


class RecordMapper:
    """
    Map raw rows from either source into the canonical schema.

    Handles:
    - Field mapping per source
    - Location title-casing
    - Unit standardization
    - Arrival conversion to metric tonnes
    """

    def __init__(self, standardizer: Optional[UnitStandardizer] = None):
        self.standardizer = standardizer or UnitStandardizer()

    def to_price(self, raw: RawRecord) -> CanonicalPriceCreate:
        """
        Build the canonical price payload for a resolved raw row.

        Raises:
            RecordMappingError: If the row fails validation
        """
        try:
            if raw.source_type == SourceType.AGMARK:
                return self._price_from_agmark(raw)
            elif raw.source_type == SourceType.ENAM:
                return self._price_from_enam(raw)
            raise ValueError(f"Unknown source type: {raw.source_type}")
        except (ValidationError, ValueError) as e:
            raise self._mapping_error(raw, "price", e)

    def to_arrival(self, raw: RawRecord) -> Optional[CanonicalArrivalCreate]:
        """
        Build the canonical arrival payload, or None when the row carries
        no arrival quantity.

        Raises:
            RecordMappingError: If the row fails validation
        """
        if raw.source_type != SourceType.ENAM or raw.commodity_arrivals is None:
            return None

        try:
            quantity, unit = to_metric_tonnes(raw.commodity_arrivals, raw.unit_name_price)
            return CanonicalArrivalCreate(
                report_date=raw.report_date,
                source=raw.source_type.value,
                state_name=title_case(raw.state_name),
                market_name=title_case(raw.apmc_name),
                commodity_name=raw.commodity_name or "",
                commodity_code=raw.commodity_code or "",
                arrival_quantity=quantity,
                arrival_unit=unit,
                trace_token=raw.trace_token,
            )
        except ValidationError as e:
            raise self._mapping_error(raw, "arrival", e)

    def _price_from_agmark(self, raw: AgmarkRaw) -> CanonicalPriceCreate:
        return CanonicalPriceCreate(
            report_date=raw.report_date,
            source=raw.source_type.value,
            state_name=title_case(raw.state_name),
            district_name=title_case(raw.district_name),
            market_name=title_case(raw.market_name),
            commodity_name=raw.cmdt_name or "",
            commodity_code=raw.commodity_code or "",
            min_price=raw.min_price,
            max_price=raw.max_price,
            model_price=raw.model_price,
            unit=self.standardizer.standardize(raw.unit_name_price),
            trace_token=raw.trace_token,
        )

    def _price_from_enam(self, raw: EnamRaw) -> CanonicalPriceCreate:
        """eNAM has no district; apmc_name is the market and modal_price the model price"""
        return CanonicalPriceCreate(
            report_date=raw.report_date,
            source=raw.source_type.value,
            state_name=title_case(raw.state_name),
            market_name=title_case(raw.apmc_name),
            commodity_name=raw.commodity_name or "",
            commodity_code=raw.commodity_code or "",
            min_price=raw.min_price,
            max_price=raw.max_price,
            model_price=raw.modal_price,
            unit=self.standardizer.standardize(raw.unit_name_price),
            trace_token=raw.trace_token,
        )

    @staticmethod
    def _mapping_error(raw: RawRecord, target: str, cause: Exception) -> RecordMappingError:
        if isinstance(cause, ValidationError):
            field_errors = {
                ".".join(str(p) for p in err["loc"]): err["msg"] for err in cause.errors()
            }
        else:
            field_errors = {"__root__": str(cause)}

        return RecordMappingError(
            f"Failed to map raw row to canonical {target}",
            context={
                "source": raw.source_type.value,
                "raw_id": raw.id,
                "field_errors": field_errors,
            },
            original_exception=cause
        )
