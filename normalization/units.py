"""
Unit standardization and mass conversion.

Raw unit strings differ between sources ("Rs./Quintal", "Qui", "Nos",
"50 Kg", "Bundle", ...). Prices are labelled with one of a handful of
canonical units, and each raw unit gets a priority rank used to pick a
single winning unit per commodity and date.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

QUINTAL_LABEL = "Rs./Quintal"
UNIT_LABEL = "Rs./Unit"
KILOGRAM_LABEL = "Rs./Kg"
BUNDLE_LABEL = "Rs./Bundle"

# Arrival quantities are stored in metric tonnes when the unit is recognized
METRIC_TONNE_LABEL = "MT"

FALLBACK_PRIORITY = 10


@dataclass(frozen=True)
class UnitRule:
    tokens: Tuple[str, ...]
    label: str
    priority: int

    def matches(self, lowered: str) -> bool:
        return any(token in lowered for token in self.tokens)


class UnitStandardizer:
    """
    Map raw unit strings to canonical labels and priority ranks.

    Rules are case-insensitive substring tests; the first match wins.
    Lower priority is preferred. Ranks 3 and 5-9 are unassigned.
    """

    RULES = (
        UnitRule(("qui", "quintal"), QUINTAL_LABEL, 1),
        UnitRule(("nos", "number"), UNIT_LABEL, 2),
        UnitRule(("kg", "kilogram"), KILOGRAM_LABEL, FALLBACK_PRIORITY),
        UnitRule(("bundle",), BUNDLE_LABEL, 4),
    )

    def _rule_for(self, raw_unit: Optional[str]) -> Optional[UnitRule]:
        if not raw_unit:
            return None
        lowered = raw_unit.lower()
        for rule in self.RULES:
            if rule.matches(lowered):
                return rule
        return None

    def standardize(self, raw_unit: Optional[str]) -> str:
        """Return the canonical label, or the input unchanged when no rule applies"""
        rule = self._rule_for(raw_unit)
        if rule is None:
            return raw_unit or ""
        return rule.label

    def priority(self, raw_unit: Optional[str]) -> int:
        rule = self._rule_for(raw_unit)
        return rule.priority if rule else FALLBACK_PRIORITY

    def label_priority(self, label: Optional[str]) -> int:
        """Priority of a canonical label as stored on canonical rows"""
        for rule in self.RULES:
            if rule.label == label:
                return rule.priority
        return self.priority(label)

    def pick_winner(
        self,
        raw_units: Iterable[Optional[str]],
        established: Iterable[str] = ()
    ) -> Optional[str]:
        """
        Pick the winning canonical label for one commodity/date.

        Raw spellings of the same unit ("Rs./Quintal", "Qui") compete as
        one label. Labels already stored for the commodity/date are
        ranked first, so a new label only wins by outranking them. Ties
        keep first-seen order.

        Returns:
            The winning canonical label, or None for an empty input
        """
        labels = []
        for label in established:
            if label not in labels:
                labels.append(label)
        for unit in raw_units:
            label = self.standardize(unit)
            if label not in labels:
                labels.append(label)

        if not labels:
            return None

        # min() keeps the first of equally ranked labels
        return min(labels, key=self.label_priority)


def to_metric_tonnes(quantity: float, raw_unit: Optional[str]) -> Tuple[float, str]:
    """
    Convert an arrival quantity to metric tonnes.

    Quintal -> / 10, tonne/MT -> unchanged, kilogram -> / 1000. Any other
    unit returns the quantity unconverted with the original unit string.

    Returns:
        (quantity, unit) tuple
    """
    lowered = (raw_unit or "").lower()

    if "qui" in lowered:
        return quantity / 10, METRIC_TONNE_LABEL
    if "tonne" in lowered or "mt" in lowered:
        return quantity, METRIC_TONNE_LABEL
    if "kg" in lowered or "kilogram" in lowered:
        return quantity / 1000, METRIC_TONNE_LABEL

    return quantity, raw_unit or ""
