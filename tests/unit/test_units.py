"""
Unit tests for unit standardization and arrival conversion
"""

import pytest
from normalization.units import (
    UnitStandardizer,
    to_metric_tonnes,
    QUINTAL_LABEL,
    UNIT_LABEL,
    KILOGRAM_LABEL,
    BUNDLE_LABEL,
    METRIC_TONNE_LABEL,
)


class TestUnitStandardizer:

    @pytest.mark.parametrize("raw, label", [
        ("Rs./Quintal", QUINTAL_LABEL),
        ("Qui", QUINTAL_LABEL),
        ("Nos", UNIT_LABEL),
        ("Number", UNIT_LABEL),
        ("50 Kg", KILOGRAM_LABEL),
        ("Bundle", BUNDLE_LABEL),
    ])
    def test_known_units(self, raw, label):
        assert UnitStandardizer().standardize(raw) == label

    def test_unknown_unit_passes_through(self):
        standardizer = UnitStandardizer()
        assert standardizer.standardize("Crate") == "Crate"
        assert standardizer.standardize(None) == ""

    def test_priorities(self):
        standardizer = UnitStandardizer()
        assert standardizer.priority("Qui") == 1
        assert standardizer.priority("Nos") == 2
        assert standardizer.priority("Bundle") == 4
        assert standardizer.priority("Kg") == 10
        assert standardizer.priority("Crate") == 10
        assert standardizer.priority(None) == 10

    def test_label_priorities(self):
        standardizer = UnitStandardizer()
        assert standardizer.label_priority(QUINTAL_LABEL) == 1
        assert standardizer.label_priority(UNIT_LABEL) == 2
        assert standardizer.label_priority(BUNDLE_LABEL) == 4
        assert standardizer.label_priority("Crate") == 10

    def test_quintal_beats_number(self):
        assert UnitStandardizer().pick_winner(["Nos", "Qui", "Nos"]) == QUINTAL_LABEL

    def test_spellings_of_one_unit_compete_together(self):
        winner = UnitStandardizer().pick_winner(["Rs./Quintal", "Qui", "Nos"])
        assert winner == QUINTAL_LABEL

    def test_established_label_is_ranked(self):
        standardizer = UnitStandardizer()
        assert standardizer.pick_winner(["Nos"], established=[QUINTAL_LABEL]) == QUINTAL_LABEL
        assert standardizer.pick_winner(["Qui"], established=[UNIT_LABEL]) == QUINTAL_LABEL
        assert standardizer.pick_winner([], established=[UNIT_LABEL]) == UNIT_LABEL

    def test_tie_keeps_first_seen(self):
        assert UnitStandardizer().pick_winner(["Crate", "Kg", "Box"]) == "Crate"

    def test_empty_input(self):
        assert UnitStandardizer().pick_winner([]) is None


class TestMetricTonnes:

    def test_quintal(self):
        assert to_metric_tonnes(50, "Qui") == (5, METRIC_TONNE_LABEL)

    def test_kilogram(self):
        assert to_metric_tonnes(2000, "Kg") == (2, METRIC_TONNE_LABEL)

    def test_tonne(self):
        assert to_metric_tonnes(7, "Tonne") == (7, METRIC_TONNE_LABEL)

    def test_unrecognized_unit_kept(self):
        assert to_metric_tonnes(40, "Nos") == (40, "Nos")
        assert to_metric_tonnes(40, None) == (40, "")
