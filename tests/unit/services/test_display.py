"""Tests for display value generation."""

import pytest

from coverage_limits.schemas.limit_options import (
    ClaimAggLimitValue,
    CoverageLimitOption,
    CSLLimitValue,
    CustomLimitValue,
    OccAggLimitValue,
    ScheduledLimitValue,
    SingleLimitValue,
    SplitLimitComponent,
    SplitLimitValue,
    SublimitValue,
    parse_limit_value,
)
from coverage_limits.services.limits.display import generate_display_value


class TestGenerateDisplayValue:
    """Test suite for generate_display_value."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (SingleLimitValue(amount=1_000_000), "$1,000,000"),
            (CSLLimitValue(amount=500_000), "$500,000"),
            (OccAggLimitValue(per_occurrence=1_000_000, aggregate=2_000_000), "$1,000,000 / $2,000,000"),
            (ClaimAggLimitValue(per_claim=250_000, aggregate=500_000), "$250,000 / $500,000"),
            (SublimitValue(amount=25_000, sublimit_tag="Theft"), "$25,000 – Theft"),
            (SublimitValue(amount=25_000), "$25,000"),
            (ScheduledLimitValue(per_item_max=10_000, total_cap=100_000), "Up to $100,000"),
            (ScheduledLimitValue(per_item_max=10_000), "$10,000 per item"),
            (ScheduledLimitValue(), "Scheduled"),
            (CustomLimitValue(description="Per project"), "Per project"),
            (CustomLimitValue(), "Custom Limit"),
            (SingleLimitValue(), "$0"),
        ],
    )
    def test_display_per_structure(self, value, expected):
        assert generate_display_value(value) == expected

    def test_split_uses_thousands_in_component_order(self):
        """Test that split notation follows component order, not list order."""
        value = SplitLimitValue(components=[
            SplitLimitComponent(key="pd", label="Property Damage", amount=100_000, order=2),
            SplitLimitComponent(key="biPerPerson", label="BI Per Person", amount=100_000, order=0),
            SplitLimitComponent(key="biPerAccident", label="BI Per Accident", amount=300_000, order=1),
        ])

        assert generate_display_value(value) == "100/300/100"

    def test_split_small_amounts_are_not_scaled(self):
        value = SplitLimitValue(components=[
            SplitLimitComponent(key="a", label="A", amount=500, order=0),
            SplitLimitComponent(key="b", label="B", amount=1_500, order=1),
        ])

        assert generate_display_value(value) == "500/2"

    def test_deterministic(self):
        value = OccAggLimitValue(per_occurrence=1_000_000, aggregate=3_000_000)
        assert generate_display_value(value) == generate_display_value(value.model_copy())


class TestLimitValueDocuments:
    """Test suite for the flattened option document shape."""

    def test_option_document_flattens_value_fields(self):
        option = CoverageLimitOption(
            id="opt-1",
            label="$1M / $2M",
            display_value="$1,000,000 / $2,000,000",
            value=OccAggLimitValue(per_occurrence=1_000_000, aggregate=2_000_000),
        )

        document = option.to_document()

        assert document["structure"] == "occAgg"
        assert document["perOccurrence"] == 1_000_000
        assert document["aggregate"] == 2_000_000
        assert document["displayValue"] == "$1,000,000 / $2,000,000"
        assert "id" not in document
        assert "value" not in document

    def test_option_from_document_selects_variant(self):
        option = CoverageLimitOption.from_document("opt-9", {
            "label": "100/300/100",
            "structure": "split",
            "components": [
                {"key": "biPerPerson", "label": "BI Per Person", "amount": 100_000, "order": 0},
            ],
            "isDefault": True,
            "displayOrder": 3,
        })

        assert option.id == "opt-9"
        assert isinstance(option.value, SplitLimitValue)
        assert option.value.components[0].amount == 100_000
        assert option.is_default is True
        assert option.display_order == 3

    def test_unknown_structure_is_rejected(self):
        with pytest.raises(ValueError):
            parse_limit_value({"structure": "perPerson", "amount": 1})
