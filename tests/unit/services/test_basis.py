"""Tests for basis defaults and applicability helpers."""

import pytest

from coverage_limits.schemas.limit_options import (
    CoverageLimitOptionSet,
    LimitApplicability,
    LimitBasis,
    LimitBasisConfig,
    LimitStructure,
)
from coverage_limits.services.limits.basis import ensure_basis_config, get_default_basis_for_structure


class TestDefaultBasis:
    """Test suite for get_default_basis_for_structure."""

    @pytest.mark.parametrize(
        "structure,primary,aggregate",
        [
            (LimitStructure.SINGLE, LimitBasis.PER_OCCURRENCE, None),
            (LimitStructure.CSL, LimitBasis.PER_ACCIDENT, None),
            (LimitStructure.OCC_AGG, LimitBasis.PER_OCCURRENCE, LimitBasis.POLICY_TERM),
            (LimitStructure.CLAIM_AGG, LimitBasis.PER_CLAIM, LimitBasis.POLICY_TERM),
            (LimitStructure.CUSTOM, LimitBasis.PER_OCCURRENCE, None),
        ],
    )
    def test_primary_and_aggregate(self, structure, primary, aggregate):
        config = get_default_basis_for_structure(structure)
        assert config.primary_basis == primary
        assert config.aggregate_basis == aggregate

    def test_auto_single_is_per_accident(self):
        config = get_default_basis_for_structure(LimitStructure.SINGLE, line_of_business="auto")
        assert config.primary_basis == LimitBasis.PER_ACCIDENT

    def test_split_component_bases(self):
        config = get_default_basis_for_structure(LimitStructure.SPLIT)
        assert config.split_component_bases["biPerPerson"] == LimitBasis.PER_PERSON
        assert config.split_component_bases["pd"] == LimitBasis.PER_ACCIDENT

    def test_ensure_keeps_existing_config(self):
        option_set = CoverageLimitOptionSet(
            structure=LimitStructure.SINGLE,
            basis_config=LimitBasisConfig(primary_basis=LimitBasis.ANNUAL),
        )
        assert ensure_basis_config(option_set).basis_config.primary_basis == LimitBasis.ANNUAL

    def test_ensure_fills_missing_config(self):
        option_set = CoverageLimitOptionSet(structure=LimitStructure.SCHEDULED)
        filled = ensure_basis_config(option_set)
        assert filled.basis_config.item_basis == LimitBasis.PER_ITEM
        assert option_set.basis_config is None


class TestLimitApplicability:
    """Test suite for state applicability."""

    def test_empty_states_apply_everywhere(self):
        assert LimitApplicability(all_states=True).applies_to_state("CA")
        assert LimitApplicability().applies_to_state("NY")

    def test_all_states_with_exclusions(self):
        applicability = LimitApplicability(all_states=True, states=["CA", "NY", "TX"])

        assert applicability.applies_to_state("ca")
        assert not applicability.applies_to_state("FL")
        assert applicability.excluded_states(["CA", "FL", "NY", "TX", "WA"]) == ["FL", "WA"]

    def test_inclusion_list(self):
        applicability = LimitApplicability(states=["CA"])

        assert applicability.applies_to_state("CA")
        assert not applicability.applies_to_state("NY")
        assert applicability.excluded_states(["CA", "NY"]) == []
