"""Default limit basis per structure."""

from typing import Optional

from coverage_limits.schemas.limit_options import (
    CoverageLimitOptionSet,
    LimitBasis,
    LimitBasisConfig,
    LimitStructure,
)

DEFAULT_SPLIT_COMPONENT_BASES = {
    "biPerPerson": LimitBasis.PER_PERSON,
    "biPerAccident": LimitBasis.PER_ACCIDENT,
    "biPerOccurrence": LimitBasis.PER_OCCURRENCE,
    "pd": LimitBasis.PER_ACCIDENT,
}


def get_default_basis_for_structure(
    structure: LimitStructure,
    line_of_business: Optional[str] = None,
) -> LimitBasisConfig:
    """Return the conventional basis for a structure.

    Args:
        structure: Limit structure of the option set
        line_of_business: Optional hint; "auto" switches single limits to per accident

    Returns:
        LimitBasisConfig: Default basis configuration
    """
    structure = LimitStructure(structure)

    if structure == LimitStructure.SINGLE:
        if line_of_business == "auto":
            return LimitBasisConfig(primary_basis=LimitBasis.PER_ACCIDENT)
        return LimitBasisConfig(primary_basis=LimitBasis.PER_OCCURRENCE)
    if structure == LimitStructure.CSL:
        return LimitBasisConfig(primary_basis=LimitBasis.PER_ACCIDENT)
    if structure == LimitStructure.OCC_AGG:
        return LimitBasisConfig(
            primary_basis=LimitBasis.PER_OCCURRENCE,
            aggregate_basis=LimitBasis.POLICY_TERM,
        )
    if structure == LimitStructure.CLAIM_AGG:
        return LimitBasisConfig(
            primary_basis=LimitBasis.PER_CLAIM,
            aggregate_basis=LimitBasis.POLICY_TERM,
        )
    if structure == LimitStructure.SPLIT:
        return LimitBasisConfig(
            primary_basis=LimitBasis.PER_ACCIDENT,
            split_component_bases=dict(DEFAULT_SPLIT_COMPONENT_BASES),
        )
    if structure == LimitStructure.SCHEDULED:
        return LimitBasisConfig(
            primary_basis=LimitBasis.PER_ITEM,
            item_basis=LimitBasis.PER_ITEM,
            schedule_cap_basis=LimitBasis.POLICY_TERM,
        )
    return LimitBasisConfig(primary_basis=LimitBasis.PER_OCCURRENCE)


def ensure_basis_config(option_set: CoverageLimitOptionSet) -> CoverageLimitOptionSet:
    """Fill in a missing basis config for sets written before basis existed."""
    if option_set.basis_config and option_set.basis_config.primary_basis:
        return option_set
    return option_set.model_copy(
        update={"basis_config": get_default_basis_for_structure(option_set.structure)}
    )
