"""Pydantic models for coverage limit option sets and options.

Documents are persisted with camelCase field names:

    products/{productId}/coverages/{coverageId}/limitOptionSets/{setId}
    products/{productId}/coverages/{coverageId}/limitOptionSets/{setId}/options/{optionId}

A limit option document is the option's base fields with the fields of its
value (selected by ``structure``) flattened alongside them. In Python the value
lives on ``CoverageLimitOption.value`` as one variant of ``LimitOptionValue``.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model reading and writing camelCase document fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LimitStructure(str, Enum):
    """Shape of the limit values within an option set."""

    SINGLE = "single"
    OCC_AGG = "occAgg"
    CLAIM_AGG = "claimAgg"
    SPLIT = "split"
    CSL = "csl"
    SUBLIMIT = "sublimit"  # deprecated, only produced by legacy data
    SCHEDULED = "scheduled"
    CUSTOM = "custom"


class LimitBasis(str, Enum):
    """What a limit applies to, independent of its shape."""

    PER_OCCURRENCE = "perOccurrence"
    PER_CLAIM = "perClaim"
    PER_ACCIDENT = "perAccident"
    PER_PERSON = "perPerson"
    PER_LOCATION = "perLocation"
    PER_ITEM = "perItem"
    POLICY_TERM = "policyTerm"
    ANNUAL = "annual"
    LIFETIME = "lifetime"
    OTHER = "other"


LIMIT_BASIS_LABELS: Dict[LimitBasis, str] = {
    LimitBasis.PER_OCCURRENCE: "Per Occurrence",
    LimitBasis.PER_CLAIM: "Per Claim",
    LimitBasis.PER_ACCIDENT: "Per Accident",
    LimitBasis.PER_PERSON: "Per Person",
    LimitBasis.PER_LOCATION: "Per Location",
    LimitBasis.PER_ITEM: "Per Item",
    LimitBasis.POLICY_TERM: "Policy Term",
    LimitBasis.ANNUAL: "Annual",
    LimitBasis.LIFETIME: "Lifetime",
    LimitBasis.OTHER: "Other",
}


# ============================================================================
# Limit values
# ============================================================================


class SplitLimitComponent(CamelModel):
    """One component of a split limit, e.g. BI per person."""

    key: str
    label: str
    amount: Optional[int] = None
    order: int = 0


class SplitComponentTemplate(CamelModel):
    """Component definition on an option set; every option uses these keys."""

    key: str
    label: str
    order: int = 0


AUTO_LIABILITY_SPLIT: List[SplitComponentTemplate] = [
    SplitComponentTemplate(key="biPerPerson", label="BI Per Person", order=0),
    SplitComponentTemplate(key="biPerAccident", label="BI Per Accident", order=1),
    SplitComponentTemplate(key="pd", label="Property Damage", order=2),
]

BODILY_INJURY_SPLIT: List[SplitComponentTemplate] = [
    SplitComponentTemplate(key="biPerPerson", label="Per Person", order=0),
    SplitComponentTemplate(key="biPerOccurrence", label="Per Occurrence", order=1),
]


class SingleLimitValue(CamelModel):
    structure: Literal["single"] = "single"
    amount: Optional[int] = None


class CSLLimitValue(CamelModel):
    """Combined single limit."""

    structure: Literal["csl"] = "csl"
    amount: Optional[int] = None


class OccAggLimitValue(CamelModel):
    structure: Literal["occAgg"] = "occAgg"
    per_occurrence: Optional[int] = None
    aggregate: Optional[int] = None


class ClaimAggLimitValue(CamelModel):
    """Each claim + aggregate, for claims-made coverages."""

    structure: Literal["claimAgg"] = "claimAgg"
    per_claim: Optional[int] = None
    aggregate: Optional[int] = None


class SplitLimitValue(CamelModel):
    structure: Literal["split"] = "split"
    components: List[SplitLimitComponent] = Field(default_factory=list)

    def ordered_components(self) -> List[SplitLimitComponent]:
        return sorted(self.components, key=lambda c: c.order)


class SublimitValue(CamelModel):
    """Deprecated sublimit shape, retained so legacy data can be read."""

    structure: Literal["sublimit"] = "sublimit"
    amount: Optional[int] = None
    parent_option_id: Optional[str] = None
    sublimit_tag: Optional[str] = None


class ScheduledLimitValue(CamelModel):
    structure: Literal["scheduled"] = "scheduled"
    per_item_min: Optional[int] = None
    per_item_max: Optional[int] = None
    total_cap: Optional[int] = None


class CustomLimitValue(CamelModel):
    structure: Literal["custom"] = "custom"
    description: Optional[str] = None
    values: Dict[str, Union[int, float, str]] = Field(default_factory=dict)


LimitOptionValue = Annotated[
    Union[
        SingleLimitValue,
        CSLLimitValue,
        OccAggLimitValue,
        ClaimAggLimitValue,
        SplitLimitValue,
        SublimitValue,
        ScheduledLimitValue,
        CustomLimitValue,
    ],
    Field(discriminator="structure"),
]

LIMIT_VALUE_ADAPTER: TypeAdapter = TypeAdapter(LimitOptionValue)

VALUE_FIELD_ALIASES: Set[str] = {
    field.alias or name
    for model in (
        SingleLimitValue,
        CSLLimitValue,
        OccAggLimitValue,
        ClaimAggLimitValue,
        SplitLimitValue,
        SublimitValue,
        ScheduledLimitValue,
        CustomLimitValue,
    )
    for name, field in model.model_fields.items()
}


def parse_limit_value(data: Dict[str, Any]) -> LimitOptionValue:
    """Build the value variant named by ``data["structure"]``."""
    return LIMIT_VALUE_ADAPTER.validate_python(data)


# ============================================================================
# Applicability, constraints, basis
# ============================================================================


class LimitApplicability(CamelModel):
    """Structured restriction on where an option applies.

    With ``all_states`` set and a populated ``states`` list, ``states`` holds
    the states that remain after exclusions: every state missing from the list
    is excluded. Without ``all_states`` the list is a plain inclusion list. An
    empty or absent list applies everywhere.
    """

    all_states: Optional[bool] = None
    states: Optional[List[str]] = None
    coverage_parts: Optional[List[str]] = None
    loss_types: Optional[List[str]] = None
    perils: Optional[List[str]] = None
    custom_tags: Optional[List[str]] = None

    def applies_to_state(self, state: str) -> bool:
        if not self.states:
            return True
        return state.upper() in {s.upper() for s in self.states}

    def excluded_states(self, universe: Iterable[str]) -> List[str]:
        """States dropped from an all-states option, relative to ``universe``."""
        if not self.all_states or not self.states:
            return []
        kept = {s.upper() for s in self.states}
        return [s for s in universe if s.upper() not in kept]


class LimitConstraints(CamelModel):
    min: Optional[int] = None
    max: Optional[int] = None
    increments: Optional[List[int]] = None
    step_size: Optional[int] = None


class LimitBasisConfig(CamelModel):
    """What the limits of a set apply to (per occurrence, per claim, ...)."""

    primary_basis: Optional[LimitBasis] = None
    aggregate_basis: Optional[LimitBasis] = None
    custom_basis_description: Optional[str] = None
    split_component_bases: Optional[Dict[str, LimitBasis]] = None
    item_basis: Optional[LimitBasis] = None
    schedule_cap_basis: Optional[LimitBasis] = None


class SublimitEntry(CamelModel):
    """Peril or category cap inside the primary limit of a set."""

    id: str
    label: str
    amount: int
    applies_to: str
    peril_tag: Optional[str] = None
    is_enabled: bool = True
    display_order: int = 0


class LimitDisplayConfig(CamelModel):
    format: Optional[Literal["currency", "currencyPair", "splitNotation", "currencyWithLabel", "custom"]] = None
    custom_template: Optional[str] = None
    allow_override: Optional[bool] = None
    override_value: Optional[str] = None


# ============================================================================
# Option sets and options
# ============================================================================


class CoverageLimitOptionSet(CamelModel):
    """One configurable limit axis of a coverage (e.g. "Primary Limits")."""

    id: Optional[str] = None
    product_id: Optional[str] = None
    coverage_id: Optional[str] = None
    structure: LimitStructure
    name: str = "Primary Limits"
    selection_mode: Literal["single", "multi"] = "single"
    is_required: bool = False
    split_components: Optional[List[SplitComponentTemplate]] = None
    basis_config: Optional[LimitBasisConfig] = None
    sublimits_enabled: bool = False
    sublimits: Optional[List[SublimitEntry]] = None
    display: Optional[LimitDisplayConfig] = None
    global_constraints: Optional[LimitConstraints] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data.pop("id", None)
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "CoverageLimitOptionSet":
        return cls.model_validate({**data, "id": doc_id})


class CoverageLimitOption(CamelModel):
    """One selectable value within an option set."""

    id: Optional[str] = None
    label: Optional[str] = None
    display_value: Optional[str] = None
    is_default: bool = False
    is_enabled: bool = True
    display_order: int = 0
    applicability: Optional[LimitApplicability] = None
    constraints: Optional[LimitConstraints] = None
    value: LimitOptionValue
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def structure(self) -> LimitStructure:
        return LimitStructure(self.value.structure)

    def to_document(self) -> Dict[str, Any]:
        """Flatten base and value fields into one camelCase document."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"value", "id"})
        data.update(self.value.model_dump(mode="json", by_alias=True, exclude_none=True))
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "CoverageLimitOption":
        value_data = {k: v for k, v in data.items() if k in VALUE_FIELD_ALIASES}
        base_data = {k: v for k, v in data.items() if k not in VALUE_FIELD_ALIASES}
        return cls.model_validate({**base_data, "id": doc_id, "value": parse_limit_value(value_data)})


class LimitOptionSetInput(CamelModel):
    """Partial option set write; only explicitly set fields are written."""

    id: Optional[str] = None
    structure: Optional[LimitStructure] = None
    name: Optional[str] = None
    selection_mode: Optional[Literal["single", "multi"]] = None
    is_required: Optional[bool] = None
    split_components: Optional[List[SplitComponentTemplate]] = None
    basis_config: Optional[LimitBasisConfig] = None
    sublimits_enabled: Optional[bool] = None
    sublimits: Optional[List[SublimitEntry]] = None
    display: Optional[LimitDisplayConfig] = None
    global_constraints: Optional[LimitConstraints] = None


class LimitOptionInput(CamelModel):
    """Partial option write; only explicitly set fields are written."""

    id: Optional[str] = None
    label: Optional[str] = None
    is_default: Optional[bool] = None
    is_enabled: Optional[bool] = None
    display_order: Optional[int] = None
    applicability: Optional[LimitApplicability] = None
    constraints: Optional[LimitConstraints] = None
    value: Optional[LimitOptionValue] = None


class LegacyMigrationResult(CamelModel):
    """Unpersisted proposal produced from legacy limit documents."""

    option_set: CoverageLimitOptionSet
    options: List[CoverageLimitOption] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    structure_inferred: bool = False


# ============================================================================
# Validation results
# ============================================================================


class LimitValidationIssue(CamelModel):
    field: str
    message: str
    code: str
    option_id: Optional[str] = None


class LimitOptionSetValidationResult(CamelModel):
    is_valid: bool
    errors: List[LimitValidationIssue] = Field(default_factory=list)
    warnings: List[LimitValidationIssue] = Field(default_factory=list)


class OptionValidationResult(CamelModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


# ============================================================================
# Templates
# ============================================================================


class LimitOptionTemplate(CamelModel):
    """Pre-configured options for a common coverage."""

    id: str
    name: str
    description: str
    category: Literal["Property", "Liability", "Auto", "Specialty"]
    structure: LimitStructure
    options: List[CoverageLimitOption] = Field(default_factory=list)


class LimitOptionSetWithOptions(CamelModel):
    option_set: CoverageLimitOptionSet
    options: List[CoverageLimitOption] = Field(default_factory=list)
