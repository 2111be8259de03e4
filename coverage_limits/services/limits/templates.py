"""Limit option templates for common P&C coverages."""

from typing import List, Optional

from coverage_limits.schemas.limit_options import (
    AUTO_LIABILITY_SPLIT,
    CoverageLimitOption,
    CSLLimitValue,
    LimitOptionTemplate,
    LimitOptionValue,
    LimitStructure,
    OccAggLimitValue,
    ScheduledLimitValue,
    SingleLimitValue,
    SplitComponentTemplate,
    SplitLimitComponent,
    SplitLimitValue,
    SublimitValue,
)
from coverage_limits.services.limits.display import generate_display_value


def _option(
    order: int,
    value: LimitOptionValue,
    label: Optional[str] = None,
    is_default: bool = False,
) -> CoverageLimitOption:
    display_value = generate_display_value(value)
    return CoverageLimitOption(
        label=label or display_value,
        display_value=display_value,
        is_default=is_default,
        is_enabled=True,
        display_order=order,
        value=value,
    )


def _auto_split(person: int, accident: int, property_damage: int) -> SplitLimitValue:
    return SplitLimitValue(components=[
        SplitLimitComponent(key=t.key, label=t.label, amount=amount, order=t.order)
        for t, amount in zip(AUTO_LIABILITY_SPLIT, (person, accident, property_damage))
    ])


PROPERTY_SINGLE_LIMITS = LimitOptionTemplate(
    id="property-single",
    name="Property - Single Limits",
    description="Standard property coverage limits",
    category="Property",
    structure=LimitStructure.SINGLE,
    options=[
        _option(i, SingleLimitValue(amount=amount), is_default=amount == 500_000)
        for i, amount in enumerate((100_000, 250_000, 500_000, 1_000_000, 2_000_000, 5_000_000))
    ],
)

PROPERTY_SUBLIMITS = LimitOptionTemplate(
    id="property-sublimits",
    name="Property - Common Sublimits",
    description="Sublimits for specific perils within property coverage",
    category="Property",
    structure=LimitStructure.SUBLIMIT,
    options=[
        _option(0, SublimitValue(amount=25_000, sublimit_tag="Theft")),
        _option(1, SublimitValue(amount=50_000, sublimit_tag="Theft"), is_default=True),
        _option(2, SublimitValue(amount=25_000, sublimit_tag="Water Damage")),
        _option(3, SublimitValue(amount=50_000, sublimit_tag="Water Damage"), is_default=True),
        _option(4, SublimitValue(amount=10_000, sublimit_tag="Outdoor Signs"), is_default=True),
        _option(5, SublimitValue(amount=25_000, sublimit_tag="EDP Equipment"), is_default=True),
    ],
)

GL_OCC_AGG_LIMITS = LimitOptionTemplate(
    id="gl-occ-agg",
    name="General Liability - Occ/Agg",
    description="Standard GL occurrence and aggregate limit pairs",
    category="Liability",
    structure=LimitStructure.OCC_AGG,
    options=[
        _option(0, OccAggLimitValue(per_occurrence=500_000, aggregate=1_000_000), label="$500K / $1M"),
        _option(1, OccAggLimitValue(per_occurrence=1_000_000, aggregate=2_000_000), label="$1M / $2M", is_default=True),
        _option(2, OccAggLimitValue(per_occurrence=2_000_000, aggregate=4_000_000), label="$2M / $4M"),
        _option(3, OccAggLimitValue(per_occurrence=3_000_000, aggregate=5_000_000), label="$3M / $5M"),
        _option(4, OccAggLimitValue(per_occurrence=5_000_000, aggregate=10_000_000), label="$5M / $10M"),
    ],
)

AUTO_SPLIT_LIMITS = LimitOptionTemplate(
    id="auto-split",
    name="Auto Liability - Split Limits",
    description="BI per person / BI per accident / PD split limits",
    category="Auto",
    structure=LimitStructure.SPLIT,
    options=[
        _option(0, _auto_split(25_000, 50_000, 25_000)),
        _option(1, _auto_split(50_000, 100_000, 50_000)),
        _option(2, _auto_split(100_000, 300_000, 100_000), is_default=True),
        _option(3, _auto_split(250_000, 500_000, 100_000)),
        _option(4, _auto_split(500_000, 500_000, 500_000)),
    ],
)

AUTO_CSL_LIMITS = LimitOptionTemplate(
    id="auto-csl",
    name="Auto Liability - CSL",
    description="Combined Single Limit auto liability options",
    category="Auto",
    structure=LimitStructure.CSL,
    options=[
        _option(i, CSLLimitValue(amount=amount), label=f"${amount:,} CSL", is_default=amount == 500_000)
        for i, amount in enumerate((100_000, 300_000, 500_000, 1_000_000))
    ],
)

SCHEDULED_EQUIPMENT = LimitOptionTemplate(
    id="scheduled-equipment",
    name="Scheduled Equipment",
    description="Per-item limits for scheduled equipment coverage",
    category="Specialty",
    structure=LimitStructure.SCHEDULED,
    options=[
        _option(
            i,
            ScheduledLimitValue(per_item_max=amount),
            label=f"Up to ${amount:,} per item",
            is_default=amount == 25_000,
        )
        for i, amount in enumerate((10_000, 25_000, 50_000, 100_000))
    ],
)

ALL_LIMIT_TEMPLATES: List[LimitOptionTemplate] = [
    PROPERTY_SINGLE_LIMITS,
    PROPERTY_SUBLIMITS,
    GL_OCC_AGG_LIMITS,
    AUTO_SPLIT_LIMITS,
    AUTO_CSL_LIMITS,
    SCHEDULED_EQUIPMENT,
]


def get_templates_by_category(category: str) -> List[LimitOptionTemplate]:
    return [t for t in ALL_LIMIT_TEMPLATES if t.category == category]


def get_templates_by_structure(structure: LimitStructure) -> List[LimitOptionTemplate]:
    return [t for t in ALL_LIMIT_TEMPLATES if t.structure == structure]


def get_template_by_id(template_id: str) -> Optional[LimitOptionTemplate]:
    return next((t for t in ALL_LIMIT_TEMPLATES if t.id == template_id), None)


def generate_options_from_template(template: LimitOptionTemplate) -> List[CoverageLimitOption]:
    """Fresh, id-less copies of a template's options with dense display order."""
    return [
        option.model_copy(deep=True, update={"id": None, "display_order": index})
        for index, option in enumerate(template.options)
    ]


def get_split_components_for_template(template_id: str) -> List[SplitComponentTemplate]:
    """Component definitions of a split template, taken from its first option."""
    template = get_template_by_id(template_id)
    if template is None or template.structure != LimitStructure.SPLIT or not template.options:
        return []

    first = template.options[0].value
    if not isinstance(first, SplitLimitValue):
        return []
    return [SplitComponentTemplate(key=c.key, label=c.label, order=c.order) for c in first.components]
