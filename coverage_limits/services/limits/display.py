"""Display value generation for limit option values."""

from typing import Optional, assert_never

from coverage_limits.schemas.limit_options import (
    ClaimAggLimitValue,
    CSLLimitValue,
    CustomLimitValue,
    LimitOptionValue,
    OccAggLimitValue,
    ScheduledLimitValue,
    SingleLimitValue,
    SplitLimitValue,
    SublimitValue,
)
from coverage_limits.services.limits.amounts import format_currency

SUBLIMIT_SEPARATOR = " – "  # en dash


def _amount(value: Optional[int]) -> int:
    return value or 0


def _split_notation(amount: int) -> str:
    # 100000 -> "100", matching the 100/300/100 auto liability convention
    if amount >= 1000:
        return str(int(amount / 1000 + 0.5))
    return str(amount)


def generate_display_value(value: LimitOptionValue) -> str:
    """Render the canonical display string for a limit value.

    Pure: the same value always yields the same string, so the result can be
    used both for previews and for labels generated during migration.
    """
    if isinstance(value, (SingleLimitValue, CSLLimitValue)):
        return format_currency(_amount(value.amount))

    if isinstance(value, OccAggLimitValue):
        return f"{format_currency(_amount(value.per_occurrence))} / {format_currency(_amount(value.aggregate))}"

    if isinstance(value, ClaimAggLimitValue):
        return f"{format_currency(_amount(value.per_claim))} / {format_currency(_amount(value.aggregate))}"

    if isinstance(value, SplitLimitValue):
        return "/".join(_split_notation(_amount(c.amount)) for c in value.ordered_components())

    if isinstance(value, SublimitValue):
        if value.sublimit_tag:
            return f"{format_currency(_amount(value.amount))}{SUBLIMIT_SEPARATOR}{value.sublimit_tag}"
        return format_currency(_amount(value.amount))

    if isinstance(value, ScheduledLimitValue):
        if value.total_cap:
            return f"Up to {format_currency(value.total_cap)}"
        if value.per_item_max:
            return f"{format_currency(value.per_item_max)} per item"
        return "Scheduled"

    if isinstance(value, CustomLimitValue):
        return value.description or "Custom Limit"

    assert_never(value)
