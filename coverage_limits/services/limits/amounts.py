"""Currency shorthand parsing and whole-dollar formatting.

Shared by the option editor endpoints and the legacy migration engine.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)

SHORTHAND_PATTERN = re.compile(r"^\$?\s*(\d[\d,]*(?:\.\d*)?|\.\d+)\s*([kmb])?$", re.IGNORECASE)

SUFFIX_MULTIPLIERS = {
    "k": Decimal(1_000),
    "m": Decimal(1_000_000),
    "b": Decimal(1_000_000_000),
}

Number = Union[int, float, Decimal]


def _to_whole_dollars(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_whole_dollars(amount: Number) -> int:
    """Round an amount half-up to whole dollars."""
    return _to_whole_dollars(Decimal(str(amount)))


def parse_shorthand_amount(text: str) -> int:
    """Parse amount shorthand such as ``100k``, ``$1.5M`` or ``2,000,000``.

    Args:
        text: User or legacy input

    Returns:
        int: Whole dollars. Unparseable or negative input yields 0, which
        callers treat as "unset".
    """
    if not text:
        return 0

    trimmed = text.strip()
    match = SHORTHAND_PATTERN.match(trimmed)
    if match:
        number, suffix = match.groups()
        try:
            amount = Decimal(number.replace(",", ""))
        except InvalidOperation:
            return 0
        if suffix:
            amount *= SUFFIX_MULTIPLIERS[suffix.lower()]
        return _to_whole_dollars(amount)

    # Loose fallback for inputs like "USD 1,000" or "1,000 dollars"
    cleaned = re.sub(r"[^0-9.\-]", "", trimmed)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        LOGGER.debug(f"Could not parse amount: {text!r}")
        return 0

    if amount < 0:
        return 0
    return _to_whole_dollars(amount)


def format_currency(amount: Number) -> str:
    """Format an amount as whole US dollars, e.g. ``$1,000,000``."""
    whole = to_whole_dollars(amount)
    if whole < 0:
        return f"-${abs(whole):,}"
    return f"${whole:,}"
