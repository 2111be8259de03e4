"""Legacy coverage limit documents.

Stored at ``products/{productId}/coverages/{coverageId}/limits/{limitId}``. Old
screens read only this collection and know nothing about option sets.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import field_validator

from coverage_limits.schemas.limit_options import CamelModel
from coverage_limits.services.limits.amounts import parse_shorthand_amount


class LegacyLimitType(str, Enum):
    PER_OCCURRENCE = "perOccurrence"
    AGGREGATE = "aggregate"
    PER_PERSON = "perPerson"
    PER_LOCATION = "perLocation"
    SUBLIMIT = "sublimit"
    COMBINED = "combined"
    SPLIT = "split"


class LegacyLimit(CamelModel):
    """One loosely typed legacy limit record."""

    id: Optional[str] = None
    coverage_id: Optional[str] = None
    product_id: Optional[str] = None
    # unknown legacy types are kept as plain strings
    limit_type: Optional[Union[LegacyLimitType, str]] = None
    amount: Optional[float] = None
    display_value: Optional[str] = None  # "$1,000,000" or "100/300/100"
    applies_to: Optional[List[str]] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None
    is_required: Optional[bool] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    parent_limit_id: Optional[str] = None
    states: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("amount", "min_amount", "max_amount", mode="before")
    @classmethod
    def parse_amount_text(cls, value: Any) -> Any:
        """Older screens stored amounts as text such as ``"$1,000,000"``."""
        if isinstance(value, str):
            return parse_shorthand_amount(value) or None
        return value

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data.pop("id", None)
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "LegacyLimit":
        return cls.model_validate({**data, "id": doc_id})
