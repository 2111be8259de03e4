"""Read-only limit template catalogue."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException

from coverage_limits.schemas.api import error_detail
from coverage_limits.schemas.limit_options import LimitOptionTemplate, LimitStructure
from coverage_limits.services.limits.templates import ALL_LIMIT_TEMPLATES, get_template_by_id

router = APIRouter()


@router.get(
    "",
    response_model=List[LimitOptionTemplate],
    summary="List limit option templates",
    operation_id="list_limit_templates",
)
async def list_templates(
    category: Optional[str] = None,
    structure: Optional[LimitStructure] = None,
) -> List[LimitOptionTemplate]:
    return [
        t for t in ALL_LIMIT_TEMPLATES
        if (category is None or t.category == category)
        and (structure is None or t.structure == structure)
    ]


@router.get(
    "/{template_id}",
    response_model=LimitOptionTemplate,
    summary="Get one limit option template",
    operation_id="get_limit_template",
)
async def get_template(template_id: str) -> LimitOptionTemplate:
    template = get_template_by_id(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=error_detail(f"Limit template not found: {template_id}"))
    return template
