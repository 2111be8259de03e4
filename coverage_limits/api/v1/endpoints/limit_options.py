"""Limit option set, option and legacy migration routes."""

from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from coverage_limits.core.exceptions import (
    AccessDeniedError,
    AppError,
    InvalidReorderError,
    LimitValidationError,
    NotFoundError,
    StructureChangeError,
)
from coverage_limits.dependencies import get_legacy_migration_service, get_limit_option_service
from coverage_limits.schemas.api import (
    CountResponse,
    ErrorResponse,
    IdResponse,
    IdsResponse,
    LegacyLimitsStatus,
    ReorderRequest,
    SetDefaultRequest,
    error_detail,
)
from coverage_limits.schemas.limit_options import (
    CoverageLimitOption,
    CoverageLimitOptionSet,
    LegacyMigrationResult,
    LimitOptionInput,
    LimitOptionSetInput,
    LimitOptionSetValidationResult,
    LimitOptionSetWithOptions,
)
from coverage_limits.services.limits.migration import LegacyMigrationService
from coverage_limits.services.limits.option_service import LimitOptionService
from coverage_limits.services.limits.validation import ValidationMode
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()

SETS_PATH = "/products/{product_id}/coverages/{coverage_id}/limit-option-sets"
LEGACY_PATH = "/products/{product_id}/coverages/{coverage_id}/legacy-limits"

ERROR_RESPONSES = {
    400: {"description": "Invalid reorder request", "model": ErrorResponse},
    403: {"description": "Access denied by the document store", "model": ErrorResponse},
    404: {"description": "Option set or option not found", "model": ErrorResponse},
    409: {"description": "Structure change requires confirmation", "model": ErrorResponse},
    422: {"description": "Limit option validation failed", "model": ErrorResponse},
}

LimitOptionServiceDep = Annotated[LimitOptionService, Depends(get_limit_option_service)]
MigrationServiceDep = Annotated[LegacyMigrationService, Depends(get_legacy_migration_service)]


def to_http_error(error: AppError) -> HTTPException:
    """Map a service error onto an HTTP error response."""
    if isinstance(error, LimitValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error.to_dict())
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(error.message))
    if isinstance(error, InvalidReorderError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": error.message,
                "missing": error.missing,
                "unknown": error.unknown,
                "duplicated": error.duplicated,
            },
        )
    if isinstance(error, StructureChangeError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": error.message, "affected": error.affected},
        )
    if isinstance(error, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error_detail(error.message))

    LOGGER.error(f"Unhandled service error: {error.message}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_detail(error.message))


# ============================================================================
# Option sets
# ============================================================================


@router.get(
    SETS_PATH,
    response_model=List[CoverageLimitOptionSet],
    responses=ERROR_RESPONSES,
    summary="List limit option sets of a coverage",
    operation_id="list_limit_option_sets",
)
async def list_option_sets(
    product_id: str,
    coverage_id: str,
    service: LimitOptionServiceDep,
) -> List[CoverageLimitOptionSet]:
    try:
        return await service.get_limit_option_sets(product_id, coverage_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH,
    status_code=status.HTTP_201_CREATED,
    response_model=IdResponse,
    responses=ERROR_RESPONSES,
    summary="Create a limit option set",
    operation_id="create_limit_option_set",
)
async def create_option_set(
    product_id: str,
    coverage_id: str,
    request: LimitOptionSetInput,
    service: LimitOptionServiceDep,
) -> IdResponse:
    try:
        set_id = await service.upsert_limit_option_set(product_id, coverage_id, request)
        return IdResponse(id=set_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.get(
    SETS_PATH + "/{set_id}",
    response_model=LimitOptionSetWithOptions,
    responses=ERROR_RESPONSES,
    summary="Get a limit option set with its options",
    operation_id="get_limit_option_set",
)
async def get_option_set(
    product_id: str,
    coverage_id: str,
    set_id: str,
    service: LimitOptionServiceDep,
) -> LimitOptionSetWithOptions:
    try:
        loaded = await service.get_limit_option_set_with_options(product_id, coverage_id, set_id)
    except AppError as e:
        raise to_http_error(e) from e
    if loaded is None:
        raise HTTPException(status_code=404, detail=error_detail(f"Option set not found: {set_id}"))
    return loaded


@router.patch(
    SETS_PATH + "/{set_id}",
    response_model=IdResponse,
    responses=ERROR_RESPONSES,
    summary="Update fields of a limit option set",
    description=(
        "Only fields present in the body are written. Changing the structure of a set "
        "with options requires confirmStructureChange=true; existing options are hidden "
        "until edited to the new structure."
    ),
    operation_id="update_limit_option_set",
)
async def update_option_set(
    product_id: str,
    coverage_id: str,
    set_id: str,
    request: LimitOptionSetInput,
    service: LimitOptionServiceDep,
    confirm_structure_change: Annotated[bool, Query(alias="confirmStructureChange")] = False,
) -> IdResponse:
    try:
        await service.upsert_limit_option_set(
            product_id,
            coverage_id,
            request.model_copy(update={"id": set_id}),
            confirm_structure_change=confirm_structure_change,
        )
        return IdResponse(id=set_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.delete(
    SETS_PATH + "/{set_id}",
    response_model=CountResponse,
    responses=ERROR_RESPONSES,
    summary="Delete a limit option set and its options",
    operation_id="delete_limit_option_set",
)
async def delete_option_set(
    product_id: str,
    coverage_id: str,
    set_id: str,
    service: LimitOptionServiceDep,
) -> CountResponse:
    try:
        return CountResponse(count=await service.delete_limit_option_set(product_id, coverage_id, set_id))
    except AppError as e:
        raise to_http_error(e) from e


@router.get(
    SETS_PATH + "/{set_id}/validation",
    response_model=LimitOptionSetValidationResult,
    responses=ERROR_RESPONSES,
    summary="Validate a limit option set in draft or publish mode",
    operation_id="validate_limit_option_set",
)
async def validate_option_set(
    product_id: str,
    coverage_id: str,
    set_id: str,
    service: LimitOptionServiceDep,
    mode: ValidationMode = "draft",
) -> LimitOptionSetValidationResult:
    try:
        return await service.validate_option_set(product_id, coverage_id, set_id, mode)
    except AppError as e:
        raise to_http_error(e) from e


# ============================================================================
# Options
# ============================================================================


@router.get(
    SETS_PATH + "/{set_id}/options",
    response_model=List[CoverageLimitOption],
    responses=ERROR_RESPONSES,
    summary="List options of a limit option set in display order",
    operation_id="list_limit_options",
)
async def list_options(
    product_id: str,
    coverage_id: str,
    set_id: str,
    service: LimitOptionServiceDep,
) -> List[CoverageLimitOption]:
    try:
        return await service.get_limit_options(product_id, coverage_id, set_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH + "/{set_id}/options",
    status_code=status.HTTP_201_CREATED,
    response_model=IdResponse,
    responses=ERROR_RESPONSES,
    summary="Append a limit option",
    operation_id="add_limit_option",
)
async def add_option(
    product_id: str,
    coverage_id: str,
    set_id: str,
    request: LimitOptionInput,
    service: LimitOptionServiceDep,
) -> IdResponse:
    try:
        return IdResponse(id=await service.add_option(product_id, coverage_id, set_id, request))
    except AppError as e:
        raise to_http_error(e) from e


@router.patch(
    SETS_PATH + "/{set_id}/options/{option_id}",
    response_model=IdResponse,
    responses=ERROR_RESPONSES,
    summary="Update fields of a limit option",
    operation_id="update_limit_option",
)
async def update_option(
    product_id: str,
    coverage_id: str,
    set_id: str,
    option_id: str,
    request: LimitOptionInput,
    service: LimitOptionServiceDep,
) -> IdResponse:
    try:
        existing = await service.repository.get_option(product_id, coverage_id, set_id, option_id)
        if existing is None:
            raise NotFoundError("Limit option", option_id)
        await service.upsert_limit_option(
            product_id, coverage_id, set_id, request.model_copy(update={"id": option_id})
        )
        return IdResponse(id=option_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.delete(
    SETS_PATH + "/{set_id}/options/{option_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
    summary="Delete a limit option",
    operation_id="delete_limit_option",
)
async def delete_option(
    product_id: str,
    coverage_id: str,
    set_id: str,
    option_id: str,
    service: LimitOptionServiceDep,
) -> None:
    try:
        await service.delete_limit_option(product_id, coverage_id, set_id, option_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH + "/{set_id}/default",
    response_model=CountResponse,
    responses=ERROR_RESPONSES,
    summary="Make one option the only default of its set",
    operation_id="set_default_limit_option",
)
async def set_default_option(
    product_id: str,
    coverage_id: str,
    set_id: str,
    request: SetDefaultRequest,
    service: LimitOptionServiceDep,
) -> CountResponse:
    try:
        count = await service.set_default_option(product_id, coverage_id, set_id, request.option_id)
        return CountResponse(count=count)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH + "/{set_id}/reorder",
    response_model=CountResponse,
    responses=ERROR_RESPONSES,
    summary="Reorder the options of a set",
    description="The body must list every option id of the set exactly once.",
    operation_id="reorder_limit_options",
)
async def reorder_options(
    product_id: str,
    coverage_id: str,
    set_id: str,
    request: ReorderRequest,
    service: LimitOptionServiceDep,
) -> CountResponse:
    try:
        count = await service.reorder_options(product_id, coverage_id, set_id, request.option_ids)
        return CountResponse(count=count)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH + "/{set_id}/templates/{template_id}",
    status_code=status.HTTP_201_CREATED,
    response_model=IdsResponse,
    responses=ERROR_RESPONSES,
    summary="Seed options from a limit template",
    operation_id="apply_limit_template",
)
async def apply_template(
    product_id: str,
    coverage_id: str,
    set_id: str,
    template_id: str,
    service: LimitOptionServiceDep,
) -> IdsResponse:
    try:
        return IdsResponse(ids=await service.apply_template(product_id, coverage_id, set_id, template_id))
    except AppError as e:
        raise to_http_error(e) from e


# ============================================================================
# Legacy limits
# ============================================================================


@router.get(
    LEGACY_PATH,
    response_model=LegacyLimitsStatus,
    responses=ERROR_RESPONSES,
    summary="Check whether a coverage still has legacy limits",
    operation_id="get_legacy_limits_status",
)
async def get_legacy_limits_status(
    product_id: str,
    coverage_id: str,
    service: LimitOptionServiceDep,
) -> LegacyLimitsStatus:
    try:
        return LegacyLimitsStatus(has_legacy_limits=await service.has_legacy_limits(product_id, coverage_id))
    except AppError as e:
        raise to_http_error(e) from e


@router.get(
    LEGACY_PATH + "/migration",
    response_model=LegacyMigrationResult,
    responses=ERROR_RESPONSES,
    summary="Propose an option set from legacy limits",
    description="Read-only. Review the warnings, then POST the proposal to commit it.",
    operation_id="propose_legacy_limit_migration",
)
async def propose_migration(
    product_id: str,
    coverage_id: str,
    migration_service: MigrationServiceDep,
) -> LegacyMigrationResult:
    try:
        return await migration_service.migrate_legacy_limits_to_option_set(product_id, coverage_id)
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    LEGACY_PATH + "/migration",
    status_code=status.HTTP_201_CREATED,
    response_model=IdResponse,
    responses=ERROR_RESPONSES,
    summary="Commit a legacy migration proposal",
    operation_id="save_legacy_limit_migration",
)
async def save_migration(
    product_id: str,
    coverage_id: str,
    request: LegacyMigrationResult,
    migration_service: MigrationServiceDep,
) -> IdResponse:
    try:
        return IdResponse(id=await migration_service.save_migrated_option_set(product_id, coverage_id, request))
    except AppError as e:
        raise to_http_error(e) from e


@router.post(
    SETS_PATH + "/{set_id}/legacy-sync",
    response_model=CountResponse,
    responses=ERROR_RESPONSES,
    summary="Rewrite the legacy limits collection from an option set",
    operation_id="sync_limit_option_set_to_legacy",
)
async def sync_to_legacy(
    product_id: str,
    coverage_id: str,
    set_id: str,
    migration_service: MigrationServiceDep,
) -> CountResponse:
    try:
        count = await migration_service.sync_to_legacy_limits(product_id, coverage_id, set_id)
        return CountResponse(count=count)
    except AppError as e:
        raise to_http_error(e) from e
