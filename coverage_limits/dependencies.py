"""Centralized dependency injection for the FastAPI application."""

from typing import Annotated

from fastapi import Depends

from coverage_limits.database.client import get_document_store
from coverage_limits.repositories.document_store import DocumentStore
from coverage_limits.services.limits.migration import LegacyMigrationService
from coverage_limits.services.limits.option_service import LimitOptionService


async def get_limit_option_service(
    store: Annotated[DocumentStore, Depends(get_document_store)]
) -> LimitOptionService:
    """Get limit option service instance.

    Args:
        store: Document store from dependency injection

    Returns:
        LimitOptionService: Service for option set and option writes
    """
    return LimitOptionService(store)


async def get_legacy_migration_service(
    store: Annotated[DocumentStore, Depends(get_document_store)]
) -> LegacyMigrationService:
    return LegacyMigrationService(store)
