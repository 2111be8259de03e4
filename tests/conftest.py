"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from coverage_limits.database.client import get_document_store
from coverage_limits.main import app
from coverage_limits.repositories.memory_store import InMemoryDocumentStore
from coverage_limits.services.limits.migration import LegacyMigrationService
from coverage_limits.services.limits.option_service import LimitOptionService


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Create an empty in-memory document store.

    Returns:
        InMemoryDocumentStore: Fresh store instance
    """
    return InMemoryDocumentStore()


@pytest.fixture
def service(store: InMemoryDocumentStore) -> LimitOptionService:
    return LimitOptionService(store)


@pytest.fixture
def migration_service(store: InMemoryDocumentStore) -> LegacyMigrationService:
    return LegacyMigrationService(store)


@pytest.fixture
def test_client(store: InMemoryDocumentStore) -> TestClient:
    """Create FastAPI test client backed by the in-memory store.

    Returns:
        TestClient: FastAPI test client instance
    """
    app.dependency_overrides[get_document_store] = lambda: store
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}

