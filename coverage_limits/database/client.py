"""Process-wide document store lifecycle."""

from typing import Optional

from coverage_limits.core.config import settings
from coverage_limits.core.database import DatabaseClient, build_engine
from coverage_limits.core.exceptions import ConfigurationError
from coverage_limits.repositories.document_store import DocumentStore
from coverage_limits.repositories.memory_store import InMemoryDocumentStore
from coverage_limits.repositories.sql_store import SqlDocumentStore
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)

db_client: Optional[DatabaseClient] = None
_document_store: Optional[DocumentStore] = None


def build_document_store(backend: Optional[str] = None) -> DocumentStore:
    """Build the configured store backend.

    Raises:
        ConfigurationError: Unknown backend name
    """
    global db_client

    backend = backend or settings.document_store_backend
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "sql":
        if db_client is None:
            db_client = DatabaseClient(build_engine(settings.database))
        return SqlDocumentStore(db_client.session_maker)
    raise ConfigurationError(f"Unknown document store backend: {backend}")


async def init_document_store(create_tables: bool = True) -> DocumentStore:
    """Create the shared store; for SQL, verify the connection and table."""
    global _document_store

    _document_store = build_document_store()
    if db_client is not None:
        await db_client.connect()
        if create_tables:
            await db_client.create_tables()
    LOGGER.info(f"Document store ready ({settings.document_store_backend})")
    return _document_store


async def close_document_store() -> None:
    global _document_store, db_client

    if db_client is not None:
        await db_client.disconnect()
        db_client = None
    _document_store = None


def get_document_store() -> DocumentStore:
    """FastAPI dependency returning the shared store, built on first use."""
    global _document_store

    if _document_store is None:
        _document_store = build_document_store()
    return _document_store
