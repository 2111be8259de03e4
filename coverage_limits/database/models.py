"""SQLAlchemy models for the SQL-backed document store."""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, TIMESTAMP, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from coverage_limits.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredDocument(Base):
    """One document of the hierarchical store, keyed by its full path."""

    __tablename__ = "limit_documents"

    path: Mapped[str] = mapped_column(String, primary_key=True)
    collection_path: Mapped[str] = mapped_column(String, nullable=False)
    document_id: Mapped[str] = mapped_column(String, nullable=False)
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_limit_documents_collection", "collection_path"),
    )
