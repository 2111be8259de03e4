"""Typed access to option sets, options and legacy limits in the document store."""

from typing import List, Optional

from pydantic import ValidationError

from coverage_limits.repositories.document_store import DocumentStore, join_path
from coverage_limits.schemas.legacy import LegacyLimit
from coverage_limits.schemas.limit_options import CoverageLimitOption, CoverageLimitOptionSet
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)


def option_sets_path(product_id: str, coverage_id: str) -> str:
    return join_path("products", product_id, "coverages", coverage_id, "limitOptionSets")


def option_set_path(product_id: str, coverage_id: str, set_id: str) -> str:
    return join_path(option_sets_path(product_id, coverage_id), set_id)


def options_path(product_id: str, coverage_id: str, set_id: str) -> str:
    return join_path(option_set_path(product_id, coverage_id, set_id), "options")


def option_path(product_id: str, coverage_id: str, set_id: str, option_id: str) -> str:
    return join_path(options_path(product_id, coverage_id, set_id), option_id)


def legacy_limits_path(product_id: str, coverage_id: str) -> str:
    return join_path("products", product_id, "coverages", coverage_id, "limits")


class LimitOptionRepository:
    """Reads option sets, options and legacy limits for one store.

    Writes go through ``LimitOptionService`` so invariants hold; this class
    only builds paths and converts documents into models.
    """

    def __init__(self, store: DocumentStore):
        """Initialize the repository.

        Args:
            store: Document store holding product data
        """
        self.store = store
        self.logger = LOGGER

    async def get_option_sets(self, product_id: str, coverage_id: str) -> List[CoverageLimitOptionSet]:
        docs = await self.store.list(option_sets_path(product_id, coverage_id))
        return [CoverageLimitOptionSet.from_document(d.id, d.data) for d in docs]

    async def get_option_set(
        self, product_id: str, coverage_id: str, set_id: str
    ) -> Optional[CoverageLimitOptionSet]:
        doc = await self.store.get(option_set_path(product_id, coverage_id, set_id))
        if doc is None:
            return None
        return CoverageLimitOptionSet.from_document(doc.id, doc.data)

    async def get_options(self, product_id: str, coverage_id: str, set_id: str) -> List[CoverageLimitOption]:
        """Options of a set ordered by ``displayOrder`` ascending."""
        docs = await self.store.list(options_path(product_id, coverage_id, set_id), order_by="displayOrder")
        return [CoverageLimitOption.from_document(d.id, d.data) for d in docs]

    async def get_option(
        self, product_id: str, coverage_id: str, set_id: str, option_id: str
    ) -> Optional[CoverageLimitOption]:
        doc = await self.store.get(option_path(product_id, coverage_id, set_id, option_id))
        if doc is None:
            return None
        return CoverageLimitOption.from_document(doc.id, doc.data)

    async def get_legacy_limits(self, product_id: str, coverage_id: str) -> List[LegacyLimit]:
        """Legacy records of a coverage; records that cannot be read are skipped."""
        docs = await self.store.list(legacy_limits_path(product_id, coverage_id))
        limits: List[LegacyLimit] = []
        for doc in docs:
            try:
                limits.append(LegacyLimit.from_document(doc.id, doc.data))
            except ValidationError as e:
                self.logger.warning(
                    f"Skipping unreadable legacy limit {doc.id} for coverage {coverage_id}: {str(e)}",
                    extra={"product_id": product_id, "coverage_id": coverage_id},
                )
        return limits

    async def has_legacy_limits(self, product_id: str, coverage_id: str) -> bool:
        """One-shot existence check; never opens a subscription."""
        docs = await self.store.list(legacy_limits_path(product_id, coverage_id))
        return bool(docs)
