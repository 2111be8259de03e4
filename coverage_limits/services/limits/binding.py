"""Reactive binding of a coverage's option sets and options.

``LimitOptionSetBinding`` keeps a live view of one coverage: the option set
collection, the selected set's options and a one-shot flag telling whether
legacy limits exist. Every snapshot replaces the local state wholesale.

Access-denied read errors are usually an auth token that has not reached the
store yet, so they are retried on a fixed backoff before the binding settles
into a permanent error.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from coverage_limits.core.config import BindingSettings, settings
from coverage_limits.core.exceptions import AccessDeniedError, AppError, DocumentStoreError, NotFoundError
from coverage_limits.repositories.document_store import CollectionSnapshot, DocumentStore, ListenerRegistration
from coverage_limits.repositories.limit_option_repository import option_sets_path, options_path
from coverage_limits.schemas.limit_options import (
    CoverageLimitOption,
    CoverageLimitOptionSet,
    LegacyMigrationResult,
    LimitOptionInput,
    LimitOptionSetInput,
)
from coverage_limits.services.limits.basis import ensure_basis_config
from coverage_limits.services.limits.migration import LegacyMigrationService
from coverage_limits.services.limits.option_service import LimitOptionService, visible_options
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)

PERMANENT_ERROR_MESSAGE = (
    "Unable to load limit options. You may not have access or the data is still loading."
)


@dataclass(frozen=True)
class RetryPolicy:
    """Re-subscription policy for access-denied errors."""

    max_attempts: int = 2
    backoff_seconds: float = 1.5

    @classmethod
    def from_settings(cls, binding: Optional[BindingSettings] = None) -> "RetryPolicy":
        binding = binding or settings.binding
        return cls(max_attempts=binding.retry_max_attempts, backoff_seconds=binding.retry_backoff_seconds)


class BindingState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class BindingError:
    message: str
    retryable: bool
    original_error: Optional[Exception] = None


class _RetryingSubscription:
    """A collection subscription that re-subscribes after access denial."""

    def __init__(
        self,
        binding: "LimitOptionSetBinding",
        collection_path: str,
        on_next: Callable[[CollectionSnapshot], Awaitable[None]],
        order_by: Optional[str] = None,
    ):
        self.binding = binding
        self.collection_path = collection_path
        self.order_by = order_by
        self.attempts = 0
        self._on_next_handler = on_next
        self._registration: Optional[ListenerRegistration] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def retry_task(self) -> Optional[asyncio.Task]:
        return self._retry_task

    async def start(self) -> None:
        if self._registration is not None:
            self._registration.unsubscribe()
        self._registration = await self.binding.store.subscribe(
            self.collection_path,
            self._on_next,
            on_error=self._on_error,
            order_by=self.order_by,
        )

    async def _on_next(self, snapshot: CollectionSnapshot) -> None:
        if self._closed:
            return
        self.attempts = 0
        await self._on_next_handler(snapshot)

    async def _on_error(self, error: Exception) -> None:
        if self._closed:
            return
        await self.binding._handle_subscription_error(self, error)

    def schedule_retry(self, delay: float) -> None:
        current = asyncio.current_task()
        if self._retry_task is not None and self._retry_task is not current:
            self._retry_task.cancel()
        self._retry_task = asyncio.create_task(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await self.binding._sleep(delay)
        if not self._closed:
            await self.start()

    async def wait(self) -> None:
        # A retry may schedule the next retry, so drain until none is pending
        while self._retry_task is not None and not self._retry_task.done():
            task = self._retry_task
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        self._closed = True
        if self._registration is not None:
            self._registration.unsubscribe()
            self._registration = None
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._retry_task
        self._retry_task = None


class LimitOptionSetBinding:
    """Live state and commands for the limit option sets of one coverage.

    Usage:
        async with LimitOptionSetBinding(store, "p1", "c1") as binding:
            await binding.add_option(LimitOptionInput(value=SingleLimitValue(amount=1_000_000)))
            print(binding.options)
    """

    def __init__(
        self,
        store: DocumentStore,
        product_id: str,
        coverage_id: str,
        retry_policy: Optional[RetryPolicy] = None,
        service: Optional[LimitOptionService] = None,
        migration_service: Optional[LegacyMigrationService] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.product_id = product_id
        self.coverage_id = coverage_id
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.service = service or LimitOptionService(store)
        self.migration_service = migration_service or LegacyMigrationService(store, self.service.repository)
        self._sleep = sleep
        self.logger = LOGGER

        self.state = BindingState.IDLE
        self.error: Optional[BindingError] = None
        self.option_sets: List[CoverageLimitOptionSet] = []
        self.options: List[CoverageLimitOption] = []
        self.selected_set_id: Optional[str] = None
        self.has_legacy_limits = False

        self._sets_subscription: Optional[_RetryingSubscription] = None
        self._options_subscription: Optional[_RetryingSubscription] = None
        self._closed = False

    async def __aenter__(self) -> "LimitOptionSetBinding":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Subscribe to the coverage's option sets."""
        if self._sets_subscription is not None:
            return
        self._closed = False
        self.state = BindingState.LOADING
        self._sets_subscription = _RetryingSubscription(
            self, option_sets_path(self.product_id, self.coverage_id), self._on_option_sets
        )
        await self._sets_subscription.start()

    async def close(self) -> None:
        """Detach all listeners and cancel pending retries; writes in flight are unaffected."""
        self._closed = True
        for subscription in (self._sets_subscription, self._options_subscription):
            if subscription is not None:
                await subscription.close()
        self._sets_subscription = None
        self._options_subscription = None

    async def wait_until_settled(self) -> None:
        """Wait for pending retries to finish."""
        for subscription in (self._sets_subscription, self._options_subscription):
            if subscription is not None:
                await subscription.wait()

    @property
    def selected_set(self) -> Optional[CoverageLimitOptionSet]:
        return next((s for s in self.option_sets if s.id == self.selected_set_id), None)

    @property
    def visible_options(self) -> List[CoverageLimitOption]:
        selected = self.selected_set
        if selected is None:
            return []
        return visible_options(selected, self.options)

    # ------------------------------------------------------------------
    # Snapshot handling
    # ------------------------------------------------------------------

    async def _on_option_sets(self, snapshot: CollectionSnapshot) -> None:
        self.option_sets = [
            ensure_basis_config(CoverageLimitOptionSet.from_document(d.id, d.data))
            for d in snapshot.documents
        ]
        self.error = None
        self.state = BindingState.READY

        if not self.option_sets:
            self.has_legacy_limits = await self._check_legacy_limits()
        else:
            self.has_legacy_limits = False

        ids = [s.id for s in self.option_sets]
        if self.selected_set_id not in ids:
            await self._select(ids[0] if ids else None)

    async def _check_legacy_limits(self) -> bool:
        try:
            return await self.service.has_legacy_limits(self.product_id, self.coverage_id)
        except DocumentStoreError as e:
            self.logger.warning(f"Legacy limit check failed for coverage {self.coverage_id}: {str(e)}")
            return False

    async def _on_options(self, snapshot: CollectionSnapshot) -> None:
        self.options = [CoverageLimitOption.from_document(d.id, d.data) for d in snapshot.documents]
        self.error = None
        self.state = BindingState.READY

    async def _handle_subscription_error(self, subscription: _RetryingSubscription, error: Exception) -> None:
        if isinstance(error, AccessDeniedError) and subscription.attempts < self.retry_policy.max_attempts:
            subscription.attempts += 1
            self.state = BindingState.ERROR
            self.error = BindingError(message=error.message, retryable=True, original_error=error)
            self.logger.warning(
                f"Access denied on {subscription.collection_path}; retry "
                f"{subscription.attempts}/{self.retry_policy.max_attempts} in {self.retry_policy.backoff_seconds}s"
            )
            subscription.schedule_retry(self.retry_policy.backoff_seconds)
            return

        self.state = BindingState.ERROR
        self.error = BindingError(message=PERMANENT_ERROR_MESSAGE, retryable=False, original_error=error)
        self.logger.error(f"Subscription on {subscription.collection_path} failed: {str(error)}")

    async def _select(self, set_id: Optional[str]) -> None:
        if self._options_subscription is not None:
            await self._options_subscription.close()
            self._options_subscription = None
        self.selected_set_id = set_id
        self.options = []
        if set_id is None or self._closed:
            return
        self._options_subscription = _RetryingSubscription(
            self,
            options_path(self.product_id, self.coverage_id, set_id),
            self._on_options,
            order_by="displayOrder",
        )
        await self._options_subscription.start()

    async def select_set(self, set_id: str) -> None:
        if set_id not in {s.id for s in self.option_sets}:
            raise NotFoundError("Option set", set_id)
        if set_id != self.selected_set_id:
            await self._select(set_id)

    def _require_selected(self) -> str:
        if self.selected_set_id is None:
            raise NotFoundError("Option set", "no option set selected")
        return self.selected_set_id

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_option_set(self, data: LimitOptionSetInput) -> str:
        set_id = await self.service.upsert_limit_option_set(
            self.product_id, self.coverage_id, data.model_copy(update={"id": None})
        )
        if set_id in {s.id for s in self.option_sets}:
            await self.select_set(set_id)
        return set_id

    async def update_option_set(self, data: LimitOptionSetInput, confirm_structure_change: bool = False) -> str:
        if not data.id:
            data = data.model_copy(update={"id": self._require_selected()})
        return await self.service.upsert_limit_option_set(
            self.product_id, self.coverage_id, data, confirm_structure_change=confirm_structure_change
        )

    async def delete_option_set(self, set_id: Optional[str] = None) -> int:
        return await self.service.delete_limit_option_set(
            self.product_id, self.coverage_id, set_id or self._require_selected()
        )

    async def add_option(self, data: LimitOptionInput) -> str:
        return await self.service.add_option(self.product_id, self.coverage_id, self._require_selected(), data)

    async def update_option(self, data: LimitOptionInput) -> str:
        return await self.service.upsert_limit_option(
            self.product_id, self.coverage_id, self._require_selected(), data
        )

    async def delete_option(self, option_id: str) -> None:
        await self.service.delete_limit_option(
            self.product_id, self.coverage_id, self._require_selected(), option_id
        )

    async def set_default_option(self, option_id: str) -> int:
        return await self.service.set_default_option(
            self.product_id, self.coverage_id, self._require_selected(), option_id
        )

    async def reorder_options(self, ordered_ids: Sequence[str]) -> int:
        return await self.service.reorder_options(
            self.product_id, self.coverage_id, self._require_selected(), ordered_ids
        )

    async def apply_template(self, template_id: str) -> List[str]:
        return await self.service.apply_template(
            self.product_id, self.coverage_id, self._require_selected(), template_id
        )

    async def migrate_from_legacy(self) -> LegacyMigrationResult:
        return await self.migration_service.migrate_legacy_limits_to_option_set(self.product_id, self.coverage_id)

    async def save_migration(self, result: LegacyMigrationResult) -> str:
        set_id = await self.migration_service.save_migrated_option_set(self.product_id, self.coverage_id, result)
        if set_id in {s.id for s in self.option_sets}:
            await self.select_set(set_id)
        return set_id

    async def sync_to_legacy(self) -> int:
        try:
            return await self.migration_service.sync_to_legacy_limits(
                self.product_id, self.coverage_id, self._require_selected()
            )
        except AppError:
            self.logger.error(f"Legacy sync failed for coverage {self.coverage_id}", exc_info=True)
            raise
