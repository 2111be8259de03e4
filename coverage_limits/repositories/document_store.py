"""Hierarchical document store interface.

Documents live at slash-separated paths of alternating collection and
document ids (``products/p1/coverages/c1/limits/l1``). Implementations
provide single-document reads and writes, ordered collection reads, atomic
multi-document batches and push subscriptions on collections.

``None`` values never reach a backend: ``strip_undefined`` runs on every
payload at this boundary, so callers may pass partially populated dicts.
"""

import inspect
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from coverage_limits.core.exceptions import AppError, DocumentStoreError
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments if s)


def collection_of(path: str) -> str:
    return path.rsplit("/", 1)[0]


def document_id_of(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def strip_undefined(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``None`` values, recursing into nested mappings."""
    cleaned: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            value = strip_undefined(value)
        cleaned[key] = value
    return cleaned


class WriteOpKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class WriteOp:
    """One operation of an atomic batch.

    ``SET`` replaces (or creates) the document, ``UPDATE`` merges fields into
    an existing document and fails if it is missing, ``DELETE`` removes it.
    """

    kind: WriteOpKind
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, path: str, data: Dict[str, Any]) -> "WriteOp":
        return cls(WriteOpKind.SET, path, strip_undefined(data))

    @classmethod
    def update(cls, path: str, data: Dict[str, Any]) -> "WriteOp":
        return cls(WriteOpKind.UPDATE, path, strip_undefined(data))

    @classmethod
    def delete(cls, path: str) -> "WriteOp":
        return cls(WriteOpKind.DELETE, path)


@dataclass
class DocumentSnapshot:
    id: str
    path: str
    data: Dict[str, Any]


@dataclass
class CollectionSnapshot:
    path: str
    documents: List[DocumentSnapshot]

    @property
    def empty(self) -> bool:
        return not self.documents


SnapshotCallback = Callable[[CollectionSnapshot], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]


async def _invoke(callback: Callable[[Any], Any], arg: Any) -> None:
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


@dataclass(eq=False)
class _Listener:
    collection_path: str
    on_next: SnapshotCallback
    on_error: Optional[ErrorCallback]
    order_by: Optional[str]
    active: bool = True


class ListenerRegistration:
    """Handle returned by ``subscribe``; ``unsubscribe`` detaches the listener."""

    def __init__(self, store: "DocumentStore", listener: _Listener):
        self._store = store
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._listener.active

    def unsubscribe(self) -> None:
        self._store._detach(self._listener)


def sort_documents(documents: Iterable[DocumentSnapshot], order_by: Optional[str]) -> List[DocumentSnapshot]:
    """Order by a field ascending; documents lacking the field sort last."""
    documents = list(documents)
    if not order_by:
        return sorted(documents, key=lambda d: d.id)
    return sorted(
        documents,
        key=lambda d: (d.data.get(order_by) is None, d.data.get(order_by) or 0, d.id),
    )


class DocumentStore(ABC):
    """Base class for document stores with in-process change notification."""

    def __init__(self):
        self._listeners: Dict[str, List[_Listener]] = {}
        self.logger = LOGGER

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _read_document(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the raw data at ``path`` or None."""

    @abstractmethod
    async def _read_collection(self, collection_path: str) -> List[DocumentSnapshot]:
        """Return all documents directly inside ``collection_path``."""

    @abstractmethod
    async def _commit(self, ops: Sequence[WriteOp]) -> None:
        """Apply ``ops`` atomically: all succeed or none are applied."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def new_id(self) -> str:
        return uuid.uuid4().hex

    async def get(self, path: str) -> Optional[DocumentSnapshot]:
        data = await self._read_document(path)
        if data is None:
            return None
        return DocumentSnapshot(id=document_id_of(path), path=path, data=data)

    async def list(self, collection_path: str, order_by: Optional[str] = None) -> List[DocumentSnapshot]:
        return sort_documents(await self._read_collection(collection_path), order_by)

    async def upsert(self, path: str, data: Dict[str, Any], merge: bool = True) -> None:
        """Write one document; ``merge`` keeps fields absent from ``data``."""
        existing = await self._read_document(path) if merge else None
        if existing is None:
            await self.batch_write([WriteOp.set(path, data)])
        else:
            await self.batch_write([WriteOp.update(path, data)])

    async def create(self, collection_path: str, data: Dict[str, Any]) -> str:
        """Insert a document under a freshly generated id and return the id."""
        doc_id = self.new_id()
        await self.batch_write([WriteOp.set(join_path(collection_path, doc_id), data)])
        return doc_id

    async def delete(self, path: str) -> None:
        await self.batch_write([WriteOp.delete(path)])

    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """Commit ``ops`` as one atomic batch, then notify collection listeners."""
        if not ops:
            return
        try:
            await self._commit(ops)
        except AppError:
            raise
        except Exception as e:
            self.logger.error(f"Batch of {len(ops)} write(s) failed: {str(e)}", exc_info=True)
            raise DocumentStoreError(f"Batch write failed: {str(e)}", original_error=e)

        self.logger.debug(f"Committed batch of {len(ops)} write(s)")
        await self._notify({collection_of(op.path) for op in ops})

    async def subscribe(
        self,
        collection_path: str,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        order_by: Optional[str] = None,
    ) -> ListenerRegistration:
        """Watch a collection.

        The current contents are delivered immediately, then again after every
        committed batch touching the collection. Read failures (including
        access denial) go to ``on_error`` and the listener is detached.
        """
        listener = _Listener(collection_path, on_next, on_error, order_by)
        self._listeners.setdefault(collection_path, []).append(listener)
        registration = ListenerRegistration(self, listener)
        try:
            await self._deliver(listener)
        except Exception:
            self._detach(listener)
            raise
        return registration

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _detach(self, listener: _Listener) -> None:
        listener.active = False
        listeners = self._listeners.get(listener.collection_path, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, collection_path: Optional[str] = None) -> int:
        if collection_path is not None:
            return len(self._listeners.get(collection_path, []))
        return sum(len(v) for v in self._listeners.values())

    async def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        try:
            documents = await self.list(listener.collection_path, order_by=listener.order_by)
        except Exception as e:
            self._detach(listener)
            if listener.on_error is None:
                self.logger.error(f"Unhandled listener error on {listener.collection_path}: {str(e)}")
                return
            await _invoke(listener.on_error, e)
            return
        await _invoke(listener.on_next, CollectionSnapshot(listener.collection_path, documents))

    async def _notify(self, collection_paths: Iterable[str]) -> None:
        for path in collection_paths:
            for listener in list(self._listeners.get(path, [])):
                # batch is committed; keep notifying the rest
                try:
                    await self._deliver(listener)
                except Exception as e:
                    self.logger.error(
                        f"Listener on {path} failed after commit: {str(e)}", exc_info=True
                    )
