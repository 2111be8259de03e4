"""In-process document store, used for local development and tests."""

import copy
from typing import Any, Dict, List, Optional, Sequence

from coverage_limits.core.exceptions import AccessDeniedError, DocumentStoreError
from coverage_limits.repositories.document_store import (
    DocumentSnapshot,
    DocumentStore,
    WriteOp,
    WriteOpKind,
    collection_of,
    document_id_of,
)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store keyed by full document path.

    Batches are staged on a copy of the data and swapped in only when every
    operation succeeded. ``deny_access`` simulates an auth token that has not
    yet propagated: reads under a path prefix raise ``AccessDeniedError``.
    """

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        super().__init__()
        self._documents: Dict[str, Dict[str, Any]] = copy.deepcopy(documents or {})
        self._denied: Dict[str, Optional[int]] = {}
        self.commits: List[List[WriteOp]] = []
        self.reads: List[str] = []

    def deny_access(self, path_prefix: str, times: Optional[int] = None) -> None:
        """Refuse reads under ``path_prefix``, ``times`` times or until ``allow_access``."""
        self._denied[path_prefix] = times

    def allow_access(self, path_prefix: Optional[str] = None) -> None:
        if path_prefix is None:
            self._denied.clear()
        else:
            self._denied.pop(path_prefix, None)

    def _check_access(self, path: str) -> None:
        for prefix, remaining in list(self._denied.items()):
            if not path.startswith(prefix):
                continue
            if remaining is not None:
                if remaining <= 1:
                    del self._denied[prefix]
                else:
                    self._denied[prefix] = remaining - 1
            raise AccessDeniedError(path)

    async def _read_document(self, path: str) -> Optional[Dict[str, Any]]:
        self._check_access(path)
        self.reads.append(path)
        data = self._documents.get(path)
        return copy.deepcopy(data) if data is not None else None

    async def _read_collection(self, collection_path: str) -> List[DocumentSnapshot]:
        self._check_access(collection_path)
        self.reads.append(collection_path)
        return [
            DocumentSnapshot(id=document_id_of(path), path=path, data=copy.deepcopy(data))
            for path, data in self._documents.items()
            if collection_of(path) == collection_path
        ]

    async def _commit(self, ops: Sequence[WriteOp]) -> None:
        staged = dict(self._documents)
        for op in ops:
            if op.kind == WriteOpKind.SET:
                staged[op.path] = copy.deepcopy(op.data)
            elif op.kind == WriteOpKind.UPDATE:
                if op.path not in staged:
                    raise DocumentStoreError(f"No document to update: {op.path}")
                staged[op.path] = {**staged[op.path], **copy.deepcopy(op.data)}
            elif op.kind == WriteOpKind.DELETE:
                staged.pop(op.path, None)
        self._documents = staged
        self.commits.append(list(ops))

    def dump(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._documents)
