"""Document store persisted through async SQLAlchemy."""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coverage_limits.core.exceptions import DocumentStoreError
from coverage_limits.database.models import StoredDocument
from coverage_limits.repositories.document_store import (
    DocumentSnapshot,
    DocumentStore,
    WriteOp,
    WriteOpKind,
    collection_of,
    document_id_of,
)


class SqlDocumentStore(DocumentStore):
    """Stores every document as a JSON row in ``limit_documents``.

    Each batch runs inside one transaction, so a failure rolls back every
    operation of the batch. Listeners are notified in-process after commit.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__()
        self.session_maker = session_maker

    async def _read_document(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.session_maker() as session:
                row = await session.get(StoredDocument, path)
                return dict(row.data) if row is not None else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading document {path}: {str(e)}", exc_info=True)
            raise DocumentStoreError(f"Error reading document {path}", original_error=e)

    async def _read_collection(self, collection_path: str) -> List[DocumentSnapshot]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(StoredDocument).where(StoredDocument.collection_path == collection_path)
                )
                return [
                    DocumentSnapshot(id=row.document_id, path=row.path, data=dict(row.data))
                    for row in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading collection {collection_path}: {str(e)}", exc_info=True)
            raise DocumentStoreError(f"Error reading collection {collection_path}", original_error=e)

    async def _commit(self, ops: Sequence[WriteOp]) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    for op in ops:
                        await self._apply(session, op)
        except SQLAlchemyError as e:
            self.logger.error(f"Error committing batch of {len(ops)} write(s): {str(e)}", exc_info=True)
            raise DocumentStoreError("Batch commit failed", original_error=e)

    async def _apply(self, session: AsyncSession, op: WriteOp) -> None:
        row = await session.get(StoredDocument, op.path)

        if op.kind == WriteOpKind.DELETE:
            if row is not None:
                await session.delete(row)
        elif op.kind == WriteOpKind.UPDATE:
            if row is None:
                raise DocumentStoreError(f"No document to update: {op.path}")
            # Reassign so the JSON column is flagged as modified
            row.data = {**row.data, **op.data}
        elif row is None:
            session.add(StoredDocument(
                path=op.path,
                collection_path=collection_of(op.path),
                document_id=document_id_of(op.path),
                data=dict(op.data),
            ))
        else:
            row.data = dict(op.data)

        # Later ops in the same batch must see this row
        await session.flush()
