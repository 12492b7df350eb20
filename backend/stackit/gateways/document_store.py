"""
StackIt Backend — Document Store Gateway
==========================================

What:  Interface to the schemaless Document Store plus its SQL implementation.
Why:   Every persisted thing in StackIt (users, tags, questions, answers,
       comments) is a JSON document in a named collection. Services depend on
       the abstract `DocumentStore` only, so the backend can be swapped and
       tests can run against an in-memory double.
How:   `SqlDocumentStore` maps each call onto one short SQLAlchemy
       transaction against the `documents` table.

Call contract (mirrors the hosted document database the product was built on):
    get_document(collection, id)                 → dict | None
    set_document(collection, id, fields, merge)  → None
    add_document(collection, fields)             → generated id
    list_documents(collection, order_by?)        → [DocumentSnapshot]
    query_documents(collection, field, value)    → [DocumentSnapshot]  (equality)
    delete_document(collection, id)              → bool (existed)
    increment(collection, id, field, delta)      → new value (atomic)
    batch_update([(collection, id, fields)])     → None (atomic merge)

Sub-collections are addressed with path strings built by `subcollection()`,
e.g. "questions/<qid>/answers".
"""

import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stackit.exceptions import BackendCallError, NotFoundError, StackItError
from stackit.models.document import DocumentRecord

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced by the store with the current UTC time on write."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

DocumentUpdate = Tuple[str, str, Dict[str, Any]]


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


def subcollection(*parts: str) -> str:
    """Build a collection path: subcollection("questions", qid, "answers")."""
    return "/".join(parts)


def generate_document_id() -> str:
    # 20 hex chars, same length as the hosted store's auto ids
    return uuid.uuid4().hex[:20]


def resolve_server_timestamps(fields: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {
        key: (now if value is SERVER_TIMESTAMP else value)
        for key, value in fields.items()
    }


def _order_key(value: Any) -> Tuple[bool, Any]:
    # Missing values sort last
    return (value is None, "" if value is None else value)


class DocumentStore(ABC):
    """
    Abstract Document Store.

    Implementations raise BackendCallError for transport/storage failures
    and NotFoundError when `increment` / `batch_update` target a missing
    document. Reads of missing documents are not errors.
    """

    @abstractmethod
    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set_document(
        self,
        collection: str,
        document_id: str,
        fields: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        ...

    @abstractmethod
    async def add_document(self, collection: str, fields: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    async def query_documents(self, collection: str, field_name: str, value: Any) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> bool:
        ...

    @abstractmethod
    async def increment(self, collection: str, document_id: str, field_name: str, delta: int) -> int:
        ...

    @abstractmethod
    async def batch_update(self, updates: Sequence[DocumentUpdate]) -> None:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Lightweight connectivity check used by /health."""
        ...


class SqlDocumentStore(DocumentStore):
    """
    Document Store backed by the `documents` table.

    Each public method runs in its own session and transaction; SQLAlchemy
    failures are logged with the collection involved and re-raised as
    BackendCallError (details never reach the client).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str, collection: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except StackItError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                "Document store %s failed on '%s': %s",
                operation,
                collection,
                str(e),
            )
            raise BackendCallError(
                message="A storage error occurred. Please try again.",
                service="document_store",
                context={"operation": operation},
            )

    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        async with self._transaction("get", collection) as session:
            record = await session.get(DocumentRecord, (collection, document_id))
            return dict(record.data) if record else None

    async def set_document(
        self,
        collection: str,
        document_id: str,
        fields: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        resolved = resolve_server_timestamps(fields)
        async with self._transaction("set", collection) as session:
            record = await session.get(DocumentRecord, (collection, document_id))
            if record is None:
                session.add(DocumentRecord(collection=collection, id=document_id, data=resolved))
            elif merge:
                # Reassign (not mutate) so SQLAlchemy sees the JSON change
                record.data = {**record.data, **resolved}
            else:
                record.data = resolved

    async def add_document(self, collection: str, fields: Dict[str, Any]) -> str:
        document_id = generate_document_id()
        async with self._transaction("add", collection) as session:
            session.add(
                DocumentRecord(
                    collection=collection,
                    id=document_id,
                    data=resolve_server_timestamps(fields),
                )
            )
        logger.debug("Added document %s/%s", collection, document_id)
        return document_id

    async def list_documents(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        async with self._transaction("list", collection) as session:
            result = await session.execute(
                select(DocumentRecord).where(DocumentRecord.collection == collection)
            )
            snapshots = [
                DocumentSnapshot(id=record.id, data=dict(record.data))
                for record in result.scalars().all()
            ]

        if order_by:
            # JSON values are heterogeneous across backends; order in Python
            snapshots.sort(key=lambda s: _order_key(s.data.get(order_by)), reverse=descending)
        return snapshots

    async def query_documents(self, collection: str, field_name: str, value: Any) -> List[DocumentSnapshot]:
        column = DocumentRecord.data[field_name]
        if isinstance(value, bool):
            condition = column.as_boolean() == value
        elif isinstance(value, int):
            condition = column.as_integer() == value
        elif isinstance(value, float):
            condition = column.as_float() == value
        else:
            condition = column.as_string() == str(value)

        async with self._transaction("query", collection) as session:
            result = await session.execute(
                select(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    condition,
                )
            )
            return [
                DocumentSnapshot(id=record.id, data=dict(record.data))
                for record in result.scalars().all()
            ]

    async def delete_document(self, collection: str, document_id: str) -> bool:
        async with self._transaction("delete", collection) as session:
            record = await session.get(DocumentRecord, (collection, document_id))
            if record is None:
                return False
            await session.delete(record)
            return True

    async def increment(self, collection: str, document_id: str, field_name: str, delta: int) -> int:
        async with self._transaction("increment", collection) as session:
            result = await session.execute(
                select(DocumentRecord)
                .where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.id == document_id,
                )
                .with_for_update()
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFoundError(resource=collection, resource_id=document_id)
            new_value = int(record.data.get(field_name) or 0) + delta
            record.data = {**record.data, field_name: new_value}
            return new_value

    async def batch_update(self, updates: Sequence[DocumentUpdate]) -> None:
        async with self._transaction("batch_update", "batch") as session:
            for collection, document_id, fields in updates:
                record = await session.get(
                    DocumentRecord, (collection, document_id), with_for_update=True
                )
                if record is None:
                    # Raising inside the transaction rolls back the whole batch
                    raise NotFoundError(resource=collection, resource_id=document_id)
                record.data = {**record.data, **resolve_server_timestamps(fields)}

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Document store health check failed: %s", str(e))
            return False
