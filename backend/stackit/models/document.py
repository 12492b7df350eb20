"""
StackIt Backend — Document SQLAlchemy Model
=============================================

What:  ORM model for the `documents` table, the SQL backing of the
       schemaless Document Store.
Why:   The product treats its database as a document store: named
       collections of keyed JSON records. One table reproduces that shape
       without a schema per record type.

Table Design Rationale:
    - (collection, id) composite primary key: a record is addressed exactly
      like a Firestore document path. Sub-collections are encoded in the
      collection string, e.g. "questions/<qid>/answers".
    - data: JSON body of the record. Field-equality queries use JSON path
      extraction (works on PostgreSQL and SQLite).
    - created_at / updated_at: bookkeeping for operators; application-level
      timestamps live inside `data`.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TIMESTAMP

from stackit.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """
    One document of one collection.

    Query Patterns:
        - Get by key:   WHERE collection = :c AND id = :id  (primary key)
        - List:         WHERE collection = :c                (idx_documents_collection)
        - Field match:  WHERE collection = :c AND data->>:field = :value
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
        comment="Collection path, e.g. 'questions' or 'questions/<id>/answers'",
    )

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Document id, unique within its collection",
    )

    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Schemaless document body",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_documents_collection", "collection"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord(collection='{self.collection}', id='{self.id}')>"
