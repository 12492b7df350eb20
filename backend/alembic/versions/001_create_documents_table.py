"""Create documents table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `documents` table behind SqlDocumentStore.
How:   Composite primary key (collection, id), JSON body, bookkeeping
       timestamps, and an index on collection for list/query scans.

Rollback: downgrade() drops the table (all users, tags, questions, answers
and comments are lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column(
            "collection",
            sa.String(512),
            nullable=False,
            comment="Collection path, e.g. 'questions' or 'questions/<id>/answers'",
        ),
        sa.Column(
            "id",
            sa.String(64),
            nullable=False,
            comment="Document id, unique within its collection",
        ),
        sa.Column(
            "data",
            sa.JSON(),
            nullable=False,
            comment="Schemaless document body",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("collection", "id"),
    )

    # Every list_documents / query_documents call filters on collection
    op.create_index("idx_documents_collection", "documents", ["collection"])


def downgrade() -> None:
    op.drop_index("idx_documents_collection", table_name="documents")
    op.drop_table("documents")
