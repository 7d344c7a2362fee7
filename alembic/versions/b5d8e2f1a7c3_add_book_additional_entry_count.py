"""Add additional_entry_count to books.

Revision ID: b5d8e2f1a7c3
Revises: 7c3e1a9d2f40
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "b5d8e2f1a7c3"
down_revision = "7c3e1a9d2f40"
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.add_column("books", sa.Column("additional_entry_count", sa.Integer(), server_default="0", nullable=False))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_column("books", "additional_entry_count")
