"""Create books and generation_jobs tables.

Revision ID: 7c3e1a9d2f40
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "7c3e1a9d2f40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "books",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("owner_email", sa.String(), nullable=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("birth_year", sa.Integer(), nullable=False),
    sa.Column("birth_month", sa.String(), nullable=False),
    sa.Column("birth_day", sa.Integer(), nullable=False),
    sa.Column("interests", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("blend_level", sa.String(), nullable=False),
    sa.Column("cover_style", sa.String(), nullable=False),
    sa.Column("book_type", sa.String(), nullable=False),
    sa.Column("generation_status", sa.String(), nullable=False),
    sa.Column("entries", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("cover_image_url", sa.Text(), nullable=True),
    sa.Column("entry_count", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_books_owner_id"), "books", ["owner_id"], unique=False)
  op.create_index(op.f("ix_books_generation_status"), "books", ["generation_status"], unique=False)

  op.create_table(
    "generation_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("book_id", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress", sa.Integer(), nullable=False),
    sa.Column("current_month", sa.Integer(), nullable=False),
    sa.Column("generated_entries", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("retry_count", sa.Integer(), nullable=False),
    sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("locked_by", sa.String(), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["book_id"], ["books.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_generation_jobs_book_id"), "generation_jobs", ["book_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_owner_id"), "generation_jobs", ["owner_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_status"), "generation_jobs", ["status"], unique=False)
  op.create_index("ix_generation_jobs_book_status", "generation_jobs", ["book_id", "status"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_generation_jobs_book_status", table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_status"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_owner_id"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_book_id"), table_name="generation_jobs")
  op.drop_table("generation_jobs")
  op.drop_index(op.f("ix_books_generation_status"), table_name="books")
  op.drop_index(op.f("ix_books_owner_id"), table_name="books")
  op.drop_table("books")
