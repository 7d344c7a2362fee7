from __future__ import annotations

import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from chronicle.core.database import Base


class Book(Base):
  __tablename__ = "books"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  owner_email: Mapped[str | None] = mapped_column(String, nullable=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  birth_year: Mapped[int] = mapped_column(Integer, nullable=False)
  birth_month: Mapped[str] = mapped_column(String, nullable=False)
  birth_day: Mapped[int] = mapped_column(Integer, nullable=False)
  interests: Mapped[list] = mapped_column(JSONB, nullable=False)
  blend_level: Mapped[str] = mapped_column(String, nullable=False, default="focused")
  cover_style: Mapped[str] = mapped_column(String, nullable=False, default="classic")
  book_type: Mapped[str] = mapped_column(String, nullable=False, default="full")
  generation_status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  entries: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  additional_entry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GenerationJob(Base):
  __tablename__ = "generation_jobs"
  __table_args__ = (Index("ix_generation_jobs_book_status", "book_id", "status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  book_id: Mapped[str] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  generated_entries: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  last_retry_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  locked_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  locked_by: Mapped[str | None] = mapped_column(String, nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
