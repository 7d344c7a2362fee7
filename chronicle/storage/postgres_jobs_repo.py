"""Postgres-backed repository for books and generation jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Update, delete, func, or_, select, update

from chronicle.core.database import get_session_factory
from chronicle.jobs.errors import BookConflictError, JobConflictError, LeaseLostError
from chronicle.jobs.models import ACTIVE_JOB_STATUSES, MONTHS_PER_YEAR, BookEntry, BookPreferences, BookRecord, GenerationJobRecord, UnitResult, entries_from_json, entries_to_json
from chronicle.schema.books import Book, GenerationJob
from chronicle.storage.jobs_repo import GenerationJobsRepository


def build_lease_statement(job_id: str, *, worker_id: str, now: datetime, stale_before: datetime) -> Update:
  """Conditional UPDATE taking the lease when it is free, stale or already ours.

  The row lock taken by the update serializes concurrent callers.
  """
  return (
    update(GenerationJob)
    .where(
      GenerationJob.id == job_id,
      GenerationJob.status.in_(ACTIVE_JOB_STATUSES),
      or_(GenerationJob.locked_at.is_(None), GenerationJob.locked_at < stale_before, GenerationJob.locked_by == worker_id),
    )
    .values(
      status="processing",
      locked_at=now,
      locked_by=worker_id,
      started_at=func.coalesce(GenerationJob.started_at, now),
      version=GenerationJob.version + 1,
      updated_at=now,
    )
    .returning(GenerationJob)
    .execution_options(synchronize_session=False)
  )


def build_guarded_job_update(job_id: str, *, worker_id: str, expected_version: int, **values: object) -> Update:
  """UPDATE that only matches while `worker_id` holds the lease at `expected_version`."""
  return (
    update(GenerationJob)
    .where(GenerationJob.id == job_id, GenerationJob.locked_by == worker_id, GenerationJob.version == expected_version)
    .values(version=GenerationJob.version + 1, **values)
    .returning(GenerationJob)
    .execution_options(synchronize_session=False)
  )


def build_book_entries_update(book_id: str, *, entries: list[BookEntry], additional_entry_count: int, expected_updated_at: datetime, now: datetime) -> Update:
  """UPDATE of a complete book's entries, matching only if nothing changed since it was read."""
  return (
    update(Book)
    .where(Book.id == book_id, Book.generation_status == "complete", Book.updated_at == expected_updated_at)
    .values(entries=entries_to_json(entries), entry_count=len(entries), additional_entry_count=additional_entry_count, updated_at=now)
    .returning(Book)
    .execution_options(synchronize_session=False)
  )


class PostgresGenerationJobsRepository(GenerationJobsRepository):
  """Persist books and generation jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_book_with_job(self, book: BookRecord, job: GenerationJobRecord) -> None:
    async with self._session_factory() as session:
      session.add(self._book_to_model(book))
      # Flush the book first so the job's foreign key resolves inside the same transaction.
      await session.flush()
      session.add(self._job_to_model(job))
      await session.commit()

  async def create_job_for_book(self, job: GenerationJobRecord, *, now: datetime) -> None:
    async with self._session_factory() as session:
      book = await session.get(Book, job.book_id, with_for_update=True)
      if book is None:
        raise JobConflictError(f"Book {job.book_id} no longer exists.")

      active_stmt = select(GenerationJob.id).where(GenerationJob.book_id == job.book_id, GenerationJob.status.in_(ACTIVE_JOB_STATUSES)).limit(1)
      active = (await session.execute(active_stmt)).scalar_one_or_none()
      if active is not None:
        raise JobConflictError(f"Book {job.book_id} already has an active generation job ({active}).")

      book.generation_status = "generating"
      book.entries = []
      book.entry_count = 0
      book.cover_image_url = None
      book.updated_at = now
      session.add(self._job_to_model(job))
      await session.commit()

  async def get_book(self, book_id: str) -> BookRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Book, book_id)
      if row is None:
        return None
      return self._book_to_record(row)

  async def load_job(self, job_id: str) -> GenerationJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      return self._job_to_record(row)

  async def get_job_for_book(self, book_id: str) -> GenerationJobRecord | None:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.book_id == book_id).order_by(GenerationJob.created_at.desc()).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._job_to_record(row)

  async def list_jobs_for_owner(self, owner_id: str, *, limit: int = 50) -> list[GenerationJobRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.owner_id == owner_id).order_by(GenerationJob.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._job_to_record(row) for row in rows]

  async def delete_job(self, job_id: str) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(delete(GenerationJob).where(GenerationJob.id == job_id))
      await session.commit()
      return result.rowcount > 0

  async def list_books_for_owner(self, owner_id: str, *, limit: int = 50) -> list[BookRecord]:
    async with self._session_factory() as session:
      stmt = select(Book).where(Book.owner_id == owner_id).order_by(Book.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._book_to_record(row) for row in rows]

  async def delete_book(self, book_id: str) -> bool:
    async with self._session_factory() as session:
      book = await session.get(Book, book_id, with_for_update=True)
      if book is None:
        return False

      active_stmt = select(GenerationJob.id).where(GenerationJob.book_id == book_id, GenerationJob.status.in_(ACTIVE_JOB_STATUSES)).limit(1)
      active = (await session.execute(active_stmt)).scalar_one_or_none()
      if active is not None:
        raise BookConflictError(f"Book {book_id} is still being generated by job {active}.")

      # Jobs go with the book through the foreign key's ON DELETE CASCADE.
      await session.execute(delete(Book).where(Book.id == book_id))
      await session.commit()
      return True

  async def replace_book_entries(self, book_id: str, *, entries: list[BookEntry], additional_entry_count: int, expected_updated_at: datetime, now: datetime) -> BookRecord:
    async with self._session_factory() as session:
      stmt = build_book_entries_update(book_id, entries=entries, additional_entry_count=additional_entry_count, expected_updated_at=expected_updated_at, now=now)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        raise BookConflictError(f"Book {book_id} changed or is not complete; reload it and try again.")
      await session.commit()
      return self._book_to_record(row)

  async def acquire_lease(self, job_id: str, *, worker_id: str, now: datetime, stale_before: datetime) -> GenerationJobRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(build_lease_statement(job_id, worker_id=worker_id, now=now, stale_before=stale_before))).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._job_to_record(row)

  async def commit_unit_result(self, job_id: str, *, worker_id: str, expected_version: int, result: UnitResult, now: datetime) -> GenerationJobRecord:
    async with self._session_factory() as session:
      stmt = build_guarded_job_update(
        job_id,
        worker_id=worker_id,
        expected_version=expected_version,
        status=result.status,
        current_month=result.current_month,
        progress=result.progress,
        generated_entries=entries_to_json(result.generated_entries),
        retry_count=result.retry_count,
        error_message=result.error_message,
        last_retry_at=result.last_retry_at,
        locked_at=None,
        locked_by=None,
        updated_at=now,
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        raise LeaseLostError(f"Lease on job {job_id} is no longer held by {worker_id}.")

      book_values: dict[str, object] = {"entry_count": len(result.generated_entries), "updated_at": now}
      if result.status == "failed":
        book_values["generation_status"] = "failed"
      await session.execute(update(Book).where(Book.id == row.book_id).values(**book_values))
      await session.commit()
      return self._job_to_record(row)

  async def commit_finalization(self, job_id: str, *, worker_id: str, expected_version: int, sorted_entries: list[BookEntry], cover_image_url: str | None, now: datetime) -> GenerationJobRecord:
    serialized = entries_to_json(sorted_entries)
    async with self._session_factory() as session:
      book_id = (await session.execute(select(GenerationJob.book_id).where(GenerationJob.id == job_id))).scalar_one_or_none()
      if book_id is None:
        raise LeaseLostError(f"Job {job_id} disappeared before finalization.")

      # Book first: a failure after this point rolls both writes back.
      await session.execute(
        update(Book).where(Book.id == book_id).values(entries=serialized, cover_image_url=cover_image_url, generation_status="complete", entry_count=len(sorted_entries), updated_at=now)
      )
      stmt = build_guarded_job_update(
        job_id,
        worker_id=worker_id,
        expected_version=expected_version,
        status="completed",
        current_month=MONTHS_PER_YEAR,
        progress=100,
        generated_entries=serialized,
        error_message=None,
        locked_at=None,
        locked_by=None,
        completed_at=now,
        updated_at=now,
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        raise LeaseLostError(f"Lease on job {job_id} is no longer held by {worker_id}.")

      await session.commit()
      return self._job_to_record(row)

  async def release_lease(self, job_id: str, *, worker_id: str, now: datetime) -> None:
    async with self._session_factory() as session:
      stmt = update(GenerationJob).where(GenerationJob.id == job_id, GenerationJob.locked_by == worker_id, GenerationJob.status == "processing").values(locked_at=None, locked_by=None, status="pending", version=GenerationJob.version + 1, updated_at=now)
      await session.execute(stmt)
      await session.commit()

  def _book_to_model(self, record: BookRecord) -> Book:
    prefs = record.preferences
    return Book(
      id=record.book_id,
      owner_id=record.owner_id,
      owner_email=record.owner_email,
      name=prefs.name,
      birth_year=prefs.birth_year,
      birth_month=prefs.birth_month,
      birth_day=prefs.birth_day,
      interests=list(prefs.interests),
      blend_level=prefs.blend_level,
      cover_style=prefs.cover_style,
      book_type=record.book_type,
      generation_status=record.generation_status,
      entries=entries_to_json(record.entries),
      cover_image_url=record.cover_image_url,
      entry_count=record.entry_count,
      additional_entry_count=record.additional_entry_count,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )

  def _job_to_model(self, record: GenerationJobRecord) -> GenerationJob:
    return GenerationJob(
      id=record.job_id,
      book_id=record.book_id,
      owner_id=record.owner_id,
      status=record.status,
      progress=record.progress,
      current_month=record.current_month,
      generated_entries=entries_to_json(record.generated_entries),
      error_message=record.error_message,
      retry_count=record.retry_count,
      last_retry_at=record.last_retry_at,
      locked_at=record.locked_at,
      locked_by=record.locked_by,
      version=record.version,
      started_at=record.started_at,
      completed_at=record.completed_at,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )

  def _book_to_record(self, row: Book) -> BookRecord:
    preferences = BookPreferences(
      name=row.name,
      birth_year=int(row.birth_year),
      birth_month=row.birth_month,
      birth_day=int(row.birth_day),
      interests=tuple(row.interests or []),
      blend_level=row.blend_level,
      cover_style=row.cover_style,
    )
    return BookRecord(
      book_id=row.id,
      owner_id=row.owner_id,
      owner_email=row.owner_email,
      preferences=preferences,
      generation_status=row.generation_status,
      created_at=row.created_at,
      updated_at=row.updated_at,
      entries=entries_from_json(row.entries),
      cover_image_url=row.cover_image_url,
      entry_count=int(row.entry_count),
      additional_entry_count=int(row.additional_entry_count),
      book_type=row.book_type,
    )

  def _job_to_record(self, row: GenerationJob) -> GenerationJobRecord:
    return GenerationJobRecord(
      job_id=row.id,
      book_id=row.book_id,
      owner_id=row.owner_id,
      status=row.status,
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress=int(row.progress),
      current_month=int(row.current_month),
      generated_entries=entries_from_json(row.generated_entries),
      error_message=row.error_message,
      retry_count=int(row.retry_count),
      last_retry_at=row.last_retry_at,
      locked_at=row.locked_at,
      locked_by=row.locked_by,
      started_at=row.started_at,
      completed_at=row.completed_at,
      version=int(row.version),
    )
