"""In-process repository used for local development without Postgres and in tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from datetime import datetime

from chronicle.jobs.errors import BookConflictError, JobConflictError, LeaseLostError
from chronicle.jobs.models import ACTIVE_JOB_STATUSES, MONTHS_PER_YEAR, BookEntry, BookRecord, GenerationJobRecord, UnitResult
from chronicle.storage.jobs_repo import GenerationJobsRepository


class InMemoryGenerationJobsRepository(GenerationJobsRepository):
  """Dictionary-backed store; a single asyncio lock makes every operation atomic."""

  def __init__(self) -> None:
    self._lock = asyncio.Lock()
    self._books: dict[str, BookRecord] = {}
    self._jobs: dict[str, GenerationJobRecord] = {}

  async def create_book_with_job(self, book: BookRecord, job: GenerationJobRecord) -> None:
    async with self._lock:
      self._books[book.book_id] = copy.deepcopy(book)
      self._jobs[job.job_id] = copy.deepcopy(job)

  async def create_job_for_book(self, job: GenerationJobRecord, *, now: datetime) -> None:
    async with self._lock:
      book = self._books.get(job.book_id)
      if book is None:
        raise JobConflictError(f"Book {job.book_id} no longer exists.")
      for existing in self._jobs.values():
        if existing.book_id == job.book_id and existing.status in ACTIVE_JOB_STATUSES:
          raise JobConflictError(f"Book {job.book_id} already has an active generation job ({existing.job_id}).")

      self._books[job.book_id] = replace(book, generation_status="generating", entries=[], entry_count=0, cover_image_url=None, updated_at=now)
      self._jobs[job.job_id] = copy.deepcopy(job)

  async def get_book(self, book_id: str) -> BookRecord | None:
    async with self._lock:
      book = self._books.get(book_id)
      return copy.deepcopy(book) if book is not None else None

  async def load_job(self, job_id: str) -> GenerationJobRecord | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      return copy.deepcopy(job) if job is not None else None

  async def get_job_for_book(self, book_id: str) -> GenerationJobRecord | None:
    async with self._lock:
      candidates = [job for job in self._jobs.values() if job.book_id == book_id]
      if not candidates:
        return None
      return copy.deepcopy(max(candidates, key=lambda job: job.created_at))

  async def list_jobs_for_owner(self, owner_id: str, *, limit: int = 50) -> list[GenerationJobRecord]:
    async with self._lock:
      owned = [job for job in self._jobs.values() if job.owner_id == owner_id]
      owned.sort(key=lambda job: job.created_at, reverse=True)
      return [copy.deepcopy(job) for job in owned[:limit]]

  async def delete_job(self, job_id: str) -> bool:
    async with self._lock:
      return self._jobs.pop(job_id, None) is not None

  async def list_books_for_owner(self, owner_id: str, *, limit: int = 50) -> list[BookRecord]:
    async with self._lock:
      owned = [book for book in self._books.values() if book.owner_id == owner_id]
      owned.sort(key=lambda book: book.created_at, reverse=True)
      return [copy.deepcopy(book) for book in owned[:limit]]

  async def delete_book(self, book_id: str) -> bool:
    async with self._lock:
      if book_id not in self._books:
        return False
      jobs = [job for job in self._jobs.values() if job.book_id == book_id]
      active = next((job for job in jobs if job.status in ACTIVE_JOB_STATUSES), None)
      if active is not None:
        raise BookConflictError(f"Book {book_id} is still being generated by job {active.job_id}.")

      del self._books[book_id]
      for job in jobs:
        del self._jobs[job.job_id]
      return True

  async def replace_book_entries(self, book_id: str, *, entries: list[BookEntry], additional_entry_count: int, expected_updated_at: datetime, now: datetime) -> BookRecord:
    async with self._lock:
      book = self._books.get(book_id)
      if book is None or book.generation_status != "complete" or book.updated_at != expected_updated_at:
        raise BookConflictError(f"Book {book_id} changed or is not complete; reload it and try again.")

      updated = replace(book, entries=list(entries), entry_count=len(entries), additional_entry_count=additional_entry_count, updated_at=now)
      self._books[book_id] = updated
      return copy.deepcopy(updated)

  async def acquire_lease(self, job_id: str, *, worker_id: str, now: datetime, stale_before: datetime) -> GenerationJobRecord | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.status not in ACTIVE_JOB_STATUSES:
        return None
      if job.locked_at is not None and job.locked_at >= stale_before and job.locked_by != worker_id:
        return None

      leased = replace(job, status="processing", locked_at=now, locked_by=worker_id, started_at=job.started_at or now, version=job.version + 1, updated_at=now)
      self._jobs[job_id] = leased
      return copy.deepcopy(leased)

  async def commit_unit_result(self, job_id: str, *, worker_id: str, expected_version: int, result: UnitResult, now: datetime) -> GenerationJobRecord:
    async with self._lock:
      job = self._guarded_job(job_id, worker_id=worker_id, expected_version=expected_version)
      updated = replace(
        job,
        status=result.status,
        current_month=result.current_month,
        progress=result.progress,
        generated_entries=list(result.generated_entries),
        retry_count=result.retry_count,
        error_message=result.error_message,
        last_retry_at=result.last_retry_at,
        locked_at=None,
        locked_by=None,
        version=job.version + 1,
        updated_at=now,
      )
      self._jobs[job_id] = updated

      book = self._books.get(job.book_id)
      if book is not None:
        status = "failed" if result.status == "failed" else book.generation_status
        self._books[job.book_id] = replace(book, entry_count=len(result.generated_entries), generation_status=status, updated_at=now)
      return copy.deepcopy(updated)

  async def commit_finalization(self, job_id: str, *, worker_id: str, expected_version: int, sorted_entries: list[BookEntry], cover_image_url: str | None, now: datetime) -> GenerationJobRecord:
    async with self._lock:
      job = self._guarded_job(job_id, worker_id=worker_id, expected_version=expected_version)

      book = self._books.get(job.book_id)
      if book is not None:
        self._books[job.book_id] = replace(book, entries=list(sorted_entries), cover_image_url=cover_image_url, generation_status="complete", entry_count=len(sorted_entries), updated_at=now)

      completed = replace(
        job,
        status="completed",
        current_month=MONTHS_PER_YEAR,
        progress=100,
        generated_entries=list(sorted_entries),
        error_message=None,
        locked_at=None,
        locked_by=None,
        completed_at=now,
        version=job.version + 1,
        updated_at=now,
      )
      self._jobs[job_id] = completed
      return copy.deepcopy(completed)

  async def release_lease(self, job_id: str, *, worker_id: str, now: datetime) -> None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.locked_by != worker_id or job.status != "processing":
        return
      self._jobs[job_id] = replace(job, status="pending", locked_at=None, locked_by=None, version=job.version + 1, updated_at=now)

  def _guarded_job(self, job_id: str, *, worker_id: str, expected_version: int) -> GenerationJobRecord:
    job = self._jobs.get(job_id)
    if job is None or job.locked_by != worker_id or job.version != expected_version:
      raise LeaseLostError(f"Lease on job {job_id} is no longer held by {worker_id}.")
    return job
