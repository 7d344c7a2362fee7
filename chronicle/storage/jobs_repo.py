"""Storage interfaces for books and their generation jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from chronicle.jobs.models import BookEntry, BookRecord, GenerationJobRecord, UnitResult


class GenerationJobsRepository(Protocol):
  """Repository contract for generation job and book persistence.

  `acquire_lease` is the only concurrency-control primitive. Every commit is guarded by
  the lease owner and the version observed at acquisition, so a tick that lost its lease
  writes nothing and gets `LeaseLostError`.
  """

  async def create_book_with_job(self, book: BookRecord, job: GenerationJobRecord) -> None:
    """Persist a new book and its first job atomically."""

  async def create_job_for_book(self, job: GenerationJobRecord, *, now: datetime) -> None:
    """Start a fresh job for an existing book and reset the book to `generating`.

    Raises JobConflictError while another non-terminal job exists for the book.
    """

  async def get_book(self, book_id: str) -> BookRecord | None:
    """Fetch a book by identifier."""

  async def load_job(self, job_id: str) -> GenerationJobRecord | None:
    """Fetch a job by identifier."""

  async def get_job_for_book(self, book_id: str) -> GenerationJobRecord | None:
    """Return the most recent job for a book."""

  async def list_jobs_for_owner(self, owner_id: str, *, limit: int = 50) -> list[GenerationJobRecord]:
    """Return an owner's jobs, newest first."""

  async def delete_job(self, job_id: str) -> bool:
    """Delete a job record. Returns False when it did not exist."""

  async def list_books_for_owner(self, owner_id: str, *, limit: int = 50) -> list[BookRecord]:
    """Return an owner's books, newest first."""

  async def delete_book(self, book_id: str) -> bool:
    """Delete a book and its jobs. Returns False when it did not exist.

    Raises BookConflictError while the book has a non-terminal job.
    """

  async def replace_book_entries(self, book_id: str, *, entries: list[BookEntry], additional_entry_count: int, expected_updated_at: datetime, now: datetime) -> BookRecord:
    """Store edited entries on a complete book.

    Raises BookConflictError unless the book is still `complete` and unchanged since
    `expected_updated_at`.
    """

  async def acquire_lease(self, job_id: str, *, worker_id: str, now: datetime, stale_before: datetime) -> GenerationJobRecord | None:
    """Atomically take the lease and flip the job to `processing`.

    Succeeds when the job is resumable and its lease is unset, older than `stale_before`,
    or already held by `worker_id`. Returns the leased record, or None when the lease is
    held elsewhere or the job is no longer resumable.
    """

  async def commit_unit_result(self, job_id: str, *, worker_id: str, expected_version: int, result: UnitResult, now: datetime) -> GenerationJobRecord:
    """Persist one tick's outcome, clear the lease and mirror progress onto the book."""

  async def commit_finalization(self, job_id: str, *, worker_id: str, expected_version: int, sorted_entries: list[BookEntry], cover_image_url: str | None, now: datetime) -> GenerationJobRecord:
    """Mark the book complete, then the job completed, as one logical unit."""

  async def release_lease(self, job_id: str, *, worker_id: str, now: datetime) -> None:
    """Clear the lease when held by `worker_id`, changing nothing else."""
