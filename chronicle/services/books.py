"""Book and job operations behind the HTTP routes. The tick itself lives in the driver."""

from __future__ import annotations

import logging
from bisect import bisect_right
from datetime import UTC, datetime

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.jobs.calendar import calendar_ordinal
from chronicle.jobs.errors import BookConflictError, BookNotFoundError, EntryNotFoundError, JobAccessDeniedError, JobConflictError, JobNotFoundError
from chronicle.jobs.models import MAX_ADDITIONAL_ENTRIES, BookEntry, BookPreferences, BookRecord, GenerationJobRecord
from chronicle.storage.jobs_repo import GenerationJobsRepository
from chronicle.utils.ids import generate_book_id, generate_job_id

logger = logging.getLogger(__name__)


def _now() -> datetime:
  return datetime.now(UTC)


def new_job_record(*, book_id: str, owner_id: str, now: datetime) -> GenerationJobRecord:
  """A fresh job positioned at January with an empty entry list."""
  return GenerationJobRecord(job_id=generate_job_id(), book_id=book_id, owner_id=owner_id, status="pending", created_at=now, updated_at=now)


async def create_book(repo: GenerationJobsRepository, *, owner_id: str, owner_email: str | None, preferences: BookPreferences, now: datetime | None = None) -> tuple[BookRecord, GenerationJobRecord]:
  """Create a full book in `generating` state together with its first job."""
  now = now or _now()
  book = BookRecord(book_id=generate_book_id(), owner_id=owner_id, owner_email=owner_email, preferences=preferences, generation_status="generating", created_at=now, updated_at=now)
  job = new_job_record(book_id=book.book_id, owner_id=owner_id, now=now)
  await repo.create_book_with_job(book, job)
  logger.info("Created book %s with generation job %s for owner %s", book.book_id, job.job_id, owner_id)
  return book, job


async def get_owned_book(repo: GenerationJobsRepository, book_id: str, *, owner_id: str) -> BookRecord:
  book = await repo.get_book(book_id)
  if book is None:
    raise BookNotFoundError(f"Book {book_id} was not found.")
  if book.owner_id != owner_id:
    raise JobAccessDeniedError(f"Book {book_id} does not belong to the caller.")
  return book


async def get_owned_job(repo: GenerationJobsRepository, job_id: str, *, owner_id: str) -> GenerationJobRecord:
  job = await repo.load_job(job_id)
  if job is None:
    raise JobNotFoundError(f"Job {job_id} was not found.")
  if job.owner_id != owner_id:
    raise JobAccessDeniedError(f"Job {job_id} does not belong to the caller.")
  return job


async def get_job_for_book(repo: GenerationJobsRepository, book_id: str, *, owner_id: str) -> tuple[GenerationJobRecord, BookRecord]:
  """The latest job for one of the caller's books, together with the book."""
  book = await get_owned_book(repo, book_id, owner_id=owner_id)
  job = await repo.get_job_for_book(book_id)
  if job is None:
    raise JobNotFoundError(f"No generation job exists for book {book_id}.")
  return job, book


async def list_jobs_with_books(repo: GenerationJobsRepository, *, owner_id: str, limit: int = 50) -> list[tuple[GenerationJobRecord, BookRecord | None]]:
  """The caller's jobs, newest first, each paired with its book when it still exists."""
  jobs = await repo.list_jobs_for_owner(owner_id, limit=limit)
  books: dict[str, BookRecord | None] = {}
  for job in jobs:
    if job.book_id not in books:
      books[job.book_id] = await repo.get_book(job.book_id)
  return [(job, books[job.book_id]) for job in jobs]


async def regenerate_book(repo: GenerationJobsRepository, book_id: str, *, owner_id: str, now: datetime | None = None) -> GenerationJobRecord:
  """Start a new job for a book whose generation failed."""
  book = await get_owned_book(repo, book_id, owner_id=owner_id)
  if book.generation_status != "failed":
    raise JobConflictError(f"Book {book_id} is {book.generation_status}; only failed books can be regenerated.")

  now = now or _now()
  job = new_job_record(book_id=book_id, owner_id=owner_id, now=now)
  await repo.create_job_for_book(job, now=now)
  logger.info("Restarted generation for book %s with job %s", book_id, job.job_id)
  return job


async def delete_failed_job(repo: GenerationJobsRepository, job_id: str, *, owner_id: str) -> None:
  """Delete a job that failed permanently. Other states are refused."""
  job = await get_owned_job(repo, job_id, owner_id=owner_id)
  if job.status != "failed":
    raise JobConflictError(f"Job {job_id} is {job.status}; only failed jobs can be deleted.")

  deleted = await repo.delete_job(job_id)
  if not deleted:
    raise JobNotFoundError(f"Job {job_id} was not found.")
  logger.info("Deleted failed job %s", job_id)


async def list_books(repo: GenerationJobsRepository, *, owner_id: str, limit: int = 50) -> list[BookRecord]:
  """The caller's books, newest first."""
  return await repo.list_books_for_owner(owner_id, limit=limit)


async def delete_book(repo: GenerationJobsRepository, book_id: str, *, owner_id: str) -> None:
  """Delete one of the caller's books and its jobs. Refused while generation is running."""
  await get_owned_book(repo, book_id, owner_id=owner_id)
  deleted = await repo.delete_book(book_id)
  if not deleted:
    raise BookNotFoundError(f"Book {book_id} was not found.")
  logger.info("Deleted book %s", book_id)


def _require_complete(book: BookRecord) -> None:
  if book.generation_status != "complete":
    raise BookConflictError(f"Book {book.book_id} is {book.generation_status}; entries can only be edited on a complete book.")


def _insert_position(entries: list[BookEntry], entry: BookEntry) -> int:
  """Index that keeps `entries` in calendar order, after any page for the same day."""
  return bisect_right([calendar_ordinal(existing.day) for existing in entries], calendar_ordinal(entry.day))


async def add_entry(
  repo: GenerationJobsRepository,
  synthesizer: ContentSynthesizer,
  book_id: str,
  *,
  owner_id: str,
  month: str,
  day: int,
  now: datetime | None = None,
) -> tuple[BookEntry, int, BookRecord]:
  """Generate a page for a calendar day the book does not cover yet and insert it in calendar order."""
  book = await get_owned_book(repo, book_id, owner_id=owner_id)
  _require_complete(book)
  if book.additional_entry_count >= MAX_ADDITIONAL_ENTRIES:
    raise BookConflictError(f"Book {book_id} already has the maximum of {MAX_ADDITIONAL_ENTRIES} additional entries.")

  day_label = f"{month} {day}"
  target = calendar_ordinal(day_label)
  if any(calendar_ordinal(existing.day) == target for existing in book.entries):
    raise BookConflictError(f"Book {book_id} already has an entry for {day_label}; regenerate it instead.")

  entry = await synthesizer.synthesize_entry(book.preferences, day_label)
  entries = list(book.entries)
  index = _insert_position(entries, entry)
  entries.insert(index, entry)

  updated = await repo.replace_book_entries(book_id, entries=entries, additional_entry_count=book.additional_entry_count + 1, expected_updated_at=book.updated_at, now=now or _now())
  logger.info("Added entry for %s to book %s at index %s", day_label, book_id, index)
  return entry, index, updated


async def regenerate_entry(
  repo: GenerationJobsRepository,
  synthesizer: ContentSynthesizer,
  book_id: str,
  index: int,
  *,
  owner_id: str,
  now: datetime | None = None,
) -> BookEntry:
  """Replace the page at `index` with a different story for the same day."""
  book = await get_owned_book(repo, book_id, owner_id=owner_id)
  _require_complete(book)
  if not 0 <= index < len(book.entries):
    raise EntryNotFoundError(f"Book {book_id} has no entry at index {index}.")

  old_entry = book.entries[index]
  entry = await synthesizer.synthesize_entry(book.preferences, old_entry.day, replacing=old_entry)
  entries = list(book.entries)
  entries[index] = entry

  await repo.replace_book_entries(book_id, entries=entries, additional_entry_count=book.additional_entry_count, expected_updated_at=book.updated_at, now=now or _now())
  logger.info("Regenerated entry %s (%s) of book %s", index, old_entry.day, book_id)
  return entry
