"""Unit tests for the in-memory job store contract."""

from __future__ import annotations

from datetime import timedelta

import pytest

from chronicle.jobs.errors import BookConflictError, JobConflictError, LeaseLostError
from chronicle.jobs.models import BookEntry, UnitResult
from chronicle.services import books as book_service
from chronicle.services.books import new_job_record


def make_page(day: str) -> BookEntry:
  return BookEntry(day=day, year="1969", headline=f"Headline {day}", history_event="Story.", why_included="Reason.")


def _unit(job, **overrides) -> UnitResult:
  values = {"status": "pending", "current_month": job.current_month + 1, "progress": 8, "generated_entries": [], "retry_count": job.retry_count}
  values.update(overrides)
  return UnitResult(**values)


@pytest.mark.anyio
async def test_acquire_sets_lease_and_bumps_version(repo, seeded, clock) -> None:
  _, job = seeded

  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock() - timedelta(minutes=5))

  assert leased.status == "processing"
  assert leased.locked_by == "worker-a"
  assert leased.locked_at == clock()
  assert leased.started_at == clock()
  assert leased.version == job.version + 1


@pytest.mark.anyio
async def test_acquire_refuses_fresh_foreign_lease_and_reenters_own(repo, seeded, clock) -> None:
  _, job = seeded
  stale = clock() - timedelta(minutes=5)
  await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=stale)

  assert await repo.acquire_lease(job.job_id, worker_id="worker-b", now=clock(), stale_before=stale) is None
  again = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=stale)
  assert again is not None
  assert again.locked_by == "worker-a"


@pytest.mark.anyio
async def test_acquire_refuses_settled_jobs(repo, seeded, clock) -> None:
  _, job = seeded
  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())
  await repo.commit_unit_result(job.job_id, worker_id="worker-a", expected_version=leased.version, result=_unit(leased, status="failed", current_month=0, retry_count=3), now=clock())

  assert await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock()) is None


@pytest.mark.anyio
async def test_commit_requires_current_lease_and_version(repo, seeded, clock) -> None:
  _, job = seeded
  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())

  with pytest.raises(LeaseLostError):
    await repo.commit_unit_result(job.job_id, worker_id="worker-b", expected_version=leased.version, result=_unit(leased), now=clock())
  with pytest.raises(LeaseLostError):
    await repo.commit_unit_result(job.job_id, worker_id="worker-a", expected_version=leased.version - 1, result=_unit(leased), now=clock())

  committed = await repo.commit_unit_result(job.job_id, worker_id="worker-a", expected_version=leased.version, result=_unit(leased), now=clock())
  assert committed.current_month == 1
  assert committed.locked_by is None
  assert committed.version == leased.version + 1


@pytest.mark.anyio
async def test_failed_commit_marks_book_failed(repo, seeded, clock) -> None:
  book, job = seeded
  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())

  await repo.commit_unit_result(job.job_id, worker_id="worker-a", expected_version=leased.version, result=_unit(leased, status="failed", current_month=0, retry_count=3, error_message="boom"), now=clock())

  assert (await repo.get_book(book.book_id)).generation_status == "failed"


@pytest.mark.anyio
async def test_release_lease_returns_job_to_pending(repo, seeded, clock) -> None:
  _, job = seeded
  await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())

  await repo.release_lease(job.job_id, worker_id="worker-b", now=clock())
  assert (await repo.load_job(job.job_id)).locked_by == "worker-a"

  await repo.release_lease(job.job_id, worker_id="worker-a", now=clock())
  released = await repo.load_job(job.job_id)
  assert released.status == "pending"
  assert released.locked_by is None


@pytest.mark.anyio
async def test_new_job_for_book_is_refused_while_one_is_active(repo, seeded, clock) -> None:
  book, _ = seeded
  with pytest.raises(JobConflictError):
    await repo.create_job_for_book(new_job_record(book_id=book.book_id, owner_id=book.owner_id, now=clock()), now=clock())


@pytest.mark.anyio
async def test_latest_job_and_owner_listing_are_newest_first(repo, seeded, clock) -> None:
  book, job = seeded
  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())
  await repo.commit_unit_result(job.job_id, worker_id="worker-a", expected_version=leased.version, result=_unit(leased, status="failed", current_month=0, retry_count=3), now=clock())
  clock.advance(timedelta(minutes=1))
  newer = new_job_record(book_id=book.book_id, owner_id=book.owner_id, now=clock())
  await repo.create_job_for_book(newer, now=clock())

  assert (await repo.get_job_for_book(book.book_id)).job_id == newer.job_id
  assert [item.job_id for item in await repo.list_jobs_for_owner(book.owner_id)] == [newer.job_id, job.job_id]
  assert await repo.list_jobs_for_owner("nobody") == []
  reset = await repo.get_book(book.book_id)
  assert reset.generation_status == "generating"
  assert reset.entry_count == 0


@pytest.mark.anyio
async def test_returned_records_are_copies(repo, seeded) -> None:
  _, job = seeded
  loaded = await repo.load_job(job.job_id)
  loaded.generated_entries.append("mutated")
  loaded.status = "completed"

  fresh = await repo.load_job(job.job_id)
  assert fresh.generated_entries == []
  assert fresh.status == "pending"


@pytest.mark.anyio
async def test_delete_job(repo, seeded) -> None:
  _, job = seeded
  assert await repo.delete_job(job.job_id) is True
  assert await repo.delete_job(job.job_id) is False
  assert await repo.load_job(job.job_id) is None


@pytest.mark.anyio
async def test_owner_books_are_listed_newest_first(repo, seeded, preferences, clock) -> None:
  first, _ = seeded
  clock.advance(timedelta(minutes=1))
  second, _ = await book_service.create_book(repo, owner_id=first.owner_id, owner_email=None, preferences=preferences, now=clock())

  assert [book.book_id for book in await repo.list_books_for_owner(first.owner_id)] == [second.book_id, first.book_id]
  assert [book.book_id for book in await repo.list_books_for_owner(first.owner_id, limit=1)] == [second.book_id]
  assert await repo.list_books_for_owner("nobody") == []


@pytest.mark.anyio
async def test_delete_book_refuses_active_generation(repo, seeded) -> None:
  book, job = seeded
  with pytest.raises(BookConflictError):
    await repo.delete_book(book.book_id)
  assert await repo.load_job(job.job_id) is not None


@pytest.mark.anyio
async def test_delete_book_removes_its_jobs(repo, completed_book, seeded) -> None:
  _, job = seeded
  assert await repo.delete_book(completed_book.book_id) is True
  assert await repo.get_book(completed_book.book_id) is None
  assert await repo.load_job(job.job_id) is None
  assert await repo.delete_book(completed_book.book_id) is False


@pytest.mark.anyio
async def test_replace_book_entries_is_guarded_by_last_update(repo, completed_book, clock) -> None:
  pages = [*completed_book.entries, make_page("July 4")]
  clock.advance(timedelta(minutes=1))

  updated = await repo.replace_book_entries(completed_book.book_id, entries=pages, additional_entry_count=1, expected_updated_at=completed_book.updated_at, now=clock())

  assert updated.entry_count == 4
  assert updated.additional_entry_count == 1
  with pytest.raises(BookConflictError):
    await repo.replace_book_entries(completed_book.book_id, entries=pages, additional_entry_count=2, expected_updated_at=completed_book.updated_at, now=clock())


@pytest.mark.anyio
async def test_replace_book_entries_requires_complete_book(repo, seeded, clock) -> None:
  book, _ = seeded
  with pytest.raises(BookConflictError):
    await repo.replace_book_entries(book.book_id, entries=[make_page("July 4")], additional_entry_count=1, expected_updated_at=book.updated_at, now=clock())
