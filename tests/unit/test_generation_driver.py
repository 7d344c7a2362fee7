"""Tick driver behavior: preconditions, leases, retries, month atomicity and completion."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from chronicle.jobs.calendar import calendar_ordinal
from chronicle.jobs.driver import COMPLETED_MESSAGE, CONTENTION_MESSAGE
from chronicle.jobs.errors import JobAccessDeniedError, JobNotFoundError
from chronicle.jobs.models import BookEntry, UnitResult
from chronicle.jobs.planner import plan_year
from chronicle.services import books as book_service

OWNER_ID = "owner-1"
OWNER_EMAIL = "owner@example.com"


async def _drive_to_completion(driver, job_id: str) -> list:
  results = []
  for _ in range(12):
    results.append(await driver.advance_job(job_id, OWNER_ID))
  return results


@pytest.mark.anyio
async def test_first_tick_generates_january(driver, repo, seeded) -> None:
  book, job = seeded

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "processing"
  assert result.progress == 8
  assert result.current_month == 1
  assert result.entry_count == 31
  assert result.message == "Month 1/12 complete"

  stored = await repo.load_job(job.job_id)
  assert stored.status == "pending"
  assert stored.current_month == 1
  assert len(stored.generated_entries) == 31
  assert stored.locked_by is None
  assert stored.locked_at is None
  assert stored.started_at is not None
  assert (await repo.get_book(book.book_id)).entry_count == 31


@pytest.mark.anyio
async def test_twelve_ticks_complete_the_book_in_calendar_order(driver, repo, seeded, synthesizer, notifier) -> None:
  book, job = seeded

  results = await _drive_to_completion(driver, job.job_id)

  assert [result.progress for result in results] == [8, 17, 25, 33, 42, 50, 58, 67, 75, 83, 92, 100]
  assert results[-1].status == "completed"
  assert results[-1].message == COMPLETED_MESSAGE
  assert synthesizer.month_calls == list(range(12))
  assert synthesizer.cover_calls == 1

  stored_job = await repo.load_job(job.job_id)
  assert stored_job.status == "completed"
  assert stored_job.progress == 100
  assert stored_job.completed_at is not None
  assert stored_job.locked_by is None

  stored_book = await repo.get_book(book.book_id)
  assert stored_book.generation_status == "complete"
  assert stored_book.entry_count == 365
  assert stored_book.cover_image_url.startswith("data:image/png;base64,")
  ordinals = [calendar_ordinal(entry.day) for entry in stored_book.entries]
  assert ordinals == sorted(ordinals)
  assert stored_book.entries[0].day == "January 1"
  assert stored_book.entries[-1].day == "December 31"

  notifier.notify_book_complete.assert_awaited_once_with(to_address=OWNER_EMAIL, book_id=book.book_id, name="Ada", entry_count=365)
  notifier.notify_book_failed.assert_not_awaited()


@pytest.mark.anyio
async def test_completed_job_tick_is_idempotent(driver, repo, seeded, synthesizer, notifier) -> None:
  _, job = seeded
  await _drive_to_completion(driver, job.job_id)
  before = await repo.load_job(job.job_id)

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "completed"
  assert result.progress == 100
  assert len(synthesizer.month_calls) == 12
  assert (await repo.load_job(job.job_id)).version == before.version
  notifier.notify_book_complete.assert_awaited_once()


@pytest.mark.anyio
async def test_retries_are_bounded_to_three_attempts(driver, repo, seeded, synthesizer, notifier) -> None:
  book, job = seeded
  synthesizer.always_fail = True

  first = await driver.advance_job(job.job_id, OWNER_ID)
  second = await driver.advance_job(job.job_id, OWNER_ID)
  third = await driver.advance_job(job.job_id, OWNER_ID)
  fourth = await driver.advance_job(job.job_id, OWNER_ID)

  assert (first.status, first.retry_count) == ("pending", 1)
  assert "provider unavailable" in first.error
  assert (second.status, second.retry_count) == ("pending", 2)
  assert (third.status, third.retry_count) == ("failed", 3)
  assert fourth.status == "failed"
  assert len(synthesizer.month_calls) == 3

  stored = await repo.load_job(job.job_id)
  assert stored.status == "failed"
  assert stored.locked_by is None
  assert (await repo.get_book(book.book_id)).generation_status == "failed"
  notifier.notify_book_failed.assert_awaited_once_with(to_address=OWNER_EMAIL, name="Ada")


@pytest.mark.anyio
async def test_failure_with_two_prior_retries_fails_the_job(driver, repo, seeded, synthesizer, notifier, clock) -> None:
  _, job = seeded
  await driver.advance_job(job.job_id, OWNER_ID)
  # Record two earlier failed attempts on February.
  leased = await repo.acquire_lease(job.job_id, worker_id="seeder", now=clock(), stale_before=clock())
  prior = UnitResult(status="pending", current_month=1, progress=leased.progress, generated_entries=list(leased.generated_entries), retry_count=2, error_message="timeout")
  await repo.commit_unit_result(job.job_id, worker_id="seeder", expected_version=leased.version, result=prior, now=clock())
  synthesizer.failures[1] = 1

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "failed"
  assert result.retry_count == 3
  stored = await repo.load_job(job.job_id)
  assert stored.current_month == 1
  assert len(stored.generated_entries) == 31
  notifier.notify_book_failed.assert_awaited_once()


@pytest.mark.anyio
async def test_failed_month_is_retried_whole_and_keeps_earlier_months(driver, repo, seeded, synthesizer) -> None:
  _, job = seeded
  await driver.advance_job(job.job_id, OWNER_ID)
  synthesizer.failures[1] = 1

  retry = await driver.advance_job(job.job_id, OWNER_ID)
  after_failure = await repo.load_job(job.job_id)
  success = await driver.advance_job(job.job_id, OWNER_ID)
  after_success = await repo.load_job(job.job_id)

  assert retry.status == "pending"
  assert retry.current_month == 1
  assert after_failure.current_month == 1
  assert len(after_failure.generated_entries) == 31
  assert after_failure.retry_count == 1

  assert success.status == "processing"
  assert after_success.current_month == 2
  assert len(after_success.generated_entries) == 59
  assert after_success.retry_count == 1
  assert after_success.error_message is None
  assert synthesizer.month_calls == [0, 1, 1]


@pytest.mark.anyio
async def test_concurrent_ticks_from_two_workers_run_one_unit(make_driver, repo, seeded, synthesizer) -> None:
  _, job = seeded
  driver_a = make_driver("worker-a")
  driver_b = make_driver("worker-b")
  synthesizer.gate = asyncio.Event()

  first = asyncio.create_task(driver_a.advance_job(job.job_id, OWNER_ID))
  await synthesizer.started.wait()
  contended = await driver_b.advance_job(job.job_id, OWNER_ID)
  synthesizer.gate.set()
  winner = await first

  assert contended.status == "processing"
  assert contended.message == CONTENTION_MESSAGE
  assert winner.current_month == 1
  assert synthesizer.month_calls == [0]
  assert len((await repo.load_job(job.job_id)).generated_entries) == 31


@pytest.mark.anyio
async def test_overlapping_ticks_in_one_process_run_one_unit(driver, seeded, synthesizer) -> None:
  _, job = seeded
  synthesizer.gate = asyncio.Event()

  first = asyncio.create_task(driver.advance_job(job.job_id, OWNER_ID))
  await synthesizer.started.wait()
  contended = await driver.advance_job(job.job_id, OWNER_ID)
  synthesizer.gate.set()
  await first

  assert contended.message == CONTENTION_MESSAGE
  assert synthesizer.month_calls == [0]


@pytest.mark.anyio
async def test_fresh_foreign_lease_reports_contention(driver, repo, seeded, synthesizer, clock) -> None:
  _, job = seeded
  await repo.acquire_lease(job.job_id, worker_id="worker-b", now=clock() - timedelta(minutes=1), stale_before=clock() - timedelta(minutes=5))

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "processing"
  assert result.message == CONTENTION_MESSAGE
  assert synthesizer.month_calls == []
  assert (await repo.load_job(job.job_id)).locked_by == "worker-b"


@pytest.mark.anyio
async def test_stale_lease_is_taken_over(driver, repo, seeded, synthesizer, clock) -> None:
  _, job = seeded
  await repo.acquire_lease(job.job_id, worker_id="worker-dead", now=clock() - timedelta(minutes=6), stale_before=clock() - timedelta(minutes=11))

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "processing"
  assert result.current_month == 1
  assert synthesizer.month_calls == [0]
  stored = await repo.load_job(job.job_id)
  assert stored.locked_by is None
  assert stored.current_month == 1


@pytest.mark.anyio
async def test_lease_lost_mid_tick_discards_the_unit(driver, repo, seeded, synthesizer, clock) -> None:
  _, job = seeded
  synthesizer.gate = asyncio.Event()

  first = asyncio.create_task(driver.advance_job(job.job_id, OWNER_ID))
  await synthesizer.started.wait()
  # Another worker overrides the lease while the month is still being synthesized.
  await repo.acquire_lease(job.job_id, worker_id="worker-b", now=clock(), stale_before=clock() + timedelta(seconds=1))
  synthesizer.gate.set()
  result = await first

  assert result.message == CONTENTION_MESSAGE
  stored = await repo.load_job(job.job_id)
  assert stored.locked_by == "worker-b"
  assert stored.current_month == 0
  assert stored.generated_entries == []


@pytest.mark.anyio
async def test_all_months_stored_but_not_completed_is_refinalized(driver, repo, preferences, clock, synthesizer, notifier, month_entries) -> None:
  book, job = await _seed_year_without_completion(repo, preferences, clock, month_entries, generation_status="generating", cover_image_url=None)

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "completed"
  assert synthesizer.month_calls == []
  assert synthesizer.cover_calls == 1
  stored_book = await repo.get_book(book.book_id)
  assert stored_book.generation_status == "complete"
  assert stored_book.entries[0].day == "January 1"
  notifier.notify_book_complete.assert_awaited_once()


@pytest.mark.anyio
async def test_refinalization_reuses_an_existing_cover(driver, repo, preferences, clock, synthesizer, month_entries) -> None:
  book, job = await _seed_year_without_completion(repo, preferences, clock, month_entries, generation_status="complete", cover_image_url="data:image/png;base64,AAAA")

  result = await driver.advance_job(job.job_id, OWNER_ID)

  assert result.status == "completed"
  assert synthesizer.cover_calls == 0
  assert (await repo.get_book(book.book_id)).cover_image_url == "data:image/png;base64,AAAA"


@pytest.mark.anyio
async def test_unknown_job_raises_not_found(driver) -> None:
  with pytest.raises(JobNotFoundError):
    await driver.advance_job("missing", OWNER_ID)


@pytest.mark.anyio
async def test_other_owner_is_denied_without_side_effects(driver, repo, seeded, synthesizer) -> None:
  _, job = seeded
  with pytest.raises(JobAccessDeniedError):
    await driver.advance_job(job.job_id, "someone-else")
  assert synthesizer.month_calls == []
  assert (await repo.load_job(job.job_id)).version == job.version


@pytest.mark.anyio
async def test_completion_notifier_failure_does_not_fail_the_tick(driver, repo, seeded, notifier) -> None:
  _, job = seeded
  notifier.notify_book_complete.side_effect = RuntimeError("smtp down")

  results = await _drive_to_completion(driver, job.job_id)

  assert results[-1].status == "completed"
  assert (await repo.load_job(job.job_id)).status == "completed"


async def _seed_year_without_completion(repo, preferences, clock, month_entries, *, generation_status: str, cover_image_url: str | None):
  """A job with all twelve months stored whose completion write never landed."""
  book, job = await book_service.create_book(repo, owner_id=OWNER_ID, owner_email=OWNER_EMAIL, preferences=preferences, now=clock())
  entries: list[BookEntry] = [entry for plan in reversed(plan_year(birth_month="March", birth_day=12)) for entry in month_entries(plan)]
  stuck = replace(job, job_id=f"{job.job_id}-stuck", status="pending", current_month=12, progress=100, generated_entries=entries)
  await repo.create_book_with_job(replace(book, generation_status=generation_status, cover_image_url=cover_image_url), stuck)
  return book, stuck
