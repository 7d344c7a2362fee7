"""Tick driver: the externally invoked entry point that advances a job by one unit of work.

There is no internal scheduler. Each call loads the job, checks preconditions, takes the
lease, runs one month (or the finalizer) and commits. Calls may arrive concurrently for the
same job; the lease makes all but one of them report contention without writing anything.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.jobs.errors import BookNotFoundError, JobAccessDeniedError, JobNotFoundError, LeaseLostError
from chronicle.jobs.finalizer import Finalizer
from chronicle.jobs.models import LOCK_TIMEOUT, MAX_RETRIES, MONTHS_PER_YEAR, BookEntry, BookRecord, GenerationJobRecord, JobStatus
from chronicle.jobs.state_machine import is_terminal, lease_held_elsewhere, run_unit, stale_before
from chronicle.notifications.contracts import BookNotifier
from chronicle.storage.jobs_repo import GenerationJobsRepository

logger = logging.getLogger(__name__)

CONTENTION_MESSAGE = "Job is being processed by another worker"
COMPLETED_MESSAGE = "Book generation complete!"


@dataclass(frozen=True)
class DriverConfig:
  """Per-process driver settings. `worker_id` is the lease identity of this process."""

  worker_id: str
  max_retries: int = MAX_RETRIES
  lock_timeout: timedelta = LOCK_TIMEOUT


@dataclass(frozen=True)
class TickResult:
  """Structured outcome of one `advance_job` call."""

  status: JobStatus
  progress: int
  current_month: int | None = None
  entry_count: int | None = None
  error: str | None = None
  retry_count: int | None = None
  message: str | None = None

  def to_dict(self) -> dict[str, Any]:
    return {key: value for key, value in asdict(self).items() if value is not None}


def _utc_now() -> datetime:
  return datetime.now(UTC)


class GenerationDriver:
  """Advances generation jobs one tick at a time."""

  def __init__(self, *, repo: GenerationJobsRepository, synthesizer: ContentSynthesizer, notifier: BookNotifier, config: DriverConfig, clock: Callable[[], datetime] = _utc_now) -> None:
    self._repo = repo
    self._synthesizer = synthesizer
    self._notifier = notifier
    self._config = config
    self._clock = clock
    self._finalizer = Finalizer(repo=repo, synthesizer=synthesizer, notifier=notifier)
    self._in_flight: set[str] = set()

  @property
  def worker_id(self) -> str:
    return self._config.worker_id

  @property
  def synthesizer(self) -> ContentSynthesizer:
    return self._synthesizer

  async def advance_job(self, job_id: str, owner_id: str) -> TickResult:
    """Perform at most one unit of work for `job_id` on behalf of `owner_id`.

    Raises JobNotFoundError, JobAccessDeniedError or BookNotFoundError. Every other
    outcome, including lease contention and synthesis failure, is a TickResult.
    """
    job = await self._load_owned_job(job_id, owner_id)

    settled = self._settled_result(job)
    if settled is not None:
      return settled

    # The lease is re-entrant per worker id, so overlapping calls inside this process are gated here.
    if job_id in self._in_flight:
      return self._contention_result(job)

    self._in_flight.add(job_id)
    try:
      return await self._tick(job)
    finally:
      self._in_flight.discard(job_id)

  async def _tick(self, job: GenerationJobRecord) -> TickResult:
    job_id = job.job_id
    now = self._clock()
    if lease_held_elsewhere(job, self.worker_id, now, self._config.lock_timeout):
      logger.debug("Job %s is leased by %s; skipping tick", job_id, job.locked_by)
      return self._contention_result(job)

    leased = await self._repo.acquire_lease(job_id, worker_id=self.worker_id, now=now, stale_before=stale_before(now, self._config.lock_timeout))
    if leased is None:
      # Lost the race, or the job settled between the read and the lease attempt.
      return await self._current_state_result(job_id)

    if job.locked_by and job.locked_by != self.worker_id:
      logger.warning("Job %s: took over stale lease from %s (locked_at=%s)", job_id, job.locked_by, job.locked_at)

    book = await self._repo.get_book(leased.book_id)
    if book is None:
      await self._repo.release_lease(job_id, worker_id=self.worker_id, now=self._clock())
      raise BookNotFoundError(f"Book {leased.book_id} for job {job_id} was not found.")

    try:
      if leased.current_month >= MONTHS_PER_YEAR:
        # Every month is stored but the completion write never landed: finalize again.
        logger.info("Job %s has all months generated; re-running finalization", job_id)
        return await self._finalize(leased, book, list(leased.generated_entries))
      return await self._run_month(leased, book)
    except LeaseLostError as exc:
      logger.warning("Job %s: commit rejected, lease lost: %s", job_id, exc)
      return await self._current_state_result(job_id)

  async def _run_month(self, job: GenerationJobRecord, book: BookRecord) -> TickResult:
    outcome = await run_unit(job, book.preferences, self._synthesizer, now=self._clock(), max_retries=self._config.max_retries)

    if outcome.kind == "finalize":
      return await self._finalize(job, book, outcome.entries)

    committed = await self._repo.commit_unit_result(job.job_id, worker_id=self.worker_id, expected_version=job.version, result=outcome.result, now=self._clock())

    if outcome.kind == "advanced":
      logger.info("Job %s: month %s/%s complete (%s entries)", job.job_id, committed.current_month, MONTHS_PER_YEAR, len(committed.generated_entries))
      return TickResult(
        status="processing",
        progress=committed.progress,
        current_month=committed.current_month,
        entry_count=len(committed.generated_entries),
        message=f"Month {committed.current_month}/{MONTHS_PER_YEAR} complete",
      )

    if outcome.kind == "retry":
      return TickResult(
        status="pending",
        progress=committed.progress,
        current_month=committed.current_month,
        error=committed.error_message,
        retry_count=committed.retry_count,
        message=f"Attempt {committed.retry_count}/{self._config.max_retries} failed; retrying on the next tick",
      )

    await self._notify_failed(book)
    return TickResult(
      status="failed",
      progress=committed.progress,
      current_month=committed.current_month,
      error=committed.error_message,
      retry_count=committed.retry_count,
      message=f"Generation failed after {committed.retry_count} attempts",
    )

  async def _finalize(self, job: GenerationJobRecord, book: BookRecord, entries: list[BookEntry]) -> TickResult:
    completed = await self._finalizer.finalize(job, book, entries, worker_id=self.worker_id, now=self._clock())
    return TickResult(status="completed", progress=100, entry_count=len(completed.generated_entries), message=COMPLETED_MESSAGE)

  async def _notify_failed(self, book: BookRecord) -> None:
    try:
      await self._notifier.notify_book_failed(to_address=book.owner_email, name=book.preferences.name)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failure notification failed for book %s: %s", book.book_id, exc, exc_info=True)

  async def _load_owned_job(self, job_id: str, owner_id: str) -> GenerationJobRecord:
    job = await self._repo.load_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} was not found.")
    if job.owner_id != owner_id:
      raise JobAccessDeniedError(f"Job {job_id} does not belong to the caller.")
    return job

  async def _current_state_result(self, job_id: str) -> TickResult:
    job = await self._repo.load_job(job_id)
    if job is None:
      raise JobNotFoundError(f"Job {job_id} was not found.")
    settled = self._settled_result(job)
    if settled is not None:
      return settled
    if job.status == "failed":
      # Stored as failed but under a raised retry budget: it cannot be leased, so report the failure.
      return self._failed_result(job)
    return self._contention_result(job)

  def _settled_result(self, job: GenerationJobRecord) -> TickResult | None:
    if job.status == "completed":
      return TickResult(status="completed", progress=100, message=COMPLETED_MESSAGE)
    if job.status == "failed" and is_terminal(job, self._config.max_retries):
      return self._failed_result(job)
    return None

  @staticmethod
  def _failed_result(job: GenerationJobRecord) -> TickResult:
    return TickResult(status="failed", progress=job.progress, error=job.error_message, retry_count=job.retry_count, message="Generation failed")

  @staticmethod
  def _contention_result(job: GenerationJobRecord) -> TickResult:
    return TickResult(status="processing", progress=job.progress, current_month=job.current_month, message=CONTENTION_MESSAGE)
