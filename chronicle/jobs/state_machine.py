"""Job state machine: lease rules, terminal checks and one unit of work per tick.

States are `pending -> processing -> {pending (retry or next month), completed, failed}`.
`processing` is never a rest state: it only means a tick currently holds the lease.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.jobs.models import LOCK_TIMEOUT, MAX_RETRIES, MONTHS_PER_YEAR, BookEntry, BookPreferences, GenerationJobRecord, UnitResult
from chronicle.jobs.planner import plan_month, progress_for_month

logger = logging.getLogger(__name__)

OutcomeKind = Literal["advanced", "finalize", "retry", "failed"]


@dataclass(frozen=True)
class UnitOutcome:
  """Result of one unit of work, ready for the driver to commit."""

  kind: OutcomeKind
  result: UnitResult | None = None
  entries: list[BookEntry] = field(default_factory=list)
  error: str | None = None


def lease_is_stale(locked_at: datetime | None, now: datetime, timeout: timedelta = LOCK_TIMEOUT) -> bool:
  """A lease is ignorable once it is older than `timeout`; an unset lease counts as stale."""
  if locked_at is None:
    return True
  return now - locked_at > timeout


def lease_held_elsewhere(job: GenerationJobRecord, worker_id: str, now: datetime, timeout: timedelta = LOCK_TIMEOUT) -> bool:
  """True when another worker holds a fresh lease on the job."""
  if job.locked_at is None or job.locked_by == worker_id:
    return False
  return not lease_is_stale(job.locked_at, now, timeout)


def is_terminal(job: GenerationJobRecord, max_retries: int = MAX_RETRIES) -> bool:
  """Completed jobs and failed jobs with an exhausted retry budget accept no more work."""
  if job.status == "completed":
    return True
  return job.status == "failed" and job.retry_count >= max_retries


def stale_before(now: datetime, timeout: timedelta = LOCK_TIMEOUT) -> datetime:
  """Leases taken before this instant may be overridden."""
  return now - timeout


async def run_unit(job: GenerationJobRecord, preferences: BookPreferences, synthesizer: ContentSynthesizer, *, now: datetime, max_retries: int = MAX_RETRIES) -> UnitOutcome:
  """Synthesize the month at `job.current_month` and describe the resulting job state.

  A month is atomic: on failure none of its entries are kept and `current_month` stays put,
  so the whole month is attempted again on the next tick.
  """
  plan = plan_month(job.current_month, birth_month=preferences.birth_month, birth_day=preferences.birth_day)
  logger.info("Job %s processing month %s/%s (%s)", job.job_id, plan.month_index + 1, MONTHS_PER_YEAR, plan.month_name)

  try:
    month_entries = await synthesizer.synthesize_month(preferences, plan, list(job.generated_entries))
  except Exception as exc:
    # Any failure counts against the retry budget; the error text is kept on the job.
    error = str(exc) or exc.__class__.__name__
    retry_count = job.retry_count + 1
    if retry_count >= max_retries:
      logger.error("Job %s failed permanently on %s after %s attempts: %s", job.job_id, plan.month_name, retry_count, error)
      result = UnitResult(
        status="failed",
        current_month=job.current_month,
        progress=job.progress,
        generated_entries=list(job.generated_entries),
        retry_count=retry_count,
        error_message=error,
        last_retry_at=now,
      )
      return UnitOutcome(kind="failed", result=result, error=error)

    logger.warning("Job %s attempt %s/%s failed on %s: %s", job.job_id, retry_count, max_retries, plan.month_name, error)
    result = UnitResult(
      status="pending",
      current_month=job.current_month,
      progress=job.progress,
      generated_entries=list(job.generated_entries),
      retry_count=retry_count,
      error_message=error,
      last_retry_at=now,
    )
    return UnitOutcome(kind="retry", result=result, error=error)

  accumulated = [*job.generated_entries, *month_entries]
  next_month = job.current_month + 1
  if next_month >= MONTHS_PER_YEAR:
    return UnitOutcome(kind="finalize", entries=accumulated)

  result = UnitResult(
    status="pending",
    current_month=next_month,
    progress=progress_for_month(next_month),
    generated_entries=accumulated,
    retry_count=job.retry_count,
    last_retry_at=job.last_retry_at,
  )
  return UnitOutcome(kind="advanced", result=result, entries=accumulated)
