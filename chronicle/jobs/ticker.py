"""Timer loop around `advance_job` for callers that want server-side driving instead of polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chronicle.jobs.driver import GenerationDriver, TickResult

logger = logging.getLogger(__name__)

SETTLED_STATUSES = frozenset({"completed", "failed"})


async def drive_until_settled(
  driver: GenerationDriver,
  job_id: str,
  owner_id: str,
  *,
  interval_seconds: float = 2.0,
  max_ticks: int | None = None,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> TickResult:
  """Tick `job_id` until it completes or fails, or until `max_ticks` calls were made.

  Returns the last tick's result. Errors raised by the driver (not found, access denied)
  propagate unchanged.
  """
  if interval_seconds < 0:
    raise ValueError("interval_seconds must not be negative.")
  if max_ticks is not None and max_ticks <= 0:
    raise ValueError("max_ticks must be a positive integer.")

  ticks = 0
  while True:
    result = await driver.advance_job(job_id, owner_id)
    ticks += 1
    if result.status in SETTLED_STATUSES:
      logger.info("Job %s settled as %s after %s ticks", job_id, result.status, ticks)
      return result
    if max_ticks is not None and ticks >= max_ticks:
      logger.info("Job %s still %s after %s ticks; stopping", job_id, result.status, ticks)
      return result
    await sleep(interval_seconds)
