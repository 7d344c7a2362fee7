"""Shared fixtures: an in-memory store, a scripted synthesizer and a controllable clock."""

from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

# Ensure required settings are available before any test imports the app.
os.environ.setdefault("CHRONICLE_ALLOWED_ORIGINS", "http://localhost")

import pytest  # noqa: E402

from chronicle.ai.errors import SynthesisError  # noqa: E402
from chronicle.ai.synthesizer import CoverImage  # noqa: E402
from chronicle.jobs.driver import DriverConfig, GenerationDriver  # noqa: E402
from chronicle.jobs.models import BookEntry, BookPreferences  # noqa: E402
from chronicle.jobs.planner import MonthPlan  # noqa: E402
from chronicle.services import books as book_service  # noqa: E402
from chronicle.storage.memory_jobs_repo import InMemoryGenerationJobsRepository  # noqa: E402

OWNER_ID = "owner-1"
OWNER_EMAIL = "owner@example.com"
START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def make_month_entries(plan: MonthPlan) -> list[BookEntry]:
  """One valid entry per day of the planned month."""
  return [
    BookEntry(
      day=f"{plan.month_name} {day}",
      year=str(1900 + day),
      headline=f"{plan.month_name} headline {day}",
      history_event=f"Something memorable happened on {plan.month_name} {day}.",
      why_included="It matches the reader's interests.",
    )
    for day in range(1, plan.days_in_month + 1)
  ]


class Clock:
  """Deterministic clock; tests move it forward explicitly."""

  def __init__(self, start: datetime = START) -> None:
    self.now = start

  def __call__(self) -> datetime:
    return self.now

  def advance(self, delta: timedelta) -> None:
    self.now = self.now + delta


class FakeSynthesizer:
  """Scripted content synthesizer.

  `failures` maps a month index to the number of times that month fails before it
  succeeds. `gate`, when set, blocks every month call until the event is set.
  """

  def __init__(self) -> None:
    self.month_calls: list[int] = []
    self.cover_calls = 0
    self.entry_calls: list[tuple[str, str | None]] = []
    self.failures: dict[int, int] = {}
    self.always_fail = False
    self.cover: CoverImage | None = CoverImage(data=b"cover-bytes", mime_type="image/png")
    self.cover_error: Exception | None = None
    self.gate: asyncio.Event | None = None
    self.started = asyncio.Event()

  async def synthesize_month(self, preferences, plan, previous_entries):
    self.month_calls.append(plan.month_index)
    self.started.set()
    if self.gate is not None:
      await self.gate.wait()

    remaining = self.failures.get(plan.month_index, 0)
    if self.always_fail or remaining > 0:
      self.failures[plan.month_index] = max(remaining - 1, 0)
      raise SynthesisError(f"provider unavailable for {plan.month_name}")
    return make_month_entries(plan)

  async def synthesize_cover(self, preferences):
    self.cover_calls += 1
    if self.cover_error is not None:
      raise self.cover_error
    return self.cover

  async def synthesize_entry(self, preferences, day_label, *, replacing=None):
    self.entry_calls.append((day_label, replacing.headline if replacing else None))
    if self.always_fail:
      raise SynthesisError(f"provider unavailable for {day_label}")
    return BookEntry(
      day=day_label,
      year="1969",
      headline=f"Fresh headline for {day_label}",
      history_event=f"A brand new story for {day_label}.",
      why_included="It matches the reader's interests.",
    )


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def preferences() -> BookPreferences:
  return BookPreferences(name="Ada", birth_year=2015, birth_month="March", birth_day=12, interests=("space", "dinosaurs"))


@pytest.fixture
def clock() -> Clock:
  return Clock()


@pytest.fixture
def repo() -> InMemoryGenerationJobsRepository:
  return InMemoryGenerationJobsRepository()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
  return FakeSynthesizer()


@pytest.fixture
def notifier() -> AsyncMock:
  return AsyncMock()


@pytest.fixture
def make_driver(repo, synthesizer, notifier, clock):
  def _make(worker_id: str = "worker-a", **config: object) -> GenerationDriver:
    return GenerationDriver(repo=repo, synthesizer=synthesizer, notifier=notifier, config=DriverConfig(worker_id=worker_id, **config), clock=clock)

  return _make


@pytest.fixture
def driver(make_driver) -> GenerationDriver:
  return make_driver()


@pytest.fixture
async def seeded(repo, preferences, clock):
  """A freshly created book in `generating` state and its pending job."""
  return await book_service.create_book(repo, owner_id=OWNER_ID, owner_email=OWNER_EMAIL, preferences=preferences, now=clock())


@pytest.fixture
def month_entries():
  """Factory for one valid month of entries."""
  return make_month_entries


def make_page(day: str, headline: str | None = None) -> BookEntry:
  return BookEntry(day=day, year="1969", headline=headline or f"Headline {day}", history_event=f"Story for {day}.", why_included="Reason.")


@pytest.fixture
async def completed_book(repo, seeded, clock):
  """The seeded book finalized with three pages: January 1, March 12 and December 31."""
  book, job = seeded
  pages = [make_page("January 1"), make_page("March 12"), make_page("December 31")]
  leased = await repo.acquire_lease(job.job_id, worker_id="worker-a", now=clock(), stale_before=clock())
  await repo.commit_finalization(job.job_id, worker_id="worker-a", expected_version=leased.version, sorted_entries=pages, cover_image_url=None, now=clock())
  return await repo.get_book(book.book_id)
