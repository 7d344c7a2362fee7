"""Domain models for book generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed"]
GenerationStatus = Literal["pending", "generating", "complete", "failed"]
BlendLevel = Literal["focused", "diverse"]
CoverStyle = Literal["classic", "minimalist", "whimsical", "cinematic", "retro"]

MONTHS_PER_YEAR = 12
MAX_RETRIES = 3
MAX_ADDITIONAL_ENTRIES = 10
LOCK_TIMEOUT = timedelta(minutes=5)

ACTIVE_JOB_STATUSES: tuple[JobStatus, ...] = ("pending", "processing")


@dataclass(frozen=True)
class Source:
  """A citation backing a book entry."""

  title: str
  url: str


@dataclass(frozen=True)
class BookEntry:
  """One calendar-day entry. Immutable once produced by the synthesizer."""

  day: str
  year: str
  headline: str
  history_event: str
  why_included: str
  name_link: str | None = None
  sources: tuple[Source, ...] = ()

  def to_dict(self) -> dict[str, Any]:
    """Serialize using the camelCase keys stored in JSON columns."""
    payload: dict[str, Any] = {"day": self.day, "year": self.year, "headline": self.headline, "historyEvent": self.history_event, "whyIncluded": self.why_included, "sources": [{"title": source.title, "url": source.url} for source in self.sources]}
    if self.name_link is not None:
      payload["nameLink"] = self.name_link
    return payload

  @classmethod
  def from_dict(cls, payload: Any) -> BookEntry:
    """Build an entry from a JSON object, rejecting missing or blank required fields."""
    if not isinstance(payload, dict):
      raise ValueError(f"Entry must be an object, got {type(payload).__name__}.")

    required = {"day": "day", "year": "year", "headline": "headline", "history_event": "historyEvent", "why_included": "whyIncluded"}
    values: dict[str, str] = {}
    for attr, key in required.items():
      raw = payload.get(key)
      # Years may come back as bare integers from the model; everything else must be text.
      if isinstance(raw, int) and not isinstance(raw, bool) and key == "year":
        raw = str(raw)
      if not isinstance(raw, str) or raw.strip() == "":
        raise ValueError(f"Entry is missing required field '{key}'.")
      values[attr] = raw.strip()

    name_link = payload.get("nameLink")
    if not isinstance(name_link, str) or name_link.strip() == "":
      name_link = None

    sources: list[Source] = []
    for item in payload.get("sources") or []:
      if not isinstance(item, dict):
        continue
      title = item.get("title")
      url = item.get("url")
      if isinstance(title, str) and isinstance(url, str) and title.strip() and url.strip():
        sources.append(Source(title=title.strip(), url=url.strip()))

    return cls(name_link=name_link, sources=tuple(sources), **values)


def entries_to_json(entries: list[BookEntry]) -> list[dict[str, Any]]:
  """Serialize entries for JSON storage."""
  return [entry.to_dict() for entry in entries]


def entries_from_json(raw: list[dict[str, Any]] | None) -> list[BookEntry]:
  """Deserialize stored entries, preserving order."""
  return [BookEntry.from_dict(item) for item in raw or []]


@dataclass(frozen=True)
class BookPreferences:
  """Subject preferences that shape every prompt for a book."""

  name: str
  birth_year: int
  birth_month: str
  birth_day: int
  interests: tuple[str, ...]
  blend_level: BlendLevel = "focused"
  cover_style: CoverStyle = "classic"


@dataclass
class BookRecord:
  """The user-facing book being generated."""

  book_id: str
  owner_id: str
  owner_email: str | None
  preferences: BookPreferences
  generation_status: GenerationStatus
  created_at: datetime
  updated_at: datetime
  entries: list[BookEntry] = field(default_factory=list)
  cover_image_url: str | None = None
  entry_count: int = 0
  additional_entry_count: int = 0
  book_type: str = "full"


@dataclass
class GenerationJobRecord:
  """Represents one background generation job driving a book to completion."""

  job_id: str
  book_id: str
  owner_id: str
  status: JobStatus
  created_at: datetime
  updated_at: datetime
  progress: int = 0
  current_month: int = 0
  generated_entries: list[BookEntry] = field(default_factory=list)
  error_message: str | None = None
  retry_count: int = 0
  last_retry_at: datetime | None = None
  locked_at: datetime | None = None
  locked_by: str | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  version: int = 0


@dataclass(frozen=True)
class UnitResult:
  """Fields persisted at the end of one tick that did not finalize the job."""

  status: JobStatus
  current_month: int
  progress: int
  generated_entries: list[BookEntry]
  retry_count: int
  error_message: str | None = None
  last_retry_at: datetime | None = None
