from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator, model_validator

from chronicle.jobs.calendar import calendar_ordinal
from chronicle.jobs.driver import TickResult
from chronicle.jobs.models import BlendLevel, BookEntry, BookPreferences, BookRecord, CoverStyle, GenerationJobRecord, GenerationStatus, JobStatus
from chronicle.jobs.planner import DAYS_PER_MONTH, MONTH_NAMES, month_index_from_name

MAX_INTERESTS = 10


class CreateBookRequest(BaseModel):
  """Request payload for a full-year book."""

  name: StrictStr = Field(min_length=1, max_length=80, description="Name of the person the book is about.", examples=["Ada"])
  birth_year: StrictInt = Field(ge=1900, le=2100, description="Year the person was born.", examples=[2015])
  birth_month: StrictStr | StrictInt = Field(description="Birth month as an English name, abbreviation or 1-12 number.", examples=["March"])
  birth_day: StrictInt = Field(ge=1, le=31, description="Day of the birth month.", examples=[12])
  interests: list[StrictStr] = Field(min_length=1, max_length=MAX_INTERESTS, description="Topics the entries should draw from.", examples=[["space", "dinosaurs"]])
  blend_level: BlendLevel = Field(default="focused", description="focused rotates interests day by day; diverse interweaves them.")
  cover_style: CoverStyle = Field(default="classic", description="Illustration style for the cover.")
  model_config = ConfigDict(extra="forbid")

  @field_validator("name")
  @classmethod
  def strip_name(cls, value: str) -> str:
    stripped = value.strip()
    if not stripped:
      raise ValueError("Name must not be blank.")
    return stripped

  @field_validator("interests")
  @classmethod
  def normalize_interests(cls, value: list[str]) -> list[str]:
    # Drop blanks and duplicates while keeping the caller's order.
    interests = list(dict.fromkeys(item.strip() for item in value if item.strip()))
    if not interests:
      raise ValueError("At least one non-blank interest is required.")
    return interests

  @field_validator("birth_month")
  @classmethod
  def normalize_birth_month(cls, value: str | int) -> str:
    return MONTH_NAMES[month_index_from_name(value)]

  @model_validator(mode="after")
  def check_birth_day(self) -> CreateBookRequest:
    days = DAYS_PER_MONTH[month_index_from_name(self.birth_month)]
    # February 29 birthdays are accepted; the book itself has no leap-day page.
    if self.birth_month == "February":
      days = 29
    if self.birth_day > days:
      raise ValueError(f"{self.birth_month} has no day {self.birth_day}.")
    return self

  def to_preferences(self) -> BookPreferences:
    return BookPreferences(
      name=self.name,
      birth_year=self.birth_year,
      birth_month=str(self.birth_month),
      birth_day=self.birth_day,
      interests=tuple(self.interests),
      blend_level=self.blend_level,
      cover_style=self.cover_style,
    )


class CreateBookResponse(BaseModel):
  """Response returned once the book and its job are stored."""

  book_id: StrictStr
  job_id: StrictStr
  status: Literal["queued"] = "queued"
  message: StrictStr = "Book generation queued. Advance the job to generate each month."


class BookEntryModel(BaseModel):
  day: StrictStr
  year: StrictStr
  headline: StrictStr
  history_event: StrictStr = Field(serialization_alias="historyEvent")
  why_included: StrictStr = Field(serialization_alias="whyIncluded")
  name_link: StrictStr | None = Field(default=None, serialization_alias="nameLink")
  sources: list[dict[str, str]] = Field(default_factory=list)

  @classmethod
  def from_entry(cls, entry: BookEntry) -> BookEntryModel:
    return cls(
      day=entry.day,
      year=entry.year,
      headline=entry.headline,
      history_event=entry.history_event,
      why_included=entry.why_included,
      name_link=entry.name_link,
      sources=[{"title": source.title, "url": source.url} for source in entry.sources],
    )


class BookResponse(BaseModel):
  """Owner view of a book."""

  book_id: StrictStr
  name: StrictStr
  birth_year: int
  birth_month: StrictStr
  birth_day: int
  interests: list[StrictStr]
  blend_level: BlendLevel
  cover_style: CoverStyle
  book_type: StrictStr
  generation_status: GenerationStatus
  entry_count: int
  additional_entry_count: int = 0
  cover_image_url: StrictStr | None = None
  entries: list[BookEntryModel] = Field(default_factory=list)
  created_at: datetime
  updated_at: datetime

  @classmethod
  def from_record(cls, book: BookRecord) -> BookResponse:
    prefs = book.preferences
    return cls(
      book_id=book.book_id,
      name=prefs.name,
      birth_year=prefs.birth_year,
      birth_month=prefs.birth_month,
      birth_day=prefs.birth_day,
      interests=list(prefs.interests),
      blend_level=prefs.blend_level,
      cover_style=prefs.cover_style,
      book_type=book.book_type,
      generation_status=book.generation_status,
      entry_count=book.entry_count,
      additional_entry_count=book.additional_entry_count,
      cover_image_url=book.cover_image_url,
      entries=[BookEntryModel.from_entry(entry) for entry in book.entries],
      created_at=book.created_at,
      updated_at=book.updated_at,
    )


class BookListItem(BaseModel):
  """One row of the caller's library; entries are left out."""

  book_id: StrictStr
  name: StrictStr
  birth_year: int
  birth_month: StrictStr
  birth_day: int
  interests: list[StrictStr]
  generation_status: GenerationStatus
  entry_count: int
  cover_image_url: StrictStr | None = None
  created_at: datetime

  @classmethod
  def from_record(cls, book: BookRecord) -> BookListItem:
    prefs = book.preferences
    return cls(
      book_id=book.book_id,
      name=prefs.name,
      birth_year=prefs.birth_year,
      birth_month=prefs.birth_month,
      birth_day=prefs.birth_day,
      interests=list(prefs.interests),
      generation_status=book.generation_status,
      entry_count=book.entry_count,
      cover_image_url=book.cover_image_url,
      created_at=book.created_at,
    )


class BookListResponse(BaseModel):
  books: list[BookListItem]


class AddEntryRequest(BaseModel):
  """Calendar day to add a page for."""

  month: StrictStr | StrictInt = Field(description="Month as an English name, abbreviation or 1-12 number.", examples=["July"])
  day: StrictInt = Field(ge=1, le=31, examples=[4])
  model_config = ConfigDict(extra="forbid")

  @field_validator("month")
  @classmethod
  def normalize_month(cls, value: str | int) -> str:
    return MONTH_NAMES[month_index_from_name(value)]

  @model_validator(mode="after")
  def check_day(self) -> AddEntryRequest:
    if calendar_ordinal(f"{self.month} {self.day}") == 0:
      raise ValueError(f"{self.month} has no day {self.day}.")
    return self


class EntryResponse(BaseModel):
  """A generated page and its position in the book."""

  entry: BookEntryModel
  index: int


class AddEntryResponse(EntryResponse):
  additional_entry_count: int
  remaining: int


class BookSummary(BaseModel):
  book_id: StrictStr
  name: StrictStr
  birth_year: int
  cover_image_url: StrictStr | None = None


class JobResponse(BaseModel):
  """Status payload for a generation job. Entries are not included; read the book for them."""

  job_id: StrictStr
  book_id: StrictStr
  status: JobStatus
  progress: int
  current_month: int
  entry_count: int
  retry_count: int
  error_message: StrictStr | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  created_at: datetime
  updated_at: datetime
  book: BookSummary | None = None

  @classmethod
  def from_record(cls, job: GenerationJobRecord, book: BookRecord | None = None) -> JobResponse:
    summary = None
    if book is not None:
      summary = BookSummary(book_id=book.book_id, name=book.preferences.name, birth_year=book.preferences.birth_year, cover_image_url=book.cover_image_url)
    return cls(
      job_id=job.job_id,
      book_id=job.book_id,
      status=job.status,
      progress=job.progress,
      current_month=job.current_month,
      entry_count=len(job.generated_entries),
      retry_count=job.retry_count,
      error_message=job.error_message,
      started_at=job.started_at,
      completed_at=job.completed_at,
      created_at=job.created_at,
      updated_at=job.updated_at,
      book=summary,
    )


class JobListResponse(BaseModel):
  jobs: list[JobResponse]


class TickResponse(BaseModel):
  """Outcome of one advance call. Optional fields are omitted when not relevant."""

  status: JobStatus
  progress: int
  current_month: int | None = None
  entry_count: int | None = None
  error: StrictStr | None = None
  retry_count: int | None = None
  message: StrictStr | None = None

  @classmethod
  def from_result(cls, result: TickResult) -> TickResponse:
    data: dict[str, Any] = result.to_dict()
    return cls(**data)
