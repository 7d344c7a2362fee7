"""Content synthesizer adapter: one month of entries, one page or one cover image per call.

The adapter is stateless and never retries. Every provider failure, empty reply or
malformed payload surfaces as `SynthesisError`; the job state machine owns retry policy.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from chronicle.ai.errors import SynthesisError
from chronicle.ai.prompts import entry_schema, month_entries_schema, render_cover_prompt, render_entry_prompt, render_month_prompt, render_month_system_prompt
from chronicle.ai.providers.base import AIModel
from chronicle.ai.providers.gemini import GeminiProvider
from chronicle.jobs.calendar import calendar_ordinal
from chronicle.jobs.models import BookEntry, BookPreferences
from chronicle.jobs.planner import MonthPlan

logger = logging.getLogger(__name__)

CONTEXT_YEAR_LIMIT = 30
CONTEXT_HEADLINE_LIMIT = 15
FIRST_MONTH_CONTEXT = "This is the first month. No previous entries yet."


@dataclass(frozen=True)
class CoverImage:
  """Synthesized cover illustration."""

  data: bytes
  mime_type: str = "image/png"

  def as_data_url(self) -> str:
    """Encode the image as a `data:` URL for storage on the book record."""
    encoded = base64.b64encode(self.data).decode("ascii")
    return f"data:{self.mime_type};base64,{encoded}"


class ContentSynthesizer(Protocol):
  """Collaborator the job state machine and finalizer call into."""

  async def synthesize_month(self, preferences: BookPreferences, plan: MonthPlan, previous_entries: Sequence[BookEntry]) -> list[BookEntry]:
    """Return exactly `plan.days_in_month` entries or raise SynthesisError."""

  async def synthesize_cover(self, preferences: BookPreferences) -> CoverImage | None:
    """Return a cover image, None when the provider produced none, or raise SynthesisError."""

  async def synthesize_entry(self, preferences: BookPreferences, day_label: str, *, replacing: BookEntry | None = None) -> BookEntry:
    """Return one entry for `day_label`, different from `replacing` when given, or raise SynthesisError."""


def build_context_summary(entries: Sequence[BookEntry], month_index: int) -> str:
  """Summarize prior months so the prompt stays bounded however many entries exist."""
  if not entries:
    return FIRST_MONTH_CONTEXT

  # Distinct years in first-seen order; keep the most recent ones.
  years = list(dict.fromkeys(entry.year for entry in entries))[-CONTEXT_YEAR_LIMIT:]
  recent = [f"{entry.day}: {entry.headline}" for entry in entries[-CONTEXT_HEADLINE_LIMIT:]]

  lines = [
    f"PREVIOUS MONTHS CONTEXT (Months 1-{month_index} completed, {len(entries)} entries):",
    "",
    f"Years already featured: {', '.join(years)}",
    "Recent entries:",
    *recent,
    "",
    "IMPORTANT: Do NOT repeat these years or similar topics. Find fresh, unique events.",
  ]
  return "\n".join(lines)


def parse_month_entries(payload: Any, plan: MonthPlan) -> list[BookEntry]:
  """Validate a provider payload strictly.

  The payload must be a list of exactly `days_in_month` complete entries whose `day`
  labels cover every day of the planned month once.
  """
  if not isinstance(payload, list):
    raise SynthesisError(f"Expected a JSON array of entries for {plan.month_name}, got {type(payload).__name__}.")
  if len(payload) != plan.days_in_month:
    raise SynthesisError(f"Expected {plan.days_in_month} entries for {plan.month_name}, got {len(payload)}.")

  expected_days = {calendar_ordinal(label) for label in plan.day_labels}
  seen_days: set[int] = set()
  entries: list[BookEntry] = []
  for position, item in enumerate(payload):
    try:
      entry = BookEntry.from_dict(item)
    except ValueError as exc:
      raise SynthesisError(f"Entry {position + 1} for {plan.month_name} is invalid: {exc}") from exc

    ordinal = calendar_ordinal(entry.day)
    if ordinal not in expected_days:
      raise SynthesisError(f"Entry {position + 1} is labelled {entry.day!r}, which is not a day of {plan.month_name}.")
    if ordinal in seen_days:
      raise SynthesisError(f"Entry {position + 1} repeats {entry.day!r} for {plan.month_name}.")
    seen_days.add(ordinal)
    entries.append(entry)
  return entries


def parse_single_entry(payload: Any, day_label: str) -> BookEntry:
  """Validate one generated page and check it is for `day_label`."""
  try:
    entry = BookEntry.from_dict(payload)
  except ValueError as exc:
    raise SynthesisError(f"Entry for {day_label} is invalid: {exc}") from exc

  if calendar_ordinal(entry.day) != calendar_ordinal(day_label):
    raise SynthesisError(f"Expected an entry for {day_label}, got {entry.day!r}.")
  return entry


def _utc_now() -> datetime:
  return datetime.now(UTC)


class GeminiContentSynthesizer:
  """Content synthesizer backed by Gemini text and image models."""

  def __init__(self, text_model: AIModel, image_model: AIModel | None = None, *, clock: Callable[[], datetime] = _utc_now) -> None:
    self._text_model = text_model
    self._image_model = image_model
    self._clock = clock

  async def synthesize_month(self, preferences: BookPreferences, plan: MonthPlan, previous_entries: Sequence[BookEntry]) -> list[BookEntry]:
    """Request one month of entries from the text model."""
    context_summary = build_context_summary(previous_entries, plan.month_index)
    prompt = render_month_prompt(preferences, plan, context_summary, current_year=self._clock().year)
    system_instruction = render_month_system_prompt(preferences)

    try:
      response = await self._text_model.generate_structured(prompt, month_entries_schema(plan), system_instruction=system_instruction)
    except Exception as exc:
      raise SynthesisError(f"Generation provider failed for {plan.month_name}: {exc}") from exc

    if response.content is None:
      raise SynthesisError(f"Generation provider returned no content for {plan.month_name}.")

    entries = parse_month_entries(response.content, plan)
    logger.info("Synthesized %s entries for %s (model=%s)", len(entries), plan.month_name, self._text_model.name)
    return entries

  async def synthesize_entry(self, preferences: BookPreferences, day_label: str, *, replacing: BookEntry | None = None) -> BookEntry:
    """Request a single page for `day_label` from the text model."""
    prompt = render_entry_prompt(preferences, day_label, current_year=self._clock().year, replacing_headline=replacing.headline if replacing else None)
    system_instruction = render_month_system_prompt(preferences)

    try:
      response = await self._text_model.generate_structured(prompt, entry_schema(day_label), system_instruction=system_instruction)
    except Exception as exc:
      raise SynthesisError(f"Generation provider failed for {day_label}: {exc}") from exc

    if response.content is None:
      raise SynthesisError(f"Generation provider returned no content for {day_label}.")

    entry = parse_single_entry(response.content, day_label)
    logger.info("Synthesized single entry for %s (model=%s replacing=%s)", day_label, self._text_model.name, replacing is not None)
    return entry

  async def synthesize_cover(self, preferences: BookPreferences) -> CoverImage | None:
    """Request a single cover illustration from the image model."""
    if self._image_model is None:
      return None

    try:
      image = await self._image_model.generate_image(render_cover_prompt(preferences))
    except Exception as exc:
      raise SynthesisError(f"Cover generation failed: {exc}") from exc

    if image is None:
      return None
    return CoverImage(data=image.data, mime_type=image.mime_type)


def build_content_synthesizer(*, api_key: str | None, text_model: str, image_model: str) -> GeminiContentSynthesizer:
  """Construct the Gemini-backed synthesizer. Raises ValueError when no API key is available."""
  provider = GeminiProvider(api_key=api_key)
  return GeminiContentSynthesizer(provider.get_model(text_model), provider.get_model(image_model))
