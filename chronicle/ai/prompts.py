"""Prompt rendering for month synthesis and cover illustration."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from chronicle.jobs.models import BookPreferences
from chronicle.jobs.planner import MonthPlan

COVER_PROMPTS: dict[str, str] = {
  "classic": "Classic antique leather bound history book cover. Elegant, sophisticated, vintage, gold leaf embossing texture, timeless design. Deep rich colors like burgundy, navy, or forest green.",
  "minimalist": "Modern minimalist book cover. Clean typography, plenty of negative space, abstract geometric shapes, high-end design magazine aesthetic. Bauhaus influence.",
  "whimsical": "Whimsical hand-drawn illustration style. Colorful, watercolor or ink textures, magical atmosphere, detailed and charming. Soft pastel or vibrant palette.",
  "cinematic": "Cinematic and dramatic book cover. Realistic lighting, moody atmosphere, movie poster quality, high contrast. Epic scale.",
  "retro": "Retro vintage poster style (1950s-1970s). Bold colors, distressed texture, pop art or mid-century modern influence. Screen print aesthetic.",
}

BIRTHDAY_HEADLINE = "A Star is Born: {name} Arrives!"

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def book_title(name: str) -> str:
  """Title used in every prompt and on the cover."""
  return f"A Year's History Of {name}"


def entry_schema(day_example: str) -> dict[str, Any]:
  """JSON schema for a single entry object."""
  return {
    "type": "OBJECT",
    "properties": {
      "day": {"type": "STRING", "description": f"e.g. {day_example}"},
      "year": {"type": "STRING", "description": "The year this event happened, e.g. 1923 or 44 BC"},
      "headline": {"type": "STRING"},
      "historyEvent": {"type": "STRING", "description": "Long narrative text, approx 200 words."},
      "nameLink": {"type": "STRING", "nullable": True},
      "whyIncluded": {"type": "STRING"},
      "sources": {"type": "ARRAY", "items": {"type": "OBJECT", "properties": {"title": {"type": "STRING"}, "url": {"type": "STRING"}}}},
    },
    "required": ["day", "year", "headline", "historyEvent", "whyIncluded"],
  }


def month_entries_schema(plan: MonthPlan) -> dict[str, Any]:
  """JSON schema for one month of entries, passed to the model as `response_schema`."""
  return {"type": "ARRAY", "items": entry_schema(f"{plan.month_name} 1")}


def reading_level_instruction(age: int) -> str:
  """Pick the narrative register from the reader's age."""
  if age <= 7:
    return "READING LEVEL: EARLY READER (Ages 5-7). Use simple words but make the story long and descriptive (approx 100-150 words). Focus on magical details."
  if age <= 12:
    return "READING LEVEL: MIDDLE GRADE (Ages 8-12). Fun facts, adventurous tone. Length: approx 150-200 words."
  if age <= 18:
    return "READING LEVEL: YOUNG ADULT (Ages 13-18). Engaging, dynamic. Length: approx 200-250 words."
  return "READING LEVEL: ADULT. Sophisticated, witty, and elegant. Style similar to 'The New Yorker'. Length: approx 200-250 words."


def blend_instruction(blend_level: str) -> str:
  """Explain how interests are combined across the month."""
  if blend_level == "focused":
    return "\n".join(
      [
        "MODE: SINGULAR FOCUS PER DAY.",
        "- Each day's entry must focus on exactly one interest.",
        "- Rotate through all of the reader's interests across the entries. Do not stick to one.",
      ]
    )
  return "\n".join(
    [
      "MODE: INTERWOVEN CONNECTIONS.",
      "- Look for events where several interests overlap (e.g. Science + Art).",
      "- If no overlap exists for a date, pick one interest and tell it beautifully.",
    ]
  )


def birthday_instruction(preferences: BookPreferences, plan: MonthPlan) -> str:
  """Mandatory birthday entry block, empty for months without the birthday."""
  if not plan.contains_birthday or plan.birth_day is None:
    return ""

  when = f"{plan.month_name} {plan.birth_day}"
  headline = BIRTHDAY_HEADLINE.format(name=preferences.name)
  lines = [
    "BIRTHDAY ENTRY REQUIRED:",
    f"The entry for {when} MUST be about the specific year {preferences.birth_year} (the year they were born).",
    f'- Headline: "{headline}"',
    f"- Content: Focus on their birth, but mention one other real event from {when}, {preferences.birth_year} as context.",
  ]
  return "\n".join(lines)


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers in a single pass; substituted text is never rescanned."""

  def _lookup(match: re.Match[str]) -> str:
    return values.get(match.group(1), match.group(0))

  return _PLACEHOLDER_RE.sub(_lookup, template)


def render_month_prompt(preferences: BookPreferences, plan: MonthPlan, context_summary: str, *, current_year: int) -> str:
  """Render the user prompt requesting every day of `plan`."""
  age = max(current_year - preferences.birth_year, 0)
  interests = ", ".join(preferences.interests)
  replacements = {
    "BOOK_TITLE": book_title(preferences.name),
    "MONTH_NAME": plan.month_name,
    "DAYS_IN_MONTH": str(plan.days_in_month),
    "NAME": preferences.name,
    "AGE": str(age),
    "BIRTH_YEAR": str(preferences.birth_year),
    "BIRTH_DATE": f"{preferences.birth_month} {preferences.birth_day}, {preferences.birth_year}",
    "INTERESTS": interests,
    "CONTEXT_SUMMARY": context_summary.strip(),
    "BIRTHDAY_BLOCK": birthday_instruction(preferences, plan),
    "READING_LEVEL": reading_level_instruction(age),
    "BLEND_MODE": blend_instruction(preferences.blend_level),
  }
  return _replace_placeholders(_load_prompt("month_entries.md"), replacements)


def render_entry_prompt(preferences: BookPreferences, day_label: str, *, current_year: int, replacing_headline: str | None = None) -> str:
  """Render the prompt for one added or regenerated page."""
  age = max(current_year - preferences.birth_year, 0)
  replacement_block = ""
  if replacing_headline:
    replacement_block = f'The current entry is about "{replacing_headline}". Generate something COMPLETELY DIFFERENT.'
  replacements = {
    "BOOK_TITLE": book_title(preferences.name),
    "DAY_LABEL": day_label,
    "NAME": preferences.name,
    "AGE": str(age),
    "BIRTH_YEAR": str(preferences.birth_year),
    "INTERESTS": ", ".join(preferences.interests),
    "REPLACEMENT_BLOCK": replacement_block,
    "READING_LEVEL": reading_level_instruction(age),
  }
  return _replace_placeholders(_load_prompt("single_entry.md"), replacements)


def render_month_system_prompt(preferences: BookPreferences) -> str:
  """Render the system instruction for month synthesis."""
  return _replace_placeholders(_load_prompt("month_system.md"), {"BOOK_TITLE": book_title(preferences.name)})


def render_cover_prompt(preferences: BookPreferences) -> str:
  """Render the cover illustration prompt; unknown styles fall back to classic."""
  style = COVER_PROMPTS.get(preferences.cover_style, COVER_PROMPTS["classic"])
  replacements = {"BOOK_TITLE": book_title(preferences.name), "INTERESTS": ", ".join(preferences.interests), "COVER_STYLE": style}
  return _replace_placeholders(_load_prompt("cover.md"), replacements)


@lru_cache(maxsize=8)
def _load_prompt(name: str) -> str:
  try:
    path = Path(__file__).parent / "templates" / name
    return path.read_text(encoding="utf-8").strip()
  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as exc:
    raise RuntimeError(f"Failed to load prompt '{name}': {exc}") from exc
