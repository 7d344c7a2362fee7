"""Calendar ordering for finished books.

Entries are ordered by month and day only; the historical `year` never participates.
"""

from __future__ import annotations

import re
from datetime import date

from chronicle.jobs.models import BookEntry
from chronicle.jobs.planner import month_index_from_name

# Leap reference year so "February 29" still maps to a real day.
_REFERENCE_YEAR = 2000

_DAY_RE = re.compile(r"^\s*([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?\s*$")


def calendar_ordinal(day: str) -> int:
  """Return the 1-366 day-of-year for labels like "March 12", or 0 when the label cannot be parsed."""
  if not isinstance(day, str):
    return 0

  match = _DAY_RE.match(day)
  if match is None:
    return 0

  month_token, day_token = match.groups()
  try:
    month_index = month_index_from_name(month_token)
    return date(_REFERENCE_YEAR, month_index + 1, int(day_token)).timetuple().tm_yday
  except ValueError:
    return 0


def sort_entries_by_calendar(entries: list[BookEntry]) -> list[BookEntry]:
  """Return a new list ordered January 1 to December 31; unparsable days sort first."""
  return sorted(entries, key=lambda entry: calendar_ordinal(entry.day))
