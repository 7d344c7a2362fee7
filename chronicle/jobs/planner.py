"""Decompose a full-year book into month-sized units of work."""

from __future__ import annotations

import math
from dataclasses import dataclass

from chronicle.jobs.models import MONTHS_PER_YEAR

MONTH_NAMES: tuple[str, ...] = ("January", "February", "March", "April", "May", "June", "July", "August", "September", "October", "November", "December")

# February is always 28 days; leap-day entries are not generated.
DAYS_PER_MONTH: tuple[int, ...] = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


@dataclass(frozen=True)
class MonthPlan:
  """Describes the unit of work for one calendar month."""

  month_index: int
  month_name: str
  days_in_month: int
  contains_birthday: bool
  birth_day: int | None = None

  @property
  def day_labels(self) -> list[str]:
    """Return the expected `day` labels, e.g. ["March 1", ..., "March 31"]."""
    return [f"{self.month_name} {day}" for day in range(1, self.days_in_month + 1)]


def month_index_from_name(month: str | int) -> int:
  """Resolve an English month name, 3-letter abbreviation or 1-12 number to a 0-11 index."""
  if isinstance(month, int) and not isinstance(month, bool):
    if 1 <= month <= MONTHS_PER_YEAR:
      return month - 1
    raise ValueError(f"Month number must be between 1 and 12, got {month}.")

  normalized = str(month).strip().lower().rstrip(".")
  if normalized.isdigit():
    return month_index_from_name(int(normalized))
  for index, name in enumerate(MONTH_NAMES):
    lowered = name.lower()
    if normalized == lowered or (len(normalized) >= 3 and lowered.startswith(normalized)):
      return index
  raise ValueError(f"Unknown month: {month!r}.")


def plan_month(month_index: int, *, birth_month: str | int, birth_day: int) -> MonthPlan:
  """Build the unit-of-work description for `month_index` (0-11)."""
  if not 0 <= month_index < MONTHS_PER_YEAR:
    raise ValueError(f"Month index must be between 0 and 11, got {month_index}.")

  contains_birthday = month_index_from_name(birth_month) == month_index
  return MonthPlan(
    month_index=month_index,
    month_name=MONTH_NAMES[month_index],
    days_in_month=DAYS_PER_MONTH[month_index],
    contains_birthday=contains_birthday,
    birth_day=birth_day if contains_birthday else None,
  )


def plan_year(*, birth_month: str | int, birth_day: int) -> list[MonthPlan]:
  """Return all twelve month plans in processing order."""
  return [plan_month(index, birth_month=birth_month, birth_day=birth_day) for index in range(MONTHS_PER_YEAR)]


def progress_for_month(completed_months: int) -> int:
  """Advisory integer percentage for a job that has completed `completed_months` units."""
  clamped = min(max(completed_months, 0), MONTHS_PER_YEAR)
  return int(math.floor(clamped / MONTHS_PER_YEAR * 100 + 0.5))
