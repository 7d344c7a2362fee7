"""Unit tests for calendar ordering of finished books."""

from __future__ import annotations

import pytest

from chronicle.jobs.calendar import calendar_ordinal, sort_entries_by_calendar
from chronicle.jobs.models import BookEntry
from chronicle.jobs.planner import MONTH_NAMES


def _entry(day: str, year: str = "1969") -> BookEntry:
  return BookEntry(day=day, year=year, headline=f"Headline {day}", history_event="Story.", why_included="Reason.")


@pytest.mark.parametrize(
  ("label", "expected"),
  [
    ("January 1", 1),
    ("January 31", 31),
    ("February 1", 32),
    ("February 29", 60),
    ("March 12", 72),
    ("march 12", 72),
    ("Mar 12", 72),
    ("March 12th", 72),
    ("December 31", 366),
  ],
)
def test_calendar_ordinal_parses_day_labels(label: str, expected: int) -> None:
  assert calendar_ordinal(label) == expected


@pytest.mark.parametrize("label", ["", "Someday 3", "March", "February 30", "12 March", "April 31"])
def test_calendar_ordinal_falls_back_to_zero(label: str) -> None:
  assert calendar_ordinal(label) == 0


_LEAP_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
_MONTH_STARTS = [sum(_LEAP_DAYS[:index]) for index in range(12)]


@pytest.mark.parametrize("month_index", range(12), ids=MONTH_NAMES)
def test_calendar_ordinal_month_boundaries(month_index: int) -> None:
  month = MONTH_NAMES[month_index]
  last_day = _LEAP_DAYS[month_index]
  first_ordinal = _MONTH_STARTS[month_index] + 1

  assert calendar_ordinal(f"{month} 1") == first_ordinal
  assert calendar_ordinal(f"{month} {last_day}") == first_ordinal + last_day - 1
  assert calendar_ordinal(f"{month} {last_day + 1}") == 0
  assert calendar_ordinal(f"{month} 0") == 0


@pytest.mark.parametrize("month_index", range(12), ids=MONTH_NAMES)
def test_calendar_ordinal_accepts_abbreviations_and_case(month_index: int) -> None:
  month = MONTH_NAMES[month_index]
  expected = _MONTH_STARTS[month_index] + 15

  assert calendar_ordinal(f"{month[:3]} 15") == expected
  assert calendar_ordinal(f"{month[:3]}. 15") == expected
  assert calendar_ordinal(f"{month.upper()} 15th") == expected
  assert calendar_ordinal(f"{month.lower()} 15") == expected


def test_first_day_of_each_month_orders_by_month() -> None:
  ordinals = [calendar_ordinal(f"{month} 1") for month in MONTH_NAMES]
  assert ordinals == sorted(ordinals)
  assert len(set(ordinals)) == 12


def test_sort_ignores_year_and_keeps_unparsable_entries_first() -> None:
  entries = [_entry("December 31", "1066"), _entry("March 12", "2001"), _entry("not a date"), _entry("January 1", "1999")]
  ordered = sort_entries_by_calendar(entries)
  assert [entry.day for entry in ordered] == ["not a date", "January 1", "March 12", "December 31"]


def test_sort_is_stable_for_equal_days() -> None:
  first = _entry("July 4", "1776")
  second = _entry("July 4", "1826")
  assert sort_entries_by_calendar([first, second]) == [first, second]
