"""Unit tests for month planning and progress reporting."""

from __future__ import annotations

import pytest

from chronicle.jobs.planner import DAYS_PER_MONTH, MONTH_NAMES, month_index_from_name, plan_month, plan_year, progress_for_month


def test_plan_year_covers_365_days_in_calendar_order() -> None:
  plans = plan_year(birth_month="March", birth_day=12)
  assert [plan.month_name for plan in plans] == list(MONTH_NAMES)
  assert sum(plan.days_in_month for plan in plans) == 365
  assert plans[1].days_in_month == 28


def test_only_the_birth_month_carries_the_birthday() -> None:
  plans = plan_year(birth_month="march", birth_day=12)
  flagged = [plan for plan in plans if plan.contains_birthday]
  assert [plan.month_index for plan in flagged] == [2]
  assert flagged[0].birth_day == 12
  assert all(plan.birth_day is None for plan in plans if not plan.contains_birthday)


@pytest.mark.parametrize("month", ["December", "dec", "Dec.", 12, "12"])
def test_month_index_accepts_names_abbreviations_and_numbers(month: str | int) -> None:
  assert month_index_from_name(month) == 11


@pytest.mark.parametrize("month", ["Smarch", 0, 13, ""])
def test_month_index_rejects_unknown_months(month: str | int) -> None:
  with pytest.raises(ValueError):
    month_index_from_name(month)


@pytest.mark.parametrize("index", [-1, 12])
def test_plan_month_rejects_out_of_range_index(index: int) -> None:
  with pytest.raises(ValueError):
    plan_month(index, birth_month="March", birth_day=12)


def test_day_labels_match_month_length() -> None:
  plan = plan_month(1, birth_month="March", birth_day=12)
  assert plan.day_labels[0] == "February 1"
  assert plan.day_labels[-1] == "February 28"
  assert len(plan.day_labels) == DAYS_PER_MONTH[1]


def test_progress_rounds_half_up_and_is_monotonic() -> None:
  values = [progress_for_month(month) for month in range(13)]
  assert values == [0, 8, 17, 25, 33, 42, 50, 58, 67, 75, 83, 92, 100]
  assert values == sorted(values)


def test_progress_clamps_out_of_range_counts() -> None:
  assert progress_for_month(-3) == 0
  assert progress_for_month(20) == 100
