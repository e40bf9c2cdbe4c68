from datetime import date

import pytest

from utils.errors import InvalidDateRange, InvalidFilter
from utils.periods import is_inverted, months_before, parse_date, resolve_period

TODAY = date(2025, 5, 31)


@pytest.mark.parametrize(
    "token, expected_from",
    [
        ("today", date(2025, 5, 31)),
        ("week", date(2025, 5, 24)),
        ("month", date(2025, 5, 1)),
        ("quarter", date(2025, 2, 28)),
        ("rolling_quarter", date(2025, 2, 28)),
        ("calendar_quarter", date(2025, 4, 1)),
        ("year", date(2025, 1, 1)),
    ],
)
def test_named_periods_end_today(token, expected_from):
    assert resolve_period(token, today=TODAY) == (expected_from, TODAY)


def test_tokens_are_case_insensitive():
    assert resolve_period(" Month ", today=TODAY) == (date(2025, 5, 1), TODAY)


def test_missing_token_means_month():
    assert resolve_period(None, today=TODAY) == (date(2025, 5, 1), TODAY)


def test_all_starts_at_earliest_activity():
    assert resolve_period("all", today=TODAY, earliest=date(2024, 9, 3)) == (date(2024, 9, 3), TODAY)


def test_all_falls_back_to_epoch_floor():
    assert resolve_period("all", today=TODAY) == (date(2024, 1, 1), TODAY)
    assert resolve_period("all", today=TODAY, epoch_floor=date(2023, 6, 1)) == (date(2023, 6, 1), TODAY)


def test_custom_passes_bounds_through():
    assert resolve_period("custom", "2025-01-10", "2025-02-20", today=TODAY) == (
        date(2025, 1, 10),
        date(2025, 2, 20),
    )


def test_custom_defaults_missing_bounds():
    assert resolve_period("custom", "", None, today=TODAY) == (date(2025, 5, 1), TODAY)


def test_custom_inverted_range_is_returned_verbatim():
    start, end = resolve_period("custom", "2025-03-01", "2025-02-01", today=TODAY)
    assert (start, end) == (date(2025, 3, 1), date(2025, 2, 1))
    assert is_inverted(start, end)


def test_unknown_token_is_invalid_filter():
    with pytest.raises(InvalidFilter):
        resolve_period("fortnight", today=TODAY)


def test_malformed_custom_date_is_invalid_range():
    with pytest.raises(InvalidDateRange):
        resolve_period("custom", "2025-13-01", None, today=TODAY)


def test_parse_date_accepts_datetimes_and_blank():
    assert parse_date("2025-02-03T10:11:12") == date(2025, 2, 3)
    assert parse_date("  ") is None
    assert parse_date(None) is None


def test_months_before_clamps_to_month_end():
    assert months_before(date(2025, 3, 31), 1) == date(2025, 2, 28)
    assert months_before(date(2024, 3, 31), 1) == date(2024, 2, 29)
    assert months_before(date(2025, 1, 15), 3) == date(2024, 10, 15)
