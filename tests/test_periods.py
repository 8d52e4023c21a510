from datetime import date

import pytest

from periods import resolve_period, trailing_months


def test_this_month_is_default() -> None:
    period = resolve_period(None, None, None, today=date(2024, 2, 10))

    assert (period.slug, period.start, period.end) == (
        "this_month",
        date(2024, 2, 1),
        date(2024, 2, 29),
    )


def test_last_7_days_includes_today() -> None:
    period = resolve_period("last_7_days", None, None, today=date(2025, 1, 12))

    assert period.start == date(2025, 1, 6)
    assert period.end == date(2025, 1, 12)


def test_this_week_starts_on_monday() -> None:
    period = resolve_period("this_week", None, None, today=date(2025, 1, 9))

    assert period.start == date(2025, 1, 6)
    assert period.end == date(2025, 1, 12)


def test_last_month_crosses_year() -> None:
    period = resolve_period("last_month", None, None, today=date(2025, 1, 15))

    assert period.start == date(2024, 12, 1)
    assert period.end == date(2024, 12, 31)


def test_custom_period_validation() -> None:
    period = resolve_period("custom", "2025-01-01", "2025-01-31")
    assert period.end == date(2025, 1, 31)

    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-01", "2025-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-01", None)
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None)


def test_trailing_months_are_complete_and_ordered() -> None:
    months = trailing_months(date(2025, 2, 14), 3)

    assert [m.slug for m in months] == ["2024-11", "2024-12", "2025-01"]
    assert months[0].start == date(2024, 11, 1)
    assert months[-1].end == date(2025, 1, 31)
