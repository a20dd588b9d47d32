from datetime import date

import pytest

import controlling_core.periods as periods
from controlling_core.transactions import Transaction


def _tx(day: date, amount: float = 1.0) -> Transaction:
    return Transaction(posting_date=day, amount=amount, account=6300)


def test_filter_transactions_by_period_inclusive_bounds() -> None:
    """filter_transactions_by_period should keep dates in [start, end]."""
    days = [
        date(2025, 1, 1),
        date(2025, 2, 15),
        date(2025, 3, 10),
        date(2025, 4, 1),
        date(2025, 5, 1),
    ]
    p = periods.Period(start=date(2025, 2, 1), end=date(2025, 4, 1), label="Test period")

    filtered = periods.filter_transactions_by_period([_tx(d) for d in days], p)

    assert [t.posting_date for t in filtered] == [
        date(2025, 2, 15),
        date(2025, 3, 10),
        date(2025, 4, 1),
    ]


def test_period_year_and_previous_year() -> None:
    current = periods.period_year(2025)
    prior = periods.previous_year(current)

    assert (current.start, current.end, current.label) == (
        date(2025, 1, 1),
        date(2025, 12, 31),
        "2025",
    )
    assert (prior.start, prior.end) == (date(2024, 1, 1), date(2024, 12, 31))
    assert prior.label == "2025 (prior year)"


def test_previous_year_leap_day() -> None:
    p = periods.Period(start=date(2024, 2, 1), end=date(2024, 2, 29), label="Feb")
    assert periods.previous_year(p).end == date(2023, 2, 28)


def test_custom_period_uses_fallback_bounds() -> None:
    fallback = periods.period_year(2025)

    p = periods.custom_period("2025-03-01", None, fallback)

    assert p.start == date(2025, 3, 1)
    assert p.end == date(2025, 12, 31)
    assert p.label.startswith("Custom period")


def test_custom_period_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        periods.custom_period("2025-06-01", "2025-05-01", periods.period_year(2025))


def test_period_of_and_boundary_distance() -> None:
    assert periods.period_of([]) is None

    p = periods.period_of([_tx(date(2025, 3, 10)), _tx(date(2025, 1, 5))], "Q1")

    assert (p.start, p.end, p.label) == (date(2025, 1, 5), date(2025, 3, 10), "Q1")
    assert p.contains(date(2025, 2, 1))
    assert not p.contains(date(2025, 3, 11))
    assert p.days_to_boundary(date(2025, 1, 8)) == 3
    assert p.days_to_boundary(date(2025, 3, 20)) == 10


def test_calendar_years_of() -> None:
    assert periods.calendar_years_of([]) is None

    one = periods.calendar_years_of([_tx(date(2025, 7, 1)), _tx(date(2025, 3, 10))])
    assert (one.start, one.end, one.label) == (date(2025, 1, 1), date(2025, 12, 31), "2025")
    assert one.days_to_boundary(date(2025, 7, 1)) > 7

    two = periods.calendar_years_of([_tx(date(2025, 2, 1)), _tx(date(2024, 11, 30))])
    assert (two.start, two.end, two.label) == (date(2024, 1, 1), date(2025, 12, 31), "2024-2025")
    assert periods.calendar_years_of([_tx(date(2025, 2, 1))], "FY").label == "FY"


def test_split_by_periods() -> None:
    items = [_tx(date(2024, 6, 1)), _tx(date(2025, 6, 1)), _tx(date(2023, 6, 1))]
    current = periods.period_year(2025)

    prev, curr = periods.split_by_periods(items, periods.previous_year(current), current)

    assert [t.posting_date.year for t in prev] == [2024]
    assert [t.posting_date.year for t in curr] == [2025]
