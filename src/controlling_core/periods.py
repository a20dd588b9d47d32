# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for Controlling Core.

This module defines a Period value object and helpers to cut a single
transaction stream into the periods compared by the engines (current year,
prior year, custom ranges).
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .transactions import Transaction


@dataclass(frozen=True)
class Period:
    """Represents a reporting period with a human-readable label."""

    start: date
    end: date
    label: str

    def contains(self, day: date) -> bool:
        """Return True if ``day`` lies within [start, end] (inclusive)."""
        return self.start <= day <= self.end

    def days_to_boundary(self, day: date) -> int:
        """Distance in days from ``day`` to the nearest period boundary."""
        return min(abs((day - self.start).days), abs((day - self.end).days))


def _shift_year(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def period_year(year: int) -> Period:
    """Full calendar year."""
    return Period(start=date(year, 1, 1), end=date(year, 12, 31), label=str(year))


def previous_year(period: Period) -> Period:
    """Same period shifted one year back (the VJ comparison period)."""
    return Period(
        start=_shift_year(period.start, -1),
        end=_shift_year(period.end, -1),
        label=f"{period.label} (prior year)",
    )


def custom_period(
    from_date: Optional[str], to_date: Optional[str], fallback: Period
) -> Period:
    """
    Build a custom period from ISO date strings.

    Missing bounds are taken from ``fallback``.

    Raises
    ------
    ValueError
        If a date cannot be parsed or the end lies before the start.
    """
    start = date.fromisoformat(from_date) if from_date else fallback.start
    end = date.fromisoformat(to_date) if to_date else fallback.end

    if end < start:
        raise ValueError("Custom period end date cannot be before start date.")

    return Period(start=start, end=end, label=f"Custom period ({start} → {end})")


def period_of(transactions: Sequence[Transaction], label: str = "") -> Optional[Period]:
    """Smallest period covering all transactions, or None when empty."""
    if not transactions:
        return None
    dates = [t.posting_date for t in transactions]
    start, end = min(dates), max(dates)
    return Period(start=start, end=end, label=label or f"{start} → {end}")


def calendar_years_of(
    transactions: Sequence[Transaction], label: str = ""
) -> Optional[Period]:
    """Full calendar years spanned by the transactions, or None when empty."""
    if not transactions:
        return None
    years = [t.posting_date.year for t in transactions]
    first, last = min(years), max(years)
    default = str(first) if first == last else f"{first}-{last}"
    return Period(start=date(first, 1, 1), end=date(last, 12, 31), label=label or default)


def filter_transactions_by_period(
    transactions: Iterable[Transaction], period: Period
) -> list[Transaction]:
    """
    Keep only transactions posted within the period.

    Parameters
    ----------
    transactions:
        Transactions to filter. The input is not modified.
    period:
        Period defining the [start, end] boundaries (inclusive).

    Returns
    -------
    list[Transaction]
        Transactions within the period, in input order.
    """
    return [t for t in transactions if period.contains(t.posting_date)]


def split_by_periods(
    transactions: Iterable[Transaction], prev: Period, curr: Period
) -> tuple[list[Transaction], list[Transaction]]:
    """Split one transaction stream into (prior, current) period sets."""
    items = list(transactions)
    return (
        filter_transactions_by_period(items, prev),
        filter_transactions_by_period(items, curr),
    )
