# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Account classification for Controlling Core.

This module maps a general-ledger account number to one of the six cost
types used by the contribution margin cascade:

    revenue, variable, direct_personnel, direct_other, overhead,
    tax_depreciation

Classification is a lookup over an ordered rule table: each rule carries a
cost type, a label and one or more inclusive account ranges. The first
matching rule wins. Accounts matched by no rule fall back to ``overhead``,
so the cascade always closes; this fallback is not an error.

The default table follows the German SKR03 chart of accounts. Other charts
(e.g. SKR04) can be loaded from a CSV rule file with
``load_classification_rules()``.
"""

import os
from dataclasses import dataclass
from typing import Literal, Union

import pandas as pd

CostType = Literal[
    "revenue",
    "variable",
    "direct_personnel",
    "direct_other",
    "overhead",
    "tax_depreciation",
]

COST_TYPES: tuple[str, ...] = (
    "revenue",
    "variable",
    "direct_personnel",
    "direct_other",
    "overhead",
    "tax_depreciation",
)

DEFAULT_EXPENSE_BOUNDARY = 5000


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the classification table.

    Attributes:
        cost_type: Cost type assigned to matching accounts.
        label: Human-readable label of the cost group.
        ranges: Inclusive (min, max) account ranges.
    """

    cost_type: CostType
    label: str
    ranges: tuple[tuple[int, int], ...]

    def matches(self, account: int) -> bool:
        return any(lo <= account <= hi for lo, hi in self.ranges)


@dataclass(frozen=True)
class AccountClass:
    """Result of classifying one account."""

    cost_type: CostType
    label: str


COST_CLASSIFICATION: tuple[ClassificationRule, ...] = (
    ClassificationRule("revenue", "Revenue", ((8000, 8999),)),
    ClassificationRule("variable", "Material / variable costs", ((3000, 3999),)),
    ClassificationRule("direct_personnel", "Direct personnel costs", ((5000, 5299),)),
    ClassificationRule(
        "direct_other", "Other direct costs", ((4200, 4799), (5300, 5999))
    ),
    ClassificationRule("overhead", "Overhead", ((6000, 6999),)),
    ClassificationRule(
        "tax_depreciation", "Taxes & depreciation", ((7000, 7999), (4800, 4899))
    ),
)

# Fallback for accounts outside every range.
DEFAULT_CLASS = AccountClass(cost_type="overhead", label="Other expenses")


def classify_account(
    account: int,
    rules: tuple[ClassificationRule, ...] = COST_CLASSIFICATION,
) -> AccountClass:
    """Return the cost type of an account.

    Args:
        account: Account number.
        rules: Ordered rule table. Defaults to the SKR03 table.

    Returns:
        The AccountClass of the first matching rule, or DEFAULT_CLASS
        (overhead) when no rule matches.
    """
    for rule in rules:
        if rule.matches(account):
            return AccountClass(cost_type=rule.cost_type, label=rule.label)
    return DEFAULT_CLASS


def is_expense_account(
    account: int, boundary: int = DEFAULT_EXPENSE_BOUNDARY
) -> bool:
    """Return True if the account is treated as an expense account.

    Expense accounts invert favorability: an increase is unfavorable.
    """
    return account >= boundary


def load_classification_rules(
    path: Union[str, "os.PathLike[str]"],
) -> tuple[ClassificationRule, ...]:
    """Load an ordered classification table from CSV.

    Expected columns (case-insensitive):
        cost_type, label, account_from, account_to

    Several rows may share a cost type; their ranges are merged into one
    rule, positioned where the cost type first appears.

    Args:
        path: Path to the CSV rule file.

    Returns:
        Tuple of ClassificationRule in file order.

    Raises:
        ValueError: if a column is missing, a cost type is unknown or a
            range bound is not an integer.
    """
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]

    required = {"cost_type", "label", "account_from", "account_to"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(
            "Classification rule file is missing column(s): "
            + ", ".join(sorted(missing))
        )

    bounds = df[["account_from", "account_to"]].apply(pd.to_numeric, errors="coerce")
    if bounds.isna().any().any():
        raise ValueError("Invalid account range bounds in classification rule file.")

    order: list[str] = []
    labels: dict[str, str] = {}
    ranges: dict[str, list[tuple[int, int]]] = {}
    for (_, row), (lo, hi) in zip(df.iterrows(), bounds.itertuples(index=False)):
        cost_type = str(row["cost_type"]).strip()
        if cost_type not in COST_TYPES:
            raise ValueError(f"Unknown cost type in classification rules: {cost_type!r}")
        if cost_type not in ranges:
            order.append(cost_type)
            labels[cost_type] = str(row["label"]).strip()
            ranges[cost_type] = []
        ranges[cost_type].append((int(lo), int(hi)))

    return tuple(
        ClassificationRule(cost_type=ct, label=labels[ct], ranges=tuple(ranges[ct]))  # type: ignore[arg-type]
        for ct in order
    )
