# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Dimension aggregation for Controlling Core.

This module groups transactions along a caller-chosen dimension and reduces
each group to sums. It is the shared building block of every engine:

1. Grouping
   --------
   ``group_by_account()`` and ``group_by_dimension()`` split a transaction
   sequence into insertion-ordered groups. Missing dimension values land in
   an explicit ``UNASSIGNED`` bucket instead of being dropped.

2. Sums
   ----
   - signed sums (``signed_sum``) for deviation analysis,
   - unsigned "impact" sums (``impact_sum``) for the margin cascade, where
     every cost group is accumulated as a positive magnitude regardless of
     the original booking sign.

3. Tabular roll-ups (pandas)
   --------------------------
   - ``aggregate_by_dimension()``: key, signed amount, impact and count per
     dimension value,
   - ``compare_by_dimension()``: prior vs. current amounts and counts per
     dimension value, with the contribution to the overall variance.

4. Margin roll-ups
   ----------------
   - ``cost_totals()``: revenue, the five cost groups and DB I to DB V,
   - ``contribution_by_dimension()``: the same cascade computed for every
     distinct dimension value, ranked by revenue.
"""

from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Literal, TypeVar

import pandas as pd

from .accounts import COST_CLASSIFICATION, ClassificationRule, classify_account
from .materiality import share_pct
from .transactions import Transaction, transactions_to_frame

Dimension = Literal[
    "total",
    "account",
    "cost_center",
    "profit_center",
    "counterparty",
    "customer",
    "vendor",
    "month",
    "text_pattern",
]

DIMENSIONS: tuple[str, ...] = (
    "total",
    "account",
    "cost_center",
    "profit_center",
    "counterparty",
    "customer",
    "vendor",
    "month",
    "text_pattern",
)

UNASSIGNED = "Unassigned"
TOTAL_KEY = "total"
TOTAL_LABEL = "Total"
EMPTY_SIGNATURE = "(empty)"

K = TypeVar("K", bound=Hashable)


def text_signature(text: str) -> str:
    """First three lowercase words longer than three characters."""
    words = [w for w in text.lower().split() if len(w) > 3]
    return " ".join(words[:3]) or EMPTY_SIGNATURE


def dimension_key(tx: Transaction, dimension: str) -> str:
    """Return the grouping key of a transaction along a dimension.

    Args:
        tx: Transaction to inspect.
        dimension: One of DIMENSIONS.

    Returns:
        The dimension value, or UNASSIGNED when the field is empty.

    Raises:
        ValueError: if the dimension is unknown.
    """
    if dimension == "total":
        return TOTAL_KEY
    if dimension == "account":
        return f"{tx.account} {tx.account_name}".strip()
    if dimension == "month":
        return tx.posting_date.strftime("%Y-%m")
    if dimension == "text_pattern":
        return text_signature(tx.text)
    if dimension == "counterparty":
        value = tx.counterparty
    elif dimension in ("cost_center", "profit_center", "customer", "vendor"):
        value = getattr(tx, dimension)
    else:
        raise ValueError(f"Unknown dimension: {dimension!r}")
    return value or UNASSIGNED


def group_by(
    transactions: Iterable[Transaction], key: Callable[[Transaction], K]
) -> dict[K, list[Transaction]]:
    """Group transactions by an arbitrary key, preserving first-seen order."""
    groups: dict[K, list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(key(tx), []).append(tx)
    return groups


def group_by_account(
    transactions: Iterable[Transaction],
) -> dict[tuple[int, str], list[Transaction]]:
    """Group transactions by (account, account_name)."""
    return group_by(transactions, lambda t: (t.account, t.account_name))


def group_by_dimension(
    transactions: Iterable[Transaction], dimension: str
) -> dict[str, list[Transaction]]:
    """Group transactions by the value of a dimension."""
    return group_by(transactions, lambda t: dimension_key(t, dimension))


def signed_sum(transactions: Iterable[Transaction]) -> float:
    """Sum of signed amounts."""
    return sum(t.amount for t in transactions)


def impact_sum(transactions: Iterable[Transaction]) -> float:
    """Sum of absolute amounts, rounded to 2 decimals."""
    return round(sum(abs(t.amount) for t in transactions), 2)


# ---------------------------------------------------------------------------
# Tabular roll-ups
# ---------------------------------------------------------------------------


def _keyed_frame(transactions: Sequence[Transaction], dimension: str) -> pd.DataFrame:
    df = transactions_to_frame(transactions)
    df["key"] = [dimension_key(t, dimension) for t in transactions]
    return df


def aggregate_by_dimension(
    transactions: Sequence[Transaction], dimension: str
) -> pd.DataFrame:
    """Aggregate transactions per dimension value.

    Returns:
        DataFrame with columns: key, amount (signed), impact (unsigned),
        count. Rows are sorted by descending impact; ties keep first-seen
        order.
    """
    df = _keyed_frame(transactions, dimension)
    if df.empty:
        return pd.DataFrame(columns=["key", "amount", "impact", "count"])

    df["impact"] = df["amount"].abs()
    out = (
        df.groupby("key", sort=False)
        .agg(
            amount=("amount", "sum"),
            impact=("impact", "sum"),
            count=("amount", "size"),
        )
        .reset_index()
    )
    out["amount"] = out["amount"].round(2)
    out["impact"] = out["impact"].round(2)
    return out.sort_values("impact", ascending=False, kind="stable").reset_index(
        drop=True
    )


def compare_by_dimension(
    prev: Sequence[Transaction], curr: Sequence[Transaction], dimension: str
) -> pd.DataFrame:
    """Compare prior and current amounts per dimension value.

    Every value present on either side appears once. Missing sides count
    as 0.

    Returns:
        DataFrame with columns: dimension, key, prev_amount, curr_amount,
        prev_count, curr_count, contribution (curr - prev), sorted by
        descending absolute contribution (stable).
    """
    columns = [
        "dimension",
        "key",
        "prev_amount",
        "curr_amount",
        "prev_count",
        "curr_count",
        "contribution",
    ]
    prev_agg = aggregate_by_dimension(prev, dimension)[["key", "amount", "count"]]
    curr_agg = aggregate_by_dimension(curr, dimension)[["key", "amount", "count"]]
    if prev_agg.empty and curr_agg.empty:
        return pd.DataFrame(columns=columns)

    merged = prev_agg.merge(
        curr_agg, on="key", how="outer", suffixes=("_prev", "_curr"), sort=False
    )
    merged = merged.rename(
        columns={
            "amount_prev": "prev_amount",
            "amount_curr": "curr_amount",
            "count_prev": "prev_count",
            "count_curr": "curr_count",
        }
    )
    for col in ("prev_amount", "curr_amount"):
        merged[col] = pd.to_numeric(merged[col]).fillna(0.0).astype(float)
    for col in ("prev_count", "curr_count"):
        merged[col] = pd.to_numeric(merged[col]).fillna(0).astype(int)

    merged["contribution"] = (merged["curr_amount"] - merged["prev_amount"]).round(2)
    merged["dimension"] = dimension
    merged["__abs__"] = merged["contribution"].abs()
    merged = merged.sort_values("__abs__", ascending=False, kind="stable")
    return merged[columns].reset_index(drop=True)


# ---------------------------------------------------------------------------
# Margin cascade roll-ups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CostTotals:
    """Revenue, the five cost groups and the cascading margins DB I-V.

    Cost groups are positive magnitudes; each margin subtracts one further
    group from the previous margin.
    """

    revenue: float = 0.0
    variable_costs: float = 0.0
    db1: float = 0.0
    direct_personnel: float = 0.0
    db2: float = 0.0
    direct_other_costs: float = 0.0
    db3: float = 0.0
    overhead: float = 0.0
    db4: float = 0.0
    tax_depreciation: float = 0.0
    db5: float = 0.0

    @classmethod
    def from_groups(cls, groups: Mapping[str, float]) -> "CostTotals":
        """Build the cascade from unsigned sums keyed by cost type."""
        revenue = groups.get("revenue", 0.0)
        variable = groups.get("variable", 0.0)
        personnel = groups.get("direct_personnel", 0.0)
        direct_other = groups.get("direct_other", 0.0)
        overhead = groups.get("overhead", 0.0)
        tax_dep = groups.get("tax_depreciation", 0.0)

        db1 = round(revenue - variable, 2)
        db2 = round(db1 - personnel, 2)
        db3 = round(db2 - direct_other, 2)
        db4 = round(db3 - overhead, 2)
        db5 = round(db4 - tax_dep, 2)
        return cls(
            revenue=revenue,
            variable_costs=variable,
            db1=db1,
            direct_personnel=personnel,
            db2=db2,
            direct_other_costs=direct_other,
            db3=db3,
            overhead=overhead,
            db4=db4,
            tax_depreciation=tax_dep,
            db5=db5,
        )

    def pct_of_revenue(self, value: float) -> float:
        """Share of revenue in percent, rounded to 2 decimals."""
        return round(share_pct(value, self.revenue), 2)


def classify_groups(
    transactions: Iterable[Transaction],
    rules: tuple[ClassificationRule, ...] = COST_CLASSIFICATION,
) -> dict[str, list[Transaction]]:
    """Split transactions by cost type."""
    return group_by(transactions, lambda t: classify_account(t.account, rules).cost_type)


def cost_totals(
    transactions: Iterable[Transaction],
    rules: tuple[ClassificationRule, ...] = COST_CLASSIFICATION,
) -> CostTotals:
    """Compute revenue, cost groups and DB I-V for a transaction set."""
    groups = classify_groups(transactions, rules)
    return CostTotals.from_groups({ct: impact_sum(txs) for ct, txs in groups.items()})


@dataclass(frozen=True)
class DimensionContribution:
    """Margin cascade for one dimension value."""

    key: str
    label: str
    revenue: float
    db1: float
    db1_pct: float
    db2: float
    db2_pct: float
    db3: float
    db3_pct: float
    db4: float
    db4_pct: float
    db5: float
    db5_pct: float


def _dimension_row(key: str, label: str, totals: CostTotals) -> DimensionContribution:
    return DimensionContribution(
        key=key,
        label=label,
        revenue=totals.revenue,
        db1=totals.db1,
        db1_pct=totals.pct_of_revenue(totals.db1),
        db2=totals.db2,
        db2_pct=totals.pct_of_revenue(totals.db2),
        db3=totals.db3,
        db3_pct=totals.pct_of_revenue(totals.db3),
        db4=totals.db4,
        db4_pct=totals.pct_of_revenue(totals.db4),
        db5=totals.db5,
        db5_pct=totals.pct_of_revenue(totals.db5),
    )


def contribution_by_dimension(
    transactions: Sequence[Transaction],
    dimension: str,
    rules: tuple[ClassificationRule, ...] = COST_CLASSIFICATION,
) -> list[DimensionContribution]:
    """Compute the margin cascade for every value of a dimension.

    Args:
        transactions: Transactions to roll up.
        dimension: Dimension to split by. 'total' yields a single row.
        rules: Classification rule table.

    Returns:
        One DimensionContribution per distinct value (UNASSIGNED included),
        sorted by descending revenue. Ties keep first-seen order.
    """
    if not transactions:
        return []

    if dimension == "total":
        return [_dimension_row(TOTAL_KEY, TOTAL_LABEL, cost_totals(transactions, rules))]

    rows = [
        _dimension_row(key, key, cost_totals(group, rules))
        for key, group in group_by_dimension(transactions, dimension).items()
    ]
    rows.sort(key=lambda r: r.revenue, reverse=True)
    return rows
