# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Multi-level contribution margin engine (DB I to DB V).

The engine classifies every transaction into one of six cost types (see
accounts.py), sums the unsigned magnitude per type and derives five
cascading margins:

    DB I   = revenue - variable costs
    DB II  = DB I    - direct personnel costs
    DB III = DB II   - other direct costs
    DB IV  = DB III  - overhead
    DB V   = DB IV   - taxes & depreciation

Each margin is also expressed as a percentage of revenue (0 when revenue is
not positive).

Outputs
-------
- totals / percentages:  the cascade itself,
- rows:                  display tree; every cost row carries its top
                         contributing accounts as children,
- waterfall:             chart series alternating full subtotal bars
                         (base 0) and floating delta bars,
- by_dimension:          the cascade per cost center / profit center /
                         customer / counterparty value,
- insights:              up to six rule-based observations, in a fixed order,
- meta:                  booking counts and date range.

An empty transaction set yields an explicit zero-valued result with one
explanatory insight; the engine never raises for data-shape reasons.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from .aggregation import (
    CostTotals,
    DimensionContribution,
    classify_groups,
    contribution_by_dimension,
    group_by,
    impact_sum,
)
from .config import DEFAULT_CONFIG, AnalysisConfig
from .materiality import share_pct
from .transactions import Transaction

logger = logging.getLogger(__name__)

EMPTY_INSIGHT = (
    "No booking data available. Load transactions to compute the "
    "contribution margin."
)
MAX_INSIGHTS = 6


@dataclass(frozen=True)
class MarginPercentages:
    """DB I-V as a percentage of revenue."""

    db1_pct: float = 0.0
    db2_pct: float = 0.0
    db3_pct: float = 0.0
    db4_pct: float = 0.0
    db5_pct: float = 0.0


@dataclass(frozen=True)
class ContributionRow:
    """One line of the contribution margin tree.

    Attributes:
        label: Display label.
        amount: Signed amount (costs negative, margins as computed).
        percentage: Share of revenue in percent.
        margin_percentage: Cumulative margin after this row, in percent.
        level: 'revenue', 'db1'..'db5', 'cost_header' or 'cost_item'.
        cost_type: Cost type of cost rows, None otherwise.
        is_subtotal: True for revenue and DB rows.
        is_category: True for cost group rows.
        children: Top contributing accounts (cost_item rows).
    """

    label: str
    amount: float
    percentage: float
    margin_percentage: float
    level: str
    cost_type: Optional[str] = None
    is_subtotal: bool = False
    is_category: bool = False
    children: list["ContributionRow"] = field(default_factory=list)


@dataclass(frozen=True)
class WaterfallStep:
    """One bar of the waterfall series.

    Subtotal bars start at 0 and have value = subtotal. Delta bars float:
    base is the running total before the subtraction and value is the
    negative cost group.
    """

    key: str
    name: str
    value: float
    base: float
    is_subtotal: bool


@dataclass(frozen=True)
class ContributionMeta:
    period: str
    dimension: str
    booking_count: int
    unique_cost_centers: int
    unique_profit_centers: int
    unique_customers: int
    date_min: str
    date_max: str


@dataclass(frozen=True)
class ContributionResult:
    totals: CostTotals
    percentages: MarginPercentages
    rows: list[ContributionRow]
    by_dimension: list[DimensionContribution]
    waterfall: list[WaterfallStep]
    meta: ContributionMeta
    insights: list[str]


# (cost_type, cost row label, waterfall label, totals field, margin level,
#  margin label)
_CASCADE: tuple[tuple[str, str, str, str, str, str], ...] = (
    ("variable", "Material / variable costs", "Material costs",
     "variable_costs", "db1", "DB I - Gross profit"),
    ("direct_personnel", "Direct personnel costs", "Personnel costs",
     "direct_personnel", "db2", "DB II - After personnel costs"),
    ("direct_other", "Other direct costs", "Direct costs",
     "direct_other_costs", "db3", "DB III - After direct costs"),
    ("overhead", "Overhead allocation", "Overhead",
     "overhead", "db4", "DB IV - After overhead"),
    ("tax_depreciation", "Taxes & depreciation", "Taxes & depreciation",
     "tax_depreciation", "db5", "DB V - Operating result"),
)

_SHORT_LABELS = {"db1": "DB I", "db2": "DB II", "db3": "DB III", "db4": "DB IV", "db5": "DB V"}


def calculate_contribution_margin(
    transactions: Sequence[Transaction],
    config: Optional[AnalysisConfig] = None,
    dimension: Optional[str] = None,
    period_label: Optional[str] = None,
) -> ContributionResult:
    """Compute the multi-level contribution margin for a transaction set.

    Args:
        transactions: Normalized transactions (not mutated).
        config: Analysis configuration; defaults are used when omitted.
        dimension: Roll-up dimension; overrides ``config.dimension``.
        period_label: Optional display label of the analysed period. When
            omitted, the date range of the transactions is used.

    Returns:
        A ContributionResult. Empty input yields zero totals and a single
        explanatory insight.
    """
    cfg = config or DEFAULT_CONFIG
    dim = dimension or cfg.dimension

    if not transactions:
        return _empty_result(dim, period_label)

    groups = classify_groups(transactions, cfg.classification_rules)
    totals = CostTotals.from_groups({ct: impact_sum(txs) for ct, txs in groups.items()})
    percentages = MarginPercentages(
        db1_pct=totals.pct_of_revenue(totals.db1),
        db2_pct=totals.pct_of_revenue(totals.db2),
        db3_pct=totals.pct_of_revenue(totals.db3),
        db4_pct=totals.pct_of_revenue(totals.db4),
        db5_pct=totals.pct_of_revenue(totals.db5),
    )

    rows = build_rows(groups, totals, cfg.drilldown_top_n)
    waterfall = build_waterfall(totals)
    by_dimension = contribution_by_dimension(
        transactions, dim, cfg.classification_rules
    )
    insights = generate_insights(totals, percentages, by_dimension)
    meta = _build_meta(transactions, dim, period_label)

    logger.debug(
        "Contribution margin computed for %d bookings: revenue=%.2f db5=%.2f",
        len(transactions),
        totals.revenue,
        totals.db5,
    )

    return ContributionResult(
        totals=totals,
        percentages=percentages,
        rows=rows,
        by_dimension=by_dimension,
        waterfall=waterfall,
        meta=meta,
        insights=insights,
    )


# ---------------------------------------------------------------------------
# Waterfall
# ---------------------------------------------------------------------------


def build_waterfall(totals: CostTotals) -> list[WaterfallStep]:
    """Build the waterfall series from revenue down to DB V.

    The series alternates subtotal bars (revenue, DB I..DB V; base 0) and
    floating delta bars (one per cost group; base = running total before
    the subtraction, value = -cost).
    """
    steps = [
        WaterfallStep(
            key="revenue",
            name="Revenue",
            value=totals.revenue,
            base=0.0,
            is_subtotal=True,
        )
    ]
    running = totals.revenue
    for cost_type, _, bar_label, cost_field, level, _ in _CASCADE:
        cost = getattr(totals, cost_field)
        steps.append(
            WaterfallStep(
                key=cost_type,
                name=bar_label,
                value=-cost,
                base=round(running, 2),
                is_subtotal=False,
            )
        )
        running -= cost
        steps.append(
            WaterfallStep(
                key=level,
                name=_SHORT_LABELS[level],
                value=getattr(totals, level),
                base=0.0,
                is_subtotal=True,
            )
        )
    return steps


# ---------------------------------------------------------------------------
# Detail rows
# ---------------------------------------------------------------------------


def build_rows(
    groups: dict[str, list[Transaction]],
    totals: CostTotals,
    drilldown_top_n: int = 15,
) -> list[ContributionRow]:
    """Build the row tree: revenue, then (cost row, DB row) per level."""
    revenue = totals.revenue
    full = 100.0 if revenue > 0 else 0.0

    rows = [
        ContributionRow(
            label="Revenue",
            amount=revenue,
            percentage=full,
            margin_percentage=full,
            level="revenue",
            is_subtotal=True,
            children=account_children(groups.get("revenue", []), revenue, drilldown_top_n),
        )
    ]
    for cost_type, row_label, _, cost_field, level, margin_label in _CASCADE:
        cost = getattr(totals, cost_field)
        margin = getattr(totals, level)
        rows.append(
            ContributionRow(
                label=row_label,
                amount=-cost,
                percentage=totals.pct_of_revenue(cost),
                margin_percentage=totals.pct_of_revenue(margin),
                level="cost_header",
                cost_type=cost_type,
                is_category=True,
                children=account_children(
                    groups.get(cost_type, []), revenue, drilldown_top_n
                ),
            )
        )
        rows.append(
            ContributionRow(
                label=margin_label,
                amount=margin,
                percentage=totals.pct_of_revenue(margin),
                margin_percentage=totals.pct_of_revenue(margin),
                level=level,
                is_subtotal=True,
            )
        )
    return rows


def account_children(
    transactions: Sequence[Transaction], revenue: float, top_n: int = 15
) -> list[ContributionRow]:
    """Return the top accounts of a cost group by unsigned magnitude."""
    if not transactions or top_n <= 0:
        return []

    by_account = group_by(transactions, lambda t: t.account)
    sums = [
        (account, txs[0].account_name or f"Account {account}", impact_sum(txs))
        for account, txs in by_account.items()
    ]
    sums.sort(key=lambda item: item[2], reverse=True)

    return [
        ContributionRow(
            label=f"{account} {name}",
            amount=-total,
            percentage=round(share_pct(total, revenue), 2),
            margin_percentage=0.0,
            level="cost_item",
        )
        for account, name, total in sums[:top_n]
    ]


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


def generate_insights(
    totals: CostTotals,
    percentages: MarginPercentages,
    by_dimension: Sequence[DimensionContribution],
) -> list[str]:
    """Run the fixed, ordered battery of insight rules.

    Rules (in this order, never re-sorted):
      1. DB I margin tier (>= 60 strong, >= 40 solid, else low),
      2. personnel intensity above 30 % of revenue,
      3. net margin (DB V) below 0, below 3 or at least 10 %,
      4. overhead above 20 % of revenue,
      5. spread of DB I % across dimension values above 10 points,
      6. erosion from DB I % to DB V % above 40 points.
    At most six insights are returned.
    """
    insights: list[str] = []
    revenue = totals.revenue

    if revenue > 0:
        db1_margin = percentages.db1_pct
        if db1_margin >= 60:
            insights.append(
                f"Strong gross profit: {db1_margin:.1f}% DB I margin, above "
                "average for mid-sized companies."
            )
        elif db1_margin >= 40:
            insights.append(
                f"Solid gross profit: {db1_margin:.1f}% DB I margin after "
                "material costs."
            )
        else:
            insights.append(
                f"Low gross profit: only {db1_margin:.1f}% DB I margin, high "
                "share of material costs."
            )

    if revenue > 0 and totals.db1 > 0:
        personnel_ratio = totals.pct_of_revenue(totals.direct_personnel)
        if personnel_ratio > 30:
            insights.append(
                f"High personnel intensity: {personnel_ratio:.1f}% of revenue "
                "goes to direct personnel costs."
            )

    if revenue > 0:
        net_margin = percentages.db5_pct
        if net_margin < 0:
            insights.append(
                f"Loss: DB V at {net_margin:.1f}%, costs must fall or revenue "
                "must grow."
            )
        elif net_margin < 3:
            insights.append(
                f"Thin profitability: {net_margin:.1f}% net margin leaves "
                "little buffer."
            )
        elif net_margin >= 10:
            insights.append(f"Strong profitability: {net_margin:.1f}% net margin (DB V).")

    if revenue > 0:
        overhead_ratio = totals.pct_of_revenue(totals.overhead)
        if overhead_ratio > 20:
            insights.append(
                f"High overhead block: {overhead_ratio:.1f}% of revenue, review "
                "savings potential."
            )

    if len(by_dimension) > 2:
        ranked = sorted(by_dimension, key=lambda d: d.db1_pct, reverse=True)
        best, worst = ranked[0], ranked[-1]
        if best.key != worst.key and best.db1_pct - worst.db1_pct > 10:
            insights.append(
                f'Largest spread: "{best.label}" ({best.db1_pct:.1f}% DB I) vs. '
                f'"{worst.label}" ({worst.db1_pct:.1f}% DB I).'
            )

    if revenue > 0:
        erosion = percentages.db1_pct - percentages.db5_pct
        if erosion > 40:
            insights.append(
                f"Strong margin erosion: {erosion:.0f} percentage points lost "
                "from DB I to DB V."
            )

    return insights[:MAX_INSIGHTS]


# ---------------------------------------------------------------------------
# Meta & empty result
# ---------------------------------------------------------------------------


def _build_meta(
    transactions: Sequence[Transaction], dimension: str, period_label: Optional[str]
) -> ContributionMeta:
    dates = sorted(t.posting_date.isoformat() for t in transactions)
    date_min = dates[0] if dates else ""
    date_max = dates[-1] if dates else ""
    period = period_label or (f"{date_min} - {date_max}" if dates else "Unknown")
    return ContributionMeta(
        period=period,
        dimension=dimension,
        booking_count=len(transactions),
        unique_cost_centers=len({t.cost_center for t in transactions if t.cost_center}),
        unique_profit_centers=len(
            {t.profit_center for t in transactions if t.profit_center}
        ),
        unique_customers=len({t.customer for t in transactions if t.customer}),
        date_min=date_min,
        date_max=date_max,
    )


def _empty_result(dimension: str, period_label: Optional[str]) -> ContributionResult:
    return ContributionResult(
        totals=CostTotals(),
        percentages=MarginPercentages(),
        rows=[],
        by_dimension=[],
        waterfall=[],
        meta=ContributionMeta(
            period=period_label or "No data",
            dimension=dimension,
            booking_count=0,
            unique_cost_centers=0,
            unique_profit_centers=0,
            unique_customers=0,
            date_min="",
            date_max="",
        ),
        insights=[EMPTY_INSIGHT],
    )
