# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Triple variance engine: prior year (VJ) vs. plan vs. actual (Ist).

The engine reconciles three sources per account and per cost center:

- VJ   : transactions of the prior-year period,
- Plan : a per-account plan table (``PlanEntry``),
- Ist  : transactions of the current period.

Accounts
--------
For every account key (account number + name) found in any of the three
sources, the VJ and Ist amounts are summed and the plan amount is looked
up. When an account has no plan entry, or a plan amount of exactly 0, the
VJ amount is used as plan: "no plan" behaves as "flat vs. last year", so
unplanned accounts never drop out of the reconciliation.

Three comparisons are computed (Ist vs. Plan, Ist vs. VJ, Plan vs. VJ). An
account is reported when *either* of the first two clears both
materiality legs. The status is always classified against the plan
comparison, with expense/revenue polarity.

Cost centers
------------
The same logic at cost-center grain. The plan of a cost center is the sum of
the plan entries of every account booked on it (falling back to VJ when
that sum is 0). Only the plan comparison gates materiality here, and every
cost center is treated as an expense carrier. Each reported cost center
lists its three accounts with the largest absolute deviation vs. plan.

Summary
-------
Traffic-light counts over the reported accounts, source totals,
revenue/expense splits per source and the plan achievement
(Ist / Plan * 100, 100 when Plan is 0).
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from .accounts import is_expense_account
from .aggregation import group_by_account, group_by_dimension, signed_sum
from .config import DEFAULT_CONFIG, AnalysisConfig
from .materiality import (
    Delta,
    Status,
    classify_status,
    compute_delta,
    is_material,
    traffic_light,
)
from .transactions import PlanEntry, TopTransaction, Transaction, top_transactions
from .views import format_currency

logger = logging.getLogger(__name__)

TOP_ACCOUNTS_PER_COST_CENTER = 3
ON_PLAN_PCT = 5.0


@dataclass(frozen=True)
class TripleAccountDeviation:
    account: int
    account_name: str
    amount_vj: float
    amount_plan: float
    amount_ist: float
    delta_plan_abs: float
    delta_plan_pct: float
    delta_vj_abs: float
    delta_vj_pct: float
    plan_vs_vj_abs: float
    plan_vs_vj_pct: float
    status: Status
    comment: str
    bookings_count_ist: int
    top_transactions_ist: list[TopTransaction]


@dataclass(frozen=True)
class CostCenterAccount:
    """Account contributing to a cost-center deviation."""

    account: int
    account_name: str
    delta_plan_abs: float
    delta_vj_abs: float


@dataclass(frozen=True)
class TripleCostCenterDeviation:
    cost_center: str
    amount_vj: float
    amount_plan: float
    amount_ist: float
    delta_plan_abs: float
    delta_plan_pct: float
    delta_vj_abs: float
    delta_vj_pct: float
    status: Status
    top_accounts: list[CostCenterAccount]


@dataclass(frozen=True)
class TrafficLightSummary:
    green: int = 0
    yellow: int = 0
    red: int = 0


@dataclass(frozen=True)
class TripleMeta:
    period_vj: str
    period_plan: str
    period_ist: str
    total_vj: float
    total_plan: float
    total_ist: float
    bookings_ist: int
    materiality_abs: float
    materiality_pct: float


@dataclass(frozen=True)
class TripleSummary:
    """Top-line figures. Revenue = positive amounts, expenses = negative."""

    total_delta_plan: float
    total_delta_vj: float
    revenue_vj: float
    revenue_plan: float
    revenue_ist: float
    revenue_delta_plan: float
    revenue_delta_vj: float
    expenses_vj: float
    expenses_plan: float
    expenses_ist: float
    expenses_delta_plan: float
    expenses_delta_vj: float
    plan_achievement_pct: float


@dataclass(frozen=True)
class TripleAnalysisResult:
    meta: TripleMeta
    summary: TripleSummary
    by_account: list[TripleAccountDeviation]
    by_cost_center: list[TripleCostCenterDeviation]
    traffic_light: TrafficLightSummary


def plan_amount(
    plan_by_account: dict[int, PlanEntry], account: int, fallback: float
) -> float:
    """Planned amount of an account, or ``fallback`` when missing or 0."""
    entry = plan_by_account.get(account)
    if entry is None or entry.amount == 0:
        return fallback
    return entry.amount


def triple_comment(
    delta_plan: Delta,
    delta_vj: Delta,
    is_expense: bool,
    currency: str = "EUR",
) -> str:
    """Two-sentence comment: the plan comparison, then the VJ comparison."""
    if abs(delta_plan.pct) < ON_PLAN_PCT:
        plan_part = "On plan."
    elif delta_plan.abs > 0:
        plan_part = (
            f"Over plan by {format_currency(delta_plan.abs, currency)} "
            f"(+{delta_plan.pct:.1f}%)."
        )
    else:
        plan_part = (
            f"Under plan by {format_currency(abs(delta_plan.abs), currency)} "
            f"({delta_plan.pct:.1f}%)."
        )

    subject = "Costs" if is_expense else "Revenue"
    if delta_vj.abs > 0:
        vj_part = (
            f"{subject} rose vs. prior year by "
            f"{format_currency(delta_vj.abs, currency)} (+{delta_vj.pct:.1f}%)."
        )
    elif delta_vj.abs < 0:
        vj_part = (
            f"{subject} fell vs. prior year by "
            f"{format_currency(abs(delta_vj.abs), currency)} ({delta_vj.pct:.1f}%)."
        )
    else:
        vj_part = "Unchanged vs. prior year."

    return f"{plan_part} {vj_part}"


def analyze_triple(
    vj: Sequence[Transaction],
    plan: Sequence[PlanEntry],
    ist: Sequence[Transaction],
    config: Optional[AnalysisConfig] = None,
) -> TripleAnalysisResult:
    """
    Reconcile prior year, plan and actual per account and per cost center.

    Parameters
    ----------
    vj :
        Prior-year transactions.
    plan :
        Plan table. When an account appears more than once, the last entry
        wins.
    ist :
        Current-period transactions.
    config :
        Thresholds and period names. Defaults are used when omitted.

    Returns
    -------
    TripleAnalysisResult
        Ranked account and cost-center deviations, traffic-light counts,
        meta information and top-line summary. Empty inputs yield empty
        lists and zero totals.
    """
    cfg = config or DEFAULT_CONFIG
    plan_by_account = {p.account: p for p in plan}

    by_account = _account_deviations(vj, plan, ist, plan_by_account, cfg)
    by_cost_center = _cost_center_deviations(vj, ist, plan_by_account, cfg)

    lights = {"green": 0, "yellow": 0, "red": 0}
    for dev in by_account:
        lights[traffic_light(dev.status)] += 1

    total_vj = signed_sum(vj)
    total_ist = signed_sum(ist)
    total_plan = sum(p.amount for p in plan) or total_vj

    revenue_vj = sum(t.amount for t in vj if t.amount > 0)
    revenue_ist = sum(t.amount for t in ist if t.amount > 0)
    revenue_plan = sum(p.amount for p in plan if p.amount > 0) or revenue_vj

    expenses_vj = sum(t.amount for t in vj if t.amount < 0)
    expenses_ist = sum(t.amount for t in ist if t.amount < 0)
    expenses_plan = sum(p.amount for p in plan if p.amount < 0) or expenses_vj

    meta = TripleMeta(
        period_vj=cfg.period_vj_name,
        period_plan=cfg.period_plan_name,
        period_ist=cfg.period_ist_name,
        total_vj=total_vj,
        total_plan=total_plan,
        total_ist=total_ist,
        bookings_ist=len(ist),
        materiality_abs=cfg.materiality_abs,
        materiality_pct=cfg.materiality_pct,
    )
    summary = TripleSummary(
        total_delta_plan=total_ist - total_plan,
        total_delta_vj=total_ist - total_vj,
        revenue_vj=revenue_vj,
        revenue_plan=revenue_plan,
        revenue_ist=revenue_ist,
        revenue_delta_plan=revenue_ist - revenue_plan,
        revenue_delta_vj=revenue_ist - revenue_vj,
        expenses_vj=expenses_vj,
        expenses_plan=expenses_plan,
        expenses_ist=expenses_ist,
        expenses_delta_plan=expenses_ist - expenses_plan,
        expenses_delta_vj=expenses_ist - expenses_vj,
        plan_achievement_pct=(total_ist / total_plan * 100) if total_plan != 0 else 100.0,
    )

    logger.debug(
        "Triple analysis: %d accounts, %d cost centers reported (abs=%s, pct=%s)",
        len(by_account),
        len(by_cost_center),
        cfg.materiality_abs,
        cfg.materiality_pct,
    )

    return TripleAnalysisResult(
        meta=meta,
        summary=summary,
        by_account=by_account,
        by_cost_center=by_cost_center,
        traffic_light=TrafficLightSummary(**lights),
    )


def _account_deviations(
    vj: Sequence[Transaction],
    plan: Sequence[PlanEntry],
    ist: Sequence[Transaction],
    plan_by_account: dict[int, PlanEntry],
    cfg: AnalysisConfig,
) -> list[TripleAccountDeviation]:
    vj_by_account = group_by_account(vj)
    ist_by_account = group_by_account(ist)

    # Union of keys, first seen in VJ, then Ist, then Plan. Plan rows only
    # add accounts without bookings; their name may differ from the ledger.
    keys: dict[tuple[int, str], None] = {}
    for key in vj_by_account:
        keys[key] = None
    for key in ist_by_account:
        keys[key] = None
    booked = {account for account, _ in keys}
    for p in plan:
        if p.account not in booked:
            keys[(p.account, p.account_name)] = None

    out: list[TripleAccountDeviation] = []
    for account, account_name in keys:
        is_expense = is_expense_account(account, cfg.expense_boundary)
        ist_txs = ist_by_account.get((account, account_name), [])

        amount_vj = signed_sum(vj_by_account.get((account, account_name), []))
        amount_ist = signed_sum(ist_txs)
        amount_plan = plan_amount(plan_by_account, account, amount_vj)

        delta_plan = compute_delta(amount_plan, amount_ist)
        delta_vj = compute_delta(amount_vj, amount_ist)
        plan_vs_vj = compute_delta(amount_vj, amount_plan)

        if not (
            is_material(delta_plan, cfg.materiality_abs, cfg.materiality_pct)
            or is_material(delta_vj, cfg.materiality_abs, cfg.materiality_pct)
        ):
            continue

        out.append(
            TripleAccountDeviation(
                account=account,
                account_name=account_name,
                amount_vj=amount_vj,
                amount_plan=amount_plan,
                amount_ist=amount_ist,
                delta_plan_abs=delta_plan.abs,
                delta_plan_pct=delta_plan.pct,
                delta_vj_abs=delta_vj.abs,
                delta_vj_pct=delta_vj.pct,
                plan_vs_vj_abs=plan_vs_vj.abs,
                plan_vs_vj_pct=plan_vs_vj.pct,
                status=classify_status(
                    delta_plan.pct,
                    is_expense,
                    cfg.threshold_yellow_pct,
                    cfg.threshold_red_pct,
                ),
                comment=triple_comment(delta_plan, delta_vj, is_expense, cfg.currency),
                bookings_count_ist=len(ist_txs),
                top_transactions_ist=top_transactions(
                    ist, cfg.top_n_transactions, account=account
                ),
            )
        )

    out.sort(key=lambda d: abs(d.delta_plan_abs), reverse=True)
    return out


def _cost_center_deviations(
    vj: Sequence[Transaction],
    ist: Sequence[Transaction],
    plan_by_account: dict[int, PlanEntry],
    cfg: AnalysisConfig,
) -> list[TripleCostCenterDeviation]:
    vj_by_cc = group_by_dimension(vj, "cost_center")
    ist_by_cc = group_by_dimension(ist, "cost_center")
    centers = list(dict.fromkeys([*vj_by_cc, *ist_by_cc]))

    out: list[TripleCostCenterDeviation] = []
    for cc in centers:
        cc_vj = vj_by_cc.get(cc, [])
        cc_ist = ist_by_cc.get(cc, [])
        amount_vj = signed_sum(cc_vj)
        amount_ist = signed_sum(cc_ist)

        accounts = dict.fromkeys(t.account for t in [*cc_vj, *cc_ist])
        amount_plan = sum(
            plan_by_account[a].amount for a in accounts if a in plan_by_account
        )
        if amount_plan == 0:
            amount_plan = amount_vj

        delta_plan = compute_delta(amount_plan, amount_ist)
        delta_vj = compute_delta(amount_vj, amount_ist)
        if not is_material(delta_plan, cfg.materiality_abs, cfg.materiality_pct):
            continue

        out.append(
            TripleCostCenterDeviation(
                cost_center=cc,
                amount_vj=amount_vj,
                amount_plan=amount_plan,
                amount_ist=amount_ist,
                delta_plan_abs=delta_plan.abs,
                delta_plan_pct=delta_plan.pct,
                delta_vj_abs=delta_vj.abs,
                delta_vj_pct=delta_vj.pct,
                status=classify_status(
                    delta_plan.pct,
                    True,
                    cfg.threshold_yellow_pct,
                    cfg.threshold_red_pct,
                ),
                top_accounts=_top_cost_center_accounts(cc_vj, cc_ist, plan_by_account),
            )
        )

    out.sort(key=lambda d: abs(d.delta_plan_abs), reverse=True)
    return out


def _top_cost_center_accounts(
    cc_vj: Sequence[Transaction],
    cc_ist: Sequence[Transaction],
    plan_by_account: dict[int, PlanEntry],
) -> list[CostCenterAccount]:
    vj_by_account = group_by_account(cc_vj)
    ist_by_account = group_by_account(cc_ist)

    rows: list[CostCenterAccount] = []
    for key in dict.fromkeys([*vj_by_account, *ist_by_account]):
        account, account_name = key
        vj_amount = signed_sum(vj_by_account.get(key, []))
        ist_amount = signed_sum(ist_by_account.get(key, []))
        rows.append(
            CostCenterAccount(
                account=account,
                account_name=account_name,
                delta_plan_abs=ist_amount - plan_amount(plan_by_account, account, vj_amount),
                delta_vj_abs=ist_amount - vj_amount,
            )
        )
    rows.sort(key=lambda r: abs(r.delta_plan_abs), reverse=True)
    return rows[:TOP_ACCOUNTS_PER_COST_CENTER]
