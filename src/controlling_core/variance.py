# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Two-period deviation analysis (prior period vs. current period).

``analyze_periods()`` compares two transaction sets at three grains:

1. Account (account number + name)
   Every material account deviation carries its evidence: the largest
   current and prior transactions, the transactions that appear only in
   the current period ("new") or only in the prior period ("missing"),
   booking counts, a rule-based comment and an optional anomaly hint.

2. Cost center
   Material cost-center deviations with their three accounts carrying the
   largest absolute deviation.

3. Account x cost center
   The fifteen largest material deviations at the combined grain.

All lists are sorted by descending absolute deviation. The sort is stable,
so identical input yields identical order.

New/missing matching
--------------------
Two transactions are considered "the same kind of booking" when they share
a signature made of the first 30 characters of the lowercased text, the
vendor and the amount rounded to the nearest 100.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Optional

from .accounts import is_expense_account
from .aggregation import (
    UNASSIGNED,
    group_by,
    group_by_account,
    group_by_dimension,
    signed_sum,
)
from .config import DEFAULT_CONFIG, AnalysisConfig
from .materiality import Delta, compute_delta, is_material
from .transactions import TopTransaction, Transaction, to_top_transaction, top_transactions
from .views import format_currency

logger = logging.getLogger(__name__)

AnomalyType = Literal["outlier", "unusual_single", "trend_break"]
Severity = Literal["info", "warning", "critical"]

DETAIL_LIMIT = 15
COMMENT_DRIVERS = 3
TOP_ACCOUNTS_PER_COST_CENTER = 3


@dataclass(frozen=True)
class AnomalyHint:
    hint: str
    type: AnomalyType
    severity: Severity


@dataclass(frozen=True)
class AccountDeviation:
    account: int
    account_name: str
    amount_prev: float
    amount_curr: float
    delta_abs: float
    delta_pct: float
    bookings_count_prev: int
    bookings_count_curr: int
    top_transactions: list[TopTransaction]
    top_transactions_prev: list[TopTransaction]
    new_transactions: list[TopTransaction]
    missing_transactions: list[TopTransaction]
    comment: str
    anomaly: Optional[AnomalyHint] = None


@dataclass(frozen=True)
class AccountDelta:
    account: int
    account_name: str
    delta_abs: float


@dataclass(frozen=True)
class CostCenterDeviation:
    cost_center: str
    amount_prev: float
    amount_curr: float
    delta_abs: float
    delta_pct: float
    top_accounts: list[AccountDelta]


@dataclass(frozen=True)
class DetailDeviation:
    account: int
    account_name: str
    cost_center: str
    amount_prev: float
    amount_curr: float
    delta_abs: float
    delta_pct: float
    comment: str


@dataclass(frozen=True)
class PeriodMeta:
    period_prev: str
    period_curr: str
    total_prev: float
    total_curr: float
    bookings_prev: int
    bookings_curr: int
    materiality_abs: float
    materiality_pct: float


@dataclass(frozen=True)
class PeriodSummary:
    total_delta: float
    revenue_prev: float
    revenue_curr: float
    expenses_prev: float
    expenses_curr: float


@dataclass(frozen=True)
class PeriodComparison:
    meta: PeriodMeta
    summary: PeriodSummary
    by_account: list[AccountDeviation]
    by_cost_center: list[CostCenterDeviation]
    by_detail: list[DetailDeviation]


def booking_signature(tx: Transaction) -> str:
    """Signature used to pair prior and current bookings."""
    return f"{tx.text.lower()[:30]}|{tx.vendor or ''}|{round(tx.amount / 100) * 100}"


def unmatched_transactions(
    source: Sequence[Transaction],
    other: Sequence[Transaction],
    top_n: int = 5,
) -> list[TopTransaction]:
    """Transactions of ``source`` whose signature never occurs in ``other``."""
    if top_n <= 0:
        return []
    seen = {booking_signature(t) for t in other}
    unmatched = [t for t in source if booking_signature(t) not in seen]
    unmatched.sort(key=lambda t: abs(t.amount), reverse=True)
    return [to_top_transaction(t) for t in unmatched[:top_n]]


def deviation_comment(
    delta: Delta,
    is_expense: bool,
    drivers: Sequence[TopTransaction],
    currency: str = "EUR",
) -> str:
    """Rule-based comment: direction and size, then the main drivers."""
    if is_expense:
        direction = "Cost increase" if delta.abs > 0 else "Cost decrease"
    else:
        direction = "Revenue increase" if delta.abs > 0 else "Revenue decrease"

    lines = [
        f"{direction} of {format_currency(abs(delta.abs), currency)} "
        f"({abs(delta.pct):.1f}%)."
    ]
    if drivers:
        lines.append("Main drivers:")
        for tx in drivers:
            entity = tx.vendor or tx.customer
            label = f"{tx.text} ({entity})" if entity else tx.text
            lines.append(f"  - {label}: {format_currency(tx.amount, currency)}")
    return "\n".join(lines)


def detect_anomaly(
    delta_abs: float,
    delta_pct: float,
    amount_prev: float,
    amount_curr: float,
    top: Sequence[TopTransaction] = (),
) -> Optional[AnomalyHint]:
    """Run the anomaly rule battery; the first matching rule wins.

    1. |pct| > 100                               -> outlier / critical
    2. |pct| > 50                                -> outlier / warning
    3. top transaction > 80 % of |delta| > 10 000 -> unusual_single / warning
    4. top transaction > 60 % of |delta| > 5 000  -> unusual_single / info
    5. |prev| < 100 and |curr| > 5 000           -> trend_break / info (new)
    6. |curr| < 100 and |prev| > 5 000           -> trend_break / info (gone)
    """
    magnitude = abs(delta_pct)
    if magnitude > 100:
        return AnomalyHint("Extremely high deviation of more than 100%", "outlier", "critical")
    if magnitude > 50:
        return AnomalyHint("Unusually high deviation of more than 50%", "outlier", "warning")

    if top and delta_abs != 0:
        share = abs(top[0].amount) / abs(delta_abs)
        if share > 0.8 and abs(delta_abs) > 10000:
            return AnomalyHint(
                "Single booking dominates (>80% of the deviation)",
                "unusual_single",
                "warning",
            )
        if share > 0.6 and abs(delta_abs) > 5000:
            return AnomalyHint(
                "Large single booking drives the result", "unusual_single", "info"
            )

    if abs(amount_prev) < 100 and abs(amount_curr) > 5000:
        return AnomalyHint(
            "New cost position, not present in the prior period", "trend_break", "info"
        )
    if abs(amount_curr) < 100 and abs(amount_prev) > 5000:
        return AnomalyHint(
            "Cost position dropped, not present in the current period",
            "trend_break",
            "info",
        )
    return None


def analyze_periods(
    prev: Sequence[Transaction],
    curr: Sequence[Transaction],
    config: Optional[AnalysisConfig] = None,
) -> PeriodComparison:
    """
    Compare a prior and a current transaction set.

    Parameters
    ----------
    prev, curr :
        Transactions of the prior and current period.
    config :
        Materiality thresholds, period names and top-N settings.

    Returns
    -------
    PeriodComparison
        Material deviations per account, per cost center and per
        account x cost center, plus meta and summary figures.
    """
    cfg = config or DEFAULT_CONFIG

    by_account = _account_deviations(prev, curr, cfg)
    by_cost_center = _cost_center_deviations(prev, curr, cfg)
    by_detail = _detail_deviations(prev, curr, cfg)

    total_prev = signed_sum(prev)
    total_curr = signed_sum(curr)

    logger.debug(
        "Period comparison: %d/%d bookings, %d accounts material",
        len(prev),
        len(curr),
        len(by_account),
    )

    return PeriodComparison(
        meta=PeriodMeta(
            period_prev=cfg.period_prev_name,
            period_curr=cfg.period_curr_name,
            total_prev=total_prev,
            total_curr=total_curr,
            bookings_prev=len(prev),
            bookings_curr=len(curr),
            materiality_abs=cfg.materiality_abs,
            materiality_pct=cfg.materiality_pct,
        ),
        summary=PeriodSummary(
            total_delta=total_curr - total_prev,
            revenue_prev=sum(t.amount for t in prev if t.amount > 0),
            revenue_curr=sum(t.amount for t in curr if t.amount > 0),
            expenses_prev=sum(t.amount for t in prev if t.amount < 0),
            expenses_curr=sum(t.amount for t in curr if t.amount < 0),
        ),
        by_account=by_account,
        by_cost_center=by_cost_center,
        by_detail=by_detail,
    )


def _account_deviations(
    prev: Sequence[Transaction], curr: Sequence[Transaction], cfg: AnalysisConfig
) -> list[AccountDeviation]:
    prev_by_account = group_by_account(prev)
    curr_by_account = group_by_account(curr)
    top_n = cfg.top_n_transactions

    out: list[AccountDeviation] = []
    for key in dict.fromkeys([*prev_by_account, *curr_by_account]):
        account, account_name = key
        prev_txs = prev_by_account.get(key, [])
        curr_txs = curr_by_account.get(key, [])
        amount_prev = signed_sum(prev_txs)
        amount_curr = signed_sum(curr_txs)
        delta = compute_delta(amount_prev, amount_curr)
        if not is_material(delta, cfg.materiality_abs, cfg.materiality_pct):
            continue

        top_curr = top_transactions(curr_txs, top_n)
        out.append(
            AccountDeviation(
                account=account,
                account_name=account_name,
                amount_prev=amount_prev,
                amount_curr=amount_curr,
                delta_abs=delta.abs,
                delta_pct=delta.pct,
                bookings_count_prev=len(prev_txs),
                bookings_count_curr=len(curr_txs),
                top_transactions=top_curr,
                top_transactions_prev=top_transactions(prev_txs, top_n),
                new_transactions=unmatched_transactions(curr_txs, prev_txs, top_n),
                missing_transactions=unmatched_transactions(prev_txs, curr_txs, top_n),
                comment=deviation_comment(
                    delta,
                    is_expense_account(account, cfg.expense_boundary),
                    top_curr[:COMMENT_DRIVERS],
                    cfg.currency,
                ),
                anomaly=detect_anomaly(
                    delta.abs, delta.pct, amount_prev, amount_curr, top_curr
                ),
            )
        )

    out.sort(key=lambda d: abs(d.delta_abs), reverse=True)
    return out


def _cost_center_deviations(
    prev: Sequence[Transaction], curr: Sequence[Transaction], cfg: AnalysisConfig
) -> list[CostCenterDeviation]:
    prev_by_cc = group_by_dimension(prev, "cost_center")
    curr_by_cc = group_by_dimension(curr, "cost_center")

    out: list[CostCenterDeviation] = []
    for cc in dict.fromkeys([*prev_by_cc, *curr_by_cc]):
        cc_prev = prev_by_cc.get(cc, [])
        cc_curr = curr_by_cc.get(cc, [])
        delta = compute_delta(signed_sum(cc_prev), signed_sum(cc_curr))
        if not is_material(delta, cfg.materiality_abs, cfg.materiality_pct):
            continue

        prev_acc = group_by_account(cc_prev)
        curr_acc = group_by_account(cc_curr)
        accounts = [
            AccountDelta(
                account=key[0],
                account_name=key[1],
                delta_abs=signed_sum(curr_acc.get(key, [])) - signed_sum(prev_acc.get(key, [])),
            )
            for key in dict.fromkeys([*prev_acc, *curr_acc])
        ]
        accounts.sort(key=lambda a: abs(a.delta_abs), reverse=True)

        out.append(
            CostCenterDeviation(
                cost_center=cc,
                amount_prev=signed_sum(cc_prev),
                amount_curr=signed_sum(cc_curr),
                delta_abs=delta.abs,
                delta_pct=delta.pct,
                top_accounts=accounts[:TOP_ACCOUNTS_PER_COST_CENTER],
            )
        )

    out.sort(key=lambda d: abs(d.delta_abs), reverse=True)
    return out


def _detail_key(tx: Transaction) -> tuple[int, str, str]:
    return (tx.account, tx.account_name, tx.cost_center or UNASSIGNED)


def _detail_deviations(
    prev: Sequence[Transaction], curr: Sequence[Transaction], cfg: AnalysisConfig
) -> list[DetailDeviation]:
    prev_by_key = group_by(prev, _detail_key)
    curr_by_key = group_by(curr, _detail_key)

    out: list[DetailDeviation] = []
    for key in dict.fromkeys([*prev_by_key, *curr_by_key]):
        account, account_name, cost_center = key
        curr_txs = curr_by_key.get(key, [])
        amount_prev = signed_sum(prev_by_key.get(key, []))
        amount_curr = signed_sum(curr_txs)
        delta = compute_delta(amount_prev, amount_curr)
        if not is_material(delta, cfg.materiality_abs, cfg.materiality_pct):
            continue

        out.append(
            DetailDeviation(
                account=account,
                account_name=account_name,
                cost_center=cost_center,
                amount_prev=amount_prev,
                amount_curr=amount_curr,
                delta_abs=delta.abs,
                delta_pct=delta.pct,
                comment=deviation_comment(
                    delta,
                    is_expense_account(account, cfg.expense_boundary),
                    top_transactions(curr_txs, COMMENT_DRIVERS),
                    cfg.currency,
                ),
            )
        )

    out.sort(key=lambda d: abs(d.delta_abs), reverse=True)
    return out[:DETAIL_LIMIT]
