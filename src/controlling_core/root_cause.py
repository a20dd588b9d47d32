# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Root-cause clustering for a single account.

Given the prior and current transactions of one account, the engine
explains the account's variance in two independent views:

1. Booking clusters
   ----------------
   Transactions are grouped by a text signature (the first three
   lowercase words longer than three characters). A signature found on
   one side only is *unmatched*; a signature found on both sides is
   *matched*.

   - unmatched, current only           -> new_cost      (+ current sum)
   - unmatched, prior only             -> removed_cost  (- prior sum)
   - unmatched single large booking    -> one_time
     (|amount| >= one_time_share * |variance|)
   - matched, disjoint counterparties  -> vendor_change (current - prior)
   - matched, the extra bookings sit
     close to a period boundary        -> timing_shift  (current - prior)
     (the prior side is measured against the period one year earlier)
   - matched, otherwise                -> volume_change and price_change,
     using the booking count as the apparent quantity:

         volume = (n_curr - n_prev) * avg_prev
         price  = (avg_curr - avg_prev) * n_curr

     Components below 0.5 % of the group's change are dropped.

   Clusters with a zero amount are omitted. Clusters are ranked by absolute
   amount and approximate, but need not equal, the account's variance.

2. Dimensional drivers
   -------------------
   The account's variance split by cost center, profit center,
   counterparty, month and text pattern (see
   aggregation.compare_by_dimension). The three largest contributions per
   dimension compete for the global top list.

Confidence
----------
    coverage   = 1 - |variance - sum(amounts)| / max(|variance|, sum(|amounts|))
    support    = min(1, n / 10)        n = bookings of the account
    confidence = coverage * (0.6 + 0.4 * support)

rounded to two decimals, 0 without bookings and always within [0, 1].
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal, Optional

from .aggregation import (
    compare_by_dimension,
    group_by,
    signed_sum,
    text_signature,
)
from .config import DEFAULT_CONFIG, AnalysisConfig
from .periods import Period, calendar_years_of, previous_year
from .transactions import TopTransaction, Transaction, top_transactions

logger = logging.getLogger(__name__)

ClusterType = Literal[
    "new_cost",
    "removed_cost",
    "volume_change",
    "price_change",
    "vendor_change",
    "timing_shift",
    "one_time",
]

DRIVER_DIMENSIONS: tuple[str, ...] = (
    "cost_center",
    "profit_center",
    "counterparty",
    "month",
    "text_pattern",
)
DRIVERS_PER_DIMENSION = 3
TRANSACTIONS_PER_CLUSTER = 5
MIN_COMPONENT_SHARE = 0.005
FULL_SUPPORT_BOOKINGS = 10


@dataclass(frozen=True)
class BookingCluster:
    label: str
    cluster_type: ClusterType
    total_amount: float
    contribution_pct: float
    description: str
    transactions: list[TopTransaction] = field(default_factory=list)


@dataclass(frozen=True)
class VarianceDriver:
    dimension: str
    key: str
    prev_amount: float
    curr_amount: float
    contribution: float
    contribution_pct: float


@dataclass(frozen=True)
class RootCauseResult:
    account: int
    account_name: str
    total_prev: float
    total_curr: float
    total_variance: float
    clusters: list[BookingCluster]
    drivers: list[VarianceDriver]
    confidence: float
    narrative: Optional[str] = None


def share_of_variance(amount: float, variance: float) -> float:
    """Signed share of the variance in percent, 0 when the variance is 0."""
    if variance == 0:
        return 0.0
    return amount / variance * 100


def compute_confidence(
    total_variance: float, clusters: Sequence[BookingCluster], n_transactions: int
) -> float:
    """Confidence score in [0, 1] (see module docstring)."""
    if n_transactions <= 0:
        return 0.0

    explained = sum(c.total_amount for c in clusters)
    scale = max(abs(total_variance), sum(abs(c.total_amount) for c in clusters))
    if scale == 0:
        coverage = 1.0
    else:
        coverage = max(0.0, 1.0 - abs(total_variance - explained) / scale)

    support = min(1.0, n_transactions / FULL_SUPPORT_BOOKINGS)
    return round(coverage * (0.6 + 0.4 * support), 2)


def analyze_root_cause(
    prev: Sequence[Transaction],
    curr: Sequence[Transaction],
    account: int,
    config: Optional[AnalysisConfig] = None,
    period: Optional[Period] = None,
) -> RootCauseResult:
    """
    Explain the variance of one account.

    Parameters
    ----------
    prev, curr :
        Prior and current transactions. Only bookings of ``account`` are
        considered; the sequences may contain other accounts.
    account :
        Account to analyse.
    config :
        Root-cause parameters (one_time_share, timing_window_days,
        max_clusters, max_drivers).
    period :
        Current period. Its start and end are the boundaries used to detect
        timing shifts; the prior side is measured against the same period
        one year earlier. When omitted, the calendar years of the current
        bookings are used.

    Returns
    -------
    RootCauseResult
        Complete numeric result; ``narrative`` is always None here (see
        narrative.explain_root_cause).
    """
    cfg = config or DEFAULT_CONFIG

    acc_prev = [t for t in prev if t.account == account]
    acc_curr = [t for t in curr if t.account == account]
    account_name = next(
        (t.account_name for t in [*acc_curr, *acc_prev] if t.account_name),
        f"Account {account}",
    )

    total_prev = signed_sum(acc_prev)
    total_curr = signed_sum(acc_curr)
    variance = total_curr - total_prev

    span = period or calendar_years_of(curr)
    clusters = build_clusters(acc_prev, acc_curr, variance, cfg, span)
    drivers = build_drivers(acc_prev, acc_curr, variance, cfg.max_drivers)
    confidence = compute_confidence(variance, clusters, len(acc_prev) + len(acc_curr))

    logger.debug(
        "Root cause for account %s: variance=%.2f, %d clusters, %d drivers, confidence=%.2f",
        account,
        variance,
        len(clusters),
        len(drivers),
        confidence,
    )

    return RootCauseResult(
        account=account,
        account_name=account_name,
        total_prev=total_prev,
        total_curr=total_curr,
        total_variance=variance,
        clusters=clusters,
        drivers=drivers,
        confidence=confidence,
    )


def analyze_root_causes(
    prev: Sequence[Transaction],
    curr: Sequence[Transaction],
    accounts: Iterable[int],
    config: Optional[AnalysisConfig] = None,
    period: Optional[Period] = None,
) -> list[RootCauseResult]:
    """Run ``analyze_root_cause`` for several accounts, in the given order."""
    return [analyze_root_cause(prev, curr, a, config, period) for a in accounts]


# ---------------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------------


def _count_near_boundary(
    transactions: Iterable[Transaction], period: Period, window: int
) -> int:
    return sum(1 for t in transactions if period.days_to_boundary(t.posting_date) <= window)


def _counterparties(transactions: Iterable[Transaction]) -> set[str]:
    return {t.counterparty for t in transactions if t.counterparty}


def _cluster(
    signature: str,
    cluster_type: ClusterType,
    amount: float,
    variance: float,
    description: str,
    evidence: Sequence[Transaction],
) -> BookingCluster:
    return BookingCluster(
        label=signature,
        cluster_type=cluster_type,
        total_amount=round(amount, 2),
        contribution_pct=share_of_variance(amount, variance),
        description=description,
        transactions=top_transactions(evidence, TRANSACTIONS_PER_CLUSTER),
    )


def _unmatched_cluster(
    signature: str,
    group: Sequence[Transaction],
    is_current: bool,
    variance: float,
    cfg: AnalysisConfig,
) -> BookingCluster:
    amount = signed_sum(group) if is_current else -signed_sum(group)

    if (
        len(group) == 1
        and variance != 0
        and abs(group[0].amount) >= cfg.one_time_share * abs(variance)
    ):
        when = "current" if is_current else "prior"
        text = group[0].text or signature
        return _cluster(
            signature,
            "one_time",
            amount,
            variance,
            f'One-time booking in the {when} period: "{text}"',
            group,
        )

    if is_current:
        description = f'New bookings "{signature}" ({len(group)} bookings)'
        return _cluster(signature, "new_cost", amount, variance, description, group)

    description = f'Bookings "{signature}" no longer present ({len(group)} bookings)'
    return _cluster(signature, "removed_cost", amount, variance, description, group)


def _matched_clusters(
    signature: str,
    prev_group: Sequence[Transaction],
    curr_group: Sequence[Transaction],
    variance: float,
    cfg: AnalysisConfig,
    period: Optional[Period],
) -> list[BookingCluster]:
    n_prev, n_curr = len(prev_group), len(curr_group)
    sum_prev, sum_curr = signed_sum(prev_group), signed_sum(curr_group)
    change = sum_curr - sum_prev

    prev_parties = _counterparties(prev_group)
    curr_parties = _counterparties(curr_group)
    if prev_parties and curr_parties and prev_parties.isdisjoint(curr_parties):
        description = (
            f'Counterparty change for "{signature}": '
            f"{', '.join(sorted(prev_parties))} -> {', '.join(sorted(curr_parties))}"
        )
        return [
            _cluster(signature, "vendor_change", change, variance, description, curr_group)
        ]

    count_diff = n_curr - n_prev
    if count_diff != 0 and period is not None:
        window = cfg.timing_window_days
        near_curr = _count_near_boundary(curr_group, period, window)
        near_prev = _count_near_boundary(prev_group, previous_year(period), window)
        # The count difference must consist of bookings at the boundary
        excess = near_curr - near_prev if count_diff > 0 else near_prev - near_curr
        larger = curr_group if count_diff > 0 else prev_group
        if excess >= abs(count_diff):
            description = (
                f'Timing shift for "{signature}": {abs(count_diff)} booking(s) '
                "posted close to the period boundary"
            )
            return [
                _cluster(signature, "timing_shift", change, variance, description, larger)
            ]

    avg_prev = sum_prev / n_prev
    avg_curr = sum_curr / n_curr
    volume = count_diff * avg_prev
    price = (avg_curr - avg_prev) * n_curr
    floor = MIN_COMPONENT_SHARE * abs(change)

    out: list[BookingCluster] = []
    if volume != 0 and abs(volume) >= floor:
        out.append(
            _cluster(
                signature,
                "volume_change",
                volume,
                variance,
                f'Volume change for "{signature}": {n_prev} -> {n_curr} bookings',
                curr_group,
            )
        )
    if price != 0 and abs(price) >= floor:
        out.append(
            _cluster(
                signature,
                "price_change",
                price,
                variance,
                f'Price change for "{signature}": average {avg_prev:,.2f} -> {avg_curr:,.2f}',
                curr_group,
            )
        )
    return out


def build_clusters(
    acc_prev: Sequence[Transaction],
    acc_curr: Sequence[Transaction],
    variance: float,
    cfg: AnalysisConfig,
    period: Optional[Period] = None,
) -> list[BookingCluster]:
    """Decompose one account's variance into ranked booking clusters."""
    prev_groups = group_by(acc_prev, lambda t: text_signature(t.text))
    curr_groups = group_by(acc_curr, lambda t: text_signature(t.text))

    clusters: list[BookingCluster] = []
    for signature in dict.fromkeys([*curr_groups, *prev_groups]):
        prev_group = prev_groups.get(signature, [])
        curr_group = curr_groups.get(signature, [])
        if not prev_group:
            clusters.append(_unmatched_cluster(signature, curr_group, True, variance, cfg))
        elif not curr_group:
            clusters.append(_unmatched_cluster(signature, prev_group, False, variance, cfg))
        else:
            clusters.extend(
                _matched_clusters(signature, prev_group, curr_group, variance, cfg, period)
            )

    clusters = [c for c in clusters if c.total_amount != 0]
    clusters.sort(key=lambda c: abs(c.total_amount), reverse=True)
    return clusters[: max(0, cfg.max_clusters)]


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------


def build_drivers(
    acc_prev: Sequence[Transaction],
    acc_curr: Sequence[Transaction],
    variance: float,
    max_drivers: int = 10,
) -> list[VarianceDriver]:
    """Top dimensional contributions to the account's variance."""
    candidates: list[VarianceDriver] = []
    for dimension in DRIVER_DIMENSIONS:
        table = compare_by_dimension(acc_prev, acc_curr, dimension)
        for row in table.head(DRIVERS_PER_DIMENSION).itertuples(index=False):
            contribution = float(row.contribution)
            candidates.append(
                VarianceDriver(
                    dimension=dimension,
                    key=str(row.key),
                    prev_amount=float(row.prev_amount),
                    curr_amount=float(row.curr_amount),
                    contribution=contribution,
                    contribution_pct=share_of_variance(contribution, variance),
                )
            )

    candidates.sort(key=lambda d: abs(d.contribution), reverse=True)
    return candidates[: max(0, max_drivers)]
