from datetime import date

import pytest

from controlling_core.aggregation import (
    UNASSIGNED,
    aggregate_by_dimension,
    compare_by_dimension,
    contribution_by_dimension,
    cost_totals,
    dimension_key,
    group_by_dimension,
    impact_sum,
    signed_sum,
)
from controlling_core.transactions import Transaction


def _tx(amount: float, account: int = 6300, **kw) -> Transaction:
    kw.setdefault("posting_date", date(2025, 3, 15))
    return Transaction(amount=amount, account=account, **kw)


def test_dimension_key_unassigned_bucket() -> None:
    tx = _tx(-100.0)
    assert dimension_key(tx, "cost_center") == UNASSIGNED
    assert dimension_key(tx, "counterparty") == UNASSIGNED
    assert dimension_key(tx, "month") == "2025-03"
    assert dimension_key(tx, "total") == "total"
    assert dimension_key(_tx(-1.0, text="Hotel stay in Berlin"), "text_pattern") == "hotel stay berlin"


def test_dimension_key_counterparty_prefers_vendor() -> None:
    assert dimension_key(_tx(-1.0, vendor="ACME", customer="Bob"), "counterparty") == "ACME"
    assert dimension_key(_tx(1.0, customer="Bob"), "counterparty") == "Bob"


def test_dimension_key_unknown_dimension() -> None:
    with pytest.raises(ValueError):
        dimension_key(_tx(1.0), "region")


def test_group_by_dimension_preserves_first_seen_order() -> None:
    txs = [
        _tx(-1.0, cost_center="B"),
        _tx(-2.0, cost_center="A"),
        _tx(-3.0),
        _tx(-4.0, cost_center="B"),
    ]
    groups = group_by_dimension(txs, "cost_center")
    assert list(groups) == ["B", "A", UNASSIGNED]
    assert [t.amount for t in groups["B"]] == [-1.0, -4.0]


def test_signed_and_impact_sums() -> None:
    txs = [_tx(-100.0), _tx(40.0), _tx(-0.004)]
    assert signed_sum(txs) == pytest.approx(-60.004)
    assert impact_sum(txs) == pytest.approx(140.0)


def test_aggregate_by_dimension_sorted_by_impact() -> None:
    txs = [
        _tx(-100.0, cost_center="A"),
        _tx(-50.0, cost_center="B"),
        _tx(80.0, cost_center="B"),
    ]
    df = aggregate_by_dimension(txs, "cost_center")

    assert list(df.columns) == ["key", "amount", "impact", "count"]
    assert list(df["key"]) == ["B", "A"]
    assert df.loc[0, "amount"] == pytest.approx(30.0)
    assert df.loc[0, "impact"] == pytest.approx(130.0)
    assert df.loc[0, "count"] == 2


def test_aggregate_by_dimension_empty() -> None:
    df = aggregate_by_dimension([], "account")
    assert df.empty
    assert list(df.columns) == ["key", "amount", "impact", "count"]


def test_compare_by_dimension_outer_join() -> None:
    prev = [_tx(-1000.0, vendor="Old"), _tx(-500.0, vendor="Both")]
    curr = [_tx(-700.0, vendor="Both"), _tx(-3000.0, vendor="New")]

    df = compare_by_dimension(prev, curr, "vendor")
    rows = {r.key: r for r in df.itertuples(index=False)}

    assert list(df["key"]) == ["New", "Old", "Both"]
    assert rows["New"].prev_amount == 0.0
    assert rows["New"].contribution == pytest.approx(-3000.0)
    assert rows["Old"].curr_count == 0
    assert rows["Old"].contribution == pytest.approx(1000.0)
    assert rows["Both"].contribution == pytest.approx(-200.0)


def test_compare_by_dimension_both_empty() -> None:
    df = compare_by_dimension([], [], "month")
    assert df.empty
    assert "contribution" in df.columns


def test_cost_totals_unsigned_magnitudes() -> None:
    """Cost groups accumulate absolute amounts regardless of the booking sign."""
    txs = [
        _tx(1000.0, account=8400),
        _tx(-400.0, account=3400),
        _tx(100.0, account=3400),  # credit note on material, still a magnitude
    ]
    totals = cost_totals(txs)
    assert totals.revenue == pytest.approx(1000.0)
    assert totals.variable_costs == pytest.approx(500.0)
    assert totals.db1 == pytest.approx(500.0)


def test_contribution_by_dimension_ranked_by_revenue() -> None:
    txs = [
        _tx(1000.0, account=8400, cost_center="Small"),
        _tx(-200.0, account=3400, cost_center="Small"),
        _tx(5000.0, account=8400, cost_center="Big"),
        _tx(-4000.0, account=3400, cost_center="Big"),
        _tx(-300.0, account=6300),
    ]
    rows = contribution_by_dimension(txs, "cost_center")

    assert [r.key for r in rows] == ["Big", "Small", UNASSIGNED]
    assert rows[0].db1_pct == pytest.approx(20.0)
    assert rows[1].db1_pct == pytest.approx(80.0)
    # No revenue: percentages stay at 0 instead of dividing by zero
    assert rows[2].revenue == 0.0
    assert rows[2].db4 == pytest.approx(-300.0)
    assert rows[2].db4_pct == 0.0


def test_contribution_by_dimension_total_and_empty() -> None:
    assert contribution_by_dimension([], "cost_center") == []
    rows = contribution_by_dimension([_tx(100.0, account=8400)], "total")
    assert len(rows) == 1
    assert rows[0].label == "Total"
