import json
from datetime import date

from controlling_core.config import AnalysisConfig
from controlling_core.contribution import calculate_contribution_margin
from controlling_core.transactions import PlanEntry, Transaction
from controlling_core.triple import analyze_triple
from controlling_core.variance import analyze_periods
from controlling_core.views import (
    as_dict,
    deviations_to_dataframe,
    format_currency,
    to_json,
    waterfall_to_dataframe,
)


def _tx(account: int, amount: float, **kw) -> Transaction:
    kw.setdefault("posting_date", date(2025, 2, 1))
    return Transaction(account=account, amount=amount, account_name=f"A{account}", **kw)


def test_format_currency() -> None:
    assert format_currency(8000) == "8,000 EUR"
    assert format_currency(-1500.4, "CHF") == "-1,500 CHF"
    assert format_currency(0.0) == "0 EUR"


def test_to_json_round_trips_nested_results() -> None:
    result = analyze_triple(
        [_tx(6300, 20_000.0)], [PlanEntry(6300, "A6300", 22_000.0)], [_tx(6300, 30_000.0)]
    )

    data = json.loads(to_json(result))

    assert data["by_account"][0]["status"] == "critical"
    assert data["traffic_light"]["red"] == 1
    assert data["by_account"][0]["top_transactions_ist"][0]["date"] == "2025-02-01"
    assert as_dict([result.meta])[0]["period_ist"] == "Ist"


def test_deviations_to_dataframe_flattens_anomaly() -> None:
    result = analyze_periods(
        [_tx(6300, 10_000.0)], [_tx(6300, 30_000.0)], AnalysisConfig(materiality_abs=0)
    )

    df = deviations_to_dataframe(result.by_account)

    assert len(df) == 1
    assert "top_transactions" not in df.columns
    assert "new_transactions" not in df.columns
    assert df.loc[0, "anomaly_type"] == "outlier"
    assert df.loc[0, "anomaly_severity"] == "critical"
    assert df.loc[0, "delta_abs"] == 20_000.0


def test_deviations_to_dataframe_without_anomaly_field() -> None:
    result = analyze_triple([_tx(6300, 10_000.0, cost_center="ADM")], [], [_tx(6300, 30_000.0, cost_center="ADM")])

    df = deviations_to_dataframe(result.by_cost_center)

    assert list(df["cost_center"]) == ["ADM"]
    assert "top_accounts" not in df.columns
    assert "anomaly_type" not in df.columns


def test_waterfall_to_dataframe() -> None:
    steps = calculate_contribution_margin([_tx(8400, 1000.0), _tx(3400, -400.0)]).waterfall

    df = waterfall_to_dataframe(steps)

    assert list(df.columns) == ["key", "name", "value", "base", "is_subtotal"]
    assert len(df) == 11
    assert df.loc[1, "base"] == 1000.0

    empty = waterfall_to_dataframe([])
    assert empty.empty
    assert list(empty.columns) == ["key", "name", "value", "base", "is_subtotal"]
