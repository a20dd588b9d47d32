# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for Controlling Core.

The engines return frozen dataclasses. This module turns them into the
shapes consumed by the hosting layer:

- plain nested dicts / JSON text (``as_dict``, ``to_json``),
- flat pandas DataFrames for spreadsheet-style exports
  (``deviations_to_dataframe``, ``waterfall_to_dataframe``),
- compact currency strings used inside generated comments
  (``format_currency``).

None of these helpers renders anything; rendering belongs to the caller.
"""

import dataclasses
import json
from collections.abc import Sequence
from typing import Any

import pandas as pd


def format_currency(value: float, currency: str = "EUR") -> str:
    """Format an amount without decimals, e.g. 8000 -> '8,000 EUR'."""
    return f"{value:,.0f} {currency}"


def as_dict(result: Any) -> Any:
    """Convert a result dataclass (or a list of them) into plain data."""
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        return dataclasses.asdict(result)
    if isinstance(result, (list, tuple)):
        return [as_dict(item) for item in result]
    return result


def to_json(result: Any, indent: int = 2) -> str:
    """Serialize a result dataclass to JSON text."""
    return json.dumps(as_dict(result), ensure_ascii=False, indent=indent)


# Nested evidence lists are not part of the flat export.
_NESTED_FIELDS = {
    "top_transactions",
    "top_transactions_prev",
    "top_transactions_ist",
    "new_transactions",
    "missing_transactions",
    "top_accounts",
    "transactions",
    "children",
}


def deviations_to_dataframe(deviations: Sequence[Any]) -> pd.DataFrame:
    """
    Flatten a list of deviation dataclasses into a DataFrame.

    Works for AccountDeviation, CostCenterDeviation, DetailDeviation,
    TripleAccountDeviation, TripleCostCenterDeviation, BookingCluster and
    VarianceDriver. Nested evidence lists are dropped; an optional anomaly
    is flattened into 'anomaly_hint', 'anomaly_type' and 'anomaly_severity'.

    The input order is preserved (deviations arrive already ranked).
    """
    rows: list[dict[str, Any]] = []
    for dev in deviations:
        data = dataclasses.asdict(dev)
        anomaly = data.pop("anomaly", None)
        row = {k: v for k, v in data.items() if k not in _NESTED_FIELDS}
        if "anomaly" in {f.name for f in dataclasses.fields(dev)}:
            row["anomaly_hint"] = anomaly["hint"] if anomaly else None
            row["anomaly_type"] = anomaly["type"] if anomaly else None
            row["anomaly_severity"] = anomaly["severity"] if anomaly else None
        rows.append(row)
    return pd.DataFrame(rows)


def waterfall_to_dataframe(steps: Sequence[Any]) -> pd.DataFrame:
    """Convert waterfall steps into a DataFrame (key, name, value, base, is_subtotal)."""
    if not steps:
        return pd.DataFrame(columns=["key", "name", "value", "base", "is_subtotal"])
    return pd.DataFrame([dataclasses.asdict(s) for s in steps])
