# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Controlling Core
----------------

A Python computation core for financial controlling: it explains how and why
booked figures deviate between comparison periods and sources.

Main capabilities:
- account classification into the six cost types of a contribution margin
  cascade (SKR03-style ranges, pluggable rule tables),
- multi-dimensional aggregation (account, cost center, profit center,
  counterparty),
- dual materiality gate and 4-state status classification,
- two-period deviation analysis (prior vs. current) with anomaly hints,
- triple analysis (prior year vs. plan vs. actual) with traffic lights,
- multi-level contribution margin (DB I to DB V) with waterfall series,
  drill-down rows and rule-based insights,
- booking-level root-cause clustering with dimensional drivers and an
  optional, externally generated narrative.

The core consumes already-normalized transactions and returns plain,
serializable dataclasses. It never touches storage, UI or network transport;
those belong to the hosting layer.

Usage:
    python -m controlling_core.cli --help
"""

__all__ = [
    "accounts",
    "aggregation",
    "config",
    "contribution",
    "io",
    "materiality",
    "narrative",
    "periods",
    "root_cause",
    "transactions",
    "triple",
    "variance",
    "views",
]

__version__ = "0.2.0"
