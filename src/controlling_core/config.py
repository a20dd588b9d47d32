# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Controlling Core.

This module is responsible for:
- defining the analysis configuration with its defaults,
- loading overrides from a TOML file,
- exposing a typed, immutable dataclass used by every engine.

Every engine accepts an optional AnalysisConfig; omitting it means "use the
defaults". Threshold values of 0 or below are valid and are never rejected.
"""

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import tomllib

from .accounts import (
    COST_CLASSIFICATION,
    DEFAULT_EXPENSE_BOUNDARY,
    ClassificationRule,
    load_classification_rules,
)
from .aggregation import DIMENSIONS


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Caller-supplied analysis configuration.

    Attributes
    ----------
    materiality_abs :
        Absolute materiality threshold (currency units).
    materiality_pct :
        Percentage materiality threshold.
    threshold_yellow_pct / threshold_red_pct :
        Status thresholds for on_track / over_plan / under_plan / critical.
    expense_boundary :
        Accounts >= this number are treated as expense accounts.
    dimension :
        Dimension used by the contribution margin roll-up.
    top_n_transactions :
        Number of representative transactions per deviation.
    drilldown_top_n :
        Number of accounts listed under each contribution cost row.
    period_*_name :
        Display names of the compared periods / sources.
    one_time_share :
        Root-cause: minimum share of the total variance for an unmatched
        single booking to count as a one-time item.
    timing_window_days :
        Root-cause: distance (days) to a period boundary within which a
        booking counts as shifted in time.
    max_clusters / max_drivers :
        Root-cause output caps.
    currency :
        Currency code used in generated comments.
    classification_rules :
        Ordered account classification table.
    """

    materiality_abs: float = 5000.0
    materiality_pct: float = 5.0
    threshold_yellow_pct: float = 5.0
    threshold_red_pct: float = 10.0
    expense_boundary: int = DEFAULT_EXPENSE_BOUNDARY
    dimension: str = "total"
    top_n_transactions: int = 5
    drilldown_top_n: int = 15
    period_prev_name: str = "Vorjahr"
    period_curr_name: str = "Aktuelles Jahr"
    period_vj_name: str = "Vorjahr"
    period_plan_name: str = "Plan"
    period_ist_name: str = "Ist"
    one_time_share: float = 0.25
    timing_window_days: int = 10
    max_clusters: int = 10
    max_drivers: int = 10
    currency: str = "EUR"
    classification_rules: tuple[ClassificationRule, ...] = COST_CLASSIFICATION

    def with_overrides(self, **overrides: Any) -> "AnalysisConfig":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **overrides)


DEFAULT_CONFIG = AnalysisConfig()


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _float(section: Mapping[str, Any], key: str, default: float) -> float:
    try:
        return float(section.get(key, default))
    except (TypeError, ValueError):
        return default


def _int(section: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(section.get(key, default))
    except (TypeError, ValueError):
        return default


def _str(section: Mapping[str, Any], key: str, default: str) -> str:
    value = section.get(key)
    if value is None or value == "":
        return default
    return str(value)


def load_analysis_config(config_path: Optional[str] = None) -> AnalysisConfig:
    """
    Load the analysis configuration from a TOML file.

    Expected (all optional) sections
    --------------------------------
    [materiality]   abs, pct
    [status]        yellow_pct, red_pct
    [accounts]      expense_boundary, classification_rules (CSV path)
    [contribution]  dimension, drilldown_top_n
    [deviations]    top_n_transactions
    [periods]       prev_name, curr_name, vj_name, plan_name, ist_name
    [root_cause]    one_time_share, timing_window_days, max_clusters,
                    max_drivers
    [display]       currency

    Values that cannot be converted fall back to the defaults. An unknown
    dimension falls back to 'total'. Relative file paths are resolved
    against the directory of the TOML file.

    Parameters
    ----------
    config_path :
        Path to the TOML file. If omitted, 'controlling_config.toml' in the
        current directory is used.

    Returns
    -------
    AnalysisConfig
        Parsed configuration.

    Raises
    ------
    FileNotFoundError
        If the file (or a referenced rule file) does not exist.
    ValueError
        If the TOML or the referenced rule file is malformed.
    """
    if config_path is None:
        config_file = Path("controlling_config.toml").resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent
    d = DEFAULT_CONFIG

    materiality = _section(raw, "materiality")
    status = _section(raw, "status")
    accounts = _section(raw, "accounts")
    contribution = _section(raw, "contribution")
    deviations = _section(raw, "deviations")
    periods = _section(raw, "periods")
    root_cause = _section(raw, "root_cause")
    display = _section(raw, "display")

    # Optional alternative chart of accounts
    rules = d.classification_rules
    rules_raw = accounts.get("classification_rules")
    if rules_raw:
        rules_path = (base_dir / str(rules_raw)).resolve()
        if not rules_path.is_file():
            raise FileNotFoundError(f"Classification rule file not found: {rules_path}")
        rules = load_classification_rules(rules_path)

    dimension = _str(contribution, "dimension", d.dimension)
    if dimension not in DIMENSIONS:
        dimension = d.dimension

    return AnalysisConfig(
        materiality_abs=_float(materiality, "abs", d.materiality_abs),
        materiality_pct=_float(materiality, "pct", d.materiality_pct),
        threshold_yellow_pct=_float(status, "yellow_pct", d.threshold_yellow_pct),
        threshold_red_pct=_float(status, "red_pct", d.threshold_red_pct),
        expense_boundary=_int(accounts, "expense_boundary", d.expense_boundary),
        dimension=dimension,
        top_n_transactions=_int(deviations, "top_n_transactions", d.top_n_transactions),
        drilldown_top_n=_int(contribution, "drilldown_top_n", d.drilldown_top_n),
        period_prev_name=_str(periods, "prev_name", d.period_prev_name),
        period_curr_name=_str(periods, "curr_name", d.period_curr_name),
        period_vj_name=_str(periods, "vj_name", d.period_vj_name),
        period_plan_name=_str(periods, "plan_name", d.period_plan_name),
        period_ist_name=_str(periods, "ist_name", d.period_ist_name),
        one_time_share=_float(root_cause, "one_time_share", d.one_time_share),
        timing_window_days=_int(root_cause, "timing_window_days", d.timing_window_days),
        max_clusters=_int(root_cause, "max_clusters", d.max_clusters),
        max_drivers=_int(root_cause, "max_drivers", d.max_drivers),
        currency=_str(display, "currency", d.currency),
        classification_rules=rules,
    )
