# Controlling Core - Deviation & root-cause analytics for controlling teams
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Materiality filter and status classifier.

Materiality
-----------
A deviation between a reference amount (prior year or plan) and a current
amount is *material* when it clears both legs of a dual gate:

    |delta_abs| >= abs_threshold  AND  |delta_pct| >= pct_threshold

with
    delta_abs = current - reference
    delta_pct = delta_abs / |reference| * 100   (0 when reference is 0)

Thresholds of 0 or below are valid and simply let every deviation through.

Status
------
A percentage deviation is classified into four states against a yellow and
a red threshold:

    on_track    |pct| <= yellow
    over_plan   yellow < |pct| <= red, unfavorable direction
    under_plan  yellow < |pct| <= red, favorable direction
    critical    |pct| > red

For expense accounts an increase is unfavorable; for revenue accounts a
decrease is unfavorable.
"""

import math
from dataclasses import dataclass
from typing import Literal

Status = Literal["on_track", "over_plan", "under_plan", "critical"]
TrafficLight = Literal["green", "yellow", "red"]


@dataclass(frozen=True)
class Delta:
    """Absolute and percentage deviation of a current vs. a reference amount."""

    abs: float
    pct: float


def safe_pct(numerator: float, denominator: float) -> float:
    """Return numerator / |denominator| * 100, or 0.0 when undefined.

    The result is 0.0 whenever the denominator is 0 or the quotient is not
    a finite number.
    """
    if denominator == 0:
        return 0.0
    value = numerator / abs(denominator) * 100
    if not math.isfinite(value):
        return 0.0
    return value


def share_pct(part: float, whole: float) -> float:
    """Return part / whole * 100 for a positive whole, otherwise 0.0.

    Used for percentage-of-revenue figures, where a non-positive revenue
    makes the ratio meaningless.
    """
    if whole <= 0:
        return 0.0
    value = part / whole * 100
    if not math.isfinite(value):
        return 0.0
    return value


def compute_delta(reference: float, current: float) -> Delta:
    """Compute the absolute and percentage deviation of current vs. reference."""
    delta_abs = current - reference
    return Delta(abs=delta_abs, pct=safe_pct(delta_abs, reference))


def is_material(delta: Delta, abs_threshold: float, pct_threshold: float) -> bool:
    """Apply the dual materiality gate (absolute AND percentage)."""
    return abs(delta.abs) >= abs_threshold and abs(delta.pct) >= pct_threshold


def is_unfavorable(delta_pct: float, is_expense: bool) -> bool:
    """Return True if the deviation direction hurts the result."""
    return delta_pct > 0 if is_expense else delta_pct < 0


def classify_status(
    delta_pct: float,
    is_expense: bool,
    yellow_pct: float,
    red_pct: float,
) -> Status:
    """Classify a percentage deviation into the 4-state status."""
    magnitude = abs(delta_pct)
    if magnitude <= yellow_pct:
        return "on_track"
    if magnitude <= red_pct:
        return "over_plan" if is_unfavorable(delta_pct, is_expense) else "under_plan"
    return "critical"


def traffic_light(status: Status) -> TrafficLight:
    """Collapse the 4-state status into a green/yellow/red bucket."""
    if status == "on_track":
        return "green"
    if status == "critical":
        return "red"
    return "yellow"
