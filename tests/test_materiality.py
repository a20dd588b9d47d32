import math

import pytest

from controlling_core.materiality import (
    Delta,
    classify_status,
    compute_delta,
    is_material,
    safe_pct,
    share_pct,
    traffic_light,
)


def test_compute_delta_uses_absolute_reference() -> None:
    """The percentage is relative to |reference|, so signs survive negative bases."""
    d = compute_delta(-20000.0, -30000.0)
    assert d.abs == pytest.approx(-10000.0)
    assert d.pct == pytest.approx(-50.0)


def test_compute_delta_zero_reference_gives_zero_pct() -> None:
    d = compute_delta(0.0, 12345.0)
    assert d.abs == pytest.approx(12345.0)
    assert d.pct == 0.0


@pytest.mark.parametrize(
    "num, den",
    [(1.0, 0.0), (0.0, 0.0), (-5.0, 0.0), (math.inf, 1.0), (1.0, -0.0)],
)
def test_safe_pct_never_returns_nan_or_inf(num: float, den: float) -> None:
    value = safe_pct(num, den)
    assert math.isfinite(value)
    assert value == 0.0


def test_share_pct_non_positive_whole() -> None:
    assert share_pct(50.0, 0.0) == 0.0
    assert share_pct(50.0, -100.0) == 0.0
    assert share_pct(50.0, 200.0) == pytest.approx(25.0)


@pytest.mark.parametrize(
    "delta_abs, delta_pct, expected",
    [
        (4000.0, 20.0, False),  # fails the absolute leg
        (10000.0, 2.0, False),  # fails the percentage leg
        (6000.0, 6.0, True),
        (-6000.0, -6.0, True),
        (5000.0, 5.0, True),  # thresholds are inclusive
    ],
)
def test_materiality_gate_is_and_of_both_legs(
    delta_abs: float, delta_pct: float, expected: bool
) -> None:
    assert is_material(Delta(delta_abs, delta_pct), 5000.0, 5.0) is expected


def test_zero_or_negative_thresholds_report_everything() -> None:
    assert is_material(Delta(0.0, 0.0), 0.0, 0.0) is True
    assert is_material(Delta(1.0, 0.1), -1.0, -1.0) is True


@pytest.mark.parametrize("abs_t, pct_t", [(1000, 1), (5000, 5), (20000, 50)])
def test_raising_thresholds_never_increases_count(abs_t: float, pct_t: float) -> None:
    deltas = [Delta(a, p) for a, p in [(500, 1), (6000, 6), (25000, 60), (-9000, -12)]]
    base = sum(is_material(d, abs_t, pct_t) for d in deltas)
    raised_abs = sum(is_material(d, abs_t * 2, pct_t) for d in deltas)
    raised_pct = sum(is_material(d, abs_t, pct_t * 2) for d in deltas)
    assert raised_abs <= base
    assert raised_pct <= base


@pytest.mark.parametrize(
    "pct, is_expense, expected",
    [
        (3.0, True, "on_track"),
        (-5.0, False, "on_track"),
        (8.0, True, "over_plan"),  # cost increase is unfavorable
        (-8.0, True, "under_plan"),
        (-8.0, False, "over_plan"),  # revenue decrease is unfavorable
        (8.0, False, "under_plan"),
        (36.4, True, "critical"),
        (-36.4, False, "critical"),
        (10.0, True, "over_plan"),  # red threshold is inclusive
    ],
)
def test_classify_status_polarity(pct: float, is_expense: bool, expected: str) -> None:
    assert classify_status(pct, is_expense, 5.0, 10.0) == expected


def test_traffic_light_mapping() -> None:
    assert traffic_light("on_track") == "green"
    assert traffic_light("over_plan") == "yellow"
    assert traffic_light("under_plan") == "yellow"
    assert traffic_light("critical") == "red"
