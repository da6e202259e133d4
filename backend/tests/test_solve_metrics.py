"""Tests for solve metrics and status derivation."""

import pytest

from season_scheduler.services.solve_metrics import build_metrics, derive_status, summarize


def test_status_derivation():
    assert derive_status(build_metrics(2, 2, 0, [0, 1])) == "completed"
    assert derive_status(build_metrics(2, 1, 1, [0])) == "partial"
    assert derive_status(build_metrics(2, 0, 2, [])) == "infeasible"
    assert derive_status(build_metrics(2, 2, 0, []), timed_out=True) == "partial"


def test_objective_value_is_sum_of_costs():
    metrics = build_metrics(3, 3, 0, [0.5, 1.25, 0])

    assert metrics.objective_value == 1.75
    assert summarize(metrics)["success_rate"] == 100.0


def test_accounting_mismatch_raises():
    with pytest.raises(ValueError):
        build_metrics(3, 1, 1, [])
