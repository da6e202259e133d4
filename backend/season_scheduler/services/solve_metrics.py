"""
Solve metrics.

Purely derived from a finished solve; never fed back into the search.
objectiveValue is the aggregate soft cost of the accepted assignments
(lower is better).
"""

from typing import Sequence

from season_scheduler.services.scheduler_schemas import SolveMetrics, SolveStatus


def build_metrics(total_games: int, scheduled_games: int, unscheduled_games: int, costs: Sequence[float]) -> SolveMetrics:
    if scheduled_games + unscheduled_games != total_games:
        raise ValueError(
            f"Accounting mismatch: scheduled={scheduled_games} unscheduled={unscheduled_games} total={total_games}"
        )
    return SolveMetrics(
        total_games=total_games,
        scheduled_games=scheduled_games,
        unscheduled_games=unscheduled_games,
        objective_value=round(sum(costs), 6),
    )


def derive_status(metrics: SolveMetrics, timed_out: bool = False) -> SolveStatus:
    """
    completed  - nothing unscheduled
    partial    - some scheduled, or the search was cut short by the timeout
    infeasible - games requested but none scheduled

    "failed" is never produced here; internal errors raise instead.
    """
    if timed_out:
        return "partial"
    if metrics.unscheduled_games == 0:
        return "completed"
    if metrics.scheduled_games > 0:
        return "partial"
    return "infeasible"


def summarize(metrics: SolveMetrics) -> dict:
    success_rate = (
        round(metrics.scheduled_games / metrics.total_games * 100, 1) if metrics.total_games > 0 else 0
    )
    return {
        "total_games": metrics.total_games,
        "scheduled_games": metrics.scheduled_games,
        "unscheduled_games": metrics.unscheduled_games,
        "objective_value": metrics.objective_value,
        "success_rate": success_rate,
    }
