"""
Solver Engine: deterministic greedy game placement

Games are placed one at a time in a fixed order (earliestStart ascending,
then id). For each game:

1. Enumerate (field, window) candidates from the free field intervals,
   clipped to [earliestStart, latestEnd], chronologically across fields
   and capped at MAX_CANDIDATES_PER_GAME.
2. Drop candidates failing a hard rule. Umpires are filtered rule by rule
   from the umpire pool; sets of requiredUmpires are enumerated in
   lexicographic order, capped at MAX_UMPIRE_COMBINATIONS.
3. Score survivors with the soft rules and take the best by
   (cost, start, fieldId, umpire set). minimize_conflicts ranks by the
   number of violated soft rules before cost.
4. Reserve the winner in the Availability Index, or record the game as
   unscheduled with the reason of the rule that removed the last
   surviving candidates.

Single pass, no backtracking. solve() never writes anywhere.
"""

import heapq
import logging
import math
import os
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from itertools import combinations, islice
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from season_scheduler.services.availability_index import AvailabilityIndex, ExistingBooking, Interval
from season_scheduler.services.constraint_rules import (
    REASON_NO_FIELD_SLOT,
    REASON_UMPIRE_UNAVAILABLE,
    Candidate,
    ConstraintRule,
    RuleSet,
    SoftScore,
    UmpireRule,
    build_rule_set,
    first_failed_rule,
    score_candidate,
)
from season_scheduler.services.problem_spec_validator import validate_problem_spec
from season_scheduler.services.run_identity import resolve_run_id
from season_scheduler.services.scheduler_schemas import (
    Assignment,
    FieldSpec,
    GameRequest,
    ProblemSpec,
    SeasonConfig,
    SolveResult,
    UnscheduledReason,
)
from season_scheduler.services.solve_metrics import build_metrics, derive_status, summarize
from season_scheduler.utils.ids import id_set_sort_key, id_sort_key
from season_scheduler.utils.time_utils import is_weekend

logger = logging.getLogger(__name__)

MAX_CANDIDATES_PER_GAME = int(os.getenv("SCHEDULER_CANDIDATE_CAP", "200"))
MAX_UMPIRE_COMBINATIONS = int(os.getenv("SCHEDULER_UMPIRE_COMBINATION_CAP", "16"))
DEFAULT_GAME_MINUTES = 60

REASON_TIMEOUT = "solver timeout"


# ============================================================================
# Ordering and durations
# ============================================================================


def get_game_sort_key(game: GameRequest) -> Tuple:
    """
    Order: earliestStart ascending (games without one first) → id.

    Independent of payload order.
    """
    has_start = game.earliest_start is not None
    start_ts = game.earliest_start.timestamp() if has_start else 0.0
    return (has_start, start_ts, id_sort_key(game.id))


def resolve_game_duration(game: GameRequest, season: SeasonConfig, start: datetime) -> int:
    """
    durationMinutes, else weekend/weekday minutes for the start's UTC
    weekday, else defaultMinutes, else 60.
    """
    if game.duration_minutes:
        return game.duration_minutes
    durations = season.game_durations
    if durations is None:
        return DEFAULT_GAME_MINUTES
    if is_weekend(start) and durations.weekend_minutes:
        return durations.weekend_minutes
    if not is_weekend(start) and durations.weekday_minutes:
        return durations.weekday_minutes
    return durations.default_minutes or DEFAULT_GAME_MINUTES


def iter_field_windows(
    game: GameRequest, field: FieldSpec, free: Sequence[Interval], season: SeasonConfig
) -> Iterator[Interval]:
    """
    Yield game windows inside each free interval, stepping by the field's
    start increment from the interval start, clipped to the game window.
    """
    increment = timedelta(minutes=field.properties.start_increment_minutes)
    earliest = game.earliest_start
    latest = game.latest_end

    for interval in free:
        start = interval.start
        if earliest is not None and earliest > start:
            steps = math.ceil((earliest - start) / increment)
            start = start + steps * increment
        stop = interval.end if latest is None else min(interval.end, latest)
        while start < stop:
            end = start + timedelta(minutes=resolve_game_duration(game, season, start))
            if end <= interval.end and (latest is None or end <= latest):
                yield Interval(start, end)
            start += increment


def _field_candidates(
    game: GameRequest, field: FieldSpec, free: Sequence[Interval], season: SeasonConfig
) -> Iterator[Tuple[datetime, Tuple, Candidate]]:
    field_key = id_sort_key(field.id)
    for window in iter_field_windows(game, field, free, season):
        yield window.start, field_key, Candidate(game=game, field_id=field.id, window=window)


def enumerate_base_candidates(
    game: GameRequest,
    fields: Sequence[FieldSpec],
    index: AvailabilityIndex,
    season: SeasonConfig,
    cap: int,
) -> List[Candidate]:
    """
    (field, window) candidates ordered by (start, fieldId), first `cap` only.

    Uses preferredFieldIds when given, otherwise every field.
    """
    if game.preferred_field_ids:
        preferred = set(game.preferred_field_ids)
        fields = [f for f in fields if f.id in preferred]

    streams = [_field_candidates(game, field, index.candidate_intervals(field.id), season) for field in fields]

    merged = heapq.merge(*streams, key=lambda item: (item[0], item[1]))
    return [item[2] for item in islice(merged, cap)]


# ============================================================================
# Engine
# ============================================================================


@dataclass
class Placement:
    assignment: Optional[Assignment] = None
    cost: float = 0.0
    reason: Optional[str] = None


class _Rejections:
    """Tracks which rule removed the last surviving candidates."""

    def __init__(self, hard_rules: Sequence[ConstraintRule]):
        self.position = {id(rule): i for i, rule in enumerate(hard_rules)}
        self.deepest_reason: Optional[str] = None
        self.deepest_position = -1

    def record(self, rule: ConstraintRule, reason: Optional[str] = None) -> None:
        position = self.position[id(rule)]
        if position > self.deepest_position:
            self.deepest_reason = reason or rule.reason
            self.deepest_position = position

    def reason(self) -> str:
        return self.deepest_reason or REASON_NO_FIELD_SLOT


class SolverEngine:
    """Bounded deterministic greedy solver. One instance can serve many calls."""

    def __init__(
        self,
        candidate_cap: int = MAX_CANDIDATES_PER_GAME,
        umpire_combination_cap: int = MAX_UMPIRE_COMBINATIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.candidate_cap = candidate_cap
        self.umpire_combination_cap = umpire_combination_cap
        self.clock = clock

    def solve(
        self,
        spec: ProblemSpec,
        existing_bookings: Iterable[ExistingBooking] = (),
        account_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> SolveResult:
        """
        Solve a ProblemSpec against a snapshot of committed bookings.

        Raises:
            SpecValidationError: invalid spec (nothing is solved)
        """
        started = self.clock()
        deadline = started + timeout_ms / 1000 if timeout_ms is not None else None

        validate_problem_spec(spec)
        run_id = resolve_run_id(spec, account_id=account_id, idempotency_key=idempotency_key)

        index = AvailabilityIndex.build(spec, existing_bookings)
        rules = build_rule_set(spec.constraints)
        fields = sorted(spec.fields, key=lambda f: id_sort_key(f.id))
        umpire_pool = sorted((u.id for u in spec.umpires), key=id_sort_key)
        minimize_conflicts = spec.objectives.primary == "minimize_conflicts"

        logger.info(
            "Solve %s started: games=%d fields=%d umpires=%d slots=%d",
            run_id, len(spec.games), len(spec.fields), len(spec.umpires), len(spec.field_slots),
        )

        assignments: List[Assignment] = []
        unscheduled: List[UnscheduledReason] = []
        costs: List[float] = []
        timed_out = False

        for game in sorted(spec.games, key=get_game_sort_key):
            if deadline is not None and self.clock() >= deadline:
                if not timed_out:
                    logger.warning("Solve %s hit timeout after %d games", run_id, len(assignments) + len(unscheduled))
                timed_out = True
                unscheduled.append(UnscheduledReason(game_id=game.id, reason=REASON_TIMEOUT))
                continue

            placement = self._place_game(game, spec.season, fields, umpire_pool, index, rules, minimize_conflicts)
            if placement.assignment is None:
                unscheduled.append(UnscheduledReason(game_id=game.id, reason=placement.reason))
                continue

            chosen = placement.assignment
            index.reserve(game, chosen.field_id, Interval(chosen.start_time, chosen.end_time), chosen.umpire_ids)
            assignments.append(chosen)
            costs.append(placement.cost)

        metrics = build_metrics(len(spec.games), len(assignments), len(unscheduled), costs)
        status = derive_status(metrics, timed_out=timed_out)
        duration_ms = int((self.clock() - started) * 1000)
        logger.info("Solve %s finished: status=%s %s duration_ms=%d", run_id, status, summarize(metrics), duration_ms)

        return SolveResult(
            run_id=run_id,
            status=status,
            metrics=metrics,
            assignments=assignments,
            unscheduled=unscheduled,
        )

    def _place_game(
        self,
        game: GameRequest,
        season: SeasonConfig,
        fields: Sequence[FieldSpec],
        umpire_pool: Sequence[str],
        index: AvailabilityIndex,
        rules: RuleSet,
        minimize_conflicts: bool,
    ) -> Placement:
        candidates = enumerate_base_candidates(game, fields, index, season, self.candidate_cap)
        if not candidates:
            return Placement(reason=REASON_NO_FIELD_SLOT)

        required = game.required_umpires or 0
        candidate_rules = rules.candidate_rules
        umpire_rules = rules.umpire_rules
        rejections = _Rejections(rules.hard)

        best: Optional[Candidate] = None
        best_score: Optional[SoftScore] = None
        best_key: Optional[Tuple] = None

        for candidate in candidates:
            failed = first_failed_rule(candidate, candidate_rules, index)
            if failed is not None:
                rejections.record(failed)
                continue

            eligible, failed_umpire_rule = self._eligible_umpires(
                candidate, umpire_pool, umpire_rules, required, index
            )
            if failed_umpire_rule is not None:
                if len(umpire_pool) < required:
                    rejections.record(failed_umpire_rule, REASON_UMPIRE_UNAVAILABLE)
                else:
                    rejections.record(failed_umpire_rule)
                continue

            for umpire_ids in islice(combinations(eligible, required), self.umpire_combination_cap):
                full = replace(candidate, umpire_ids=tuple(umpire_ids))
                score = score_candidate(full, rules.soft, index)
                key = self._rank_key(full, score, minimize_conflicts)
                if best_key is None or key < best_key:
                    best, best_score, best_key = full, score, key

        if best is None:
            return Placement(reason=rejections.reason())

        return Placement(
            assignment=Assignment(
                game_id=game.id,
                field_id=best.field_id,
                start_time=best.window.start,
                end_time=best.window.end,
                umpire_ids=list(best.umpire_ids),
            ),
            cost=best_score.cost,
        )

    def _eligible_umpires(
        self,
        candidate: Candidate,
        umpire_pool: Sequence[str],
        umpire_rules: Sequence[UmpireRule],
        required: int,
        index: AvailabilityIndex,
    ) -> Tuple[List[str], Optional[UmpireRule]]:
        """
        Filter the pool through each umpire rule in order. The first rule
        that leaves fewer than `required` umpires is returned as the failure.
        """
        if required == 0:
            return [], None
        if len(umpire_pool) < required:
            return [], umpire_rules[0]

        survivors = list(umpire_pool)
        for rule in umpire_rules:
            survivors = [u for u in survivors if rule.allows(u, candidate, index)]
            if len(survivors) < required:
                return [], rule
        return survivors, None

    @staticmethod
    def _rank_key(candidate: Candidate, score: SoftScore, minimize_conflicts: bool) -> Tuple:
        tie_break = (
            candidate.window.start,
            id_sort_key(candidate.field_id),
            id_set_sort_key(candidate.umpire_ids),
        )
        if minimize_conflicts:
            return (score.violations, score.cost) + tie_break
        return (score.cost,) + tie_break


def solve(
    spec: ProblemSpec,
    existing_bookings: Iterable[ExistingBooking] = (),
    account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> SolveResult:
    """Module-level convenience wrapper around SolverEngine().solve()."""
    return SolverEngine().solve(
        spec,
        existing_bookings=existing_bookings,
        account_id=account_id,
        idempotency_key=idempotency_key,
        timeout_ms=timeout_ms,
    )
