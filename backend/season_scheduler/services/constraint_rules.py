"""
Constraint Evaluator

Each constraint is a rule object with a uniform contract:

    rule.evaluate(candidate, view) -> RuleResult(passed, cost)

Hard rules filter (passed=False disqualifies the candidate). Soft rules
always pass and contribute weight x violation magnitude. The solver only
iterates the rule lists, so adding a constraint never touches the solver
loop.

Hard rules only read the BookingView protocol, which lets the apply path
re-run the very same rules against live store counts.

Hard rule order (also the order used to name an unscheduled reason):
  field slot → field capacity → lights → season exclusion →
  team blackout → team overlap → team daily cap →
  umpire availability → umpire overlap → umpire daily cap
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import List, Optional, Sequence, Tuple

from season_scheduler.services.availability_index import AvailabilityIndex, BookingView, Interval
from season_scheduler.services.scheduler_schemas import (
    BackToBackPreference,
    Constraints,
    GameRequest,
    RequireLightsAfter,
    WeightedPreference,
)
from season_scheduler.utils.time_utils import local_hour, minutes_between, resolve_time_zone, utc_day, utc_day_range

REASON_NO_FIELD_SLOT = "no field slot available"
REASON_FIELD_CAPACITY = "field capacity conflict"
REASON_FIELD_LIGHTS = "field lights required"
REASON_SEASON_EXCLUSION = "season exclusion conflict"
REASON_TEAM_BLACKOUT = "team blackout conflict"
REASON_TEAM_OVERLAP = "team overlap conflict"
REASON_TEAM_DAILY_LIMIT = "team daily game limit exceeded"
REASON_UMPIRE_UNAVAILABLE = "umpire unavailable"
REASON_UMPIRE_OVERLAP = "umpire overlap conflict"
REASON_UMPIRE_DAILY_LIMIT = "umpire daily game limit exceeded"


@dataclass(frozen=True)
class Candidate:
    game: GameRequest
    field_id: str
    window: Interval
    umpire_ids: Tuple[str, ...] = ()

    @property
    def team_season_ids(self) -> Tuple[str, str]:
        return (self.game.home_team_season_id, self.game.visitor_team_season_id)


@dataclass(frozen=True)
class RuleResult:
    passed: bool
    cost: float = 0.0

    @property
    def violated(self) -> bool:
        return not self.passed or self.cost > 0


PASS = RuleResult(True)
FAIL = RuleResult(False)


class ConstraintRule:
    """Base class for all constraint rules."""

    name = "rule"
    reason = ""
    hard = True

    def evaluate(self, candidate: Candidate, view) -> RuleResult:
        raise NotImplementedError


# ============================================================================
# Hard rules: field
# ============================================================================


class FieldSlotRule(ConstraintRule):
    name = "respectFieldSlots"
    reason = REASON_NO_FIELD_SLOT

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        return PASS if view.within_field_slot(candidate.field_id, candidate.window) else FAIL


class FieldCapacityRule(ConstraintRule):
    """No more than maxParallelGames overlapping games on one field. Counts every league."""

    name = "noFieldOverlap"
    reason = REASON_FIELD_CAPACITY

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        booked = view.count_field_bookings(candidate.field_id, candidate.window, exclude_game_id=candidate.game.id)
        return PASS if booked < view.field_capacity(candidate.field_id) else FAIL


class LightsRule(ConstraintRule):
    name = "requireLightsAfter"
    reason = REASON_FIELD_LIGHTS

    def __init__(self, requirement: RequireLightsAfter):
        self.start_hour_local = requirement.start_hour_local
        self.zone = resolve_time_zone(requirement.time_zone)

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        if local_hour(candidate.window.start, self.zone) < self.start_hour_local:
            return PASS
        return PASS if view.field_has_lights(candidate.field_id) else FAIL


class SeasonExclusionRule(ConstraintRule):
    name = "seasonExclusions"
    reason = REASON_SEASON_EXCLUSION

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        return FAIL if view.season_excluded(candidate.window) else PASS


# ============================================================================
# Hard rules: teams
# ============================================================================


class TeamBlackoutRule(ConstraintRule):
    name = "respectTeamBlackouts"
    reason = REASON_TEAM_BLACKOUT

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        for team_season_id in candidate.team_season_ids:
            if view.team_blocked(team_season_id, candidate.window):
                return FAIL
        return PASS


class TeamOverlapRule(ConstraintRule):
    name = "noTeamOverlap"
    reason = REASON_TEAM_OVERLAP

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        for team_season_id in candidate.team_season_ids:
            booked = view.count_team_bookings(
                team_season_id,
                candidate.window,
                league_season_id=candidate.game.league_season_id,
                exclude_game_id=candidate.game.id,
            )
            if booked > 0:
                return FAIL
        return PASS


class TeamDailyLimitRule(ConstraintRule):
    name = "maxGamesPerTeamPerDay"
    reason = REASON_TEAM_DAILY_LIMIT

    def __init__(self, max_per_day: int):
        self.max_per_day = max_per_day

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        day_start, day_end = utc_day_range(candidate.window.start)
        for team_season_id in candidate.team_season_ids:
            existing = view.count_team_games_in_range(
                team_season_id,
                day_start,
                day_end,
                league_season_id=candidate.game.league_season_id,
                exclude_game_id=candidate.game.id,
            )
            if existing >= self.max_per_day:
                return FAIL
        return PASS


# ============================================================================
# Hard rules: umpires
# ============================================================================


class UmpireRule(ConstraintRule):
    """Umpire rules judge each umpire on its own; a candidate passes if every umpire does."""

    def allows(self, umpire_id: str, candidate: Candidate, view: BookingView) -> bool:
        raise NotImplementedError

    def evaluate(self, candidate: Candidate, view: BookingView) -> RuleResult:
        for umpire_id in candidate.umpire_ids:
            if not self.allows(umpire_id, candidate, view):
                return FAIL
        return PASS


class UmpireAvailabilityRule(UmpireRule):
    name = "respectUmpireAvailability"
    reason = REASON_UMPIRE_UNAVAILABLE

    def allows(self, umpire_id: str, candidate: Candidate, view: BookingView) -> bool:
        return view.umpire_available(umpire_id, candidate.window)


class UmpireOverlapRule(UmpireRule):
    name = "noUmpireOverlap"
    reason = REASON_UMPIRE_OVERLAP

    def allows(self, umpire_id: str, candidate: Candidate, view: BookingView) -> bool:
        booked = view.count_umpire_bookings(
            umpire_id,
            candidate.window,
            league_season_id=candidate.game.league_season_id,
            exclude_game_id=candidate.game.id,
        )
        return booked == 0


class UmpireDailyLimitRule(UmpireRule):
    """Effective cap is min(global maxGamesPerUmpirePerDay, umpire.maxGamesPerDay)."""

    name = "maxGamesPerUmpirePerDay"
    reason = REASON_UMPIRE_DAILY_LIMIT

    def __init__(self, global_max: Optional[int]):
        self.global_max = global_max

    def allows(self, umpire_id: str, candidate: Candidate, view: BookingView) -> bool:
        limits = [x for x in (self.global_max, view.umpire_max_games_per_day(umpire_id)) if x is not None]
        if not limits:
            return True
        day_start, day_end = utc_day_range(candidate.window.start)
        existing = view.count_umpire_games_in_range(
            umpire_id,
            day_start,
            day_end,
            league_season_id=candidate.game.league_season_id,
            exclude_game_id=candidate.game.id,
        )
        return existing < min(limits)


# ============================================================================
# Soft rules
# ============================================================================


class SoftRule(ConstraintRule):
    hard = False

    def __init__(self, preference: WeightedPreference):
        self.weight = preference.weight

    def magnitude(self, candidate: Candidate, index: AvailabilityIndex) -> float:
        raise NotImplementedError

    def evaluate(self, candidate: Candidate, index: AvailabilityIndex) -> RuleResult:
        return RuleResult(True, self.weight * self.magnitude(candidate, index))


class BackToBackRule(SoftRule):
    """One unit per existing team game that ends/starts within minRestMinutes of the candidate."""

    name = "avoidBackToBackGames"

    def __init__(self, preference: BackToBackPreference):
        super().__init__(preference)
        self.min_rest_minutes = preference.min_rest_minutes

    def magnitude(self, candidate: Candidate, index: AvailabilityIndex) -> float:
        violations = 0
        for team_season_id in candidate.team_season_ids:
            for booking in index.team_bookings.get(team_season_id, []):
                if booking.game_id == candidate.game.id:
                    continue
                gap = max(
                    minutes_between(booking.window.end, candidate.window.start),
                    minutes_between(candidate.window.end, booking.window.start),
                )
                if gap < self.min_rest_minutes:
                    violations += 1
        return violations


def _is_early(start: datetime, index: AvailabilityIndex) -> bool:
    day = utc_day(start)
    midpoint = index.day_midpoint(day) or datetime.combine(day, time(12, 0), tzinfo=timezone.utc)
    return start < midpoint


class EarlyLateBalanceRule(SoftRule):
    """One unit per team whose |early - late| game count grows with this candidate."""

    name = "balanceEarlyVsLate"

    def magnitude(self, candidate: Candidate, index: AvailabilityIndex) -> float:
        candidate_early = _is_early(candidate.window.start, index)
        violations = 0
        for team_season_id in candidate.team_season_ids:
            early = late = 0
            for booking in index.team_bookings.get(team_season_id, []):
                if _is_early(booking.window.start, index):
                    early += 1
                else:
                    late += 1
            before = abs(early - late)
            after = abs(early - late + (1 if candidate_early else -1))
            if after > before:
                violations += 1
        return violations


class SpreadAcrossDaysRule(SoftRule):
    """One unit per game either team already has on the candidate's day."""

    name = "spreadGamesAcrossDays"

    def magnitude(self, candidate: Candidate, index: AvailabilityIndex) -> float:
        day_start, day_end = utc_day_range(candidate.window.start)
        return sum(
            index.count_team_games_in_range(team_season_id, day_start, day_end, exclude_game_id=candidate.game.id)
            for team_season_id in candidate.team_season_ids
        )


# ============================================================================
# Rule sets
# ============================================================================


@dataclass
class RuleSet:
    hard: List[ConstraintRule] = field(default_factory=list)
    soft: List[SoftRule] = field(default_factory=list)

    @property
    def candidate_rules(self) -> List[ConstraintRule]:
        return [r for r in self.hard if not isinstance(r, UmpireRule)]

    @property
    def umpire_rules(self) -> List[UmpireRule]:
        return [r for r in self.hard if isinstance(r, UmpireRule)]


def build_rule_set(constraints: Constraints, include_field_slots: bool = True) -> RuleSet:
    """
    Build the enabled rules in evaluation order.

    include_field_slots=False drops the field-slot containment rule; the
    apply path uses it because field slots are a solve-time input that the
    schedule store does not keep.
    """
    hard = constraints.hard
    rules = RuleSet()

    if hard.respect_field_slots and include_field_slots:
        rules.hard.append(FieldSlotRule())
    if hard.no_field_overlap:
        rules.hard.append(FieldCapacityRule())
    if hard.require_lights_after and hard.require_lights_after.enabled:
        rules.hard.append(LightsRule(hard.require_lights_after))
    rules.hard.append(SeasonExclusionRule())
    if hard.respect_team_blackouts:
        rules.hard.append(TeamBlackoutRule())
    if hard.no_team_overlap:
        rules.hard.append(TeamOverlapRule())
    if hard.max_games_per_team_per_day is not None:
        rules.hard.append(TeamDailyLimitRule(hard.max_games_per_team_per_day))
    if hard.respect_umpire_availability:
        rules.hard.append(UmpireAvailabilityRule())
    if hard.no_umpire_overlap:
        rules.hard.append(UmpireOverlapRule())
    rules.hard.append(UmpireDailyLimitRule(hard.max_games_per_umpire_per_day))

    soft = constraints.soft
    if soft.avoid_back_to_back_games and soft.avoid_back_to_back_games.enabled:
        rules.soft.append(BackToBackRule(soft.avoid_back_to_back_games))
    if soft.balance_early_vs_late and soft.balance_early_vs_late.enabled:
        rules.soft.append(EarlyLateBalanceRule(soft.balance_early_vs_late))
    if soft.spread_games_across_days and soft.spread_games_across_days.enabled:
        rules.soft.append(SpreadAcrossDaysRule(soft.spread_games_across_days))

    return rules


def first_failed_rule(
    candidate: Candidate, rules: Sequence[ConstraintRule], view: BookingView
) -> Optional[ConstraintRule]:
    """Run hard rules in order; return the first one that rejects the candidate."""
    for rule in rules:
        if not rule.evaluate(candidate, view).passed:
            return rule
    return None


@dataclass(frozen=True)
class SoftScore:
    cost: float
    violations: int


def score_candidate(candidate: Candidate, soft_rules: Sequence[SoftRule], index: AvailabilityIndex) -> SoftScore:
    """Total soft cost = sum of weight x magnitude over enabled soft rules."""
    cost = 0.0
    violations = 0
    for rule in soft_rules:
        result = rule.evaluate(candidate, index)
        cost += result.cost
        if result.violated:
            violations += 1
    return SoftScore(cost=cost, violations=violations)
