"""
Scheduler request/response models.

These are the wire types for solve and apply. JSON uses camelCase keys,
attributes are snake_case. Every datetime is normalized to aware UTC on
the way in so hashing and day bucketing never depend on the caller's
offset.
"""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, StringConstraints, model_validator
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel

from season_scheduler.utils.time_utils import to_utc

MAX_UMPIRES_PER_GAME = 4
DEFAULT_START_INCREMENT_MINUTES = 30

SchedulerId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
UtcDatetime = Annotated[datetime, AfterValidator(to_utc)]
HhMm = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]

SolveStatus = Literal["completed", "partial", "infeasible", "failed"]
ApplyStatus = Literal["applied", "partial", "failed"]
ApplyOutcomeKind = Literal["applied", "rejected", "already_applied"]
PrimaryObjective = Literal["maximize_scheduled_games", "minimize_conflicts"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# ProblemSpec inputs
# ============================================================================


class GameDurations(CamelModel):
    default_minutes: Optional[int] = PydanticField(default=None, gt=0)
    weekend_minutes: Optional[int] = PydanticField(default=None, gt=0)
    weekday_minutes: Optional[int] = PydanticField(default=None, gt=0)


class SeasonConfig(CamelModel):
    id: SchedulerId
    name: SchedulerId
    start_date: date
    end_date: date
    game_durations: Optional[GameDurations] = None


class LeagueRef(CamelModel):
    id: SchedulerId
    name: Optional[str] = None


class TeamSpec(CamelModel):
    id: SchedulerId
    team_season_id: SchedulerId
    division_season_id: Optional[SchedulerId] = None
    league: LeagueRef


class FieldProperties(CamelModel):
    has_lights: bool = False
    max_parallel_games: int = PydanticField(default=1, gt=0)
    start_increment_minutes: int = PydanticField(default=DEFAULT_START_INCREMENT_MINUTES, gt=0)


class FieldSpec(CamelModel):
    id: SchedulerId
    name: SchedulerId
    properties: FieldProperties = PydanticField(default_factory=FieldProperties)


class UmpireSpec(CamelModel):
    id: SchedulerId
    name: Optional[str] = None
    max_games_per_day: Optional[int] = PydanticField(default=None, gt=0)


class GameRequest(CamelModel):
    id: SchedulerId
    league_season_id: SchedulerId
    home_team_season_id: SchedulerId
    visitor_team_season_id: SchedulerId
    required_umpires: Optional[int] = PydanticField(default=None, ge=0, le=MAX_UMPIRES_PER_GAME)
    preferred_field_ids: Optional[List[SchedulerId]] = None
    earliest_start: Optional[UtcDatetime] = None
    latest_end: Optional[UtcDatetime] = None
    duration_minutes: Optional[int] = PydanticField(default=None, gt=0)


class FieldSlot(CamelModel):
    id: SchedulerId
    field_id: SchedulerId
    start_time: UtcDatetime
    end_time: UtcDatetime


class AvailabilityWindow(CamelModel):
    start_time: UtcDatetime
    end_time: UtcDatetime


class UmpireAvailability(AvailabilityWindow):
    umpire_id: SchedulerId


class TeamBlackout(AvailabilityWindow):
    team_season_id: SchedulerId


class SeasonExclusion(AvailabilityWindow):
    id: SchedulerId
    season_id: Optional[SchedulerId] = None
    note: Optional[str] = PydanticField(default=None, max_length=255)
    enabled: bool = True


class TeamExclusion(SeasonExclusion):
    team_season_id: SchedulerId


class UmpireExclusion(SeasonExclusion):
    umpire_id: SchedulerId


class RequireLightsAfter(CamelModel):
    enabled: bool
    start_hour_local: int = PydanticField(ge=0, le=23)
    time_zone: str = "UTC"


class HardConstraints(CamelModel):
    respect_team_blackouts: bool = True
    respect_umpire_availability: bool = True
    respect_field_slots: bool = True
    max_games_per_team_per_day: Optional[int] = PydanticField(default=None, gt=0)
    max_games_per_umpire_per_day: Optional[int] = PydanticField(default=None, gt=0)
    no_team_overlap: bool = True
    no_umpire_overlap: bool = True
    no_field_overlap: bool = True
    require_lights_after: Optional[RequireLightsAfter] = None


class WeightedPreference(CamelModel):
    enabled: bool = True
    weight: float = PydanticField(default=1, ge=0)


class BackToBackPreference(WeightedPreference):
    min_rest_minutes: int = PydanticField(ge=0)


class SoftConstraints(CamelModel):
    avoid_back_to_back_games: Optional[BackToBackPreference] = None
    balance_early_vs_late: Optional[WeightedPreference] = None
    spread_games_across_days: Optional[WeightedPreference] = None


class Constraints(CamelModel):
    hard: HardConstraints = PydanticField(default_factory=HardConstraints)
    soft: SoftConstraints = PydanticField(default_factory=SoftConstraints)


class Objectives(CamelModel):
    primary: PrimaryObjective = "maximize_scheduled_games"
    secondary: List[SchedulerId] = PydanticField(default_factory=list)


class ProblemSpec(CamelModel):
    season: SeasonConfig
    teams: List[TeamSpec]
    fields: List[FieldSpec]
    umpires: List[UmpireSpec] = PydanticField(default_factory=list)
    games: List[GameRequest]
    field_slots: List[FieldSlot]
    umpire_availability: List[UmpireAvailability] = PydanticField(default_factory=list)
    team_blackouts: List[TeamBlackout] = PydanticField(default_factory=list)
    season_exclusions: List[SeasonExclusion] = PydanticField(default_factory=list)
    team_exclusions: List[TeamExclusion] = PydanticField(default_factory=list)
    umpire_exclusions: List[UmpireExclusion] = PydanticField(default_factory=list)
    constraints: Constraints = PydanticField(default_factory=Constraints)
    objectives: Objectives = PydanticField(default_factory=Objectives)
    run_id: Optional[SchedulerId] = None


# ============================================================================
# Solve outputs
# ============================================================================


class Assignment(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    game_id: SchedulerId
    field_id: SchedulerId
    start_time: UtcDatetime
    end_time: UtcDatetime
    umpire_ids: List[SchedulerId] = PydanticField(default_factory=list)


class UnscheduledReason(CamelModel):
    game_id: SchedulerId
    reason: str


class SolveMetrics(CamelModel):
    total_games: int
    scheduled_games: int
    unscheduled_games: int
    objective_value: float = 0


class SolveResult(CamelModel):
    run_id: str
    status: SolveStatus
    metrics: SolveMetrics
    assignments: List[Assignment]
    unscheduled: List[UnscheduledReason]


# ============================================================================
# Apply
# ============================================================================


class ApplyRequest(CamelModel):
    run_id: SchedulerId
    season_id: Optional[SchedulerId] = None
    assignments: List[Assignment] = PydanticField(min_length=1)
    all_or_nothing: bool = False
    mode: Literal["all", "subset"] = "all"
    game_ids: Optional[List[SchedulerId]] = None
    constraints: Constraints = PydanticField(default_factory=Constraints)

    @model_validator(mode="after")
    def validate_subset(self):
        if self.mode == "subset" and not self.game_ids:
            raise ValueError("gameIds is required when mode is subset")
        return self


class ApplyOutcome(CamelModel):
    game_id: str
    outcome: ApplyOutcomeKind
    reason: Optional[str] = None


class RejectedAssignment(CamelModel):
    game_id: str
    reason: str


class ApplyResult(CamelModel):
    run_id: str
    status: ApplyStatus
    outcomes: List[ApplyOutcome]
    applied_game_ids: List[str]
    already_applied_game_ids: List[str]
    rejected: List[RejectedAssignment]


# ============================================================================
# Field slot preview
# ============================================================================


class FieldAvailabilityRule(CamelModel):
    id: SchedulerId
    field_id: SchedulerId
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week_mask: int = PydanticField(ge=1, le=127)
    start_time_local: HhMm
    end_time_local: HhMm
    enabled: bool = True

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must be on or before endDate")
        if self.start_time_local >= self.end_time_local:
            raise ValueError("startTimeLocal must be before endTimeLocal")
        return self


class FieldExclusionDate(CamelModel):
    field_id: SchedulerId
    exclusion_date: date = PydanticField(alias="date")
    note: Optional[str] = PydanticField(default=None, max_length=255)
    enabled: bool = True


class FieldSlotPreviewRequest(CamelModel):
    time_zone: SchedulerId
    start_date: date
    end_date: date
    rules: List[FieldAvailabilityRule]
    fields: List[FieldSpec] = PydanticField(default_factory=list)
    exclusion_dates: List[FieldExclusionDate] = PydanticField(default_factory=list)
    season_exclusions: List[SeasonExclusion] = PydanticField(default_factory=list)

    @model_validator(mode="after")
    def validate_window(self):
        if self.start_date > self.end_date:
            raise ValueError("startDate must be on or before endDate")
        return self


class FieldSlotPreviewResponse(CamelModel):
    field_slots: List[FieldSlot]
