"""
ProblemSpec Validator

Checks a ProblemSpec before any solving happens. Shape and primitive
ranges are already enforced by the pydantic models; this module covers
what pydantic cannot see:

- Non-empty games / field slots, season start <= end
- Duplicate ids (teamSeasonId, field, umpire, game, slot)
- Referential integrity (teams, leagues, fields, umpires)
- Every time window satisfies start < end
- requireLightsAfter names a real time zone

The first failure raises SpecValidationError naming the offending field.
No partial result is ever produced.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from season_scheduler.services.errors import SpecValidationError
from season_scheduler.services.scheduler_schemas import AvailabilityWindow, ProblemSpec
from season_scheduler.utils.time_utils import resolve_time_zone


def _first_duplicate(values: Iterable[str]) -> Optional[str]:
    seen = set()
    for value in values:
        if value in seen:
            return value
        seen.add(value)
    return None


def _require_window(start: datetime, end: datetime, path: str, label: str) -> None:
    if start >= end:
        raise SpecValidationError(f"{label} startTime must be before endTime", field=path)


def _check_windows(windows: List[AvailabilityWindow], path: str, label: str) -> None:
    for i, window in enumerate(windows):
        _require_window(window.start_time, window.end_time, f"{path}[{i}].startTime", label)


def validate_problem_spec(spec: ProblemSpec) -> None:
    """
    Validate a ProblemSpec.

    Raises:
        SpecValidationError: on the first offending field
    """
    if spec.season.start_date > spec.season.end_date:
        raise SpecValidationError("Season startDate must be on or before endDate", field="season.startDate")

    if not spec.games:
        raise SpecValidationError("At least one game is required", field="games")

    if not spec.field_slots:
        raise SpecValidationError("At least one field slot is required", field="fieldSlots")

    # ── Duplicates ──
    duplicate = _first_duplicate(t.team_season_id for t in spec.teams)
    if duplicate:
        raise SpecValidationError(f"Duplicate teamSeasonId value: {duplicate}", field="teams")

    duplicate = _first_duplicate(f.id for f in spec.fields)
    if duplicate:
        raise SpecValidationError(f"Duplicate fieldId value: {duplicate}", field="fields")

    duplicate = _first_duplicate(u.id for u in spec.umpires)
    if duplicate:
        raise SpecValidationError(f"Duplicate umpireId value: {duplicate}", field="umpires")

    duplicate = _first_duplicate(g.id for g in spec.games)
    if duplicate:
        raise SpecValidationError(f"Duplicate game id: {duplicate}", field="games")

    duplicate = _first_duplicate(s.id for s in spec.field_slots)
    if duplicate:
        raise SpecValidationError(f"Duplicate field slot id: {duplicate}", field="fieldSlots")

    team_season_ids = {t.team_season_id for t in spec.teams}
    league_ids = {t.league.id for t in spec.teams}
    field_ids = {f.id for f in spec.fields}
    umpire_ids = {u.id for u in spec.umpires}

    # ── Games ──
    for i, game in enumerate(spec.games):
        path = f"games[{i}]"
        if game.league_season_id not in league_ids:
            raise SpecValidationError(
                f"Unknown leagueSeasonId for game {game.id}: {game.league_season_id}",
                field=f"{path}.leagueSeasonId",
            )
        if game.home_team_season_id not in team_season_ids:
            raise SpecValidationError(
                f"Unknown homeTeamSeasonId for game {game.id}: {game.home_team_season_id}",
                field=f"{path}.homeTeamSeasonId",
            )
        if game.visitor_team_season_id not in team_season_ids:
            raise SpecValidationError(
                f"Unknown visitorTeamSeasonId for game {game.id}: {game.visitor_team_season_id}",
                field=f"{path}.visitorTeamSeasonId",
            )
        if game.home_team_season_id == game.visitor_team_season_id:
            raise SpecValidationError(
                f"Game {game.id} must reference two different teams", field=f"{path}.visitorTeamSeasonId"
            )
        for preferred_field_id in game.preferred_field_ids or []:
            if preferred_field_id not in field_ids:
                raise SpecValidationError(
                    f"Unknown preferredFieldId for game {game.id}: {preferred_field_id}",
                    field=f"{path}.preferredFieldIds",
                )
        if game.earliest_start and game.latest_end and game.earliest_start >= game.latest_end:
            raise SpecValidationError(
                f"Game {game.id} earliestStart must be before latestEnd", field=f"{path}.earliestStart"
            )

    # ── Field slots ──
    for i, slot in enumerate(spec.field_slots):
        if slot.field_id not in field_ids:
            raise SpecValidationError(
                f"Unknown fieldId for field slot {slot.id}: {slot.field_id}", field=f"fieldSlots[{i}].fieldId"
            )
        _require_window(slot.start_time, slot.end_time, f"fieldSlots[{i}].startTime", f"Field slot {slot.id}")

    # ── Availability / blackout / exclusion references ──
    for i, blackout in enumerate(spec.team_blackouts):
        if blackout.team_season_id not in team_season_ids:
            raise SpecValidationError(
                f"Unknown teamSeasonId for blackout: {blackout.team_season_id}",
                field=f"teamBlackouts[{i}].teamSeasonId",
            )
    _check_windows(spec.team_blackouts, "teamBlackouts", "Team blackout")

    for i, availability in enumerate(spec.umpire_availability):
        if availability.umpire_id not in umpire_ids:
            raise SpecValidationError(
                f"Unknown umpireId for umpire availability: {availability.umpire_id}",
                field=f"umpireAvailability[{i}].umpireId",
            )
    _check_windows(spec.umpire_availability, "umpireAvailability", "Umpire availability")

    _check_windows(spec.season_exclusions, "seasonExclusions", "Season exclusion")

    for i, exclusion in enumerate(spec.team_exclusions):
        if exclusion.team_season_id not in team_season_ids:
            raise SpecValidationError(
                f"Unknown teamSeasonId for team exclusion: {exclusion.team_season_id}",
                field=f"teamExclusions[{i}].teamSeasonId",
            )
    _check_windows(spec.team_exclusions, "teamExclusions", "Team exclusion")

    for i, exclusion in enumerate(spec.umpire_exclusions):
        if exclusion.umpire_id not in umpire_ids:
            raise SpecValidationError(
                f"Unknown umpireId for umpire exclusion: {exclusion.umpire_id}",
                field=f"umpireExclusions[{i}].umpireId",
            )
    _check_windows(spec.umpire_exclusions, "umpireExclusions", "Umpire exclusion")

    # ── Constraints ──
    lights = spec.constraints.hard.require_lights_after
    if lights and lights.enabled:
        try:
            resolve_time_zone(lights.time_zone)
        except ValueError:
            raise SpecValidationError(
                "Invalid timeZone for requireLightsAfter constraint",
                field="constraints.hard.requireLightsAfter.timeZone",
            )
