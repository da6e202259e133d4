"""
Tests for the Apply Transactor.

- allOrNothing with one drifted assignment → nothing persisted
- Idempotent re-apply reports already_applied and writes no duplicates
- Default mode applies independently and reports partial progress
- Subset mode and per-assignment rejection reasons
"""

from typing import List, Optional

import pytest
from sqlmodel import Session, func, select

from season_scheduler.models import AppliedAssignment, ApplyRun, LeagueGame
from season_scheduler.services.apply_transactor import (
    REASON_BATCH_ABORTED,
    REASON_FIELD_NOT_FOUND,
    REASON_GAME_NOT_FOUND,
    REASON_INVALID_WINDOW,
    REASON_MARKER_MISMATCH,
    REASON_NO_ASSIGNMENT,
    REASON_TOO_MANY_UMPIRES,
    apply_assignments,
)
from season_scheduler.services.errors import ConflictError
from season_scheduler.services.scheduler_schemas import ApplyRequest
from season_scheduler.utils.sql import scalar_int
from season_scheduler.utils.time_utils import from_storage
from tests.factories import add_exclusion, add_field, add_game, iso, utc

START = utc(2026, 4, 6, 18)
END = utc(2026, 4, 6, 19, 30)


def assignment(game_id: str, field_id: str = "F1", start=START, end=END, umpires: Optional[List[str]] = None) -> dict:
    return {
        "gameId": game_id,
        "fieldId": field_id,
        "startTime": iso(start),
        "endTime": iso(end),
        "umpireIds": umpires or [],
    }


def request(*assignments: dict, run_id: str = "run-1", **extra) -> ApplyRequest:
    return ApplyRequest.model_validate({"runId": run_id, "assignments": list(assignments), **extra})


def count(session: Session, model) -> int:
    return scalar_int(session.exec(select(func.count()).select_from(model)).one())


@pytest.fixture
def store(session: Session) -> Session:
    """Two fields, two unscheduled games, one out-of-band booking for T3 on F2."""
    add_field(session, "F1")
    add_field(session, "F2")
    add_game(session, "G1", "T1", "T2")
    add_game(session, "G2", "T3", "T4")
    add_game(session, "X1", "T3", "T5", field_id="F2", start=START, end=END, umpire_ids=["U1"])
    return session


# -----------------------------------------------------------------------------
# All-or-nothing
# -----------------------------------------------------------------------------


def test_all_or_nothing_with_one_conflict_persists_nothing(store: Session):
    req = request(assignment("G1", "F1"), assignment("G2", "F1"), allOrNothing=True)

    with pytest.raises(ConflictError) as exc_info:
        apply_assignments(store, req)

    outcomes = {o.game_id: o for o in exc_info.value.outcomes}
    assert outcomes["G1"].outcome == "rejected"
    assert outcomes["G1"].reason == REASON_BATCH_ABORTED
    assert outcomes["G2"].reason == "team overlap conflict"

    store.expire_all()
    assert store.get(LeagueGame, "G1").start_time is None
    assert store.get(LeagueGame, "G2").start_time is None
    assert count(store, AppliedAssignment) == 0
    assert count(store, ApplyRun) == 0


def test_all_or_nothing_commits_everything_when_clean(store: Session):
    req = request(assignment("G1", "F1"), assignment("G2", "F1", start=END, end=utc(2026, 4, 6, 21)),
                  allOrNothing=True)

    result = apply_assignments(store, req)

    assert result.status == "applied"
    assert result.applied_game_ids == ["G1", "G2"]
    assert count(store, AppliedAssignment) == 2
    assert count(store, ApplyRun) == 1


def test_conflict_error_payload_shape(store: Session):
    req = request(assignment("G2", "F1"), allOrNothing=True)

    with pytest.raises(ConflictError) as exc_info:
        apply_assignments(store, req)

    payload = exc_info.value.to_dict()
    assert "aborted" in payload["detail"]
    assert payload["outcomes"] == [{"gameId": "G2", "outcome": "rejected", "reason": "team overlap conflict"}]


# -----------------------------------------------------------------------------
# Idempotency
# -----------------------------------------------------------------------------


def test_reapplying_same_run_is_a_no_op(store: Session):
    req = request(assignment("G1", "F1", umpires=["U2"]), assignment("G2", "F1", start=END, end=utc(2026, 4, 6, 21)))

    first = apply_assignments(store, req)
    second = apply_assignments(store, req)

    assert first.status == "applied"
    assert second.status == "applied"
    assert second.applied_game_ids == []
    assert second.already_applied_game_ids == ["G1", "G2"]
    assert {o.outcome for o in second.outcomes} == {"already_applied"}
    assert count(store, AppliedAssignment) == 2

    game = store.get(LeagueGame, "G1")
    assert game.field_id == "F1"
    assert from_storage(game.start_time) == START
    assert game.umpire_ids == ["U2"]
    assert game.status == "scheduled"


def test_same_run_with_different_placement_is_rejected(store: Session):
    apply_assignments(store, request(assignment("G1", "F1")))

    result = apply_assignments(store, request(assignment("G1", "F1", start=END, end=utc(2026, 4, 6, 21))))

    assert result.status == "failed"
    assert result.rejected[0].reason == REASON_MARKER_MISMATCH


def test_new_run_can_move_a_game_without_conflicting_with_itself(store: Session):
    apply_assignments(store, request(assignment("G1", "F1")))

    moved = apply_assignments(
        store, request(assignment("G1", "F1", start=utc(2026, 4, 6, 18, 30), end=utc(2026, 4, 6, 20)), run_id="run-2")
    )

    assert moved.status == "applied"
    assert from_storage(store.get(LeagueGame, "G1").start_time) == utc(2026, 4, 6, 18, 30)


# -----------------------------------------------------------------------------
# Default mode
# -----------------------------------------------------------------------------


def test_default_mode_applies_independently(store: Session):
    result = apply_assignments(store, request(assignment("G1", "F1"), assignment("G2", "F1")))

    assert result.status == "partial"
    assert result.applied_game_ids == ["G1"]
    assert [(r.game_id, r.reason) for r in result.rejected] == [("G2", "team overlap conflict")]
    assert store.get(LeagueGame, "G1").field_id == "F1"

    run = store.exec(select(ApplyRun)).one()
    assert run.status == "partial"
    assert run.total_applied == 1
    assert run.total_rejected == 1
    assert len(run.input_hash) == 16


def test_assignments_in_one_batch_see_each_other(store: Session):
    add_game(store, "G3", "T1", "T6")

    later = {"start": END, "end": utc(2026, 4, 6, 21)}
    result = apply_assignments(
        store, request(assignment("G1", "F1"), assignment("G3", "F2", **later), assignment("G2", "F2", **later))
    )

    assert result.applied_game_ids == ["G1", "G3"]
    assert result.rejected[0].game_id == "G2"
    assert result.rejected[0].reason == "field capacity conflict"


def test_field_capacity_counts_other_leagues(store: Session):
    add_game(store, "G5", "T7", "T8", league="L2")

    result = apply_assignments(store, request(assignment("G5", "F2")))

    assert result.rejected[0].reason == "field capacity conflict"


@pytest.mark.parametrize(
    "payload,reason",
    [
        (assignment("G9", "F1"), REASON_GAME_NOT_FOUND),
        (assignment("G1", "F9"), REASON_FIELD_NOT_FOUND),
        (assignment("G1", "F1", start=END, end=START), REASON_INVALID_WINDOW),
        (assignment("G1", "F1", umpires=["U1", "U2", "U3", "U4", "U5"]), REASON_TOO_MANY_UMPIRES),
        (assignment("G1", "F1", umpires=["U1"]), "umpire overlap conflict"),
    ],
)
def test_rejection_reasons(store: Session, payload, reason):
    result = apply_assignments(store, request(payload))

    assert result.status == "failed"
    assert result.rejected[0].reason == reason
    assert count(store, AppliedAssignment) == 0


def test_stored_exclusions_are_enforced(store: Session):
    add_exclusion(store, "season", utc(2026, 4, 6), utc(2026, 4, 7), note="Holiday")
    add_exclusion(store, "team", utc(2026, 4, 8), utc(2026, 4, 9), team_season_id="T1", enabled=False)

    blocked = apply_assignments(store, request(assignment("G1", "F1")))
    allowed = apply_assignments(
        store, request(assignment("G1", "F1", start=utc(2026, 4, 8, 18), end=utc(2026, 4, 8, 19, 30)), run_id="run-2")
    )

    assert blocked.rejected[0].reason == "season exclusion conflict"
    assert allowed.status == "applied"


def test_lights_checked_against_stored_field(store: Session):
    constraints = {"hard": {"requireLightsAfter": {"enabled": True, "startHourLocal": 17, "timeZone": "UTC"}}}

    result = apply_assignments(store, request(assignment("G1", "F1"), constraints=constraints))

    assert result.rejected[0].reason == "field lights required"


def test_other_accounts_bookings_and_exclusions_do_not_block(session: Session):
    add_field(session, "F1")
    add_game(session, "G1", "T1", "T2", account_id=1)
    add_game(session, "Y1", "T1", "T9", field_id="F1", start=START, end=END, account_id=2)
    add_exclusion(session, "season", utc(2026, 4, 6), utc(2026, 4, 7), account_id=2)
    add_exclusion(session, "team", utc(2026, 4, 6), utc(2026, 4, 7), team_season_id="T2", account_id=2)

    result = apply_assignments(session, request(assignment("G1", "F1")), account_id=1)

    assert result.status == "applied"
    assert result.applied_game_ids == ["G1"]


def test_own_accounts_exclusions_still_block(session: Session):
    add_field(session, "F1")
    add_game(session, "G1", "T1", "T2", account_id=1)
    add_exclusion(session, "team", utc(2026, 4, 6), utc(2026, 4, 7), team_season_id="T2", account_id=1)

    result = apply_assignments(session, request(assignment("G1", "F1")), account_id=1)

    assert result.rejected[0].reason == "team blackout conflict"


def test_season_exclusions_follow_request_season(session: Session):
    add_field(session, "F1")
    add_game(session, "G1", "T1", "T2", account_id=1)
    add_exclusion(session, "season", utc(2026, 4, 6), utc(2026, 4, 7), season_id="S2", account_id=1)

    other_season = apply_assignments(session, request(assignment("G1", "F1"), seasonId="S1"), account_id=1)
    same_season = apply_assignments(
        session, request(assignment("G1", "F1"), run_id="run-2", seasonId="S2"), account_id=1
    )

    assert other_season.status == "applied"
    assert same_season.rejected[0].reason == "season exclusion conflict"


def test_stored_times_read_back_as_aware_utc(store: Session):
    apply_assignments(store, request(assignment("G1", "F1")))
    store.expire_all()

    game = store.get(LeagueGame, "G1")
    marker = store.exec(select(AppliedAssignment)).one()

    assert LeagueGame.__table__.c.start_time.type.timezone
    assert from_storage(game.start_time) == START
    assert from_storage(marker.end_time) == END
    assert from_storage(game.updated_at).tzinfo is not None


def test_team_daily_cap_against_store(store: Session):
    add_game(store, "X2", "T1", "T9", field_id="F2", start=utc(2026, 4, 6, 12), end=utc(2026, 4, 6, 13, 30))
    constraints = {"hard": {"maxGamesPerTeamPerDay": 1}}

    result = apply_assignments(store, request(assignment("G1", "F1"), constraints=constraints))

    assert result.rejected[0].reason == "team daily game limit exceeded"


# -----------------------------------------------------------------------------
# Subset mode
# -----------------------------------------------------------------------------


def test_subset_mode_only_processes_requested_games(store: Session):
    req = request(
        assignment("G1", "F1"),
        assignment("G2", "F1", start=END, end=utc(2026, 4, 6, 21)),
        mode="subset",
        gameIds=["G1", "G7"],
    )

    result = apply_assignments(store, req)

    assert result.status == "partial"
    assert result.applied_game_ids == ["G1"]
    assert [(r.game_id, r.reason) for r in result.rejected] == [("G7", REASON_NO_ASSIGNMENT)]
    assert store.get(LeagueGame, "G2").start_time is None


def test_subset_mode_requires_game_ids():
    with pytest.raises(ValueError):
        request(assignment("G1"), mode="subset")
