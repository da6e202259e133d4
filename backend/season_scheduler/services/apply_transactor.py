"""
Apply Transactor

Persists assignments chosen from a SolveResult. Each assignment is
re-validated against the live store with the solver's own hard rules
(through LiveBookingView) because the store may have changed since solve
read its snapshot.

Per-assignment pipeline:
  1. Idempotency marker (runId, gameId): same placement → already_applied,
     different placement → rejected
  2. Window sanity, umpire count cap
  3. Game and field exist
  4. Hard rules against live counts
  5. Write: update LeagueGame, insert AppliedAssignment marker

Modes:
  default        each assignment commits on its own; rejections do not
                 block the others
  allOrNothing   every write is flushed inside one transaction; any
                 rejection rolls everything back and raises ConflictError
"""

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from season_scheduler.models import AppliedAssignment, ApplyRun, LeagueGame
from season_scheduler.services.availability_index import Interval
from season_scheduler.services.constraint_rules import (
    Candidate,
    ConstraintRule,
    build_rule_set,
    first_failed_rule,
)
from season_scheduler.services.errors import ConflictError
from season_scheduler.services.run_identity import canonicalize
from season_scheduler.services.schedule_repository import LiveBookingView
from season_scheduler.services.scheduler_schemas import (
    MAX_UMPIRES_PER_GAME,
    ApplyOutcome,
    ApplyRequest,
    ApplyResult,
    Assignment,
    GameRequest,
    RejectedAssignment,
)
from season_scheduler.utils.ids import sorted_ids
from season_scheduler.utils.time_utils import from_storage, to_storage

logger = logging.getLogger(__name__)

REASON_MARKER_MISMATCH = "assignment differs from previously applied proposal"
REASON_NO_ASSIGNMENT = "no assignment provided for requested gameId"
REASON_DUPLICATE_ASSIGNMENT = "duplicate assignment for gameId"
REASON_INVALID_WINDOW = "endTime must be after startTime"
REASON_TOO_MANY_UMPIRES = f"at most {MAX_UMPIRES_PER_GAME} umpires per game"
REASON_DUPLICATE_UMPIRE = "umpire listed more than once"
REASON_GAME_NOT_FOUND = "game not found"
REASON_FIELD_NOT_FOUND = "field not found"
REASON_BATCH_ABORTED = "not applied: all-or-nothing batch aborted"

# Live re-validation order
APPLY_RULE_ORDER = (
    "seasonExclusions",
    "requireLightsAfter",
    "respectTeamBlackouts",
    "noTeamOverlap",
    "maxGamesPerTeamPerDay",
    "respectUmpireAvailability",
    "noUmpireOverlap",
    "maxGamesPerUmpirePerDay",
    "noFieldOverlap",
)


def build_apply_rules(request: ApplyRequest) -> List[ConstraintRule]:
    """Hard rules for live re-validation. Field slots are not stored, so that rule is left out."""
    rules = build_rule_set(request.constraints, include_field_slots=False).hard
    return sorted(rules, key=lambda r: APPLY_RULE_ORDER.index(r.name))


def hash_apply_request(request: ApplyRequest) -> str:
    data = request.model_dump(mode="json", by_alias=True)
    payload = json.dumps(canonicalize(data), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


def derive_apply_status(applied: int, already_applied: int, rejected: int) -> str:
    if rejected == 0:
        return "applied"
    if applied == 0 and already_applied == 0:
        return "failed"
    return "partial"


def _marker_matches(marker: AppliedAssignment, assignment: Assignment) -> bool:
    return (
        marker.field_id == assignment.field_id
        and from_storage(marker.start_time) == assignment.start_time
        and from_storage(marker.end_time) == assignment.end_time
        and list(marker.umpire_ids or []) == list(assignment.umpire_ids)
    )


def _as_game_request(game: LeagueGame) -> GameRequest:
    return GameRequest(
        id=game.id,
        league_season_id=game.league_season_id,
        home_team_season_id=game.home_team_season_id,
        visitor_team_season_id=game.visitor_team_season_id,
    )


def _select_assignments(request: ApplyRequest) -> Tuple[List[Assignment], List[str]]:
    """Assignments to process, and requested gameIds that have none (subset mode)."""
    if request.mode != "subset":
        return list(request.assignments), []
    wanted = set(request.game_ids or [])
    chosen = [a for a in request.assignments if a.game_id in wanted]
    provided = {a.game_id for a in chosen}
    missing = []
    for game_id in request.game_ids or []:
        if game_id not in provided and game_id not in missing:
            missing.append(game_id)
    return chosen, missing


class ApplyTransactor:
    """One apply call against one session."""

    def __init__(self, session: Session, account_id: Optional[int] = None, season_id: Optional[str] = None):
        self.session = session
        self.account_id = account_id
        self.view = LiveBookingView(session, account_id=account_id, season_id=season_id)

    # ── checks ──

    def _find_marker(self, run_id: str, game_id: str) -> Optional[AppliedAssignment]:
        return self.session.exec(
            select(AppliedAssignment).where(
                AppliedAssignment.run_id == run_id,
                AppliedAssignment.game_id == game_id,
            )
        ).first()

    def _load_game(self, game_id: str) -> Optional[LeagueGame]:
        game = self.session.get(LeagueGame, game_id)
        if game is None:
            return None
        if self.account_id is not None and game.account_id != self.account_id:
            return None
        return game

    def check(
        self, run_id: str, assignment: Assignment, rules: List[ConstraintRule]
    ) -> Tuple[str, Optional[str], Optional[LeagueGame]]:
        """
        Re-validate one assignment.

        Returns:
            (outcome, reason, game) where outcome is "applied" (ready to
            write), "already_applied" or "rejected"
        """
        marker = self._find_marker(run_id, assignment.game_id)
        if marker is not None:
            if _marker_matches(marker, assignment):
                return "already_applied", None, None
            return "rejected", REASON_MARKER_MISMATCH, None

        if assignment.end_time <= assignment.start_time:
            return "rejected", REASON_INVALID_WINDOW, None
        if len(assignment.umpire_ids) > MAX_UMPIRES_PER_GAME:
            return "rejected", REASON_TOO_MANY_UMPIRES, None
        if len(set(assignment.umpire_ids)) != len(assignment.umpire_ids):
            return "rejected", REASON_DUPLICATE_UMPIRE, None

        game = self._load_game(assignment.game_id)
        if game is None:
            return "rejected", REASON_GAME_NOT_FOUND, None
        if not self.view.field_exists(assignment.field_id):
            return "rejected", REASON_FIELD_NOT_FOUND, None

        candidate = Candidate(
            game=_as_game_request(game),
            field_id=assignment.field_id,
            window=Interval(assignment.start_time, assignment.end_time),
            umpire_ids=tuple(assignment.umpire_ids),
        )
        failed = first_failed_rule(candidate, rules, self.view)
        if failed is not None:
            return "rejected", failed.reason, None

        return "applied", None, game

    # ── writes ──

    def write(self, run_id: str, assignment: Assignment, game: LeagueGame) -> None:
        game.field_id = assignment.field_id
        game.start_time = to_storage(assignment.start_time)
        game.end_time = to_storage(assignment.end_time)
        game.set_umpires(list(assignment.umpire_ids))
        game.status = "scheduled"
        game.updated_at = datetime.now(timezone.utc)
        self.session.add(game)
        self.session.add(
            AppliedAssignment(
                run_id=run_id,
                game_id=assignment.game_id,
                field_id=assignment.field_id,
                start_time=to_storage(assignment.start_time),
                end_time=to_storage(assignment.end_time),
                umpire_ids=list(assignment.umpire_ids),
            )
        )

    # ── entry point ──

    def apply(self, request: ApplyRequest) -> ApplyResult:
        """
        Apply the requested assignments.

        Raises:
            ConflictError: allOrNothing and at least one assignment was rejected
            SQLAlchemyError: store failure (rolled back, then re-raised)
        """
        started = time.monotonic()
        rules = build_apply_rules(request)
        assignments, missing = _select_assignments(request)

        outcomes: List[ApplyOutcome] = []
        seen: Dict[str, bool] = {}

        try:
            for assignment in assignments:
                if assignment.game_id in seen:
                    outcomes.append(
                        ApplyOutcome(game_id=assignment.game_id, outcome="rejected", reason=REASON_DUPLICATE_ASSIGNMENT)
                    )
                    continue
                seen[assignment.game_id] = True

                outcome, reason, game = self.check(request.run_id, assignment, rules)
                if outcome == "applied":
                    self.write(request.run_id, assignment, game)
                    if request.all_or_nothing:
                        self.session.flush()
                    else:
                        self.session.commit()
                elif outcome == "rejected":
                    logger.info("Apply %s rejected game %s: %s", request.run_id, assignment.game_id, reason)
                outcomes.append(ApplyOutcome(game_id=assignment.game_id, outcome=outcome, reason=reason))

            for game_id in missing:
                logger.info("Apply %s rejected game %s: %s", request.run_id, game_id, REASON_NO_ASSIGNMENT)
                outcomes.append(ApplyOutcome(game_id=game_id, outcome="rejected", reason=REASON_NO_ASSIGNMENT))

            rejected_count = sum(1 for o in outcomes if o.outcome == "rejected")
            if request.all_or_nothing and rejected_count:
                self.session.rollback()
                logger.warning(
                    "Apply %s aborted (all-or-nothing): %d of %d rejected",
                    request.run_id, rejected_count, len(outcomes),
                )
                aborted = [
                    o if o.outcome == "rejected" else ApplyOutcome(
                        game_id=o.game_id, outcome="rejected", reason=REASON_BATCH_ABORTED
                    )
                    for o in outcomes
                ]
                raise ConflictError(
                    f"All-or-nothing apply aborted: {rejected_count} assignment(s) rejected",
                    outcomes=aborted,
                )

            result = self._build_result(request.run_id, outcomes)
            self.session.add(
                ApplyRun(
                    account_id=self.account_id,
                    run_id=request.run_id,
                    mode=request.mode,
                    all_or_nothing=request.all_or_nothing,
                    input_hash=hash_apply_request(request),
                    status=result.status,
                    total_applied=len(result.applied_game_ids),
                    total_already_applied=len(result.already_applied_game_ids),
                    total_rejected=len(result.rejected),
                    duration_ms=int((time.monotonic() - started) * 1000),
                    snapshot_json=json.dumps(result.model_dump(mode="json", by_alias=True), sort_keys=True),
                )
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Apply %s failed, transaction rolled back", request.run_id)
            raise

        logger.info(
            "Apply %s finished: status=%s applied=%d already_applied=%d rejected=%d",
            request.run_id, result.status, len(result.applied_game_ids),
            len(result.already_applied_game_ids), len(result.rejected),
        )
        return result

    @staticmethod
    def _build_result(run_id: str, outcomes: List[ApplyOutcome]) -> ApplyResult:
        applied = [o.game_id for o in outcomes if o.outcome == "applied"]
        already = [o.game_id for o in outcomes if o.outcome == "already_applied"]
        rejected = [RejectedAssignment(game_id=o.game_id, reason=o.reason) for o in outcomes if o.outcome == "rejected"]
        return ApplyResult(
            run_id=run_id,
            status=derive_apply_status(len(applied), len(already), len(rejected)),
            outcomes=outcomes,
            applied_game_ids=sorted_ids(applied),
            already_applied_game_ids=sorted_ids(already),
            rejected=rejected,
        )


def apply_assignments(session: Session, request: ApplyRequest, account_id: Optional[int] = None) -> ApplyResult:
    return ApplyTransactor(session, account_id=account_id, season_id=request.season_id).apply(request)
