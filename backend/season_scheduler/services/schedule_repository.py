"""
Schedule Repository

Reads the committed schedule out of the store for the two places that
need it:

- load_committed_bookings(): the point-in-time snapshot handed to the
  solver before search starts (no I/O happens during solving).
- LiveBookingView: the BookingView implementation the apply path checks
  each assignment against, issuing count queries inside the caller's
  session so all-or-nothing writes see their own flushed rows.

Team and umpire counts are scoped by leagueSeasonId; field counts span
every league. A view bound to an account only sees that account's games
and exclusions, and one bound to a season only that season's (or
season-less) season exclusions.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, or_
from sqlmodel import Session, func, select

from season_scheduler.models import LeagueGame, PlayingField, SchedulerExclusion
from season_scheduler.services.availability_index import ExistingBooking, Interval
from season_scheduler.services.scheduler_schemas import ProblemSpec
from season_scheduler.utils.ids import id_sort_key
from season_scheduler.utils.sql import scalar_int
from season_scheduler.utils.time_utils import from_storage, season_horizon, to_storage

UMPIRE_COLUMNS = (LeagueGame.umpire_1, LeagueGame.umpire_2, LeagueGame.umpire_3, LeagueGame.umpire_4)


def _placed():
    return and_(LeagueGame.start_time.is_not(None), LeagueGame.end_time.is_not(None))


def _overlapping(window: Interval):
    return and_(
        _placed(),
        LeagueGame.start_time < to_storage(window.end),
        LeagueGame.end_time > to_storage(window.start),
    )


def _starting_in(range_start: datetime, range_end: datetime):
    return and_(
        _placed(),
        LeagueGame.start_time >= to_storage(range_start),
        LeagueGame.start_time < to_storage(range_end),
    )


def _involves_team(team_season_id: str):
    return or_(
        LeagueGame.home_team_season_id == team_season_id,
        LeagueGame.visitor_team_season_id == team_season_id,
    )


def _involves_umpire(umpire_id: str):
    return or_(*(column == umpire_id for column in UMPIRE_COLUMNS))


def load_committed_bookings(
    session: Session, spec: ProblemSpec, account_id: Optional[int] = None
) -> List[ExistingBooking]:
    """
    Placed games overlapping the season horizon, excluding the games being
    solved (their current placement is what the solve replaces).
    """
    horizon_start, horizon_end = season_horizon(spec.season.start_date, spec.season.end_date)
    requested = {g.id for g in spec.games}

    query = select(LeagueGame).where(_overlapping(Interval(horizon_start, horizon_end)))
    if account_id is not None:
        query = query.where(LeagueGame.account_id == account_id)

    bookings = []
    for game in session.exec(query).all():
        if game.id in requested or game.status == "cancelled":
            continue
        bookings.append(
            ExistingBooking(
                game_id=game.id,
                league_season_id=game.league_season_id,
                home_team_season_id=game.home_team_season_id,
                visitor_team_season_id=game.visitor_team_season_id,
                start=from_storage(game.start_time),
                end=from_storage(game.end_time),
                field_id=game.field_id,
                umpire_ids=tuple(game.umpire_ids),
            )
        )
    return sorted(bookings, key=lambda b: id_sort_key(b.game_id))


class LiveBookingView:
    """BookingView over the schedule store, bound to one session."""

    def __init__(self, session: Session, account_id: Optional[int] = None, season_id: Optional[str] = None):
        self.session = session
        self.account_id = account_id
        self.season_id = season_id
        self._fields: Dict[str, Optional[PlayingField]] = {}

    def _count(self, *conditions, league_season_id=None, exclude_game_id=None) -> int:
        query = select(func.count(LeagueGame.id)).where(*conditions).where(LeagueGame.status != "cancelled")
        if self.account_id is not None:
            query = query.where(LeagueGame.account_id == self.account_id)
        if league_season_id is not None:
            query = query.where(LeagueGame.league_season_id == league_season_id)
        if exclude_game_id is not None:
            query = query.where(LeagueGame.id != exclude_game_id)
        return scalar_int(self.session.exec(query).one())

    def _field(self, field_id: str) -> Optional[PlayingField]:
        if field_id not in self._fields:
            self._fields[field_id] = self.session.get(PlayingField, field_id)
        return self._fields[field_id]

    def _exclusion_hit(self, kind: str, window: Interval, scope=None, **filters) -> bool:
        query = select(func.count(SchedulerExclusion.id)).where(
            SchedulerExclusion.kind == kind,
            SchedulerExclusion.enabled == True,
            SchedulerExclusion.start_time < to_storage(window.end),
            SchedulerExclusion.end_time > to_storage(window.start),
        )
        if self.account_id is not None:
            query = query.where(SchedulerExclusion.account_id == self.account_id)
        if scope is not None:
            query = query.where(scope)
        for column, value in filters.items():
            query = query.where(getattr(SchedulerExclusion, column) == value)
        return scalar_int(self.session.exec(query).one()) > 0

    # ── counts ──

    def count_field_bookings(self, field_id, window, league_season_id=None, exclude_game_id=None) -> int:
        # Fields are shared across leagues; league scope is ignored
        return self._count(LeagueGame.field_id == field_id, _overlapping(window), exclude_game_id=exclude_game_id)

    def count_team_bookings(self, team_season_id, window, league_season_id=None, exclude_game_id=None) -> int:
        return self._count(
            _involves_team(team_season_id),
            _overlapping(window),
            league_season_id=league_season_id,
            exclude_game_id=exclude_game_id,
        )

    def count_umpire_bookings(self, umpire_id, window, league_season_id=None, exclude_game_id=None) -> int:
        return self._count(
            _involves_umpire(umpire_id),
            _overlapping(window),
            league_season_id=league_season_id,
            exclude_game_id=exclude_game_id,
        )

    def count_team_games_in_range(
        self, team_season_id, range_start, range_end, league_season_id=None, exclude_game_id=None
    ) -> int:
        return self._count(
            _involves_team(team_season_id),
            _starting_in(range_start, range_end),
            league_season_id=league_season_id,
            exclude_game_id=exclude_game_id,
        )

    def count_umpire_games_in_range(
        self, umpire_id, range_start, range_end, league_season_id=None, exclude_game_id=None
    ) -> int:
        return self._count(
            _involves_umpire(umpire_id),
            _starting_in(range_start, range_end),
            league_season_id=league_season_id,
            exclude_game_id=exclude_game_id,
        )

    # ── resources ──

    def field_exists(self, field_id: str) -> bool:
        return self._field(field_id) is not None

    def field_capacity(self, field_id: str) -> int:
        field = self._field(field_id)
        return max(1, field.max_parallel_games) if field else 1

    def field_has_lights(self, field_id: str) -> bool:
        field = self._field(field_id)
        return bool(field and field.has_lights)

    def within_field_slot(self, field_id: str, window: Interval) -> bool:
        # Field slots are solve-time input only; the store keeps none
        return True

    def season_excluded(self, window: Interval) -> bool:
        if self.season_id is None:
            return self._exclusion_hit("season", window)
        return self._exclusion_hit(
            "season",
            window,
            scope=or_(SchedulerExclusion.season_id == self.season_id, SchedulerExclusion.season_id.is_(None)),
        )

    def team_blocked(self, team_season_id: str, window: Interval) -> bool:
        return self._exclusion_hit("team", window, team_season_id=team_season_id)

    def umpire_available(self, umpire_id: str, window: Interval) -> bool:
        return not self._exclusion_hit("umpire", window, umpire_id=umpire_id)

    def umpire_max_games_per_day(self, umpire_id: str) -> Optional[int]:
        return None
