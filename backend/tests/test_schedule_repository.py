"""Tests for the store-backed booking view and the pre-solve snapshot."""

from sqlmodel import Session

from season_scheduler.services.availability_index import Interval
from season_scheduler.services.schedule_repository import LiveBookingView, load_committed_bookings
from tests.factories import add_exclusion, add_field, add_game, game, make_spec, slot, utc


def window(h1, m1, h2, m2):
    return Interval(utc(2026, 4, 6, h1, m1), utc(2026, 4, 6, h2, m2))


def seed(session: Session):
    add_field(session, "F1", has_lights=True, max_parallel_games=2)
    add_game(session, "A", "T1", "T2", field_id="F1", start=utc(2026, 4, 6, 18), end=utc(2026, 4, 6, 19, 30),
             umpire_ids=["U1", "U2"], account_id=1)
    add_game(session, "B", "T1", "T3", league="L2", field_id="F1", start=utc(2026, 4, 6, 12),
             end=utc(2026, 4, 6, 13, 30), account_id=1)
    add_game(session, "C", "T4", "T5", account_id=1)


def test_counts_are_scoped_by_league_except_fields(session: Session):
    seed(session)
    view = LiveBookingView(session)

    assert view.count_team_bookings("T1", window(19, 0, 20, 0), league_season_id="L1") == 1
    assert view.count_team_bookings("T1", window(19, 0, 20, 0), league_season_id="L2") == 0
    assert view.count_team_bookings("T1", window(19, 0, 20, 0), league_season_id="L1", exclude_game_id="A") == 0
    assert view.count_umpire_bookings("U2", window(18, 30, 19, 0), league_season_id="L1") == 1
    assert view.count_field_bookings("F1", window(12, 0, 20, 0), league_season_id="L1") == 2
    assert view.count_team_games_in_range("T1", utc(2026, 4, 6), utc(2026, 4, 7)) == 2
    assert view.count_umpire_games_in_range("U1", utc(2026, 4, 7), utc(2026, 4, 8)) == 0


def test_field_properties_and_exclusions(session: Session):
    seed(session)
    add_exclusion(session, "umpire", utc(2026, 4, 6, 17), utc(2026, 4, 6, 23), umpire_id="U3")
    view = LiveBookingView(session)

    assert view.field_exists("F1")
    assert not view.field_exists("F2")
    assert view.field_capacity("F1") == 2
    assert view.field_has_lights("F1")
    assert not view.umpire_available("U3", window(18, 0, 19, 0))
    assert view.umpire_available("U3", window(23, 0, 23, 30))
    assert not view.season_excluded(window(18, 0, 19, 0))


def test_snapshot_skips_games_being_solved_and_unplaced_games(session: Session):
    seed(session)
    spec = make_spec([game("B", "T1", "T3", league="L2")], [slot("S1", "F1", utc(2026, 4, 6, 18),
                                                                         utc(2026, 4, 6, 20))])

    bookings = load_committed_bookings(session, spec, account_id=1)

    assert [b.game_id for b in bookings] == ["A"]
    assert bookings[0].umpire_ids == ("U1", "U2")
    assert bookings[0].start == utc(2026, 4, 6, 18)
    assert load_committed_bookings(session, spec, account_id=2) == []


def test_view_bound_to_account_ignores_other_accounts(session: Session):
    seed(session)
    add_game(session, "Z", "T1", "T2", field_id="F1", start=utc(2026, 4, 6, 18), end=utc(2026, 4, 6, 19, 30),
             account_id=2)
    add_exclusion(session, "team", utc(2026, 4, 6), utc(2026, 4, 7), team_season_id="T1", account_id=2)

    mine = LiveBookingView(session, account_id=1)
    theirs = LiveBookingView(session, account_id=2)

    assert mine.count_team_bookings("T1", window(19, 0, 20, 0), league_season_id="L1") == 1
    assert mine.count_field_bookings("F1", window(12, 0, 20, 0)) == 2
    assert not mine.team_blocked("T1", window(18, 0, 19, 0))
    assert theirs.count_field_bookings("F1", window(12, 0, 20, 0)) == 1
    assert theirs.team_blocked("T1", window(18, 0, 19, 0))
    assert LiveBookingView(session).count_field_bookings("F1", window(12, 0, 20, 0)) == 3


def test_view_bound_to_season_skips_other_seasons_exclusions(session: Session):
    add_exclusion(session, "season", utc(2026, 4, 6), utc(2026, 4, 7), season_id="S1")
    add_exclusion(session, "season", utc(2026, 4, 8), utc(2026, 4, 9))

    view = LiveBookingView(session, season_id="S2")
    april_8 = Interval(utc(2026, 4, 8, 18), utc(2026, 4, 8, 19))

    assert not view.season_excluded(window(18, 0, 19, 0))
    assert view.season_excluded(april_8)
    assert LiveBookingView(session, season_id="S1").season_excluded(window(18, 0, 19, 0))
