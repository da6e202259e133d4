"""
Availability Index

Per-call free/busy calendar for fields, teams and umpires. It is built
once from the ProblemSpec plus a snapshot of already-committed games and
then only mutated in memory while the solver reserves winners. Nothing
here performs I/O and no instance is ever shared between solve calls.

Fields keep a sorted list of disjoint free intervals (overlapping field
slots merged, or the whole season when field slots are not respected).
The raw slots are kept separately for the slot containment check. A
reservation consumes the part of the interval where the field reaches
maxParallelGames. Teams and umpires keep blocked windows (blackouts and
exclusions) plus busy bookings, which the hard rules query directly.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from season_scheduler.services.scheduler_schemas import FieldSpec, GameRequest, HardConstraints, ProblemSpec
from season_scheduler.utils.ids import id_sort_key
from season_scheduler.utils.time_utils import season_horizon, to_utc, utc_day


# ============================================================================
# Intervals
# ============================================================================


@dataclass(frozen=True, order=True)
class Interval:
    """Half-open [start, end) window in UTC."""

    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and self.end >= other.end

    def intersection(self, other: "Interval") -> Optional["Interval"]:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start >= end:
            return None
        return Interval(start, end)


def subtract_interval(free: Sequence[Interval], cut: Interval) -> List[Interval]:
    """Remove cut from every interval in free, splitting where needed."""
    result: List[Interval] = []
    for interval in free:
        if not interval.overlaps(cut):
            result.append(interval)
            continue
        if interval.start < cut.start:
            result.append(Interval(interval.start, cut.start))
        if cut.end < interval.end:
            result.append(Interval(cut.end, interval.end))
    return sorted(result)


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sorted, disjoint union of intervals. Overlaps merge; touching intervals stay apart."""
    merged: List[Interval] = []
    for interval in sorted(intervals):
        if merged and interval.start < merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = Interval(merged[-1].start, interval.end)
            continue
        merged.append(interval)
    return merged


@dataclass(frozen=True)
class Booking:
    game_id: str
    window: Interval
    league_season_id: Optional[str] = None


@dataclass(frozen=True)
class ExistingBooking:
    """A committed game read from the schedule store before solving."""

    game_id: str
    league_season_id: Optional[str]
    home_team_season_id: str
    visitor_team_season_id: str
    start: datetime
    end: datetime
    field_id: Optional[str] = None
    umpire_ids: Tuple[str, ...] = ()


# ============================================================================
# Booking view contract
# ============================================================================


class BookingView(Protocol):
    """
    Queries the hard rules need. Implemented by AvailabilityIndex (solve,
    in-memory) and LiveBookingView (apply, backed by the schedule store),
    so both paths share one set of conflict semantics.
    """

    def count_field_bookings(
        self, field_id: str, window: Interval, league_season_id: Optional[str] = None,
        exclude_game_id: Optional[str] = None,
    ) -> int: ...

    def count_team_bookings(
        self, team_season_id: str, window: Interval, league_season_id: Optional[str] = None,
        exclude_game_id: Optional[str] = None,
    ) -> int: ...

    def count_umpire_bookings(
        self, umpire_id: str, window: Interval, league_season_id: Optional[str] = None,
        exclude_game_id: Optional[str] = None,
    ) -> int: ...

    def count_team_games_in_range(
        self, team_season_id: str, range_start: datetime, range_end: datetime,
        league_season_id: Optional[str] = None, exclude_game_id: Optional[str] = None,
    ) -> int: ...

    def count_umpire_games_in_range(
        self, umpire_id: str, range_start: datetime, range_end: datetime,
        league_season_id: Optional[str] = None, exclude_game_id: Optional[str] = None,
    ) -> int: ...

    def field_capacity(self, field_id: str) -> int: ...

    def field_has_lights(self, field_id: str) -> bool: ...

    def within_field_slot(self, field_id: str, window: Interval) -> bool: ...

    def season_excluded(self, window: Interval) -> bool: ...

    def team_blocked(self, team_season_id: str, window: Interval) -> bool: ...

    def umpire_available(self, umpire_id: str, window: Interval) -> bool: ...

    def umpire_max_games_per_day(self, umpire_id: str) -> Optional[int]: ...


def _count_overlapping(
    bookings: Iterable[Booking], window: Interval, league_season_id: Optional[str], exclude_game_id: Optional[str]
) -> int:
    count = 0
    for booking in bookings:
        if exclude_game_id is not None and booking.game_id == exclude_game_id:
            continue
        if league_season_id is not None and booking.league_season_id != league_season_id:
            continue
        if booking.window.overlaps(window):
            count += 1
    return count


def _count_starting_in(
    bookings: Iterable[Booking], range_start: datetime, range_end: datetime,
    league_season_id: Optional[str], exclude_game_id: Optional[str],
) -> int:
    count = 0
    for booking in bookings:
        if exclude_game_id is not None and booking.game_id == exclude_game_id:
            continue
        if league_season_id is not None and booking.league_season_id != league_season_id:
            continue
        if range_start <= booking.window.start < range_end:
            count += 1
    return count


def _any_overlap(windows: Iterable[Interval], window: Interval) -> bool:
    return any(w.overlaps(window) for w in windows)


# ============================================================================
# Index
# ============================================================================


class AvailabilityIndex:
    """Per-resource free/busy calendars for one solve call."""

    def __init__(self, horizon: Interval, hard: HardConstraints, fields: Dict[str, FieldSpec]):
        self.horizon = horizon
        self.hard = hard
        self.fields = fields
        self.field_slots: Dict[str, List[Interval]] = defaultdict(list)
        self.field_free: Dict[str, List[Interval]] = defaultdict(list)
        self.field_bookings: Dict[str, List[Booking]] = defaultdict(list)
        self.team_blocks: Dict[str, List[Interval]] = defaultdict(list)
        self.team_bookings: Dict[str, List[Booking]] = defaultdict(list)
        self.umpire_windows: Optional[Dict[str, List[Interval]]] = None
        self.umpire_blocks: Dict[str, List[Interval]] = defaultdict(list)
        self.umpire_bookings: Dict[str, List[Booking]] = defaultdict(list)
        self.umpire_limits: Dict[str, int] = {}
        self.season_blocks: List[Interval] = []
        self.day_spans: Dict[date, Interval] = {}

    @classmethod
    def build(cls, spec: ProblemSpec, existing_bookings: Iterable[ExistingBooking] = ()) -> "AvailabilityIndex":
        hard = spec.constraints.hard
        horizon = Interval(*season_horizon(spec.season.start_date, spec.season.end_date))
        index = cls(horizon, hard, {f.id: f for f in spec.fields})

        for slot in spec.field_slots:
            window = Interval(slot.start_time, slot.end_time)
            index.field_slots[slot.field_id].append(window)
            day = utc_day(slot.start_time)
            span = index.day_spans.get(day)
            index.day_spans[day] = (
                window if span is None else Interval(min(span.start, window.start), max(span.end, window.end))
            )

        for field_id in index.fields:
            index.field_slots[field_id].sort()
            if hard.respect_field_slots:
                index.field_free[field_id] = merge_intervals(index.field_slots[field_id])
            else:
                index.field_free[field_id] = [horizon]

        for blackout in spec.team_blackouts:
            index.team_blocks[blackout.team_season_id].append(Interval(blackout.start_time, blackout.end_time))
        for exclusion in spec.team_exclusions:
            if exclusion.enabled:
                index.team_blocks[exclusion.team_season_id].append(Interval(exclusion.start_time, exclusion.end_time))

        if spec.umpire_availability:
            index.umpire_windows = defaultdict(list)
            for availability in spec.umpire_availability:
                index.umpire_windows[availability.umpire_id].append(
                    Interval(availability.start_time, availability.end_time)
                )
        for exclusion in spec.umpire_exclusions:
            if exclusion.enabled:
                index.umpire_blocks[exclusion.umpire_id].append(Interval(exclusion.start_time, exclusion.end_time))
        for umpire in spec.umpires:
            if umpire.max_games_per_day is not None:
                index.umpire_limits[umpire.id] = umpire.max_games_per_day

        index.season_blocks = sorted(
            Interval(e.start_time, e.end_time) for e in spec.season_exclusions if e.enabled
        )

        for calendar in (index.team_blocks, index.umpire_blocks):
            for windows in calendar.values():
                windows.sort()

        for booking in sorted(existing_bookings, key=lambda b: (to_utc(b.start), id_sort_key(b.game_id))):
            window = Interval(to_utc(booking.start), to_utc(booking.end))
            if not window.overlaps(horizon):
                continue
            index._book(
                booking.game_id,
                booking.league_season_id,
                booking.field_id,
                (booking.home_team_season_id, booking.visitor_team_season_id),
                booking.umpire_ids,
                window,
            )

        return index

    # ── Mutation ──

    def reserve(self, game: GameRequest, field_id: str, window: Interval, umpire_ids: Sequence[str]) -> None:
        """Record a chosen assignment: consume field capacity and mark teams/umpires busy."""
        self._book(
            game.id,
            game.league_season_id,
            field_id,
            (game.home_team_season_id, game.visitor_team_season_id),
            umpire_ids,
            window,
        )

    def _book(
        self,
        game_id: str,
        league_season_id: Optional[str],
        field_id: Optional[str],
        team_season_ids: Sequence[str],
        umpire_ids: Sequence[str],
        window: Interval,
    ) -> None:
        if field_id is not None:
            self.field_bookings[field_id].append(Booking(game_id, window, league_season_id))
            if self.hard.no_field_overlap:
                self._consume_field(field_id, window)
        for team_season_id in team_season_ids:
            self.team_bookings[team_season_id].append(Booking(game_id, window, league_season_id))
        for umpire_id in umpire_ids:
            self.umpire_bookings[umpire_id].append(Booking(game_id, window, league_season_id))

    def _consume_field(self, field_id: str, window: Interval) -> None:
        """Subtract the parts of window where the field is at capacity."""
        capacity = self.field_capacity(field_id)
        overlapping = [b.window for b in self.field_bookings[field_id] if b.window.overlaps(window)]
        points = {window.start, window.end}
        for w in overlapping:
            if window.start < w.start < window.end:
                points.add(w.start)
            if window.start < w.end < window.end:
                points.add(w.end)
        edges = sorted(points)
        free = self.field_free[field_id]
        for seg_start, seg_end in zip(edges, edges[1:]):
            segment = Interval(seg_start, seg_end)
            if sum(1 for w in overlapping if w.overlaps(segment)) >= capacity:
                free = subtract_interval(free, segment)
        self.field_free[field_id] = free

    # ── Calendars ──

    def candidate_intervals(self, field_id: str) -> List[Interval]:
        return list(self.field_free.get(field_id, []))

    def day_midpoint(self, day: date) -> Optional[datetime]:
        span = self.day_spans.get(day)
        if span is None:
            return None
        return span.start + (span.end - span.start) / 2

    # ── BookingView ──

    def count_field_bookings(self, field_id, window, league_season_id=None, exclude_game_id=None) -> int:
        return _count_overlapping(self.field_bookings.get(field_id, []), window, league_season_id, exclude_game_id)

    def count_team_bookings(self, team_season_id, window, league_season_id=None, exclude_game_id=None) -> int:
        return _count_overlapping(
            self.team_bookings.get(team_season_id, []), window, league_season_id, exclude_game_id
        )

    def count_umpire_bookings(self, umpire_id, window, league_season_id=None, exclude_game_id=None) -> int:
        return _count_overlapping(self.umpire_bookings.get(umpire_id, []), window, league_season_id, exclude_game_id)

    def count_team_games_in_range(
        self, team_season_id, range_start, range_end, league_season_id=None, exclude_game_id=None
    ) -> int:
        return _count_starting_in(
            self.team_bookings.get(team_season_id, []), range_start, range_end, league_season_id, exclude_game_id
        )

    def count_umpire_games_in_range(
        self, umpire_id, range_start, range_end, league_season_id=None, exclude_game_id=None
    ) -> int:
        return _count_starting_in(
            self.umpire_bookings.get(umpire_id, []), range_start, range_end, league_season_id, exclude_game_id
        )

    def field_capacity(self, field_id: str) -> int:
        field = self.fields.get(field_id)
        return max(1, field.properties.max_parallel_games) if field else 1

    def field_has_lights(self, field_id: str) -> bool:
        field = self.fields.get(field_id)
        return bool(field and field.properties.has_lights)

    def within_field_slot(self, field_id: str, window: Interval) -> bool:
        return any(slot.contains(window) for slot in self.field_slots.get(field_id, []))

    def season_excluded(self, window: Interval) -> bool:
        return _any_overlap(self.season_blocks, window)

    def team_blocked(self, team_season_id: str, window: Interval) -> bool:
        return _any_overlap(self.team_blocks.get(team_season_id, []), window)

    def umpire_available(self, umpire_id: str, window: Interval) -> bool:
        if _any_overlap(self.umpire_blocks.get(umpire_id, []), window):
            return False
        if self.umpire_windows is None:
            return self.horizon.contains(window)
        return any(w.contains(window) for w in self.umpire_windows.get(umpire_id, []))

    def umpire_max_games_per_day(self, umpire_id: str) -> Optional[int]:
        return self.umpire_limits.get(umpire_id)
