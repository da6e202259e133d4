"""
Field Slot Generator

Expands weekly field availability rules into concrete FieldSlots for a
date window. Rules are written in local wall-clock time; slots come out
in UTC.

For each enabled rule and each local date in the rule's range (clipped to
the window) whose weekday bit is set in daysOfWeekMask (bit0 = Monday):
  - skip dates excluded for that field
  - emit one slot per start increment from startTimeLocal up to (but not
    including) endTimeLocal; every slot ends at endTimeLocal
  - drop slots whose start falls inside an enabled season exclusion
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from season_scheduler.services.errors import SpecValidationError
from season_scheduler.services.scheduler_schemas import (
    DEFAULT_START_INCREMENT_MINUTES,
    FieldAvailabilityRule,
    FieldExclusionDate,
    FieldSlot,
    FieldSlotPreviewRequest,
    FieldSlotPreviewResponse,
    SeasonExclusion,
)
from season_scheduler.utils.ids import id_sort_key
from season_scheduler.utils.time_utils import local_to_utc, parse_hhmm, resolve_time_zone

logger = logging.getLogger(__name__)


def format_slot_start(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_slot_id(rule_id: str, day: date, start: datetime) -> str:
    return f"rule_{rule_id}_{day.isoformat()}_{format_slot_start(start)}"


def weekday_in_mask(day: date, mask: int) -> bool:
    return bool(mask & (1 << day.weekday()))


def _iter_days(start: date, end: date) -> Iterable[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def generate_field_slots(
    rules: Iterable[FieldAvailabilityRule],
    time_zone: str,
    window: Tuple[date, date],
    exclusion_dates: Iterable[FieldExclusionDate] = (),
    start_increments: Optional[Mapping[str, int]] = None,
    season_exclusions: Iterable[SeasonExclusion] = (),
) -> List[FieldSlot]:
    """
    Generate field slots for the [window start, window end] local dates.

    Raises:
        ValueError: unknown time zone
    """
    zone = resolve_time_zone(time_zone)
    window_start, window_end = window
    increments = start_increments or {}

    excluded: Set[Tuple[str, date]] = {
        (e.field_id, e.exclusion_date) for e in exclusion_dates if e.enabled
    }
    blocked = [(e.start_time, e.end_time) for e in season_exclusions if e.enabled]

    slots: List[FieldSlot] = []
    for rule in rules:
        if not rule.enabled:
            continue

        first_day = max(window_start, rule.start_date) if rule.start_date else window_start
        last_day = min(window_end, rule.end_date) if rule.end_date else window_end
        open_minutes = parse_hhmm(rule.start_time_local)
        close_minutes = parse_hhmm(rule.end_time_local)
        step = increments.get(rule.field_id) or DEFAULT_START_INCREMENT_MINUTES

        for day in _iter_days(first_day, last_day):
            if not weekday_in_mask(day, rule.days_of_week_mask):
                continue
            if (rule.field_id, day) in excluded:
                continue

            end = local_to_utc(day, close_minutes, zone)
            for minutes in range(open_minutes, close_minutes, step):
                start = local_to_utc(day, minutes, zone)
                if start >= end:
                    continue
                if any(block_start <= start < block_end for block_start, block_end in blocked):
                    continue
                slots.append(
                    FieldSlot(
                        id=build_slot_id(rule.id, day, start),
                        field_id=rule.field_id,
                        start_time=start,
                        end_time=end,
                    )
                )

    slots.sort(key=lambda s: (s.start_time, id_sort_key(s.field_id), s.id))
    return slots


def preview_field_slots(request: FieldSlotPreviewRequest) -> FieldSlotPreviewResponse:
    """
    Raises:
        SpecValidationError: unknown time zone
    """
    increments: Dict[str, int] = {f.id: f.properties.start_increment_minutes for f in request.fields}
    try:
        slots = generate_field_slots(
            request.rules,
            request.time_zone,
            (request.start_date, request.end_date),
            exclusion_dates=request.exclusion_dates,
            start_increments=increments,
            season_exclusions=request.season_exclusions,
        )
    except ValueError as exc:
        raise SpecValidationError(str(exc), field="timeZone") from exc

    logger.info("Generated %d field slots from %d rules", len(slots), len(request.rules))
    return FieldSlotPreviewResponse(field_slots=slots)
