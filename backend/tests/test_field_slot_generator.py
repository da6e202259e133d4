"""
Tests for field slot generation from weekly availability rules.

Local wall-clock rules in America/New_York (UTC-4 in April).
"""

from datetime import date

import pytest

from season_scheduler.services.errors import SpecValidationError
from season_scheduler.services.field_slot_generator import generate_field_slots, preview_field_slots, weekday_in_mask
from season_scheduler.services.scheduler_schemas import (
    FieldAvailabilityRule,
    FieldExclusionDate,
    FieldSlotPreviewRequest,
    SeasonExclusion,
)
from tests.factories import field, utc

ZONE = "America/New_York"
WINDOW = (date(2026, 4, 6), date(2026, 4, 8))  # Mon..Wed

MONDAY_AND_WEDNESDAY = 0b0000101


def make_rule(**overrides) -> FieldAvailabilityRule:
    data = {
        "id": "R1",
        "fieldId": "F1",
        "daysOfWeekMask": MONDAY_AND_WEDNESDAY,
        "startTimeLocal": "18:00",
        "endTimeLocal": "20:00",
    }
    data.update(overrides)
    return FieldAvailabilityRule.model_validate(data)


def test_mask_bit_zero_is_monday():
    assert weekday_in_mask(date(2026, 4, 6), 0b1)
    assert not weekday_in_mask(date(2026, 4, 7), 0b1)
    assert weekday_in_mask(date(2026, 4, 12), 0b1000000)


def test_slots_step_by_increment_and_end_at_window_close():
    slots = generate_field_slots([make_rule()], ZONE, WINDOW)

    assert len(slots) == 8
    first = slots[0]
    assert first.id == "rule_R1_2026-04-06_2026-04-06T22:00:00Z"
    assert first.field_id == "F1"
    assert first.start_time == utc(2026, 4, 6, 22)
    assert first.end_time == utc(2026, 4, 7, 0)
    assert [s.start_time.minute for s in slots[:4]] == [0, 30, 0, 30]
    assert all(s.end_time == first.end_time for s in slots[:4])


def test_custom_increment_per_field():
    slots = generate_field_slots([make_rule()], ZONE, WINDOW, start_increments={"F1": 60})

    assert len(slots) == 4


def test_exclusion_dates_and_disabled_rules_are_skipped():
    excluded = FieldExclusionDate.model_validate({"fieldId": "F1", "date": "2026-04-08"})
    other_field = FieldExclusionDate.model_validate({"fieldId": "F2", "date": "2026-04-06"})

    slots = generate_field_slots([make_rule(), make_rule(id="R2", enabled=False)], ZONE, WINDOW,
                                 exclusion_dates=[excluded, other_field])

    assert {s.start_time.date() for s in slots} == {date(2026, 4, 6)}
    assert all(s.id.startswith("rule_R1_") for s in slots)


def test_rule_date_range_is_clipped_to_window():
    slots = generate_field_slots([make_rule(startDate="2026-04-07", endDate="2026-05-01")], ZONE, WINDOW)

    assert {s.id.split("_")[2] for s in slots} == {"2026-04-08"}


def test_season_exclusion_drops_slot_starts_inside_it():
    exclusion = SeasonExclusion.model_validate(
        {"id": "E1", "startTime": "2026-04-06T22:00:00Z", "endTime": "2026-04-06T22:30:00Z"}
    )

    slots = generate_field_slots([make_rule()], ZONE, WINDOW, season_exclusions=[exclusion])

    assert len(slots) == 7
    assert utc(2026, 4, 6, 22) not in {s.start_time for s in slots}


def test_preview_uses_field_increments_and_rejects_bad_zone():
    request = FieldSlotPreviewRequest.model_validate(
        {
            "timeZone": ZONE,
            "startDate": "2026-04-06",
            "endDate": "2026-04-08",
            "rules": [make_rule().model_dump(by_alias=True)],
            "fields": [field("F1", increment=60)],
        }
    )

    assert len(preview_field_slots(request).field_slots) == 4

    bad = request.model_copy(update={"time_zone": "Nowhere/Special"})
    with pytest.raises(SpecValidationError) as exc_info:
        preview_field_slots(bad)
    assert exc_info.value.field == "timeZone"


def test_inverted_rule_times_rejected_by_model():
    with pytest.raises(ValueError):
        make_rule(startTimeLocal="20:00", endTimeLocal="18:00")
