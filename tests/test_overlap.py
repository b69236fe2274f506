import datetime as dt
from types import SimpleNamespace
from typing import Any

import pytest

from clinic.db.models.enums import AppointmentState
from clinic.scheduling.overlap import (
    ScheduleWindow,
    find_conflicting_schedule,
    has_conflicting_claim,
    ranges_overlap,
    schedules_conflict,
)

DAY = dt.date(2030, 5, 15)


def window(
    start: int,
    end: int,
    practitioner_id: int = 1,
    room: str = "A-101",
    date: dt.date = DAY,
) -> ScheduleWindow:
    return ScheduleWindow(
        practitioner_id=practitioner_id,
        room=room,
        date=date,
        start_time=dt.time(*divmod(start, 100)),
        end_time=dt.time(*divmod(end, 100)),
    )


def claim(**overrides: Any) -> SimpleNamespace:
    values = {
        "id": 1,
        "patient_dni": "12345678",
        "schedule_id": 10,
        "slot_id": 100,
        "state": AppointmentState.PENDING,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_partial_overlap() -> None:
    assert ranges_overlap(dt.time(9), dt.time(10), dt.time(9, 30), dt.time(10, 30))


def test_back_to_back_does_not_overlap() -> None:
    assert not ranges_overlap(dt.time(9), dt.time(10), dt.time(10), dt.time(11))
    assert not ranges_overlap(dt.time(10), dt.time(11), dt.time(9), dt.time(10))


def test_containment_overlaps() -> None:
    assert ranges_overlap(dt.time(9), dt.time(12), dt.time(10), dt.time(11))


@pytest.mark.parametrize(
    ("other", "expected"),
    [
        (window(930, 1030), True),
        (window(930, 1030, practitioner_id=2), True),
        (window(930, 1030, room="B-202"), True),
        (window(930, 1030, practitioner_id=2, room="B-202"), False),
        (window(1000, 1100), False),
        (window(930, 1030, date=DAY + dt.timedelta(days=1)), False),
    ],
)
def test_schedules_conflict(other: ScheduleWindow, expected: bool) -> None:
    assert schedules_conflict(window(900, 1000), other) is expected


def test_find_conflicting_schedule_returns_first_match() -> None:
    clash = window(945, 1045, room="C-303")
    existing = [window(1000, 1100, practitioner_id=3), clash]

    assert find_conflicting_schedule(window(900, 1000), existing) is clash
    assert find_conflicting_schedule(window(1100, 1200), existing) is None


def test_live_claim_conflicts() -> None:
    assert has_conflicting_claim([claim()], 10, 100)


def test_cancelled_claim_is_ignored() -> None:
    assert not has_conflicting_claim(
        [claim(state=AppointmentState.CANCELLED)],
        10,
        100,
    )


def test_completed_claim_still_conflicts() -> None:
    assert has_conflicting_claim([claim(state=AppointmentState.COMPLETED)], 10, 100)


def test_other_slot_is_ignored() -> None:
    assert not has_conflicting_claim([claim(slot_id=101)], 10, 100)
    assert not has_conflicting_claim([claim(schedule_id=11)], 10, 100)


def test_claim_scoped_by_patient() -> None:
    claims = [claim(patient_dni="87654321")]

    assert has_conflicting_claim(claims, 10, 100)
    assert not has_conflicting_claim(claims, 10, 100, patient_dni="12345678")
    assert has_conflicting_claim(claims, 10, 100, patient_dni="87654321")


def test_edited_appointment_is_excluded() -> None:
    assert not has_conflicting_claim([claim(id=5)], 10, 100, exclude_id=5)
    assert has_conflicting_claim([claim(id=5), claim(id=6)], 10, 100, exclude_id=5)
