"""Overlap rules for schedules and appointment claims.

Stores only fetch candidate rows; every decision is made here.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from clinic.db.models.enums import AppointmentState


@dataclass(frozen=True)
class ScheduleWindow:
    """The part of a schedule that matters for overlap checks."""

    practitioner_id: int
    room: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time


class Claim(Protocol):
    """Anything that holds a slot for a patient."""

    id: int
    patient_dni: str
    schedule_id: int
    slot_id: int
    state: AppointmentState


def ranges_overlap(
    start_a: dt.time,
    end_a: dt.time,
    start_b: dt.time,
    end_b: dt.time,
) -> bool:
    """
    Check whether two half-open ranges share any instant.

    Back-to-back ranges such as ``[09:00, 10:00)`` and ``[10:00, 11:00)``
    do not overlap.
    """
    return start_a < end_b and start_b < end_a


def schedules_conflict(first: ScheduleWindow, second: ScheduleWindow) -> bool:
    """
    Check whether two schedules compete for the same practitioner or room.

    Args:
        first: One schedule window.
        second: The other schedule window.

    Returns:
        True if both are on the same date, their times overlap and they
        share the practitioner or the room.
    """
    if first.date != second.date:
        return False
    if first.practitioner_id != second.practitioner_id and first.room != second.room:
        return False
    return ranges_overlap(
        first.start_time,
        first.end_time,
        second.start_time,
        second.end_time,
    )


def find_conflicting_schedule(
    candidate: ScheduleWindow,
    existing: Iterable[ScheduleWindow],
) -> Optional[ScheduleWindow]:
    """Return the first existing schedule that conflicts with the candidate."""
    for window in existing:
        if schedules_conflict(candidate, window):
            return window
    return None


def has_conflicting_claim(
    claims: Iterable[Claim],
    schedule_id: int,
    slot_id: int,
    patient_dni: Optional[str] = None,
    exclude_id: Optional[int] = None,
) -> bool:
    """
    Check whether a slot is already claimed.

    Args:
        claims: Candidate appointments.
        schedule_id: The schedule of the slot being claimed.
        slot_id: The slot being claimed.
        patient_dni: When given, only this patient's claims count.
        exclude_id: Appointment to ignore, usually the one being edited.

    Returns:
        True if a non-cancelled claim matches.
    """
    for claim in claims:
        if claim.state is AppointmentState.CANCELLED:
            continue
        if claim.schedule_id != schedule_id or claim.slot_id != slot_id:
            continue
        if exclude_id is not None and claim.id == exclude_id:
            continue
        if patient_dni is not None and claim.patient_dni != patient_dni:
            continue
        return True
    return False
