import datetime as dt
from enum import Enum
from typing import Dict, FrozenSet, List, Tuple

from clinic.db.models.enums import SlotState
from clinic.exceptions import InvalidStateError, ValidationError

# Anchor used to do arithmetic on times of day
_ANCHOR = dt.date(2000, 1, 1)


class SlotEvent(Enum):
    """Operations that move a slot between states."""

    OCCUPY = "occupy"
    RELEASE = "release"
    BLOCK = "block"
    UNBLOCK = "unblock"


TRANSITIONS: Dict[SlotEvent, Tuple[FrozenSet[SlotState], SlotState]] = {
    SlotEvent.OCCUPY: (frozenset({SlotState.AVAILABLE}), SlotState.OCCUPIED),
    SlotEvent.RELEASE: (frozenset({SlotState.OCCUPIED}), SlotState.AVAILABLE),
    SlotEvent.BLOCK: (frozenset({SlotState.AVAILABLE}), SlotState.BLOCKED),
    SlotEvent.UNBLOCK: (frozenset({SlotState.BLOCKED}), SlotState.AVAILABLE),
}


def next_state(state: SlotState, event: SlotEvent) -> SlotState:
    """
    Resolve the state a slot moves to.

    Raises:
        InvalidStateError: If the event is not allowed from ``state``.
    """
    sources, target = TRANSITIONS[event]
    if state not in sources:
        raise InvalidStateError(
            f"Cannot {event.value} a slot that is {state.value}",
        )
    return target


def generate_slots(
    start: dt.time,
    end: dt.time,
    duration_minutes: int,
) -> List[Tuple[dt.time, dt.time]]:
    """
    Split ``[start, end)`` into contiguous slots of a fixed length.

    A trailing remainder shorter than ``duration_minutes`` is dropped.

    Args:
        start: Start of the range.
        end: End of the range.
        duration_minutes: Slot length.

    Returns:
        A list of ``(start, end)`` pairs in chronological order.

    Raises:
        ValidationError: If the range is empty or the duration is not positive.
    """
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be positive")
    if end <= start:
        raise ValidationError("End time must be after start time")

    step = dt.timedelta(minutes=duration_minutes)
    current = dt.datetime.combine(_ANCHOR, start)
    limit = dt.datetime.combine(_ANCHOR, end)

    slots = []
    while current + step <= limit:
        slots.append((current.time(), (current + step).time()))
        current += step
    return slots


def seconds_between(first: dt.time, second: dt.time) -> float:
    """Absolute distance between two times of day, in seconds."""
    delta = dt.datetime.combine(_ANCHOR, first) - dt.datetime.combine(_ANCHOR, second)
    return abs(delta.total_seconds())
