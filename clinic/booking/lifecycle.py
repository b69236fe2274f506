from enum import Enum
from typing import Dict

from clinic.db.models.enums import AppointmentState
from clinic.exceptions import InvalidStateError


class AppointmentEvent(Enum):
    """Operations that end an appointment."""

    CANCEL = "cancel"
    COMPLETE = "complete"


TARGETS: Dict[AppointmentEvent, AppointmentState] = {
    AppointmentEvent.CANCEL: AppointmentState.CANCELLED,
    AppointmentEvent.COMPLETE: AppointmentState.COMPLETED,
}


def next_appointment_state(
    state: AppointmentState,
    event: AppointmentEvent,
) -> AppointmentState:
    """
    Resolve the state an appointment moves to.

    Only PENDING appointments can move; COMPLETED and CANCELLED are final.

    Raises:
        InvalidStateError: If the appointment is no longer pending.
    """
    if state is not AppointmentState.PENDING:
        raise InvalidStateError(
            f"Cannot {event.value} an appointment that is {state.value}",
        )
    return TARGETS[event]


def ensure_editable(state: AppointmentState) -> None:
    """Raise InvalidStateError unless the appointment can still be edited."""
    if state is not AppointmentState.PENDING:
        raise InvalidStateError(
            f"Only pending appointments can be edited, this one is {state.value}",
        )
