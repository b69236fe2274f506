import pytest

from clinic.booking.lifecycle import (
    AppointmentEvent,
    ensure_editable,
    next_appointment_state,
)
from clinic.db.models.enums import AppointmentState
from clinic.exceptions import InvalidStateError


def test_pending_can_be_cancelled() -> None:
    assert (
        next_appointment_state(AppointmentState.PENDING, AppointmentEvent.CANCEL)
        is AppointmentState.CANCELLED
    )


def test_pending_can_be_completed() -> None:
    assert (
        next_appointment_state(AppointmentState.PENDING, AppointmentEvent.COMPLETE)
        is AppointmentState.COMPLETED
    )


@pytest.mark.parametrize(
    "state",
    [AppointmentState.COMPLETED, AppointmentState.CANCELLED],
)
@pytest.mark.parametrize("event", list(AppointmentEvent))
def test_final_states_do_not_move(
    state: AppointmentState,
    event: AppointmentEvent,
) -> None:
    with pytest.raises(InvalidStateError):
        next_appointment_state(state, event)


def test_only_pending_is_editable() -> None:
    ensure_editable(AppointmentState.PENDING)
    with pytest.raises(InvalidStateError):
        ensure_editable(AppointmentState.COMPLETED)
