from enum import Enum


class SlotState(Enum):
    """Slot states."""

    AVAILABLE = "available"  # Free to book
    OCCUPIED = "occupied"  # Held by an appointment
    BLOCKED = "blocked"  # Withdrawn by an operator


class AppointmentState(Enum):
    """Appointment states."""

    PENDING = "pending"  # Booked, not attended yet
    COMPLETED = "completed"  # Attended, slot stays occupied
    CANCELLED = "cancelled"  # Slot released


class PaymentMethod(Enum):
    """Payment methods accepted at the front desk."""

    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    TRANSFER = "transfer"


class ChargeStatus(Enum):
    """Charge statuses."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
