from .client import (
    ClinicAPIClient,
    PatientAPIClient,
    PaymentAPIClient,
    ScheduleAPIClient,
    SpecialtyAPIClient,
)

__all__ = [
    "ClinicAPIClient",
    "PatientAPIClient",
    "PaymentAPIClient",
    "ScheduleAPIClient",
    "SpecialtyAPIClient",
]
