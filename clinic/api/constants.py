"""
Endpoints of the clinic services
"""

# Endpoints, relative to each service's base URL
ENDPOINTS = {
    # Schedules
    "slot": "schedules/{schedule_id}/slots/{slot_id}",
    "slot_transition": "schedules/{schedule_id}/slots/{slot_id}/{action}",
    "available_slot": "slots/available",
    # Charges
    "charges": "charges",
    "charge_capture": "charges/appointment/{appointment_id}/capture",
    # Patients
    "patient_by_dni": "patients/dni/{dni}",
    # Specialties
    "specialty": "specialties/{specialty_id}",
}

# HTTP headers
DEFAULT_HEADERS = {
    "accept": "application/json",
    "content-type": "application/json",
    "user-agent": "clinic-scheduling",
}
