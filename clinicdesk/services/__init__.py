from .context import ActorContext
from .unit_of_work import UnitOfWork

from .availability_service import (
    available_slot_count,
    count_booked,
    find_schedule_for,
    is_fully_booked,
    open_slots,
)

from .schedule_service import (
    approve_schedule,
    create_schedule,
    create_schedules,
    delete_schedule,
    edit_schedule,
    get_schedule,
    recurrence_from_payload,
    reject_schedule,
    schedules_for_doctor,
)

from .appointment_service import (
    assign_doctor,
    book_appointment,
    get_appointment,
    list_appointments,
    soft_delete_appointment,
    update_details,
    update_status,
)

from .remediation_service import RemediationResult, assign_default_doctor

from .record_request_service import (
    approve_request,
    deny_request,
    is_access_currently_valid,
    submit_request,
)

from .email_service import send_notification_email

__all__ = [
    "ActorContext",
    "UnitOfWork",
    # Availability
    "available_slot_count",
    "count_booked",
    "find_schedule_for",
    "is_fully_booked",
    "open_slots",
    # Schedules
    "approve_schedule",
    "create_schedule",
    "create_schedules",
    "delete_schedule",
    "edit_schedule",
    "get_schedule",
    "recurrence_from_payload",
    "reject_schedule",
    "schedules_for_doctor",
    # Appointments
    "assign_doctor",
    "book_appointment",
    "get_appointment",
    "list_appointments",
    "soft_delete_appointment",
    "update_details",
    "update_status",
    "RemediationResult",
    "assign_default_doctor",
    # Record requests
    "approve_request",
    "deny_request",
    "is_access_currently_valid",
    "submit_request",
    # Email
    "send_notification_email",
]
