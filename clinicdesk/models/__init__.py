from .user import User
from .doctor_schedule import DoctorSchedule
from .appointment import Appointment, AppointmentStatusChange
from .record_request import RecordRequest
from .notification import Notification
from .receipt import Receipt
from .prescription import Prescription
from .lab_result import LabResult
from .audit_log import AuditLog

__all__ = [
    "User",
    "DoctorSchedule",
    "Appointment",
    "AppointmentStatusChange",
    "RecordRequest",
    "Notification",
    "Receipt",
    "Prescription",
    "LabResult",
    "AuditLog",
]
