"""
Document Service
Collects everything a printed appointment document needs into a plain
dict. Rendering (PDF, HTML...) is left to a DocumentRenderer.
"""
import logging
from typing import Any, Dict, Protocol

from clinicdesk.extensions import db
from clinicdesk.errors import NotFoundError
from clinicdesk.models import Appointment

logger = logging.getLogger(__name__)


class DocumentRenderer(Protocol):
    """Turns an appointment snapshot into a document (bytes)"""

    def render(self, snapshot: Dict[str, Any]) -> bytes:
        ...


def build_appointment_snapshot(appointment_id: int) -> Dict[str, Any]:
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment or appointment.deleted_at is not None:
        raise NotFoundError('Appointment', appointment_id)

    patient = appointment.patient
    doctor = appointment.assigned_doctor
    return {
        'appointment': appointment.to_dict(include_history=True),
        'patient': {
            'id': patient.id,
            'name': patient.name,
            'email': patient.email,
            'phone': patient.phone,
            'reference_number': patient.reference_number,
        },
        'doctor': {'id': doctor.id, 'name': doctor.name} if doctor else None,
        'prescriptions': [p.to_dict() for p in appointment.prescriptions],
        'receipt': appointment.receipt.to_dict() if appointment.receipt else None,
    }


def render_appointment(appointment_id: int, renderer: DocumentRenderer) -> bytes:
    snapshot = build_appointment_snapshot(appointment_id)
    logger.debug("Rendering appointment %s with %s", appointment_id, type(renderer).__name__)
    return renderer.render(snapshot)
