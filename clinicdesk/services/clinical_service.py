"""
Clinical Service
Prescriptions written by doctors and lab results recorded against patients
"""
import logging
from datetime import date, datetime
from typing import Optional

from clinicdesk.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from clinicdesk.models import Appointment, LabResult, Prescription, User
from clinicdesk.models.appointment import STATUS_CANCELLED, STATUS_PENDING
from clinicdesk.models.notification import TYPE_LAB_RESULTS_AVAILABLE
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_DOCTOR, ROLE_PATIENT
from clinicdesk.services.notification_service import NotificationEvent, notify_after_commit
from clinicdesk.utils.audit import audit_after_commit
from clinicdesk.utils.parsing import clinic_now, require_text

logger = logging.getLogger(__name__)


def _load_appointment(session, appointment_id) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment or appointment.deleted_at is not None:
        raise NotFoundError('Appointment', appointment_id)
    return appointment


def _unique_reference(session) -> str:
    # RX numbers carry four random digits; retry on the rare same-day clash
    for _ in range(10):
        reference = Prescription.generate_reference_number()
        if not session.query(Prescription.id).filter_by(reference_number=reference).first():
            return reference
    raise InvalidStateError('Could not allocate a prescription number, try again')


def add_prescription(
    ctx,
    uow,
    appointment_id: int,
    medication: str,
    dosage: str,
    frequency: Optional[str] = None,
    duration: Optional[str] = None,
    instructions: Optional[str] = None,
) -> Prescription:
    """
    Write a prescription on an appointment.

    Only the appointment's doctor may prescribe, and only once the
    appointment is confirmed or completed.
    """
    ctx.require(ROLE_DOCTOR)
    medication = require_text(medication, 'medication')
    dosage = require_text(dosage, 'dosage')

    with uow:
        appointment = _load_appointment(uow.session, appointment_id)
        if appointment.assigned_doctor_id != ctx.user_id:
            raise PermissionDeniedError('Only the assigned doctor can prescribe for this appointment')
        if appointment.status in (STATUS_PENDING, STATUS_CANCELLED):
            raise InvalidStateError(
                f'Cannot prescribe for a {appointment.status} appointment',
                current=appointment.status,
            )

        prescription = Prescription(
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            doctor_id=ctx.user_id,
            medication=medication,
            dosage=dosage,
            frequency=frequency,
            duration=duration,
            instructions=instructions,
            prescription_date=date.today(),
            reference_number=_unique_reference(uow.session),
        )
        uow.session.add(prescription)
        uow.session.flush()
        audit_after_commit(uow, 'prescription', 'create', ctx, prescription.id, {
            'appointment_id': appointment.id,
            'medication': medication,
        })

    logger.info("Prescription %s added to appointment %s", prescription.reference_number, appointment_id)
    return prescription


def record_lab_result(
    ctx,
    uow,
    patient_id: int,
    test_type: str,
    test_date: Optional[datetime] = None,
    appointment_id: Optional[int] = None,
    file_key: Optional[str] = None,
    notes: Optional[str] = None,
) -> LabResult:
    """
    Store a lab result. The file itself lives in external storage; only
    its key is kept here.
    """
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN, ROLE_DOCTOR)
    test_type = require_text(test_type, 'test_type')
    test_date = test_date or clinic_now()
    if test_date > clinic_now():
        raise ValidationError('test_date cannot be in the future', field='test_date')

    with uow:
        patient = uow.session.get(User, patient_id)
        if not patient or patient.role != ROLE_PATIENT:
            raise NotFoundError('Patient', patient_id)

        if appointment_id is not None:
            appointment = _load_appointment(uow.session, appointment_id)
            if appointment.patient_id != patient_id:
                raise ValidationError('Appointment belongs to another patient', field='appointment_id')
            if ctx.is_doctor and appointment.assigned_doctor_id != ctx.user_id:
                raise PermissionDeniedError('Doctors can only record results for their own appointments')
        elif ctx.is_doctor:
            raise ValidationError('appointment_id is required', field='appointment_id')

        result = LabResult(
            patient_id=patient_id,
            appointment_id=appointment_id,
            test_type=test_type,
            test_date=test_date,
            file_key=file_key or None,
            notes=notes,
            created_by=ctx.user_id,
        )
        uow.session.add(result)
        uow.session.flush()

        audit_after_commit(uow, 'lab_result', 'create', ctx, result.id, {'test_type': test_type})
        notify_after_commit(uow, NotificationEvent(
            recipient_id=patient_id,
            type=TYPE_LAB_RESULTS_AVAILABLE,
            title='Lab Results Available',
            message=f'Your {test_type} results are now available.',
            related_id=result.id,
            related_type='lab_result',
        ))

    logger.info("Lab result %s (%s) recorded for patient %s", result.id, test_type, patient_id)
    return result


def lab_results_for_patient(ctx, patient_id: int):
    ctx.require_self_or(patient_id, ROLE_CLINICAL_STAFF, ROLE_ADMIN, ROLE_DOCTOR)
    return (
        LabResult.query.filter_by(patient_id=patient_id)
        .order_by(LabResult.test_date.desc(), LabResult.id.desc())
        .all()
    )
