"""
Appointment Service
Booking, status transitions and clinical details of appointments
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from clinicdesk.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, AppointmentStatusChange, User
from clinicdesk.models.appointment import (
    RECORD_TYPES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUSES,
    TRANSITIONS,
    TYPE_MEDICAL_CHECKUP,
)
from clinicdesk.models.notification import (
    TYPE_APPOINTMENT_CANCELLED,
    TYPE_APPOINTMENT_COMPLETED,
    TYPE_APPOINTMENT_CONFIRMED,
    TYPE_APPOINTMENT_REQUEST,
)
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_DOCTOR, ROLE_PATIENT
from clinicdesk.schemas import dump_details, parse_details
from clinicdesk.services import availability_service
from clinicdesk.services.notification_service import NotificationEvent, notify_after_commit
from clinicdesk.utils.audit import audit_after_commit
from clinicdesk.utils.parsing import clinic_now, parse_datetime, parse_decimal
from clinicdesk.utils.retry import retry_on_conflict

logger = logging.getLogger(__name__)

# Notification sent to the patient when an appointment reaches a status
_STATUS_NOTIFICATIONS = {
    STATUS_CONFIRMED: (TYPE_APPOINTMENT_CONFIRMED, 'Appointment Confirmed', 'has been confirmed'),
    STATUS_CANCELLED: (TYPE_APPOINTMENT_CANCELLED, 'Appointment Cancelled', 'has been cancelled'),
    STATUS_COMPLETED: (TYPE_APPOINTMENT_COMPLETED, 'Appointment Completed', 'has been completed'),
}


def generate_reference_number(appointment_id: int) -> str:
    """APP-000123"""
    return f"APP-{appointment_id:06d}"


def _load_user(session, user_id, role, entity):
    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError(entity, user_id)
    if user.role != role:
        raise ValidationError(f'Selected user is not a {role.replace("_", " ")}', field=f'{entity.lower()}_id')
    return user


def _load_appointment(session, appointment_id, lock=False) -> Appointment:
    query = session.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.deleted_at.is_(None),
    )
    if lock:
        query = query.with_for_update().populate_existing()
    appointment = query.first()
    if not appointment:
        raise NotFoundError('Appointment', appointment_id)
    return appointment


def _patient_snapshot(patient: User) -> Dict[str, Any]:
    return {
        'name': patient.name,
        'email': patient.email,
        'phone': patient.phone,
        'reference_number': patient.reference_number,
    }


@retry_on_conflict
def book_appointment(
    ctx,
    uow,
    patient_id: int,
    doctor_id: Optional[int],
    scheduled_at: datetime,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    record_type: str = TYPE_MEDICAL_CHECKUP,
    fee=None,
) -> Appointment:
    """
    Book a pending appointment.

    With a doctor the booking claims a slot on the doctor's approved
    schedule covering `scheduled_at`; without one the appointment is stored
    unassigned and left for remediation.

    Raises:
        ValidationError: bad input or a time in the past
        CapacityExceededError: no approved schedule or no slot left
        ConcurrencyConflictError: lost a race after all retries
    """
    ctx.require(ROLE_PATIENT, ROLE_CLINICAL_STAFF, ROLE_DOCTOR, ROLE_ADMIN)
    if ctx.is_patient and ctx.user_id != patient_id:
        raise PermissionDeniedError('Patients can only book appointments for themselves')
    if doctor_id is None and ctx.is_doctor:
        doctor_id = ctx.user_id

    if record_type not in RECORD_TYPES:
        raise ValidationError(f'record_type must be one of: {", ".join(RECORD_TYPES)}', field='record_type')
    if not isinstance(scheduled_at, datetime):
        raise ValidationError('scheduled_at must be a date and time', field='scheduled_at')
    scheduled_at = parse_datetime(scheduled_at, 'scheduled_at').replace(second=0, microsecond=0)
    if scheduled_at < clinic_now():
        raise ValidationError('Cannot book an appointment in the past', field='scheduled_at')
    if fee is not None:
        fee = parse_decimal(fee, 'fee')
        if fee < Decimal('0'):
            raise ValidationError('fee cannot be negative', field='fee')

    with uow:
        patient = _load_user(uow.session, patient_id, ROLE_PATIENT, 'Patient')

        raw_details = dict(details or {})
        raw_details.setdefault('appointment_time', scheduled_at.strftime('%H:%M'))
        raw_details['patient_snapshot'] = _patient_snapshot(patient)
        parsed = parse_details(record_type, raw_details)

        doctor = None
        if doctor_id is not None:
            doctor = _load_user(uow.session, doctor_id, ROLE_DOCTOR, 'Doctor')
            availability_service.consume_slot(uow, doctor, scheduled_at)

        appointment = Appointment(
            patient_id=patient.id,
            assigned_doctor_id=doctor.id if doctor else None,
            scheduled_at=scheduled_at,
            reason=(reason or '').strip() or None,
            record_type=record_type,
            details=dump_details(parsed),
            fee=fee,
        )
        uow.session.add(appointment)
        uow.session.flush()
        appointment.reference_number = generate_reference_number(appointment.id)

        audit_after_commit(uow, 'appointment', 'create', ctx, appointment.id, {
            'patient_id': patient.id,
            'doctor_id': appointment.assigned_doctor_id,
            'scheduled_at': scheduled_at.isoformat(),
        })
        if doctor:
            notify_after_commit(uow, NotificationEvent(
                recipient_id=doctor.id,
                type=TYPE_APPOINTMENT_REQUEST,
                title='New Appointment Request',
                message=f'{patient.name} requested an appointment on {scheduled_at:%Y-%m-%d} at {scheduled_at:%H:%M}.',
                related_id=appointment.id,
                related_type='appointment',
                data={'reference_number': appointment.reference_number},
            ))

    if doctor is None:
        logger.warning("Appointment %s booked without a doctor", appointment.id)
    logger.info("Appointment %s booked for patient %s at %s", appointment.reference_number, patient_id, scheduled_at)
    return appointment


def _authorize_transition(ctx, appointment, new_status):
    if ctx.is_patient:
        # patients may only withdraw their own appointments
        if appointment.patient_id != ctx.user_id or new_status != STATUS_CANCELLED:
            raise PermissionDeniedError('Patients can only cancel their own appointments')
        return
    ctx.require(ROLE_DOCTOR, ROLE_CLINICAL_STAFF, ROLE_ADMIN)
    if ctx.is_doctor and appointment.assigned_doctor_id != ctx.user_id:
        raise PermissionDeniedError('Doctors can only update appointments assigned to them')


@retry_on_conflict
def update_status(ctx, uow, appointment_id: int, new_status: str, note: Optional[str] = None) -> Appointment:
    """
    Move an appointment along pending -> confirmed -> completed, or cancel it.

    The transition is checked against the row as re-read inside the
    transaction, never against what the caller saw earlier.
    """
    with uow:
        appointment = _load_appointment(uow.session, appointment_id, lock=True)
        _authorize_transition(ctx, appointment, new_status)

        current = appointment.status
        allowed = TRANSITIONS.get(current, frozenset())
        if new_status not in STATUSES or new_status not in allowed:
            raise InvalidTransitionError(current, new_status, allowed)

        appointment.status = new_status
        appointment.status_changes.append(AppointmentStatusChange(
            from_status=current,
            to_status=new_status,
            note=(note or '').strip() or None,
            changed_by=ctx.user_id,
            changed_by_role=ctx.role,
        ))

        audit_after_commit(uow, 'appointment', 'status_change', ctx, appointment.id, {
            'from': current,
            'to': new_status,
        })
        notification_type, title, phrase = _STATUS_NOTIFICATIONS[new_status]
        # no self-notification for a patient cancelling their own booking
        if not (ctx.is_patient and ctx.user_id == appointment.patient_id):
            notify_after_commit(uow, NotificationEvent(
                recipient_id=appointment.patient_id,
                type=notification_type,
                title=title,
                message=f'Your appointment {appointment.reference_number} on '
                        f'{appointment.scheduled_at:%Y-%m-%d} at {appointment.scheduled_at:%H:%M} {phrase}.',
                related_id=appointment.id,
                related_type='appointment',
                data={'status': new_status, 'note': note} if note else {'status': new_status},
            ))

    logger.info("Appointment %s: %s -> %s by user %s", appointment_id, current, new_status, ctx.user_id)
    return appointment


@retry_on_conflict
def assign_doctor(ctx, uow, appointment_id: int, doctor_id: int) -> Appointment:
    """
    Attach a doctor to one appointment booked without one.

    Re-assigning the same doctor is a no-op. An appointment that already has
    another doctor is refused, and a live appointment claims a slot on the
    new doctor's schedule like a booking does.

    Raises:
        InvalidStateError: the appointment belongs to another doctor
        CapacityExceededError: no approved schedule or no slot left
    """
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)

    with uow:
        appointment = _load_appointment(uow.session, appointment_id, lock=True)
        doctor = _load_user(uow.session, doctor_id, ROLE_DOCTOR, 'Doctor')
        if appointment.assigned_doctor_id == doctor.id:
            return appointment

        previous = appointment.assigned_doctor_id
        # 0 is the legacy "no doctor" marker
        if previous not in (None, 0):
            raise InvalidStateError(
                f'Appointment {appointment.reference_number or appointment.id} is already assigned to doctor {previous}',
                current='assigned',
                expected='unassigned',
            )
        if appointment.status != STATUS_CANCELLED:
            availability_service.consume_slot(uow, doctor, appointment.scheduled_at)

        appointment.assigned_doctor_id = doctor.id
        audit_after_commit(uow, 'appointment', 'assign_doctor', ctx, appointment.id, {
            'from': previous,
            'to': doctor.id,
        })

    logger.info("Appointment %s assigned to doctor %s", appointment_id, doctor_id)
    return appointment


@retry_on_conflict
def update_details(ctx, uow, appointment_id: int, details: Dict[str, Any]) -> Appointment:
    """
    Record clinical details (vitals, diagnosis, lab values...) on an
    appointment. The payload replaces the stored details except for the
    patient snapshot, which is kept from booking.
    """
    ctx.require(ROLE_DOCTOR, ROLE_CLINICAL_STAFF, ROLE_ADMIN)

    with uow:
        appointment = _load_appointment(uow.session, appointment_id, lock=True)
        if ctx.is_doctor and appointment.assigned_doctor_id != ctx.user_id:
            raise PermissionDeniedError('Doctors can only update appointments assigned to them')
        if appointment.status == STATUS_CANCELLED:
            raise ValidationError('Cannot record details on a cancelled appointment', field='status')

        stored = appointment.details or {}
        merged = dict(details or {})
        merged.pop('patient_snapshot', None)
        if stored.get('patient_snapshot'):
            merged['patient_snapshot'] = stored['patient_snapshot']
        merged.setdefault('appointment_time', stored.get('appointment_time'))

        appointment.details = dump_details(parse_details(appointment.record_type, merged))
        audit_after_commit(uow, 'appointment', 'update_details', ctx, appointment.id, {
            'fields': sorted(k for k in merged if k != 'patient_snapshot'),
        })

    return appointment


def soft_delete_appointment(ctx, uow, appointment_id: int) -> Appointment:
    """Hide an appointment from every listing. Medical data is never hard deleted."""
    ctx.require(ROLE_ADMIN)

    with uow:
        appointment = _load_appointment(uow.session, appointment_id, lock=True)
        appointment.deleted_at = datetime.utcnow()
        audit_after_commit(uow, 'appointment', 'delete', ctx, appointment.id)

    logger.info("Appointment %s soft-deleted by user %s", appointment_id, ctx.user_id)
    return appointment


# ── Queries ──────────────────────────────────────────────────────────────────

def _scoped(ctx, query):
    if ctx.is_patient:
        return query.filter(Appointment.patient_id == ctx.user_id)
    if ctx.is_doctor:
        return query.filter(Appointment.assigned_doctor_id == ctx.user_id)
    return query


def get_appointment(ctx, appointment_id: int) -> Appointment:
    appointment = _scoped(ctx, Appointment.query.filter(
        Appointment.id == appointment_id,
        Appointment.deleted_at.is_(None),
    )).first()
    if not appointment:
        raise NotFoundError('Appointment', appointment_id)
    return appointment


def list_appointments(ctx, filters: Optional[Dict[str, Any]] = None, page: int = 1, per_page: int = 15):
    """
    Paginated appointment listing.

    Patients only see their own appointments and doctors the ones assigned
    to them. Supported filters: status, record_type, patient_id, doctor_id,
    date_from, date_to (dates, inclusive) and unassigned.
    """
    filters = filters or {}
    query = _scoped(ctx, Appointment.query.filter(Appointment.deleted_at.is_(None)))

    if filters.get('status'):
        query = query.filter(Appointment.status == filters['status'])
    if filters.get('record_type'):
        query = query.filter(Appointment.record_type == filters['record_type'])
    if filters.get('patient_id'):
        query = query.filter(Appointment.patient_id == filters['patient_id'])
    if filters.get('doctor_id'):
        query = query.filter(Appointment.assigned_doctor_id == filters['doctor_id'])
    if filters.get('unassigned'):
        query = query.filter(db.or_(
            Appointment.assigned_doctor_id.is_(None),
            Appointment.assigned_doctor_id == 0,
        ))
    if filters.get('date_from'):
        query = query.filter(Appointment.scheduled_at >= datetime.combine(filters['date_from'], datetime.min.time()))
    if filters.get('date_to'):
        query = query.filter(Appointment.scheduled_at <= datetime.combine(filters['date_to'], datetime.max.time()))

    query = query.order_by(Appointment.scheduled_at.desc(), Appointment.id.desc())
    return query.paginate(page=page, per_page=per_page, error_out=False)
