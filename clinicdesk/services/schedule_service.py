"""
Schedule Service
Business logic for doctor availability windows and their approval
"""
import logging
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context

from clinicdesk.errors import NotFoundError, PermissionDeniedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, DoctorSchedule, User
from clinicdesk.models.appointment import STATUS_CANCELLED
from clinicdesk.models.doctor_schedule import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    OneOff,
    Recurrence,
    Weekly,
    day_of_week_for,
)
from clinicdesk.models.notification import TYPE_SCHEDULE_APPROVED, TYPE_SCHEDULE_REJECTED
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_DOCTOR
from clinicdesk.services.notification_service import NotificationEvent, notify_after_commit
from clinicdesk.utils.audit import audit_after_commit
from clinicdesk.utils.parsing import clinic_now, parse_bool, parse_date, parse_time

logger = logging.getLogger(__name__)

FALLBACK_MAX_APPOINTMENTS = 10

# Fields edit_schedule overwrites
EDITABLE_FIELDS = ('recurrence', 'start_time', 'end_time', 'is_available', 'max_appointments', 'notes')
REQUIRED_EDIT_FIELDS = ('recurrence', 'start_time', 'end_time', 'max_appointments')


def _default_capacity() -> int:
    if has_app_context():
        return current_app.config.get('DEFAULT_MAX_APPOINTMENTS', FALLBACK_MAX_APPOINTMENTS)
    return FALLBACK_MAX_APPOINTMENTS


def recurrence_from_payload(data: Dict[str, Any]) -> Recurrence:
    """
    Build a Recurrence from request data.

    Accepts `day_of_week` (0 = Sunday ... 6 = Saturday) or `specific_date`
    (YYYY-MM-DD). When both are present the date wins, provided it falls on
    the given day.
    """
    day = data.get('day_of_week')
    specific = data.get('specific_date')

    if specific not in (None, ''):
        on = parse_date(specific, 'specific_date')
        if day not in (None, '') and _parse_day(day) != day_of_week_for(on):
            raise ValidationError('specific_date does not fall on day_of_week', field='specific_date')
        return OneOff(on)

    if day in (None, ''):
        raise ValidationError('Either day_of_week or specific_date is required', field='day_of_week')
    return Weekly(_parse_day(day))


def _parse_day(value) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError):
        raise ValidationError('day_of_week must be an integer between 0 and 6', field='day_of_week')
    if isinstance(value, bool) or not 0 <= day <= 6:
        raise ValidationError('day_of_week must be an integer between 0 and 6', field='day_of_week')
    return day


def _validate_window(start_time: time, end_time: time):
    if end_time <= start_time:
        raise ValidationError('End time must be after start time', field='end_time')


def _validate_capacity(max_appointments) -> int:
    try:
        value = int(max_appointments)
    except (TypeError, ValueError):
        raise ValidationError('max_appointments must be a whole number', field='max_appointments')
    if value < 1:
        raise ValidationError('max_appointments must be at least 1', field='max_appointments')
    return value


def _validate_recurrence(recurrence):
    if isinstance(recurrence, Weekly):
        if isinstance(recurrence.day_of_week, bool) or recurrence.day_of_week not in range(7):
            raise ValidationError('day_of_week must be an integer between 0 and 6', field='day_of_week')
    elif not isinstance(recurrence, OneOff):
        raise ValidationError('Unsupported recurrence', field='recurrence')


def _load_doctor(session, doctor_id) -> User:
    doctor = session.get(User, doctor_id)
    if not doctor:
        raise NotFoundError('Doctor', doctor_id)
    if not doctor.is_doctor():
        raise ValidationError('Selected user is not a doctor', field='doctor_id')
    return doctor


def _load_schedule(session, schedule_id, lock=False) -> DoctorSchedule:
    query = session.query(DoctorSchedule).filter(DoctorSchedule.id == schedule_id)
    if lock:
        query = query.with_for_update().populate_existing()
    schedule = query.first()
    if not schedule:
        raise NotFoundError('Schedule', schedule_id)
    return schedule


def _check_overlap(session, doctor_id, recurrence, start_time, end_time, exclude_id=None):
    """Reject a window overlapping another live schedule with the same recurrence"""
    query = session.query(DoctorSchedule).filter(
        DoctorSchedule.doctor_id == doctor_id,
        DoctorSchedule.status != STATUS_REJECTED,
        DoctorSchedule.start_time < end_time,
        DoctorSchedule.end_time > start_time,
    )
    if isinstance(recurrence, OneOff):
        query = query.filter(DoctorSchedule.specific_date == recurrence.on)
    else:
        query = query.filter(DoctorSchedule.day_of_week == recurrence.day_of_week)
    if exclude_id is not None:
        query = query.filter(DoctorSchedule.id != exclude_id)

    clash = query.first()
    if clash:
        raise ValidationError(
            f'Schedule overlaps existing schedule {clash.id} '
            f'({clash.start_time:%H:%M}-{clash.end_time:%H:%M}, {clash.recurrence.describe()})',
            field='start_time',
        )


def _authorize_for_doctor(ctx, doctor_id):
    """Doctors manage their own schedules; staff and admins manage anyone's"""
    if ctx.is_doctor:
        if ctx.user_id != doctor_id:
            raise PermissionDeniedError('Doctors can only manage their own schedules')
        return
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)


def create_schedule(
    ctx,
    uow,
    doctor_id: int,
    start_time: time,
    end_time: time,
    recurrence: Recurrence,
    max_appointments: Optional[int] = None,
    is_available: bool = True,
    notes: Optional[str] = None,
) -> DoctorSchedule:
    """
    Declare a new availability window for a doctor.

    Args:
        ctx: Acting user
        uow: Unit of work the schedule is written in
        doctor_id: Doctor owning the window
        start_time / end_time: Window bounds, end exclusive
        recurrence: Weekly(day) or OneOff(date)
        max_appointments: Capacity; staff may omit it to get the clinic default
        is_available: Whether the window can be booked once approved
        notes: Free text shown to staff

    Returns:
        DoctorSchedule: pending when declared by the doctor, approved when
        entered by clinical staff or an admin
    """
    _authorize_for_doctor(ctx, doctor_id)

    with uow:
        _load_doctor(uow.session, doctor_id)
        _validate_recurrence(recurrence)
        start_time = parse_time(start_time, 'start_time')
        end_time = parse_time(end_time, 'end_time')
        _validate_window(start_time, end_time)

        if max_appointments is None:
            if ctx.is_doctor:
                raise ValidationError('max_appointments is required', field='max_appointments')
            max_appointments = _default_capacity()
        max_appointments = _validate_capacity(max_appointments)

        _check_overlap(uow.session, doctor_id, recurrence, start_time, end_time)

        schedule = DoctorSchedule(
            doctor_id=doctor_id,
            start_time=start_time,
            end_time=end_time,
            is_available=bool(is_available),
            max_appointments=max_appointments,
            notes=notes,
            created_by=ctx.user_id,
        )
        schedule.recurrence = recurrence
        if ctx.is_doctor:
            schedule.mark_pending()
        else:
            schedule.mark_approved()

        uow.session.add(schedule)
        uow.session.flush()

        audit_after_commit(uow, 'schedule', 'create', ctx, schedule.id, {
            'doctor_id': doctor_id,
            'recurrence': recurrence.describe(),
            'status': schedule.status,
        })

    logger.info(
        "Schedule %s created for doctor %s (%s %s-%s, %s)",
        schedule.id, doctor_id, recurrence.describe(),
        start_time.strftime('%H:%M'), end_time.strftime('%H:%M'), schedule.status,
    )
    return schedule


def create_schedules(ctx, uow, doctor_id: int, entries: Iterable[Dict[str, Any]]) -> List[DoctorSchedule]:
    """
    Create several schedules at once. All or nothing: one invalid entry
    rolls back the whole batch.
    """
    entries = list(entries)
    if not entries:
        raise ValidationError('At least one schedule entry is required', field='schedules')

    created = []
    with uow:
        for index, entry in enumerate(entries):
            try:
                created.append(create_schedule(
                    ctx,
                    uow,
                    doctor_id,
                    entry.get('start_time'),
                    entry.get('end_time'),
                    recurrence_from_payload(entry),
                    max_appointments=entry.get('max_appointments'),
                    is_available=parse_bool(entry.get('is_available', True), 'is_available'),
                    notes=entry.get('notes'),
                ))
            except ValidationError as e:
                raise ValidationError(
                    f'Schedule entry {index + 1}: {e.message}',
                    field=f'schedules[{index}].{e.field}' if e.field else f'schedules[{index}]',
                ) from e
    return created


def approve_schedule(ctx, uow, schedule_id: int) -> DoctorSchedule:
    """Approve a schedule. Approving an approved schedule is a no-op."""
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)

    with uow:
        schedule = _load_schedule(uow.session, schedule_id, lock=True)
        if schedule.status == STATUS_APPROVED and schedule.is_approved:
            logger.debug("Schedule %s already approved", schedule_id)
            return schedule

        schedule.mark_approved()
        audit_after_commit(uow, 'schedule', 'approve', ctx, schedule.id)
        notify_after_commit(uow, NotificationEvent(
            recipient_id=schedule.doctor_id,
            type=TYPE_SCHEDULE_APPROVED,
            title='Schedule Approved',
            message=f'Your schedule for {schedule.recurrence.describe()} '
                    f'({schedule.start_time:%H:%M}-{schedule.end_time:%H:%M}) has been approved.',
            related_id=schedule.id,
            related_type='schedule',
        ))

    logger.info("Schedule %s approved by user %s", schedule_id, ctx.user_id)
    return schedule


def reject_schedule(ctx, uow, schedule_id: int, note: str) -> DoctorSchedule:
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)
    note = (note or '').strip()
    if not note:
        raise ValidationError('A rejection note is required', field='note')

    with uow:
        schedule = _load_schedule(uow.session, schedule_id, lock=True)
        schedule.mark_rejected(note)
        audit_after_commit(uow, 'schedule', 'reject', ctx, schedule.id, {'note': note})
        notify_after_commit(uow, NotificationEvent(
            recipient_id=schedule.doctor_id,
            type=TYPE_SCHEDULE_REJECTED,
            title='Schedule Rejected',
            message=f'Your schedule for {schedule.recurrence.describe()} was rejected: {note}',
            related_id=schedule.id,
            related_type='schedule',
        ))

    logger.info("Schedule %s rejected by user %s", schedule_id, ctx.user_id)
    return schedule


def edit_schedule(ctx, uow, schedule_id: int, fields: Dict[str, Any]) -> DoctorSchedule:
    """
    Overwrite the mutable fields of a schedule.

    `fields` replaces the schedule's recurrence, start_time, end_time,
    max_appointments, is_available and notes. The first four are required;
    is_available falls back to True and notes to empty when left out. An
    edit by the owning doctor sends the schedule back for approval.
    """
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f'Cannot edit: {", ".join(sorted(unknown))}', field=sorted(unknown)[0])
    for name in REQUIRED_EDIT_FIELDS:
        if fields.get(name) in (None, ''):
            raise ValidationError(f'{name} is required', field=name)

    recurrence = fields['recurrence']
    _validate_recurrence(recurrence)
    start_time = parse_time(fields['start_time'], 'start_time')
    end_time = parse_time(fields['end_time'], 'end_time')
    _validate_window(start_time, end_time)
    max_appointments = _validate_capacity(fields['max_appointments'])

    with uow:
        schedule = _load_schedule(uow.session, schedule_id, lock=True)
        _authorize_for_doctor(ctx, schedule.doctor_id)
        _check_overlap(uow.session, schedule.doctor_id, recurrence, start_time, end_time, exclude_id=schedule.id)

        schedule.recurrence = recurrence
        schedule.start_time = start_time
        schedule.end_time = end_time
        schedule.max_appointments = max_appointments
        schedule.is_available = bool(fields.get('is_available', True))
        schedule.notes = fields.get('notes') or None

        if ctx.is_doctor and schedule.status != STATUS_PENDING:
            schedule.mark_pending()
            logger.info("Schedule %s edited by its doctor, back to pending", schedule.id)

        audit_after_commit(uow, 'schedule', 'update', ctx, schedule.id, {'fields': sorted(fields)})

    return schedule


def delete_schedule(ctx, uow, schedule_id: int) -> None:
    """
    Hard delete. Existing appointments are left untouched; they simply stop
    counting against any schedule.
    """
    with uow:
        schedule = _load_schedule(uow.session, schedule_id, lock=True)
        _authorize_for_doctor(ctx, schedule.doctor_id)
        # once approved, removal is a staff decision
        if ctx.is_doctor and schedule.is_approved:
            raise PermissionDeniedError('Approved schedules can only be removed by clinic staff')

        upcoming = _upcoming_bookings(uow.session, schedule)
        if upcoming:
            logger.warning(
                "Deleting schedule %s with %s upcoming appointment(s) still booked",
                schedule.id, upcoming,
            )

        uow.session.delete(schedule)
        audit_after_commit(uow, 'schedule', 'delete', ctx, schedule_id, {
            'doctor_id': schedule.doctor_id,
            'upcoming_appointments': upcoming,
        })

    logger.info("Schedule %s deleted by user %s", schedule_id, ctx.user_id)


def _upcoming_bookings(session, schedule) -> int:
    candidates = (
        session.query(Appointment)
        .filter(
            Appointment.assigned_doctor_id == schedule.doctor_id,
            Appointment.status != STATUS_CANCELLED,
            Appointment.deleted_at.is_(None),
            Appointment.scheduled_at >= clinic_now(),
        )
        .all()
    )
    return sum(
        1 for a in candidates
        if schedule.matches_date(a.scheduled_at.date()) and schedule.covers_time(a.scheduled_at.time())
    )


# ── Queries ──────────────────────────────────────────────────────────────────

def get_schedule(schedule_id: int) -> DoctorSchedule:
    schedule = db.session.get(DoctorSchedule, schedule_id)
    if not schedule:
        raise NotFoundError('Schedule', schedule_id)
    return schedule


def schedules_for_doctor(
    doctor_id: int,
    day_of_week: Optional[int] = None,
    approved: Optional[bool] = None,
    available: Optional[bool] = None,
) -> List[DoctorSchedule]:
    query = DoctorSchedule.query.filter_by(doctor_id=doctor_id)
    if day_of_week is not None:
        query = query.filter(DoctorSchedule.day_of_week == day_of_week)
    if approved is not None:
        query = query.filter(DoctorSchedule.is_approved.is_(approved))
    if available is not None:
        query = query.filter(DoctorSchedule.is_available.is_(available))
    return query.order_by(
        DoctorSchedule.specific_date.asc(),
        DoctorSchedule.day_of_week.asc(),
        DoctorSchedule.start_time.asc(),
    ).all()


def list_schedules(
    doctor_id: Optional[int] = None,
    status: Optional[str] = None,
    page: int = 1,
    per_page: int = 15,
):
    """Paginated listing for the staff approval screen, pending first"""
    query = DoctorSchedule.query.join(User, DoctorSchedule.doctor_id == User.id).filter(User.role == ROLE_DOCTOR)
    if doctor_id is not None:
        query = query.filter(DoctorSchedule.doctor_id == doctor_id)
    if status:
        query = query.filter(DoctorSchedule.status == status)
    query = query.order_by(
        db.case((DoctorSchedule.status == STATUS_PENDING, 0), else_=1),
        DoctorSchedule.created_at.desc(),
        DoctorSchedule.id.desc(),
    )
    return query.paginate(page=page, per_page=per_page, error_out=False)
