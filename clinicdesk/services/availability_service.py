"""
Availability Service
Derives bookable capacity from approved schedules and existing appointments.

An appointment counts against a schedule when it belongs to the schedule's
doctor, is neither cancelled nor deleted, falls on a date the schedule's
recurrence matches, and starts inside the half-open [start, end) window.
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from clinicdesk.errors import CapacityExceededError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, DoctorSchedule
from clinicdesk.models.appointment import STATUS_CANCELLED
from clinicdesk.models.doctor_schedule import day_of_week_for

logger = logging.getLogger(__name__)


def _session(session):
    return session if session is not None else db.session


def _window(schedule: DoctorSchedule, on_date: date):
    return (
        datetime.combine(on_date, schedule.start_time),
        datetime.combine(on_date, schedule.end_time),
    )


def booked_query(schedule: DoctorSchedule, on_date: date, session=None):
    """Appointments consuming a slot of `schedule` on `on_date`"""
    start, end = _window(schedule, on_date)
    return (
        _session(session).query(Appointment)
        .filter(
            Appointment.assigned_doctor_id == schedule.doctor_id,
            Appointment.status != STATUS_CANCELLED,
            Appointment.deleted_at.is_(None),
            Appointment.scheduled_at >= start,
            Appointment.scheduled_at < end,
        )
    )


def count_booked(schedule: DoctorSchedule, on_date: date, session=None) -> int:
    if not schedule.matches_date(on_date):
        return 0
    return booked_query(schedule, on_date, session).count()


def available_slot_count(schedule: DoctorSchedule, on_date: date, session=None) -> int:
    """
    Remaining slots on a date.

    Always 0 for a schedule that is unavailable, not approved, or does not
    apply to `on_date`, whatever the arithmetic would say.
    """
    if not schedule.is_bookable() or not schedule.matches_date(on_date):
        return 0
    return max(0, schedule.max_appointments - count_booked(schedule, on_date, session))


def is_fully_booked(schedule: DoctorSchedule, on_date: date, session=None) -> bool:
    return count_booked(schedule, on_date, session) >= schedule.max_appointments


def _candidates(doctor_id: int, on_date: date, session=None, lock=False):
    query = (
        _session(session).query(DoctorSchedule)
        .filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.is_approved.is_(True),
            db.or_(
                DoctorSchedule.specific_date == on_date,
                db.and_(
                    DoctorSchedule.specific_date.is_(None),
                    DoctorSchedule.day_of_week == day_of_week_for(on_date),
                ),
            ),
        )
        .order_by(DoctorSchedule.id)
    )
    if lock:
        query = query.with_for_update().populate_existing()
    return query.all()


def find_schedule_for(doctor_id: int, when: datetime, session=None, lock=False) -> Optional[DoctorSchedule]:
    """
    Approved schedule governing `when` for a doctor.

    A schedule for that specific date overrides the weekly one, even when the
    override is marked unavailable (that is how a doctor blocks a day off).
    """
    covering = [
        s for s in _candidates(doctor_id, when.date(), session, lock=lock)
        if s.covers_time(when.time())
    ]
    one_off = [s for s in covering if s.specific_date is not None]
    if one_off:
        return one_off[0]
    return covering[0] if covering else None


def open_slots(doctor_id: int, on_date: date, session=None) -> List[Dict]:
    """Every approved schedule of a doctor on a date with its remaining capacity"""
    slots = []
    for schedule in _candidates(doctor_id, on_date, session):
        booked = count_booked(schedule, on_date, session)
        slots.append({
            'schedule': schedule,
            'booked': booked,
            'available': available_slot_count(schedule, on_date, session),
        })
    slots.sort(key=lambda slot: slot['schedule'].start_time)
    return slots


def consume_slot(uow, doctor, when: datetime) -> DoctorSchedule:
    """
    Claim one slot for a booking at `when`, inside the caller's transaction.

    The schedule row is locked where the database supports it and its
    version is bumped, so a concurrent booking that read the same count
    fails with a conflict and is retried against fresh state.
    """
    schedule = find_schedule_for(doctor.id, when, uow.session, lock=True)
    if schedule is None:
        raise CapacityExceededError(
            f'{doctor.name} has no approved schedule covering {when:%Y-%m-%d %H:%M}',
            {'doctor_id': doctor.id},
        )

    available = available_slot_count(schedule, when.date(), uow.session)
    if available <= 0:
        reason = 'is not available' if not schedule.is_available else 'is fully booked'
        raise CapacityExceededError(
            f'Schedule {schedule.id} {reason} on {when:%Y-%m-%d}',
            {'schedule_id': schedule.id, 'available_slots': 0},
        )

    schedule.last_booked_at = datetime.utcnow()
    logger.info("Slot claimed on schedule %s for %s (%s left before booking)", schedule.id, when, available)
    return schedule
