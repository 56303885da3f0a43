"""Booking, the appointment state machine and clinical details"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import product

import pytest

from clinicdesk.errors import (
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Notification
from clinicdesk.models.appointment import STATUSES, TRANSITIONS
from clinicdesk.services import UnitOfWork, availability_service
from clinicdesk.services.appointment_service import (
    assign_doctor,
    book_appointment,
    generate_reference_number,
    get_appointment,
    list_appointments,
    soft_delete_appointment,
    update_details,
    update_status,
)
from helpers import MONDAY, actor, at, next_weekday


@pytest.fixture
def slot(doctor, make_schedule):
    make_schedule(doctor, max_appointments=5)
    return at(next_weekday(MONDAY), '09:30')


# ============================================================================
# BOOKING
# ============================================================================


def test_generate_reference_number():
    assert generate_reference_number(42) == 'APP-000042'


def test_book_appointment(uow, doctor, patient, slot):
    appointment = book_appointment(
        actor(patient), uow, patient.id, doctor.id, slot,
        reason='  Annual checkup ', fee='25.50',
    )

    assert appointment.status == 'pending'
    assert appointment.reference_number == generate_reference_number(appointment.id)
    assert appointment.reason == 'Annual checkup'
    assert appointment.fee == Decimal('25.50')
    assert appointment.details['appointment_time'] == '09:30'
    assert appointment.details['patient_snapshot']['name'] == 'Alice Patient'

    notifications = Notification.query.filter_by(user_id=doctor.id).all()
    assert [n.type for n in notifications] == ['appointment_request']


def test_booking_without_doctor_is_stored_unassigned(uow, patient):
    when = at(next_weekday(MONDAY), '15:00')

    appointment = book_appointment(actor(patient), uow, patient.id, None, when)

    assert appointment.assigned_doctor_id is None
    assert appointment.status == 'pending'


def test_doctor_booking_defaults_to_themselves(uow, doctor, patient, slot):
    appointment = book_appointment(actor(doctor), uow, patient.id, None, slot)

    assert appointment.assigned_doctor_id == doctor.id


def test_booking_in_the_past_is_rejected(uow, doctor, patient, make_schedule):
    make_schedule(doctor)

    with pytest.raises(ValidationError) as exc:
        book_appointment(actor(patient), uow, patient.id, doctor.id, datetime.utcnow() - timedelta(days=1))
    assert exc.value.field == 'scheduled_at'


def test_booking_converts_utc_offsets_to_clinic_time(uow, doctor, patient, slot):
    elsewhere = timezone(timedelta(hours=5, minutes=30))

    appointment = book_appointment(actor(patient), uow, patient.id, doctor.id, slot.astimezone(elsewhere))

    assert appointment.scheduled_at == slot


def test_past_booking_with_offset_is_rejected(uow, doctor, patient, make_schedule):
    make_schedule(doctor)
    # half an hour ago, written in a zone whose wall clock is ahead of the clinic's
    ago = (datetime.now().astimezone() - timedelta(minutes=30)).astimezone(timezone(timedelta(hours=14)))

    with pytest.raises(ValidationError) as exc:
        book_appointment(actor(patient), uow, patient.id, doctor.id, ago)
    assert exc.value.field == 'scheduled_at'


def test_patient_cannot_book_for_someone_else(uow, doctor, patient, make_user, slot):
    other = make_user('patient')

    with pytest.raises(PermissionDeniedError):
        book_appointment(actor(patient), uow, other.id, doctor.id, slot)


def test_booking_with_non_doctor_is_rejected(uow, patient, staff, slot):
    with pytest.raises(ValidationError) as exc:
        book_appointment(actor(patient), uow, patient.id, staff.id, slot)
    assert exc.value.field == 'doctor_id'


def test_booking_unknown_patient_is_not_found(uow, doctor, staff, slot):
    with pytest.raises(NotFoundError):
        book_appointment(actor(staff), uow, 999, doctor.id, slot)


@pytest.mark.parametrize('kwargs, field', [
    ({'record_type': 'x-ray'}, 'record_type'),
    ({'fee': '-5'}, 'fee'),
    ({'fee': 'free'}, 'fee'),
])
def test_booking_input_validation(uow, doctor, patient, slot, kwargs, field):
    with pytest.raises(ValidationError) as exc:
        book_appointment(actor(patient), uow, patient.id, doctor.id, slot, **kwargs)
    assert exc.value.field == field
    assert Appointment.query.count() == 0


def test_booking_rejects_invalid_details(uow, doctor, patient, slot):
    with pytest.raises(ValidationError) as exc:
        book_appointment(
            actor(patient), uow, patient.id, doctor.id, slot,
            details={'vital_signs': {'heart_rate': 900}},
        )

    assert 'details.vital_signs.heart_rate' in exc.value.errors
    # the failed booking did not consume the slot
    assert Appointment.query.count() == 0


# ============================================================================
# CONCURRENCY
# ============================================================================


def test_booking_retries_after_conflict(monkeypatch, uow, doctor, patient, slot):
    real_consume = availability_service.consume_slot
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise ConcurrencyConflictError('simulated concurrent booking')
        return real_consume(*args, **kwargs)

    monkeypatch.setattr(availability_service, 'consume_slot', flaky)

    appointment = book_appointment(actor(patient), uow, patient.id, doctor.id, slot)

    assert len(calls) == 2
    assert appointment.id is not None
    assert Appointment.query.count() == 1


def test_booking_gives_up_after_configured_attempts(monkeypatch, app, uow, doctor, patient, slot):
    calls = []

    def always_conflicts(*args, **kwargs):
        calls.append(1)
        raise ConcurrencyConflictError('simulated concurrent booking')

    monkeypatch.setattr(availability_service, 'consume_slot', always_conflicts)

    with pytest.raises(ConcurrencyConflictError):
        book_appointment(actor(patient), uow, patient.id, doctor.id, slot)
    assert len(calls) == app.config['CONFLICT_RETRY_ATTEMPTS']
    assert Appointment.query.count() == 0


def test_capacity_errors_are_not_retried(monkeypatch, uow, doctor, patient, slot):
    calls = []

    def full(*args, **kwargs):
        calls.append(1)
        raise CapacityExceededError('full')

    monkeypatch.setattr(availability_service, 'consume_slot', full)

    with pytest.raises(CapacityExceededError):
        book_appointment(actor(patient), uow, patient.id, doctor.id, slot)
    assert len(calls) == 1


# ============================================================================
# STATE MACHINE
# ============================================================================


@pytest.mark.parametrize('current, target', list(product(STATUSES, STATUSES)))
def test_transition_table(staff, patient, doctor, make_appointment, current, target):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'), doctor=doctor, status=current)

    if target in TRANSITIONS[current]:
        updated = update_status(actor(staff), UnitOfWork(), appointment.id, target)
        assert updated.status == target
    else:
        with pytest.raises(InvalidTransitionError) as exc:
            update_status(actor(staff), UnitOfWork(), appointment.id, target)
        assert exc.value.current == current
        assert exc.value.allowed == sorted(TRANSITIONS[current])
        db.session.expire_all()
        assert db.session.get(Appointment, appointment.id).status == current


def test_unknown_status_is_an_invalid_transition(staff, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'))

    with pytest.raises(InvalidTransitionError):
        update_status(actor(staff), UnitOfWork(), appointment.id, 'archived')


def test_status_change_is_recorded_and_notified(staff, patient, doctor, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'), doctor=doctor)

    update_status(actor(staff), UnitOfWork(), appointment.id, 'confirmed', note='See you then')

    history = db.session.get(Appointment, appointment.id).status_changes
    assert [(h.from_status, h.to_status, h.note) for h in history] == [('pending', 'confirmed', 'See you then')]
    assert history[0].changed_by == staff.id
    assert Notification.query.filter_by(user_id=patient.id, type='appointment_confirmed').count() == 1


def test_patient_may_only_cancel_own_appointment(patient, make_user, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'))
    stranger = make_user('patient')

    with pytest.raises(PermissionDeniedError):
        update_status(actor(patient), UnitOfWork(), appointment.id, 'confirmed')
    with pytest.raises(PermissionDeniedError):
        update_status(actor(stranger), UnitOfWork(), appointment.id, 'cancelled')

    cancelled = update_status(actor(patient), UnitOfWork(), appointment.id, 'cancelled')
    assert cancelled.status == 'cancelled'
    # no notification to the patient about their own cancellation
    assert Notification.query.filter_by(user_id=patient.id).count() == 0


def test_doctor_may_only_update_assigned_appointments(doctor, patient, make_user, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'), doctor=doctor)
    other_doctor = make_user('doctor')

    with pytest.raises(PermissionDeniedError):
        update_status(actor(other_doctor), UnitOfWork(), appointment.id, 'confirmed')

    assert update_status(actor(doctor), UnitOfWork(), appointment.id, 'confirmed').status == 'confirmed'


def test_update_status_of_missing_appointment(staff):
    with pytest.raises(NotFoundError):
        update_status(actor(staff), UnitOfWork(), 12345, 'confirmed')


# ============================================================================
# ASSIGNMENT, DETAILS, DELETION
# ============================================================================


def test_assign_doctor_is_idempotent(staff, doctor, patient, make_schedule, make_appointment):
    schedule = make_schedule(doctor, max_appointments=1)
    monday = next_weekday(MONDAY)
    appointment = make_appointment(patient, at(monday, '09:30'))

    assign_doctor(actor(staff), UnitOfWork(), appointment.id, doctor.id)
    again = assign_doctor(actor(staff), UnitOfWork(), appointment.id, doctor.id)

    assert again.assigned_doctor_id == doctor.id
    assert availability_service.count_booked(schedule, monday) == 1


def test_assign_doctor_respects_capacity(staff, doctor, patient, make_user, make_schedule, make_appointment):
    schedule = make_schedule(doctor, max_appointments=1)
    monday = next_weekday(MONDAY)
    make_appointment(patient, at(monday, '09:30'), doctor=doctor)
    unassigned = make_appointment(make_user('patient'), at(monday, '09:45'))

    with pytest.raises(CapacityExceededError):
        assign_doctor(actor(staff), UnitOfWork(), unassigned.id, doctor.id)

    db.session.expire_all()
    assert db.session.get(Appointment, unassigned.id).assigned_doctor_id is None
    assert availability_service.count_booked(schedule, monday) == 1


def test_assign_doctor_refuses_reassignment(staff, doctor, patient, make_user, make_schedule, make_appointment):
    schedule = make_schedule(doctor, max_appointments=1)
    monday = next_weekday(MONDAY)
    other_doctor = make_user('doctor')
    make_appointment(patient, at(monday, '09:30'), doctor=doctor)
    theirs = make_appointment(make_user('patient'), at(monday, '09:45'), doctor=other_doctor)

    with pytest.raises(InvalidStateError):
        assign_doctor(actor(staff), UnitOfWork(), theirs.id, doctor.id)

    db.session.expire_all()
    assert db.session.get(Appointment, theirs.id).assigned_doctor_id == other_doctor.id
    assert availability_service.count_booked(schedule, monday) == 1


def test_assign_doctor_to_cancelled_appointment_skips_capacity(staff, doctor, patient, make_appointment):
    cancelled = make_appointment(patient, at(next_weekday(MONDAY), '09:30'), status='cancelled')

    assert assign_doctor(actor(staff), UnitOfWork(), cancelled.id, doctor.id).assigned_doctor_id == doctor.id


def test_assign_doctor_requires_staff(doctor, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'))

    with pytest.raises(PermissionDeniedError):
        assign_doctor(actor(doctor), UnitOfWork(), appointment.id, doctor.id)


def test_update_details_keeps_patient_snapshot(uow, doctor, patient, slot):
    appointment = book_appointment(actor(patient), uow, patient.id, doctor.id, slot)

    updated = update_details(actor(doctor), UnitOfWork(), appointment.id, {
        'diagnosis': 'Common cold',
        'vital_signs': {'blood_pressure': '120/80', 'heart_rate': 72},
        'patient_snapshot': {'name': 'Someone Else'},
    })

    assert updated.details['diagnosis'] == 'Common cold'
    assert updated.details['vital_signs'] == {'blood_pressure': '120/80', 'heart_rate': 72}
    assert updated.details['patient_snapshot']['name'] == 'Alice Patient'
    assert updated.details['appointment_time'] == '09:30'


def test_update_details_rejects_fields_of_other_record_types(staff, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'))

    with pytest.raises(ValidationError) as exc:
        update_details(actor(staff), UnitOfWork(), appointment.id, {'specimen': 'blood'})
    assert 'details.specimen' in exc.value.errors


def test_update_details_on_cancelled_appointment(staff, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'), status='cancelled')

    with pytest.raises(ValidationError):
        update_details(actor(staff), UnitOfWork(), appointment.id, {'diagnosis': 'n/a'})


def test_soft_delete_hides_appointment(admin, staff, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:30'))

    with pytest.raises(PermissionDeniedError):
        soft_delete_appointment(actor(staff), UnitOfWork(), appointment.id)
    soft_delete_appointment(actor(admin), UnitOfWork(), appointment.id)

    assert db.session.get(Appointment, appointment.id).deleted_at is not None
    with pytest.raises(NotFoundError):
        get_appointment(actor(staff), appointment.id)


# ============================================================================
# QUERIES
# ============================================================================


def test_listing_is_scoped_to_the_actor(staff, doctor, patient, make_user, make_appointment):
    other_patient = make_user('patient')
    monday = next_weekday(MONDAY)
    mine = make_appointment(patient, at(monday, '09:00'), doctor=doctor)
    make_appointment(other_patient, at(monday, '10:00'))

    assert [a.id for a in list_appointments(actor(patient)).items] == [mine.id]
    assert [a.id for a in list_appointments(actor(doctor)).items] == [mine.id]
    assert list_appointments(actor(staff)).total == 2
    with pytest.raises(NotFoundError):
        get_appointment(actor(other_patient), mine.id)


def test_listing_filters(staff, doctor, patient, make_appointment):
    monday = next_weekday(MONDAY)
    assigned = make_appointment(patient, at(monday, '09:00'), doctor=doctor, status='confirmed')
    unassigned = make_appointment(patient, at(monday + timedelta(days=7), '09:00'))

    ctx = actor(staff)
    assert [a.id for a in list_appointments(ctx, {'unassigned': True}).items] == [unassigned.id]
    assert [a.id for a in list_appointments(ctx, {'status': 'confirmed'}).items] == [assigned.id]
    assert [a.id for a in list_appointments(ctx, {'date_from': monday, 'date_to': monday}).items] == [assigned.id]
