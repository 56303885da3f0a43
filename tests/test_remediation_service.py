"""Assigning a default doctor to appointments booked without one"""
import pytest

from clinicdesk.errors import NotFoundError, PermissionDeniedError, RemediationFailedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment
from clinicdesk.services import UnitOfWork, remediation_service
from clinicdesk.services.context import ActorContext
from clinicdesk.services.remediation_service import assign_default_doctor, find_unassigned
from helpers import MONDAY, actor, at, next_weekday


@pytest.fixture
def unassigned(patient, make_appointment):
    monday = next_weekday(MONDAY)
    return [make_appointment(patient, at(monday, f'{9 + i:02d}:00')) for i in range(5)]


def _unassigned_count():
    return Appointment.query.filter(Appointment.assigned_doctor_id.is_(None)).count()


def test_assigns_first_active_doctor(staff, make_user, unassigned):
    make_user('doctor', is_active=False)
    first = make_user('doctor')
    make_user('doctor')

    result = assign_default_doctor(actor(staff), UnitOfWork())

    assert result.doctor_id == first.id
    assert result.fixed_count == 5
    assert sorted(result.appointment_ids) == sorted(a.id for a in unassigned)
    assert _unassigned_count() == 0
    assert find_unassigned() == []


def test_explicit_doctor(staff, doctor, make_user, unassigned):
    chosen = make_user('doctor')

    result = assign_default_doctor(actor(staff), UnitOfWork(), doctor_id=chosen.id)

    assert result.doctor_id == chosen.id
    assert {a.assigned_doctor_id for a in Appointment.query.all()} == {chosen.id}


def test_legacy_zero_doctor_counts_as_unassigned(staff, doctor, patient, make_appointment):
    appointment = make_appointment(patient, at(next_weekday(MONDAY), '09:00'))
    appointment.assigned_doctor_id = 0
    db.session.commit()

    result = assign_default_doctor(actor(staff), UnitOfWork())

    assert result.fixed_count == 1
    assert db.session.get(Appointment, appointment.id).assigned_doctor_id == doctor.id


def test_nothing_to_fix(staff, doctor):
    result = assign_default_doctor(actor(staff), UnitOfWork())

    assert result.fixed_count == 0
    assert result.doctor_id is None


def test_no_doctor_available(staff, unassigned):
    with pytest.raises(RemediationFailedError) as exc:
        assign_default_doctor(actor(staff), UnitOfWork())

    assert exc.value.affected == 5
    assert _unassigned_count() == 5


def test_bad_explicit_doctor(staff, patient, unassigned):
    with pytest.raises(NotFoundError):
        assign_default_doctor(actor(staff), UnitOfWork(), doctor_id=999)
    with pytest.raises(ValidationError):
        assign_default_doctor(actor(staff), UnitOfWork(), doctor_id=patient.id)
    assert _unassigned_count() == 5


def test_requires_staff(doctor, patient, unassigned):
    with pytest.raises(PermissionDeniedError):
        assign_default_doctor(actor(doctor), UnitOfWork())
    with pytest.raises(PermissionDeniedError):
        assign_default_doctor(actor(patient), UnitOfWork())


def test_system_actor_may_run_it(doctor, unassigned):
    assert assign_default_doctor(ActorContext.system(), UnitOfWork()).fixed_count == 5


def test_lookup_failure_rolls_back(monkeypatch, staff, doctor, unassigned):
    def broken(*args, **kwargs):
        raise RuntimeError('doctor lookup failed')

    monkeypatch.setattr(remediation_service, 'resolve_default_doctor', broken)

    with pytest.raises(RemediationFailedError) as exc:
        assign_default_doctor(actor(staff), UnitOfWork())

    assert exc.value.affected == 5
    assert exc.value.to_dict()['affected'] == 5
    assert _unassigned_count() == 5


def test_failure_after_partial_update_rolls_back(monkeypatch, staff, doctor, unassigned):
    def broken(*args, **kwargs):
        raise RuntimeError('audit backend down')

    # fails after every appointment was modified and flushed
    monkeypatch.setattr(remediation_service, 'audit_after_commit', broken)

    with pytest.raises(RemediationFailedError) as exc:
        assign_default_doctor(actor(staff), UnitOfWork())

    assert exc.value.affected == 5
    db.session.expire_all()
    assert _unassigned_count() == 5
