"""Record access requests: submission, review and access checks"""
from datetime import datetime, timedelta

import pytest

from clinicdesk.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Notification, RecordRequest
from clinicdesk.services import UnitOfWork
from clinicdesk.services.record_request_service import (
    accessible_record,
    approve_request,
    deny_request,
    get_request,
    is_access_currently_valid,
    list_requests,
    pending_count,
    submit_request,
)
from helpers import MONDAY, actor, at, next_weekday


@pytest.fixture
def record(patient, doctor, make_appointment):
    return make_appointment(
        patient, at(next_weekday(MONDAY), '09:30'), doctor=doctor,
        status='completed', record_type='medical_record',
    )


def _submit(patient, record, record_type='medical_record', reason='Need it for my insurer'):
    return submit_request(actor(patient), UnitOfWork(), patient.id, record_type, record.id, reason)


def test_submit_request(patient, record):
    request = _submit(patient, record)

    assert request.status == 'pending'
    assert request.request_reason == 'Need it for my insurer'
    assert pending_count() == 1


def test_approve_then_access(staff, patient, record):
    request = _submit(patient, record)
    expires = datetime.utcnow() + timedelta(days=7)

    approved = approve_request(actor(staff), UnitOfWork(), request.id, expires)

    assert approved.status == 'approved'
    assert approved.approved_by == staff.id
    assert is_access_currently_valid(approved)
    assert accessible_record(actor(patient), request.id).id == record.id
    assert Notification.query.filter_by(user_id=patient.id, type='record_request_approved').count() == 1


def test_access_expires(staff, patient, record):
    request = _submit(patient, record)
    expires = datetime.utcnow() + timedelta(days=1)
    approve_request(actor(staff), UnitOfWork(), request.id, expires)

    later = expires + timedelta(seconds=1)
    assert not is_access_currently_valid(request, now=later)
    with pytest.raises(PermissionDeniedError):
        accessible_record(actor(patient), request.id, now=later)


def test_deny_requires_reason(staff, patient, record):
    request = _submit(patient, record)

    for reason in ('', '   ', None):
        with pytest.raises(ValidationError):
            deny_request(actor(staff), UnitOfWork(), request.id, reason)

    db.session.expire_all()
    assert db.session.get(RecordRequest, request.id).status == 'pending'


def test_deny_request(staff, patient, record):
    request = _submit(patient, record)

    denied = deny_request(actor(staff), UnitOfWork(), request.id, 'Record is incomplete')

    assert denied.status == 'denied'
    assert denied.denied_reason == 'Record is incomplete'
    assert not is_access_currently_valid(denied)
    with pytest.raises(PermissionDeniedError):
        accessible_record(actor(patient), request.id)
    assert Notification.query.filter_by(user_id=patient.id, type='record_request_denied').count() == 1


def test_only_pending_requests_can_be_reviewed(staff, patient, record):
    request = _submit(patient, record)
    deny_request(actor(staff), UnitOfWork(), request.id, 'No')

    with pytest.raises(InvalidStateError):
        approve_request(actor(staff), UnitOfWork(), request.id)
    with pytest.raises(InvalidStateError):
        deny_request(actor(staff), UnitOfWork(), request.id, 'Still no')


def test_approval_expiry_must_be_in_the_future(staff, patient, record):
    request = _submit(patient, record)

    with pytest.raises(ValidationError):
        approve_request(actor(staff), UnitOfWork(), request.id, datetime.utcnow() - timedelta(minutes=1))


def test_duplicate_requests_are_rejected(staff, patient, record):
    first = _submit(patient, record)

    with pytest.raises(InvalidStateError):
        _submit(patient, record)

    # a denied request does not block asking again
    deny_request(actor(staff), UnitOfWork(), first.id, 'Ask your doctor first')
    second = _submit(patient, record)
    assert second.id != first.id


def test_expired_approval_does_not_block_new_request(staff, patient, record):
    first = _submit(patient, record)
    approve_request(actor(staff), UnitOfWork(), first.id, datetime.utcnow() + timedelta(hours=1))
    first.expires_at = datetime.utcnow() - timedelta(minutes=5)
    db.session.commit()

    assert _submit(patient, record).status == 'pending'


def test_cannot_request_someone_elses_record(patient, make_user, make_appointment):
    other = make_user('patient')
    foreign = make_appointment(other, at(next_weekday(MONDAY), '09:30'), status='completed')

    with pytest.raises(NotFoundError):
        _submit(patient, foreign)
    with pytest.raises(PermissionDeniedError):
        submit_request(actor(patient), UnitOfWork(), other.id, 'medical_record', foreign.id, 'mine')


@pytest.mark.parametrize('record_type, reason', [('x-ray', 'why not'), ('lab_record', '  ')])
def test_submit_validation(patient, record, record_type, reason):
    with pytest.raises(ValidationError):
        _submit(patient, record, record_type=record_type, reason=reason)


def test_only_staff_review_requests(doctor, patient, record):
    request = _submit(patient, record)

    with pytest.raises(PermissionDeniedError):
        approve_request(actor(patient), UnitOfWork(), request.id)
    with pytest.raises(PermissionDeniedError):
        deny_request(actor(doctor), UnitOfWork(), request.id, 'no')
    with pytest.raises(PermissionDeniedError):
        get_request(actor(doctor), request.id)


@pytest.mark.parametrize('status, expires_in, valid', [
    ('pending', None, False),
    ('denied', None, False),
    ('approved', None, True),
    ('approved', timedelta(hours=1), True),
    ('approved', timedelta(0), True),
    ('approved', -timedelta(seconds=1), False),
])
def test_access_validity_depends_only_on_status_and_expiry(status, expires_in, valid):
    now = datetime(2030, 1, 7, 12, 0)
    request = RecordRequest(
        patient_id=1,
        record_type='medical_record',
        record_id=1,
        request_reason='x',
        status=status,
        expires_at=now + expires_in if expires_in is not None else None,
    )

    assert is_access_currently_valid(request, now=now) is valid
    # same answer on repeated evaluation
    assert is_access_currently_valid(request, now=now) is valid


def test_listing_is_scoped(staff, patient, make_user, record, make_appointment):
    other = make_user('patient')
    other_record = make_appointment(other, at(next_weekday(MONDAY), '10:30'), status='completed')
    mine = _submit(patient, record)
    _submit(other, other_record)

    assert [r.id for r in list_requests(actor(patient)).items] == [mine.id]
    assert list_requests(actor(staff)).total == 2
    assert list_requests(actor(staff), patient_id=patient.id).total == 1
    with pytest.raises(NotFoundError):
        get_request(actor(other), mine.id)
