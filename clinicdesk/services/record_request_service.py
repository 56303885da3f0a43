"""
Record Request Service
Patients ask for access to one of their medical or lab records; clinical
staff approve (optionally until an expiry) or deny with a reason.
"""
import logging
from datetime import datetime
from typing import Optional

from clinicdesk.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, RecordRequest
from clinicdesk.models.notification import TYPE_RECORD_REQUEST_APPROVED, TYPE_RECORD_REQUEST_DENIED
from clinicdesk.models.record_request import (
    RECORD_TYPES,
    STATUS_APPROVED,
    STATUS_DENIED,
    STATUS_PENDING,
)
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_PATIENT
from clinicdesk.services.notification_service import NotificationEvent, notify_after_commit
from clinicdesk.utils.audit import audit_after_commit
from clinicdesk.utils.retry import retry_on_conflict

logger = logging.getLogger(__name__)

_RECORD_LABELS = {
    'medical_record': 'medical record',
    'lab_record': 'lab record',
}


def is_access_currently_valid(request: RecordRequest, now: Optional[datetime] = None) -> bool:
    """Approved and either without expiry or not yet expired. Reads nothing else."""
    now = now or datetime.utcnow()
    return request.status == STATUS_APPROVED and (request.expires_at is None or now <= request.expires_at)


def _load_request(session, request_id, lock=False) -> RecordRequest:
    query = session.query(RecordRequest).filter(RecordRequest.id == request_id)
    if lock:
        query = query.with_for_update().populate_existing()
    request = query.first()
    if not request:
        raise NotFoundError('Record request', request_id)
    return request


@retry_on_conflict
def submit_request(ctx, uow, patient_id: int, record_type: str, record_id: int, reason: str) -> RecordRequest:
    """
    File a new pending access request.

    Raises:
        ValidationError: unknown record type or empty reason
        NotFoundError: the record does not exist or is not the patient's
        InvalidStateError: a pending or still-valid request already covers it
    """
    ctx.require(ROLE_PATIENT)
    if ctx.user_id != patient_id:
        raise PermissionDeniedError('Patients can only request their own records')
    if record_type not in RECORD_TYPES:
        raise ValidationError(f'record_type must be one of: {", ".join(RECORD_TYPES)}', field='record_type')
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A reason for the request is required', field='request_reason')

    with uow:
        record = uow.session.get(Appointment, record_id)
        # someone else's record looks the same as a missing one
        if not record or record.deleted_at is not None or record.patient_id != patient_id:
            raise NotFoundError('Record', record_id)

        existing = (
            uow.session.query(RecordRequest)
            .filter(
                RecordRequest.patient_id == patient_id,
                RecordRequest.record_type == record_type,
                RecordRequest.record_id == record_id,
                RecordRequest.status.in_((STATUS_PENDING, STATUS_APPROVED)),
            )
            .all()
        )
        for other in existing:
            if other.status == STATUS_PENDING or is_access_currently_valid(other):
                raise InvalidStateError(
                    'You already have a pending or approved request for this record',
                    current=other.status,
                )

        request = RecordRequest(
            patient_id=patient_id,
            record_type=record_type,
            record_id=record_id,
            request_reason=reason,
            status=STATUS_PENDING,
        )
        uow.session.add(request)
        uow.session.flush()
        audit_after_commit(uow, 'record_request', 'create', ctx, request.id, {
            'record_type': record_type,
            'record_id': record_id,
        })

    logger.info("Record request %s submitted by patient %s for %s %s", request.id, patient_id, record_type, record_id)
    return request


@retry_on_conflict
def approve_request(ctx, uow, request_id: int, expires_at: Optional[datetime] = None) -> RecordRequest:
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)
    now = datetime.utcnow()
    if expires_at is not None and expires_at <= now:
        raise ValidationError('Expiry must be in the future', field='expires_at')

    with uow:
        request = _load_request(uow.session, request_id, lock=True)
        if request.status != STATUS_PENDING:
            raise InvalidStateError(
                f'Only pending requests can be approved (request is {request.status})',
                current=request.status,
                expected=STATUS_PENDING,
            )

        request.status = STATUS_APPROVED
        request.approved_by = ctx.user_id
        request.approved_at = now
        request.expires_at = expires_at
        request.denied_reason = None

        audit_after_commit(uow, 'record_request', 'approve', ctx, request.id, {
            'expires_at': expires_at.isoformat() if expires_at else None,
        })
        until = f' until {expires_at:%Y-%m-%d %H:%M}' if expires_at else ''
        notify_after_commit(uow, NotificationEvent(
            recipient_id=request.patient_id,
            type=TYPE_RECORD_REQUEST_APPROVED,
            title='Record Request Approved',
            message=f'Your request for your {_RECORD_LABELS[request.record_type]} has been approved{until}.',
            related_id=request.id,
            related_type='record_request',
        ))

    logger.info("Record request %s approved by user %s", request_id, ctx.user_id)
    return request


@retry_on_conflict
def deny_request(ctx, uow, request_id: int, reason: str) -> RecordRequest:
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A reason for denial is required', field='denied_reason')

    with uow:
        request = _load_request(uow.session, request_id, lock=True)
        if request.status != STATUS_PENDING:
            raise InvalidStateError(
                f'Only pending requests can be denied (request is {request.status})',
                current=request.status,
                expected=STATUS_PENDING,
            )

        request.status = STATUS_DENIED
        request.denied_reason = reason
        request.approved_by = ctx.user_id
        request.approved_at = datetime.utcnow()

        audit_after_commit(uow, 'record_request', 'deny', ctx, request.id, {'reason': reason})
        notify_after_commit(uow, NotificationEvent(
            recipient_id=request.patient_id,
            type=TYPE_RECORD_REQUEST_DENIED,
            title='Record Request Denied',
            message=f'Your request for your {_RECORD_LABELS[request.record_type]} was denied: {reason}',
            related_id=request.id,
            related_type='record_request',
        ))

    logger.info("Record request %s denied by user %s", request_id, ctx.user_id)
    return request


# ── Queries ──────────────────────────────────────────────────────────────────

def get_request(ctx, request_id: int) -> RecordRequest:
    request = db.session.get(RecordRequest, request_id)
    if not request or (ctx.is_patient and request.patient_id != ctx.user_id):
        raise NotFoundError('Record request', request_id)
    if ctx.is_doctor:
        raise PermissionDeniedError('Record requests are handled by clinical staff')
    return request


def list_requests(
    ctx,
    status: Optional[str] = None,
    record_type: Optional[str] = None,
    patient_id: Optional[int] = None,
    page: int = 1,
    per_page: int = 15,
):
    """Staff see every request; patients only their own"""
    if ctx.is_doctor:
        raise PermissionDeniedError('Record requests are handled by clinical staff')
    query = RecordRequest.query
    if ctx.is_patient:
        query = query.filter(RecordRequest.patient_id == ctx.user_id)
    elif patient_id is not None:
        query = query.filter(RecordRequest.patient_id == patient_id)
    if status:
        query = query.filter(RecordRequest.status == status)
    if record_type:
        query = query.filter(RecordRequest.record_type == record_type)
    query = query.order_by(RecordRequest.created_at.desc(), RecordRequest.id.desc())
    return query.paginate(page=page, per_page=per_page, error_out=False)


def pending_count() -> int:
    return RecordRequest.query.filter_by(status=STATUS_PENDING).count()


def accessible_record(ctx, request_id: int, now: Optional[datetime] = None) -> Appointment:
    """The requested record, only while the patient's approval is valid"""
    ctx.require(ROLE_PATIENT)
    request = get_request(ctx, request_id)
    if not is_access_currently_valid(request, now):
        if request.status == STATUS_APPROVED:
            raise PermissionDeniedError('Access to this record has expired')
        raise PermissionDeniedError(f'Access to this record is {request.status}')
    if request.record is None or request.record.deleted_at is not None:
        raise NotFoundError('Record', request.record_id)
    return request.record
