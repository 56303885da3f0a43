from datetime import datetime

from clinicdesk.extensions import db
from .base import TimestampMixin

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_DENIED = 'denied'

TYPE_MEDICAL = 'medical_record'
TYPE_LAB = 'lab_record'

RECORD_TYPES = (TYPE_MEDICAL, TYPE_LAB)


class RecordRequest(db.Model, TimestampMixin):
    """Patient request to access one of their medical or lab records"""
    __tablename__ = 'record_requests'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    record_type = db.Column(db.String(20), nullable=False)
    record_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)
    request_reason = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(20), default=STATUS_PENDING, nullable=False, index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    denied_reason = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)  # null = no expiry

    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {'version_id_col': version_id}

    patient = db.relationship('User', foreign_keys=[patient_id])
    approver = db.relationship('User', foreign_keys=[approved_by])
    record = db.relationship('Appointment', foreign_keys=[record_id])

    def is_pending(self):
        return self.status == STATUS_PENDING

    def is_approved(self):
        return self.status == STATUS_APPROVED

    def is_denied(self):
        return self.status == STATUS_DENIED

    def is_expired(self, now=None):
        now = now or datetime.utcnow()
        return self.expires_at is not None and now > self.expires_at

    def to_dict(self):
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'record_type': self.record_type,
            'record_id': self.record_id,
            'request_reason': self.request_reason,
            'status': self.status,
            'approved_by': self.approved_by,
            'approver_name': self.approver.name if self.approver else None,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'denied_reason': self.denied_reason,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RecordRequest {self.id} {self.record_type}:{self.record_id} {self.status}>"
