from datetime import datetime

from clinicdesk.extensions import db
from .base import TimestampMixin

STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'

STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)

# pending -> confirmed/cancelled, confirmed -> completed/cancelled; the rest is terminal
TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    STATUS_CONFIRMED: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

TYPE_MEDICAL_CHECKUP = 'medical_checkup'
TYPE_LABORATORY = 'laboratory'
TYPE_MEDICAL_RECORD = 'medical_record'

RECORD_TYPES = (TYPE_MEDICAL_CHECKUP, TYPE_LABORATORY, TYPE_MEDICAL_RECORD)


class Appointment(db.Model, TimestampMixin):
    """
    A patient's booked encounter with a doctor.

    Medical checkups, lab visits and medical records share this table and
    are told apart by record_type, which also selects the shape of details.
    """
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    assigned_doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), default=STATUS_PENDING, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    record_type = db.Column(db.String(30), default=TYPE_MEDICAL_CHECKUP, nullable=False)
    details = db.Column(db.JSON, nullable=True)
    fee = db.Column(db.Numeric(10, 2), nullable=True)

    # e.g. APP-000123, assigned after insert
    reference_number = db.Column(db.String(20), unique=True, nullable=True, index=True)

    # Soft delete (no hard deletion of medical data)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {'version_id_col': version_id}

    patient = db.relationship('User', foreign_keys=[patient_id], backref=db.backref('appointments', lazy='dynamic'))
    assigned_doctor = db.relationship('User', foreign_keys=[assigned_doctor_id])
    status_changes = db.relationship(
        'AppointmentStatusChange',
        backref='appointment',
        order_by='AppointmentStatusChange.id',
        cascade='all, delete-orphan',
        lazy=True,
    )

    @property
    def is_terminal(self):
        return not TRANSITIONS.get(self.status)

    def allowed_transitions(self):
        return TRANSITIONS.get(self.status, frozenset())

    def to_dict(self, include_history=False):
        data = {
            'id': self.id,
            'reference_number': self.reference_number,
            'patient_id': self.patient_id,
            'patient_name': self.patient.name if self.patient else None,
            'assigned_doctor_id': self.assigned_doctor_id,
            'doctor_name': self.assigned_doctor.name if self.assigned_doctor else None,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'date': self.scheduled_at.date().isoformat() if self.scheduled_at else None,
            'time': self.scheduled_at.strftime('%H:%M') if self.scheduled_at else None,
            'status': self.status,
            'reason': self.reason,
            'record_type': self.record_type,
            'details': self.details or {},
            'fee': str(self.fee) if self.fee is not None else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            data['status_history'] = [change.to_dict() for change in self.status_changes]
        return data

    def __repr__(self):
        return f"<Appointment {self.reference_number or self.id} patient={self.patient_id} {self.status}>"


class AppointmentStatusChange(db.Model):
    """One row per status transition, with the note given by the actor"""
    __tablename__ = 'appointment_status_changes'

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, index=True)
    from_status = db.Column(db.String(20), nullable=False)
    to_status = db.Column(db.String(20), nullable=False)
    note = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    changed_by_role = db.Column(db.String(20), nullable=True)
    changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'from_status': self.from_status,
            'to_status': self.to_status,
            'note': self.note,
            'changed_by': self.changed_by,
            'changed_by_role': self.changed_by_role,
            'changed_at': self.changed_at.isoformat() if self.changed_at else None,
        }
