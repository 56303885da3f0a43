from clinicdesk.extensions import db
from .base import TimestampMixin


class LabResult(db.Model, TimestampMixin):
    """Lab result attached to a patient. The file itself lives in external storage."""
    __tablename__ = 'lab_results'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=True, index=True)
    test_type = db.Column(db.String(255), nullable=False)
    test_date = db.Column(db.DateTime, nullable=False)
    file_key = db.Column(db.String(500), nullable=True)  # opaque storage reference
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'appointment_id': self.appointment_id,
            'test_type': self.test_type,
            'test_date': self.test_date.isoformat() if self.test_date else None,
            'file_key': self.file_key,
            'notes': self.notes,
            'created_by': self.created_by,
        }
