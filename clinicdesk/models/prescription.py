import random
from datetime import date

from clinicdesk.extensions import db
from .base import TimestampMixin


class Prescription(db.Model, TimestampMixin):
    """
    Prescription model - one medication written by a doctor for an appointment.

    Several prescriptions may hang off the same appointment; the document
    snapshot gathers them all.
    """

    __tablename__ = "prescriptions"

    id = db.Column(db.Integer, primary_key=True)

    patient_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.id"), nullable=True, index=True
    )
    doctor_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True
    )

    medication = db.Column(db.String(255), nullable=False)
    dosage = db.Column(db.String(50), nullable=False)  # e.g., "500mg"
    frequency = db.Column(db.String(50), nullable=True)  # e.g., "1-0-1"
    duration = db.Column(db.String(50), nullable=True)  # e.g., "7 days"
    instructions = db.Column(db.Text, nullable=True)

    prescription_date = db.Column(db.Date, default=date.today, nullable=False)
    reference_number = db.Column(db.String(20), unique=True, nullable=False)
    status = db.Column(db.String(20), default="active", nullable=False)

    appointment = db.relationship(
        "Appointment", backref=db.backref("prescriptions", lazy=True), lazy=True
    )
    doctor = db.relationship("User", foreign_keys=[doctor_id], lazy=True)

    @staticmethod
    def generate_reference_number():
        """RX-YYMMDD-NNNN"""
        return f"RX-{date.today().strftime('%y%m%d')}-{random.randint(1000, 9999)}"

    def __repr__(self):
        return f"<Prescription {self.reference_number} - Patient: {self.patient_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "reference_number": self.reference_number,
            "patient_id": self.patient_id,
            "appointment_id": self.appointment_id,
            "doctor_id": self.doctor_id,
            "doctor_name": self.doctor.name if self.doctor else None,
            "medication": self.medication,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration": self.duration,
            "instructions": self.instructions or "",
            "prescription_date": self.prescription_date.isoformat() if self.prescription_date else None,
            "status": self.status,
        }
