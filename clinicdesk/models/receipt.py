import secrets
import string
from datetime import datetime

from clinicdesk.extensions import db
from .base import TimestampMixin


class Receipt(db.Model, TimestampMixin):
    __tablename__ = 'receipts'

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), unique=True, nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    # one receipt per appointment
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=True, unique=True, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)
    payment_date = db.Column(db.DateTime, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default='paid', nullable=False)

    # [{description, quantity, unit_price, amount}, ...]
    items = db.Column(db.JSON, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    patient = db.relationship('User', foreign_keys=[patient_id])
    appointment = db.relationship('Appointment', backref=db.backref('receipt', uselist=False))

    @staticmethod
    def generate_receipt_number():
        """RCPT-YYYYMMDD-XXXXXXXX"""
        alphabet = string.ascii_uppercase + string.digits
        unique_id = ''.join(secrets.choice(alphabet) for _ in range(8))
        return f"RCPT-{datetime.now().strftime('%Y%m%d')}-{unique_id}"

    def to_dict(self):
        return {
            'id': self.id,
            'receipt_number': self.receipt_number,
            'patient_id': self.patient_id,
            'appointment_id': self.appointment_id,
            'amount': str(self.amount),
            'payment_method': self.payment_method,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'description': self.description,
            'status': self.status,
            'items': self.items or [],
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Receipt {self.receipt_number} - Patient: {self.patient_id}>"
