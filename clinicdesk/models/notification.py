from datetime import datetime

from clinicdesk.extensions import db

TYPE_APPOINTMENT_REQUEST = 'appointment_request'
TYPE_APPOINTMENT_CONFIRMED = 'appointment_confirmed'
TYPE_APPOINTMENT_CANCELLED = 'appointment_cancelled'
TYPE_APPOINTMENT_COMPLETED = 'appointment_completed'
TYPE_RECORD_REQUEST_APPROVED = 'record_request_approved'
TYPE_RECORD_REQUEST_DENIED = 'record_request_denied'
TYPE_SCHEDULE_APPROVED = 'schedule_approved'
TYPE_SCHEDULE_REJECTED = 'schedule_rejected'
TYPE_LAB_RESULTS_AVAILABLE = 'lab_results_available'


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)

    related_id = db.Column(db.Integer, nullable=True)
    related_type = db.Column(db.String(50), nullable=True)  # appointment, record_request, schedule

    read_at = db.Column(db.DateTime, nullable=True, index=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic'))

    def mark_as_read(self):
        if self.read_at is None:
            self.read_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data or {},
            'related_id': self.related_id,
            'related_type': self.related_type,
            'read_at': self.read_at.isoformat() if self.read_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
