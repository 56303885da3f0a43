"""
Doctor availability windows.

A schedule repeats weekly on a day of the week, or applies to one specific
calendar date. Exactly one of the two columns is set; the Python side sees
them as a single Recurrence value.
"""
from dataclasses import dataclass
from datetime import date, time
from typing import Union

from clinicdesk.extensions import db
from .base import TimestampMixin

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_REJECTED = 'rejected'

DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


def day_of_week_for(value: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return value.isoweekday() % 7


@dataclass(frozen=True)
class Weekly:
    day_of_week: int

    def matches(self, value: date) -> bool:
        return day_of_week_for(value) == self.day_of_week

    def describe(self) -> str:
        return f'every {DAY_NAMES[self.day_of_week]}'


@dataclass(frozen=True)
class OneOff:
    on: date

    def matches(self, value: date) -> bool:
        return value == self.on

    def describe(self) -> str:
        return self.on.isoformat()


Recurrence = Union[Weekly, OneOff]


class DoctorSchedule(db.Model, TimestampMixin):
    __tablename__ = 'doctor_schedules'
    __table_args__ = (
        db.CheckConstraint('(day_of_week IS NULL) <> (specific_date IS NULL)', name='ck_schedule_single_recurrence'),
        db.CheckConstraint('day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)', name='ck_schedule_day_range'),
        db.CheckConstraint('start_time < end_time', name='ck_schedule_time_window'),
        db.CheckConstraint('max_appointments >= 1', name='ck_schedule_capacity'),
    )

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    day_of_week = db.Column(db.Integer, nullable=True, index=True)
    specific_date = db.Column(db.Date, nullable=True, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    is_available = db.Column(db.Boolean, default=True, nullable=False)
    is_approved = db.Column(db.Boolean, default=False, nullable=False)
    status = db.Column(db.String(20), default=STATUS_PENDING, nullable=False)  # pending, approved, rejected
    max_appointments = db.Column(db.Integer, nullable=False, default=10)

    notes = db.Column(db.Text, nullable=True)
    rejection_note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # Touched on every slot consumption; with the version counter this makes
    # concurrent bookings on one schedule conflict instead of overbooking.
    last_booked_at = db.Column(db.DateTime, nullable=True)
    version_id = db.Column(db.Integer, nullable=False)
    __mapper_args__ = {'version_id_col': version_id}

    doctor = db.relationship('User', foreign_keys=[doctor_id], backref=db.backref('schedules', lazy='dynamic'))

    @property
    def recurrence(self) -> Recurrence:
        if self.specific_date is not None:
            return OneOff(self.specific_date)
        return Weekly(self.day_of_week)

    @recurrence.setter
    def recurrence(self, value: Recurrence):
        if isinstance(value, OneOff):
            self.specific_date = value.on
            self.day_of_week = None
        elif isinstance(value, Weekly):
            self.day_of_week = value.day_of_week
            self.specific_date = None
        else:
            raise TypeError(f'Unsupported recurrence: {value!r}')

    def matches_date(self, value: date) -> bool:
        return self.recurrence.matches(value)

    def covers_time(self, value: time) -> bool:
        """Half-open window: start inclusive, end exclusive"""
        return self.start_time <= value < self.end_time

    def is_bookable(self) -> bool:
        return bool(self.is_available and self.is_approved)

    def mark_approved(self):
        self.is_approved = True
        self.status = STATUS_APPROVED
        self.rejection_note = None

    def mark_rejected(self, note):
        self.is_approved = False
        self.status = STATUS_REJECTED
        self.rejection_note = note

    def mark_pending(self):
        self.is_approved = False
        self.status = STATUS_PENDING

    def to_dict(self):
        return {
            'id': self.id,
            'doctor_id': self.doctor_id,
            'doctor_name': self.doctor.name if self.doctor else None,
            'day_of_week': self.day_of_week,
            'specific_date': self.specific_date.isoformat() if self.specific_date else None,
            'recurrence': self.recurrence.describe(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'is_available': self.is_available,
            'is_approved': self.is_approved,
            'status': self.status,
            'max_appointments': self.max_appointments,
            'notes': self.notes,
            'rejection_note': self.rejection_note,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DoctorSchedule {self.id} doctor={self.doctor_id} {self.recurrence.describe()} {self.start_time}-{self.end_time}>"
