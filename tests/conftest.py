"""
Shared pytest fixtures for all tests.

Every test gets a fresh application on in-memory SQLite with all tables
created, plus small factories for users, schedules and appointments.
"""
import os
from datetime import time

import pytest
from flask_jwt_extended import create_access_token

os.environ.setdefault("FLASK_ENV", "testing")

from clinicdesk import create_app  # noqa: E402
from clinicdesk.extensions import db  # noqa: E402
from clinicdesk.models import Appointment, DoctorSchedule, User  # noqa: E402
from clinicdesk.models.doctor_schedule import Weekly  # noqa: E402
from clinicdesk.services import UnitOfWork  # noqa: E402
from helpers import MONDAY  # noqa: E402


# ============================================================================
# APPLICATION FIXTURES
# ============================================================================


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def uow(app):
    return UnitOfWork()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role, name=None, email=None, password='secret123', is_active=True):
        counter['n'] += 1
        user = User(
            email=email or f'{role}{counter["n"]}@clinic.test',
            name=name or f'{role.replace("_", " ").title()} {counter["n"]}',
            role=role,
            is_active=is_active,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        if role == 'patient':
            user.reference_number = f'PAT-{user.id:06d}'
        db.session.commit()
        return user

    return _make


@pytest.fixture
def doctor(make_user):
    return make_user('doctor', name='Dr. House')


@pytest.fixture
def patient(make_user):
    return make_user('patient', name='Alice Patient')


@pytest.fixture
def staff(make_user):
    return make_user('clinical_staff', name='Sam Staff')


@pytest.fixture
def admin(make_user):
    return make_user('admin', name='Ada Admin')


@pytest.fixture
def make_schedule(app):
    def _make(doctor, recurrence=Weekly(MONDAY), start='09:00', end='10:00',
              max_appointments=1, approved=True, is_available=True):
        schedule = DoctorSchedule(
            doctor_id=doctor.id,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            max_appointments=max_appointments,
            is_available=is_available,
        )
        schedule.recurrence = recurrence
        if approved:
            schedule.mark_approved()
        else:
            schedule.mark_pending()
        db.session.add(schedule)
        db.session.commit()
        return schedule

    return _make


@pytest.fixture
def make_appointment(app):
    """Insert an appointment row directly, bypassing booking rules"""
    def _make(patient, scheduled_at, doctor=None, status='pending', record_type='medical_checkup'):
        appointment = Appointment(
            patient_id=patient.id,
            assigned_doctor_id=doctor.id if doctor else None,
            scheduled_at=scheduled_at,
            status=status,
            record_type=record_type,
            details={'record_type': record_type},
        )
        db.session.add(appointment)
        db.session.flush()
        appointment.reference_number = f'APP-{appointment.id:06d}'
        db.session.commit()
        return appointment

    return _make


# ============================================================================
# IDENTITY
# ============================================================================


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}

    return _headers
