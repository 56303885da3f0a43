"""
Remediation Service
Repairs appointments that were booked without a doctor.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from clinicdesk.errors import NotFoundError, RemediationFailedError, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, User
from clinicdesk.models.user import ROLE_ADMIN, ROLE_CLINICAL_STAFF, ROLE_DOCTOR
from clinicdesk.utils.audit import audit_after_commit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemediationResult:
    doctor_id: Optional[int]
    fixed_count: int
    appointment_ids: tuple = ()

    def to_dict(self):
        return {
            'doctor_id': self.doctor_id,
            'fixed_count': self.fixed_count,
            'appointment_ids': list(self.appointment_ids),
        }


def _unassigned_query(session):
    # legacy rows store 0 instead of NULL
    return session.query(Appointment).filter(
        Appointment.deleted_at.is_(None),
        db.or_(Appointment.assigned_doctor_id.is_(None), Appointment.assigned_doctor_id == 0),
    )


def find_unassigned(session=None) -> List[Appointment]:
    session = session if session is not None else db.session
    return _unassigned_query(session).order_by(Appointment.id).all()


def resolve_default_doctor(session, doctor_id: Optional[int] = None) -> Optional[User]:
    """The given doctor, or the first active doctor by id"""
    if doctor_id is not None:
        doctor = session.get(User, doctor_id)
        if not doctor:
            raise NotFoundError('Doctor', doctor_id)
        if doctor.role != ROLE_DOCTOR or not doctor.is_active:
            raise ValidationError('Selected user is not an active doctor', field='doctor_id')
        return doctor
    return (
        session.query(User)
        .filter(User.role == ROLE_DOCTOR, User.is_active.is_(True))
        .order_by(User.id)
        .first()
    )


def assign_default_doctor(ctx, uow, doctor_id: Optional[int] = None) -> RemediationResult:
    """
    Assign a default doctor to every appointment that has none.

    Runs as one transaction: if anything fails part way, nothing is
    assigned and RemediationFailedError reports how many appointments the
    run would have touched. Capacity is not checked; the goal is that no
    appointment is left without a doctor.

    Returns:
        RemediationResult: doctor used and number of appointments fixed.
        fixed_count is 0 (with doctor_id None) when there is nothing to fix.

    Raises:
        RemediationFailedError: no doctor could be resolved, or the
            assignment failed part way
    """
    ctx.require(ROLE_CLINICAL_STAFF, ROLE_ADMIN)

    affected = 0
    try:
        with uow:
            pending = _unassigned_query(uow.session).with_for_update().populate_existing().order_by(Appointment.id).all()
            affected = len(pending)
            if not pending:
                logger.info("No unassigned appointments found")
                return RemediationResult(doctor_id=None, fixed_count=0)

            doctor = resolve_default_doctor(uow.session, doctor_id)
            if doctor is None:
                logger.error("%s unassigned appointment(s) but no active doctor to assign", affected)
                raise RemediationFailedError(
                    f'No active doctor to assign; {affected} appointment(s) left unchanged',
                    affected,
                )

            for appointment in pending:
                appointment.assigned_doctor_id = doctor.id
            uow.session.flush()
            ids = tuple(a.id for a in pending)
            audit_after_commit(uow, 'appointment', 'assign_default_doctor', ctx, None, {
                'doctor_id': doctor.id,
                'appointment_ids': list(ids),
            })
    except (NotFoundError, ValidationError, RemediationFailedError):
        raise
    except Exception as e:
        logger.error("Default doctor assignment rolled back (%s appointment(s) affected): %s", affected, e, exc_info=True)
        raise RemediationFailedError(
            f'Assigning a default doctor failed; {affected} appointment(s) left unchanged: {e}',
            affected,
        ) from e

    logger.info("Assigned doctor %s to %s appointment(s)", doctor.id, len(ids))
    return RemediationResult(doctor_id=doctor.id, fixed_count=len(ids), appointment_ids=ids)
