"""
Actor context passed explicitly into every service call.
"""
from dataclasses import dataclass
from typing import Optional

from clinicdesk.errors import PermissionDeniedError
from clinicdesk.models.user import (
    ROLE_ADMIN,
    ROLE_CLINICAL_STAFF,
    ROLE_DOCTOR,
    ROLE_PATIENT,
    ROLES,
)

STAFF_ROLES = (ROLE_CLINICAL_STAFF, ROLE_ADMIN)


@dataclass(frozen=True)
class ActorContext:
    user_id: Optional[int]
    role: str
    name: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f'Unknown role: {self.role}')

    @classmethod
    def from_user(cls, user):
        return cls(user_id=user.id, role=user.role, name=user.name)

    @classmethod
    def system(cls):
        """Actor for maintenance scripts run outside a request"""
        return cls(user_id=None, role=ROLE_ADMIN, name='system')

    @property
    def is_patient(self):
        return self.role == ROLE_PATIENT

    @property
    def is_doctor(self):
        return self.role == ROLE_DOCTOR

    @property
    def is_staff(self):
        return self.role in STAFF_ROLES

    def require(self, *roles):
        if self.role not in roles:
            raise PermissionDeniedError(
                f'Permission denied. Required roles: {", ".join(roles)}',
                {'role': self.role},
            )

    def require_self_or(self, user_id, *roles):
        """Allow the user acting on their own data, or any of the given roles"""
        if self.user_id is not None and self.user_id == user_id:
            return
        self.require(*roles)
