from clinicdesk.extensions import db, bcrypt
from .base import TimestampMixin

ROLE_PATIENT = 'patient'
ROLE_CLINICAL_STAFF = 'clinical_staff'
ROLE_DOCTOR = 'doctor'
ROLE_ADMIN = 'admin'

ROLES = (ROLE_PATIENT, ROLE_CLINICAL_STAFF, ROLE_DOCTOR, ROLE_ADMIN)


class User(db.Model, TimestampMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(20))

    # Role - one of: 'patient', 'clinical_staff', 'doctor', 'admin'
    role = db.Column(db.String(20), nullable=False, index=True)

    # Patients only, e.g. PAT-000042
    reference_number = db.Column(db.String(20), unique=True, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)
    login_count = db.Column(db.Integer, default=0)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    def has_role(self, role_name):
        return self.role == role_name

    def has_any_role(self, *role_names):
        return self.role in role_names

    def is_doctor(self):
        return self.role == ROLE_DOCTOR

    def is_patient(self):
        return self.role == ROLE_PATIENT

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'phone': self.phone,
            'role': self.role,
            'reference_number': self.reference_number,
            'is_active': self.is_active,
            'last_login': self.last_login.isoformat() if self.last_login else None,
        }

    def __repr__(self):
        return f"<User {self.email} ({self.name}) - {self.role}>"
