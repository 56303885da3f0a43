from .auth import auth_bp
from .health import health_bp
from .schedule import schedule_bp
from .appointment import appointment_bp
from .record_request import record_request_bp
from .receipt import receipt_bp
from .clinical import clinical_bp
from .notification import notification_bp

__all__ = [
    'auth_bp',
    'health_bp',
    'schedule_bp',
    'appointment_bp',
    'record_request_bp',
    'receipt_bp',
    'clinical_bp',
    'notification_bp',
]
