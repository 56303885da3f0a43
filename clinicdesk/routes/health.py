"""
Health check endpoints for monitoring and load balancers
"""
import logging
from datetime import datetime

from flask import Blueprint, jsonify

from clinicdesk.extensions import db
from clinicdesk.models import DoctorSchedule
from clinicdesk.models.doctor_schedule import STATUS_PENDING
from clinicdesk.services import record_request_service, remediation_service

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Process is up; touches nothing else"""
    return jsonify({
        'status': 'healthy',
        'service': 'clinicdesk',
        'timestamp': datetime.utcnow().isoformat(),
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Database reachable, plus the work waiting on clinic staff:
    schedules to approve, record requests to review and appointments
    booked without a doctor.
    """
    try:
        db.session.execute(db.text('SELECT 1'))
        backlog = {
            'pending_schedules': DoctorSchedule.query.filter_by(status=STATUS_PENDING).count(),
            'pending_record_requests': record_request_service.pending_count(),
            'unassigned_appointments': len(remediation_service.find_unassigned()),
        }
    except Exception as e:
        db.session.rollback()
        logger.warning("Readiness check failed: %s", e)
        return jsonify({
            'status': 'not_ready',
            'database': f'error: {e}',
            'timestamp': datetime.utcnow().isoformat(),
        }), 503

    return jsonify({
        'status': 'ready',
        'database': 'connected',
        'backlog': backlog,
        'timestamp': datetime.utcnow().isoformat(),
    }), 200
