from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.services import record_request_service
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.utils.parsing import parse_datetime, parse_int
from clinicdesk.routes._helpers import json_body, new_uow, pagination_args, paginated

record_request_bp = Blueprint('record_request', __name__, url_prefix='/api/record-requests')


@record_request_bp.route('', methods=['GET'])
@jwt_required()
@require_role('patient', 'clinical_staff', 'admin')
def list_requests():
    """
    Query params: status, record_type, patient_id (staff only), page, limit
    """
    page, limit = pagination_args()
    pagination = record_request_service.list_requests(
        current_actor(),
        status=request.args.get('status', type=str),
        record_type=request.args.get('record_type', type=str),
        patient_id=request.args.get('patient_id', type=int),
        page=page,
        per_page=limit,
    )
    return paginated(pagination, [r.to_dict() for r in pagination.items])


@record_request_bp.route('/pending-count', methods=['GET'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def pending_count():
    return jsonify({'success': True, 'data': {'pending': record_request_service.pending_count()}}), 200


@record_request_bp.route('', methods=['POST'])
@jwt_required()
@require_role('patient')
def submit_request():
    """Body: record_type (medical_record / lab_record), record_id, reason"""
    ctx = current_actor()
    data = json_body()
    req = record_request_service.submit_request(
        ctx,
        new_uow(),
        ctx.user_id,
        data.get('record_type'),
        parse_int(data.get('record_id'), 'record_id'),
        data.get('reason') or data.get('request_reason'),
    )
    return jsonify({
        'success': True,
        'message': 'Request submitted',
        'data': req.to_dict()
    }), 201


@record_request_bp.route('/<int:request_id>', methods=['GET'])
@jwt_required()
@require_role('patient', 'clinical_staff', 'admin')
def get_request(request_id):
    req = record_request_service.get_request(current_actor(), request_id)
    data = req.to_dict()
    data['access_valid'] = record_request_service.is_access_currently_valid(req)
    return jsonify({'success': True, 'data': data}), 200


@record_request_bp.route('/<int:request_id>/approve', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def approve_request(request_id):
    """Body (optional): expires_at (YYYY-MM-DDTHH:MM)"""
    data = request.get_json(silent=True) or {}
    expires_at = data.get('expires_at')
    req = record_request_service.approve_request(
        current_actor(),
        new_uow(),
        request_id,
        parse_datetime(expires_at, 'expires_at', local=False) if expires_at else None,
    )
    return jsonify({
        'success': True,
        'message': 'Request approved',
        'data': req.to_dict()
    }), 200


@record_request_bp.route('/<int:request_id>/deny', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def deny_request(request_id):
    """Body: reason (required)"""
    data = request.get_json(silent=True) or {}
    req = record_request_service.deny_request(
        current_actor(), new_uow(), request_id, data.get('reason') or data.get('denied_reason'),
    )
    return jsonify({
        'success': True,
        'message': 'Request denied',
        'data': req.to_dict()
    }), 200


@record_request_bp.route('/<int:request_id>/record', methods=['GET'])
@jwt_required()
@require_role('patient')
def view_record(request_id):
    """The requested record, while access is valid"""
    record = record_request_service.accessible_record(current_actor(), request_id)
    return jsonify({'success': True, 'data': record.to_dict()}), 200
