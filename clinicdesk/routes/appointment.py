from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.errors import ValidationError
from clinicdesk.services import appointment_service, remediation_service
from clinicdesk.services.document_service import build_appointment_snapshot
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.utils.parsing import parse_bool, parse_date, parse_datetime, parse_int
from clinicdesk.routes._helpers import json_body, new_uow, pagination_args, paginated

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')


@appointment_bp.route('', methods=['GET'])
@jwt_required()
@require_role()
def list_appointments():
    """
    List appointments with filters and pagination.
    Patients see their own appointments, doctors the ones assigned to them.
    Query params:
        status, record_type, patient_id, doctor_id (optional)
        date_from, date_to: YYYY-MM-DD (optional, inclusive)
        unassigned: true to list appointments without a doctor
        page, limit: Pagination
    """
    page, limit = pagination_args()
    filters = {
        'status': request.args.get('status', type=str),
        'record_type': request.args.get('record_type', type=str),
        'patient_id': request.args.get('patient_id', type=int),
        'doctor_id': request.args.get('doctor_id', type=int),
    }
    if request.args.get('date_from'):
        filters['date_from'] = parse_date(request.args['date_from'], 'date_from')
    if request.args.get('date_to'):
        filters['date_to'] = parse_date(request.args['date_to'], 'date_to')
    if request.args.get('unassigned'):
        filters['unassigned'] = parse_bool(request.args['unassigned'], 'unassigned')

    pagination = appointment_service.list_appointments(current_actor(), filters, page=page, per_page=limit)
    return paginated(pagination, [a.to_dict() for a in pagination.items])


@appointment_bp.route('', methods=['POST'])
@jwt_required()
@require_role()
def book_appointment():
    """
    Book an appointment.
    Body: scheduled_at (YYYY-MM-DDTHH:MM) or date + time, doctor_id (optional),
    patient_id (staff only; patients book for themselves), reason,
    record_type, details, fee.
    """
    ctx = current_actor()
    data = json_body()

    if data.get('scheduled_at'):
        scheduled_at = parse_datetime(data['scheduled_at'], 'scheduled_at')
    elif data.get('date') and data.get('time'):
        scheduled_at = parse_datetime(f"{data['date']}T{data['time']}", 'scheduled_at')
    else:
        raise ValidationError('scheduled_at (or date and time) is required', field='scheduled_at')

    patient_id = ctx.user_id if ctx.is_patient else data.get('patient_id')
    if patient_id is None:
        raise ValidationError('patient_id is required', field='patient_id')
    doctor_id = data.get('doctor_id')

    appointment = appointment_service.book_appointment(
        ctx,
        new_uow(),
        parse_int(patient_id, 'patient_id'),
        parse_int(doctor_id, 'doctor_id') if doctor_id not in (None, '', 0) else None,
        scheduled_at,
        reason=data.get('reason'),
        details=data.get('details'),
        record_type=data.get('record_type', 'medical_checkup'),
        fee=data.get('fee'),
    )
    return jsonify({
        'success': True,
        'message': 'Appointment booked',
        'data': appointment.to_dict()
    }), 201


@appointment_bp.route('/<int:appointment_id>', methods=['GET'])
@jwt_required()
@require_role()
def get_appointment(appointment_id):
    appointment = appointment_service.get_appointment(current_actor(), appointment_id)
    return jsonify({'success': True, 'data': appointment.to_dict(include_history=True)}), 200


@appointment_bp.route('/<int:appointment_id>/status', methods=['PATCH', 'POST'])
@jwt_required()
@require_role()
def update_status(appointment_id):
    """Body: status (confirmed / completed / cancelled), note (optional)"""
    data = json_body()
    status = (data.get('status') or '').strip()
    if not status:
        raise ValidationError('status is required', field='status')

    appointment = appointment_service.update_status(
        current_actor(), new_uow(), appointment_id, status, note=data.get('note'),
    )
    return jsonify({
        'success': True,
        'message': f'Appointment {status}',
        'data': appointment.to_dict(include_history=True)
    }), 200


@appointment_bp.route('/<int:appointment_id>/cancel', methods=['POST'])
@jwt_required()
@require_role()
def cancel_appointment(appointment_id):
    data = request.get_json(silent=True) or {}
    appointment = appointment_service.update_status(
        current_actor(), new_uow(), appointment_id, 'cancelled', note=data.get('note'),
    )
    return jsonify({
        'success': True,
        'message': 'Appointment cancelled',
        'data': appointment.to_dict()
    }), 200


@appointment_bp.route('/<int:appointment_id>/doctor', methods=['PUT'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def assign_doctor(appointment_id):
    data = json_body()
    appointment = appointment_service.assign_doctor(
        current_actor(), new_uow(), appointment_id, parse_int(data.get('doctor_id'), 'doctor_id'),
    )
    return jsonify({
        'success': True,
        'message': 'Doctor assigned',
        'data': appointment.to_dict()
    }), 200


@appointment_bp.route('/<int:appointment_id>/details', methods=['PUT'])
@jwt_required()
@require_role('doctor', 'clinical_staff', 'admin')
def update_details(appointment_id):
    data = json_body()
    appointment = appointment_service.update_details(current_actor(), new_uow(), appointment_id, data)
    return jsonify({
        'success': True,
        'message': 'Details saved',
        'data': appointment.to_dict()
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['DELETE'])
@jwt_required()
@require_role('admin')
def delete_appointment(appointment_id):
    """Soft delete (medical data is never hard deleted)"""
    appointment_service.soft_delete_appointment(current_actor(), new_uow(), appointment_id)
    return jsonify({'success': True, 'message': 'Appointment deleted'}), 200


@appointment_bp.route('/<int:appointment_id>/document', methods=['GET'])
@jwt_required()
@require_role()
def appointment_document(appointment_id):
    """Everything needed to print the appointment; rendering happens client side"""
    appointment_service.get_appointment(current_actor(), appointment_id)
    return jsonify({'success': True, 'data': build_appointment_snapshot(appointment_id)}), 200


@appointment_bp.route('/unassigned', methods=['GET'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def unassigned_appointments():
    appointments = remediation_service.find_unassigned()
    return jsonify({
        'success': True,
        'data': [a.to_dict() for a in appointments],
        'count': len(appointments)
    }), 200


@appointment_bp.route('/assign-default-doctor', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def assign_default_doctor():
    """Body (optional): doctor_id to use instead of the first active doctor"""
    data = request.get_json(silent=True) or {}
    doctor_id = data.get('doctor_id')
    result = remediation_service.assign_default_doctor(
        current_actor(),
        new_uow(),
        parse_int(doctor_id, 'doctor_id') if doctor_id is not None else None,
    )
    if result.doctor_id is None and result.fixed_count == 0:
        message = 'Nothing to fix'
    else:
        message = f'Assigned {result.fixed_count} appointment(s) to doctor {result.doctor_id}'
    return jsonify({'success': True, 'message': message, 'data': result.to_dict()}), 200
