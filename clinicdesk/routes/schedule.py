from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.errors import ValidationError
from clinicdesk.services import availability_service, schedule_service
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.utils.parsing import parse_bool, parse_date, parse_int
from clinicdesk.routes._helpers import json_body, new_uow, pagination_args, paginated

schedule_bp = Blueprint('schedule', __name__, url_prefix='/api/schedules')


@schedule_bp.route('', methods=['GET'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def list_schedules():
    """
    List schedules, pending approval first.
    Query params:
        doctor_id: Filter by doctor (doctors always see only their own)
        status: pending / approved / rejected
        page, limit: Pagination
    """
    ctx = current_actor()
    page, limit = pagination_args()
    doctor_id = request.args.get('doctor_id', type=int)
    if ctx.is_doctor:
        doctor_id = ctx.user_id

    pagination = schedule_service.list_schedules(
        doctor_id=doctor_id,
        status=request.args.get('status', type=str),
        page=page,
        per_page=limit,
    )
    return paginated(pagination, [s.to_dict() for s in pagination.items])


@schedule_bp.route('', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def create_schedule():
    """
    Create one schedule, or several with {"doctor_id": .., "schedules": [...]}.
    Each entry: day_of_week or specific_date, start_time, end_time,
    max_appointments, is_available, notes.
    """
    ctx = current_actor()
    data = json_body()
    doctor_id = data.get('doctor_id') or (ctx.user_id if ctx.is_doctor else None)
    if not doctor_id:
        raise ValidationError('doctor_id is required', field='doctor_id')

    if 'schedules' in data:
        created = schedule_service.create_schedules(ctx, new_uow(), parse_int(doctor_id, 'doctor_id'), data['schedules'])
        return jsonify({
            'success': True,
            'message': f'{len(created)} schedule(s) created',
            'data': [s.to_dict() for s in created]
        }), 201

    schedule = schedule_service.create_schedule(
        ctx,
        new_uow(),
        parse_int(doctor_id, 'doctor_id'),
        data.get('start_time'),
        data.get('end_time'),
        schedule_service.recurrence_from_payload(data),
        max_appointments=data.get('max_appointments'),
        is_available=parse_bool(data.get('is_available', True), 'is_available'),
        notes=data.get('notes'),
    )
    return jsonify({
        'success': True,
        'message': 'Schedule created' if not schedule.is_approved else 'Schedule created and approved',
        'data': schedule.to_dict()
    }), 201


@schedule_bp.route('/<int:schedule_id>', methods=['GET'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def get_schedule(schedule_id):
    schedule = schedule_service.get_schedule(schedule_id)
    ctx = current_actor()
    ctx.require_self_or(schedule.doctor_id, 'clinical_staff', 'admin')
    return jsonify({'success': True, 'data': schedule.to_dict()}), 200


@schedule_bp.route('/<int:schedule_id>', methods=['PUT'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def edit_schedule(schedule_id):
    data = json_body()
    fields = {k: v for k, v in data.items() if k in schedule_service.EDITABLE_FIELDS}
    fields['recurrence'] = schedule_service.recurrence_from_payload(data)
    if 'is_available' in fields:
        fields['is_available'] = parse_bool(fields['is_available'], 'is_available')

    schedule = schedule_service.edit_schedule(current_actor(), new_uow(), schedule_id, fields)
    return jsonify({
        'success': True,
        'message': 'Schedule updated',
        'data': schedule.to_dict()
    }), 200


@schedule_bp.route('/<int:schedule_id>', methods=['DELETE'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def delete_schedule(schedule_id):
    schedule_service.delete_schedule(current_actor(), new_uow(), schedule_id)
    return jsonify({'success': True, 'message': 'Schedule deleted'}), 200


@schedule_bp.route('/<int:schedule_id>/approve', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def approve_schedule(schedule_id):
    schedule = schedule_service.approve_schedule(current_actor(), new_uow(), schedule_id)
    return jsonify({
        'success': True,
        'message': 'Schedule approved',
        'data': schedule.to_dict()
    }), 200


@schedule_bp.route('/<int:schedule_id>/reject', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def reject_schedule(schedule_id):
    data = request.get_json(silent=True) or {}
    schedule = schedule_service.reject_schedule(current_actor(), new_uow(), schedule_id, data.get('note'))
    return jsonify({
        'success': True,
        'message': 'Schedule rejected',
        'data': schedule.to_dict()
    }), 200


@schedule_bp.route('/doctor/<int:doctor_id>', methods=['GET'])
@jwt_required()
@require_role()
def doctor_schedules(doctor_id):
    """
    Schedules of one doctor.
    Query params: day_of_week, approved, available (booleans as true/false).
    Patients only ever see approved, available schedules.
    """
    ctx = current_actor()
    approved = request.args.get('approved')
    available = request.args.get('available')
    approved = parse_bool(approved, 'approved') if approved is not None else None
    available = parse_bool(available, 'available') if available is not None else None
    if ctx.is_patient:
        approved, available = True, True

    schedules = schedule_service.schedules_for_doctor(
        doctor_id,
        day_of_week=request.args.get('day_of_week', type=int),
        approved=approved,
        available=available,
    )
    return jsonify({'success': True, 'data': [s.to_dict() for s in schedules]}), 200


@schedule_bp.route('/doctor/<int:doctor_id>/availability', methods=['GET'])
@jwt_required()
@require_role()
def doctor_availability(doctor_id):
    """Open slots of a doctor on ?date=YYYY-MM-DD"""
    on_date = parse_date(request.args.get('date'), 'date')
    slots = availability_service.open_slots(doctor_id, on_date)
    return jsonify({
        'success': True,
        'data': {
            'doctor_id': doctor_id,
            'date': on_date.isoformat(),
            'slots': [
                {
                    'schedule_id': slot['schedule'].id,
                    'start_time': slot['schedule'].start_time.strftime('%H:%M'),
                    'end_time': slot['schedule'].end_time.strftime('%H:%M'),
                    'max_appointments': slot['schedule'].max_appointments,
                    'booked': slot['booked'],
                    'available_slots': slot['available'],
                    'is_fully_booked': slot['available'] == 0,
                }
                for slot in slots
            ],
        }
    }), 200
