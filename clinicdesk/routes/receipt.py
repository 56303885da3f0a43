from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.services import receipt_service
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.utils.parsing import parse_datetime, parse_int
from clinicdesk.routes._helpers import json_body, new_uow, pagination_args, paginated

receipt_bp = Blueprint('receipt', __name__, url_prefix='/api/receipts')


@receipt_bp.route('', methods=['GET'])
@jwt_required()
@require_role('patient', 'clinical_staff', 'admin')
def list_receipts():
    page, limit = pagination_args()
    pagination = receipt_service.list_receipts(
        current_actor(),
        patient_id=request.args.get('patient_id', type=int),
        page=page,
        per_page=limit,
    )
    return paginated(pagination, [r.to_dict() for r in pagination.items])


@receipt_bp.route('', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin')
def create_receipt():
    """
    Body: patient_id, amount, payment_method, items
    ([{description, quantity, unit_price, amount}]), payment_date and
    appointment_id (optional)
    """
    data = json_body()
    appointment_id = data.get('appointment_id')
    payment_date = data.get('payment_date')
    receipt = receipt_service.create_receipt(
        current_actor(),
        new_uow(),
        parse_int(data.get('patient_id'), 'patient_id'),
        data.get('amount'),
        data.get('payment_method'),
        data.get('items'),
        payment_date=parse_datetime(payment_date, 'payment_date') if payment_date else None,
        appointment_id=parse_int(appointment_id, 'appointment_id') if appointment_id else None,
    )
    return jsonify({
        'success': True,
        'message': 'Receipt created successfully',
        'data': receipt.to_dict()
    }), 201


@receipt_bp.route('/<int:receipt_id>', methods=['GET'])
@jwt_required()
@require_role('patient', 'clinical_staff', 'admin')
def get_receipt(receipt_id):
    receipt = receipt_service.get_receipt(current_actor(), receipt_id)
    return jsonify({'success': True, 'data': receipt.to_dict()}), 200
