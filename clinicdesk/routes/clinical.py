from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from clinicdesk.services import clinical_service
from clinicdesk.utils.decorators import require_role, current_actor
from clinicdesk.utils.parsing import parse_datetime, parse_int
from clinicdesk.routes._helpers import json_body, new_uow

clinical_bp = Blueprint('clinical', __name__, url_prefix='/api')


@clinical_bp.route('/appointments/<int:appointment_id>/prescriptions', methods=['POST'])
@jwt_required()
@require_role('doctor')
def add_prescription(appointment_id):
    """Body: medication, dosage, frequency, duration, instructions"""
    data = json_body()
    prescription = clinical_service.add_prescription(
        current_actor(),
        new_uow(),
        appointment_id,
        data.get('medication'),
        data.get('dosage'),
        frequency=data.get('frequency'),
        duration=data.get('duration'),
        instructions=data.get('instructions'),
    )
    return jsonify({
        'success': True,
        'message': 'Prescription added',
        'data': prescription.to_dict()
    }), 201


@clinical_bp.route('/lab-results', methods=['POST'])
@jwt_required()
@require_role('clinical_staff', 'admin', 'doctor')
def record_lab_result():
    """Body: patient_id, test_type, test_date, appointment_id, file_key, notes"""
    data = json_body()
    test_date = data.get('test_date')
    appointment_id = data.get('appointment_id')
    result = clinical_service.record_lab_result(
        current_actor(),
        new_uow(),
        parse_int(data.get('patient_id'), 'patient_id'),
        data.get('test_type'),
        test_date=parse_datetime(test_date, 'test_date') if test_date else None,
        appointment_id=parse_int(appointment_id, 'appointment_id') if appointment_id else None,
        file_key=data.get('file_key'),
        notes=data.get('notes'),
    )
    return jsonify({
        'success': True,
        'message': 'Lab result recorded',
        'data': result.to_dict()
    }), 201


@clinical_bp.route('/patients/<int:patient_id>/lab-results', methods=['GET'])
@jwt_required()
@require_role()
def patient_lab_results(patient_id):
    results = clinical_service.lab_results_for_patient(current_actor(), patient_id)
    return jsonify({'success': True, 'data': [r.to_dict() for r in results]}), 200
