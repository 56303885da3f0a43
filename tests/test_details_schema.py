"""Per record type validation of appointment details"""
import pytest

from clinicdesk.errors import ValidationError
from clinicdesk.schemas import (
    LaboratoryDetails,
    MedicalCheckupDetails,
    MedicalRecordDetails,
    dump_details,
    parse_details,
)


def test_checkup_details():
    details = parse_details('medical_checkup', {
        'appointment_time': '09:30',
        'vital_signs': {'blood_pressure': '120/80', 'temperature': 36.8},
        'prescriptions': [{'medication': 'Ibuprofen', 'dosage': '200mg'}],
    })

    assert isinstance(details, MedicalCheckupDetails)
    assert dump_details(details) == {
        'record_type': 'medical_checkup',
        'appointment_time': '09:30',
        'vital_signs': {'blood_pressure': '120/80', 'temperature': 36.8},
        'prescriptions': [{'medication': 'Ibuprofen', 'dosage': '200mg'}],
    }


def test_record_type_argument_wins_over_payload():
    details = parse_details('medical_record', {'record_type': 'laboratory', 'diagnosis': 'Flu'})

    assert isinstance(details, MedicalRecordDetails)


def test_laboratory_requires_test_type():
    with pytest.raises(ValidationError) as exc:
        parse_details('laboratory', {'specimen': 'blood'})

    assert exc.value.field == 'details'
    assert 'details.test_type' in exc.value.errors

    details = parse_details('laboratory', {
        'test_type': 'CBC',
        'results': [{'name': 'Hemoglobin', 'value': '13.5', 'unit': 'g/dL'}],
    })
    assert isinstance(details, LaboratoryDetails)


@pytest.mark.parametrize('payload, key', [
    ({'vital_signs': {'blood_pressure': 'high'}}, 'details.vital_signs.blood_pressure'),
    ({'vital_signs': {'oxygen_saturation': 101}}, 'details.vital_signs.oxygen_saturation'),
    ({'appointment_time': '25:00'}, 'details.appointment_time'),
    ({'appointment_time': '9:30'}, 'details.appointment_time'),
    ({'prescriptions': [{'medication': '', 'dosage': '1'}]}, 'details.prescriptions.0.medication'),
    ({'favourite_colour': 'blue'}, 'details.favourite_colour'),
])
def test_invalid_checkup_details(payload, key):
    with pytest.raises(ValidationError) as exc:
        parse_details('medical_checkup', payload)

    assert key in exc.value.errors


def test_empty_details_are_valid():
    assert dump_details(parse_details('medical_checkup', None)) == {
        'record_type': 'medical_checkup',
        'prescriptions': [],
    }
