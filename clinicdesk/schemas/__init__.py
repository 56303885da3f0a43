from .details import (
    AppointmentDetails,
    LaboratoryDetails,
    MedicalCheckupDetails,
    MedicalRecordDetails,
    PatientSnapshot,
    dump_details,
    parse_details,
)

__all__ = [
    "AppointmentDetails",
    "LaboratoryDetails",
    "MedicalCheckupDetails",
    "MedicalRecordDetails",
    "PatientSnapshot",
    "dump_details",
    "parse_details",
]
