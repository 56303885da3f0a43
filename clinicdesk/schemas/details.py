"""Appointment details - one Pydantic model per record type"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError


class PatientSnapshot(BaseModel):
    """Patient data frozen at booking time"""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    reference_number: Optional[str] = None


class VitalSigns(BaseModel):
    blood_pressure: Optional[str] = Field(default=None, pattern=r"^\d{2,3}/\d{2,3}$")
    heart_rate: Optional[int] = Field(default=None, ge=20, le=250)
    temperature: Optional[float] = Field(default=None, ge=30, le=45)
    respiratory_rate: Optional[int] = Field(default=None, ge=5, le=60)
    oxygen_saturation: Optional[int] = Field(default=None, ge=50, le=100)
    weight: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)


class PrescribedItem(BaseModel):
    medication: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None


class LabValue(BaseModel):
    name: str = Field(min_length=1)
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None


class _DetailsBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    appointment_time: Optional[str] = None
    patient_snapshot: Optional[PatientSnapshot] = None
    notes: Optional[str] = None

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v):
        if v is None:
            return v
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
            raise ValueError("appointment_time must be HH:MM")
        if int(parts[0]) > 23 or int(parts[1]) > 59:
            raise ValueError("appointment_time must be a valid time of day")
        return v


class MedicalCheckupDetails(_DetailsBase):
    record_type: Literal["medical_checkup"] = "medical_checkup"
    vital_signs: Optional[VitalSigns] = None
    symptoms: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    prescriptions: List[PrescribedItem] = Field(default_factory=list)
    followup_date: Optional[str] = None


class LaboratoryDetails(_DetailsBase):
    record_type: Literal["laboratory"] = "laboratory"
    test_type: str = Field(min_length=1)
    specimen: Optional[str] = None
    results: List[LabValue] = Field(default_factory=list)
    result_file_key: Optional[str] = None


class MedicalRecordDetails(_DetailsBase):
    record_type: Literal["medical_record"] = "medical_record"
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    prescriptions: List[PrescribedItem] = Field(default_factory=list)


AppointmentDetails = Annotated[
    Union[MedicalCheckupDetails, LaboratoryDetails, MedicalRecordDetails],
    Field(discriminator="record_type"),
]

_adapter = TypeAdapter(AppointmentDetails)


def parse_details(record_type: str, raw: Optional[dict]):
    """
    Validate a details payload for the given record type.

    The record type always wins over a record_type key inside the payload,
    so callers cannot smuggle one shape in under another tag.
    """
    payload = dict(raw or {})
    payload["record_type"] = record_type
    try:
        return _adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = {}
        for err in e.errors():
            parts = list(err["loc"])
            # drop the union tag pydantic prefixes to every location
            if parts and parts[0] == record_type:
                parts = parts[1:]
            key = ".".join(["details"] + [str(part) for part in parts])
            errors[key] = err["msg"]
        raise ValidationError("Invalid appointment details", field="details", errors=errors) from e


def dump_details(details) -> dict:
    return details.model_dump(mode="json", exclude_none=True)
