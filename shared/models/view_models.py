"""Display-ready view models assembled from denormalized database records."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.records.formatting import NOT_SPECIFIED, UNKNOWN_DOCTOR

NO_DIAGNOSIS = "No diagnosis recorded"
NO_CLINICAL_SUMMARY = "No clinical summary recorded"
UNKNOWN_PATIENT = "Unknown Patient"
NOT_ASSIGNED = "Not assigned"


def to_camel(value: str) -> str:
    """Convert ``snake_case`` ``value`` into ``camelCase`` for JSON aliases."""

    first, *rest = value.split("_")
    return first + "".join(token.capitalize() for token in rest)


class CamelModel(BaseModel):
    """Base model applying camelCase aliases and ignoring unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class RecordStatus(str, Enum):
    """Lifecycle of referrals and appointments.

    ``pending`` moves to ``confirmed`` and then ``completed``; ``pending`` or
    ``confirmed`` may also move to ``cancelled``. Both end states are final.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> Optional["RecordStatus"]:
        """Return the member matching ``value`` case-insensitively, if any."""

        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "canceled":
            normalized = cls.CANCELLED.value
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in (RecordStatus.COMPLETED, RecordStatus.CANCELLED)


class SoapNotes(CamelModel):
    subjective: str = NOT_SPECIFIED
    objective: str = NOT_SPECIFIED
    assessment: str = NOT_SPECIFIED
    plan: str = NOT_SPECIFIED


class ClinicalSummary(CamelModel):
    """Clinical detail of a completed encounter, or placeholders otherwise."""

    recorded: bool = Field(
        default=False, description="Whether the fields come from a completed encounter"
    )
    present_illness_history: str = NOT_SPECIFIED
    review_of_symptoms: str = NOT_SPECIFIED
    lab_results: str = NOT_SPECIFIED
    medications: str = NOT_SPECIFIED
    diagnosis: str = NO_DIAGNOSIS
    differential_diagnosis: str = NOT_SPECIFIED
    soap_notes: SoapNotes = Field(default_factory=SoapNotes)
    treatment_plan: str = NOT_SPECIFIED
    clinical_summary: str = NO_CLINICAL_SUMMARY


class PrescriptionView(CamelModel):
    id: Optional[str] = None
    medication: str = NOT_SPECIFIED
    dosage: str = NOT_SPECIFIED
    frequency: str = NOT_SPECIFIED
    duration: str = NOT_SPECIFIED
    instructions: str = ""
    prescribed_date: Optional[str] = None
    status: str = "active"
    prescribed_by: str = UNKNOWN_DOCTOR
    label: str = NOT_SPECIFIED
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None


class PatientSummary(CamelModel):
    """Contact details of the referred patient."""

    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    initials: str = "U"
    email: str = ""
    phone: str = "Not provided"
    gender: str = NOT_SPECIFIED
    age: Optional[int] = None
    blood_type: str = NOT_SPECIFIED
    emergency_contact_phone: str = "Not provided"


class CertificateView(CamelModel):
    id: Optional[str] = None
    type: str = NOT_SPECIFIED
    description: str = ""
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    status: str = "active"
    issued_by: str = UNKNOWN_DOCTOR


class _EncounterViewModel(CamelModel):
    id: str
    status: str
    status_text: str
    clinic: str
    address: str
    clinic_and_address: str
    date: Optional[str] = None
    time: Optional[str] = None
    date_time: str = NOT_SPECIFIED
    clinical: ClinicalSummary = Field(default_factory=ClinicalSummary)
    prescriptions: list[PrescriptionView] = Field(default_factory=list)
    certificates: list[CertificateView] = Field(default_factory=list)
    record: dict[str, Any] = Field(
        default_factory=dict, description="The primary record as stored"
    )


class ReferralViewModel(_EncounterViewModel):
    """Everything the referral details screen renders."""

    patient_id: Optional[str] = None
    patient_name: str = UNKNOWN_PATIENT
    patient: PatientSummary = Field(default_factory=PatientSummary)
    referring_doctor_name: str = UNKNOWN_DOCTOR
    assigned_specialist_name: str = UNKNOWN_DOCTOR
    specialist_clinic: str = NOT_ASSIGNED
    initial_reason_for_referral: str = NOT_SPECIFIED


class VisitViewModel(_EncounterViewModel):
    """Everything the visit overview screen renders."""

    doctor_name: str = UNKNOWN_DOCTOR
    doctor_specialty: str = "General Medicine"
    consultation_id: str = "N/A"
    appointment_purpose: str = NOT_SPECIFIED


class AppointmentSummary(CamelModel):
    """One row of a live appointment list."""

    id: str
    status: str
    status_text: str
    date_time: str
    doctor_name: str
    patient_name: str
    clinic_name: str


__all__ = [
    "AppointmentSummary",
    "CamelModel",
    "CertificateView",
    "ClinicalSummary",
    "NOT_ASSIGNED",
    "NO_CLINICAL_SUMMARY",
    "NO_DIAGNOSIS",
    "PatientSummary",
    "PrescriptionView",
    "RecordStatus",
    "ReferralViewModel",
    "SoapNotes",
    "UNKNOWN_PATIENT",
    "VisitViewModel",
    "to_camel",
]
