"""Merge a primary record and its lookups into a display-ready view model.

The functions here are synchronous and never read from the database; the
service layer hands them everything it fetched. Clinical detail is only
carried into the view model once the record's status is ``completed``.
"""

from __future__ import annotations

from collections import ChainMap
from typing import Any, Iterable, Mapping, Sequence

from shared.models.view_models import (
    NO_CLINICAL_SUMMARY,
    NO_DIAGNOSIS,
    NOT_ASSIGNED,
    CertificateView,
    ClinicalSummary,
    PatientSummary,
    PrescriptionView,
    RecordStatus,
    ReferralViewModel,
    SoapNotes,
    VisitViewModel,
)
from shared.records import resolver
from shared.records.formatting import (
    NOT_SPECIFIED,
    UNKNOWN_CLINIC,
    UNKNOWN_DOCTOR,
    format_clinic_address,
    format_clinic_and_address,
    format_date_time,
    format_doctor_name,
    format_full_name,
    format_medication,
    format_person_name,
    format_status,
)
from shared.records.resolver import get_nested_value, resolve_field

from .enricher import resolve_patient_name

ReferralStatus = RecordStatus

# Lookup names shared with the service layer.
REFERRING_CLINIC = "referringClinic"
REFERRING_DOCTOR = "referringDoctor"
PATIENT_PROFILE = "patientProfile"
SPECIALIST_CLINIC = "specialistClinic"
CLINIC = "clinic"
DOCTOR = "doctor"

DEFAULT_SPECIALTY = "General Medicine"

_EXPLICIT_PROVIDER_KEYS = ("prescribedBy", "issuedBy", "doctorName", "specialistName")
_PROVIDER_ID_KEYS = ("specialistId", "doctorId", "providerId")
_DATE_KEYS = ("appointmentDate", "referralDate", "date")
_TIME_KEYS = ("appointmentTime", "referralTime", "time")

Lookups = Mapping[str, Any]


def is_completed(status: Any) -> bool:
    """Return ``True`` only for a case-insensitive ``"completed"`` status."""

    return isinstance(status, str) and status.strip().lower() == "completed"


def _text(value: Any, fallback: str = NOT_SPECIFIED) -> str:
    """Render free text or lists of text as a single display string."""

    if value is None:
        return fallback
    if isinstance(value, (list, tuple)):
        parts = [_text(item, "") for item in value]
        joined = ", ".join(part for part in parts if part)
        return joined or fallback
    if isinstance(value, Mapping):
        return _text(resolve_field(value, ("description", "name", "value")), fallback)
    text = str(value).strip()
    return text or fallback


def _optional_text(value: Any) -> str | None:
    """Return a scalar field as text; numeric timestamps and ids included."""

    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def _diagnosis_text(value: Any) -> str:
    if isinstance(value, list):
        lines = []
        for entry in value:
            if isinstance(entry, Mapping):
                code = _text(entry.get("code"), "")
                description = _text(entry.get("description"), "")
                line = f"{code}: {description}" if code and description else code or description
            else:
                line = _text(entry, "")
            if line:
                lines.append(line)
        return "\n".join(lines) or NO_DIAGNOSIS
    return _text(value, NO_DIAGNOSIS)


def build_clinical_summary(history: Mapping[str, Any] | None) -> ClinicalSummary:
    """Return the clinical fields of a medical-history entry with sentinels."""

    if not isinstance(history, Mapping):
        return ClinicalSummary()

    soap = history.get("soapNotes")
    soap_notes = SoapNotes(
        subjective=_text(get_nested_value(soap, "subjective")),
        objective=_text(get_nested_value(soap, "objective")),
        assessment=_text(get_nested_value(soap, "assessment")),
        plan=_text(get_nested_value(soap, "plan")),
    )
    return ClinicalSummary(
        recorded=True,
        present_illness_history=_text(
            resolve_field(history, ("presentIllnessHistory", "historyOfPresentIllness"))
        ),
        review_of_symptoms=_text(history.get("reviewOfSymptoms")),
        lab_results=_text(history.get("labResults")),
        medications=_text(history.get("medications")),
        diagnosis=_diagnosis_text(history.get("diagnosis")),
        differential_diagnosis=_text(history.get("differentialDiagnosis")),
        soap_notes=soap_notes,
        treatment_plan=_text(history.get("treatmentPlan")),
        clinical_summary=_text(history.get("clinicalSummary"), NO_CLINICAL_SUMMARY),
    )


def consultation_provider_name(history: Mapping[str, Any] | None) -> str | None:
    """Return the provider recorded on a consultation entry, if any."""

    if not isinstance(history, Mapping):
        return None
    provider = history.get("provider")
    name = format_full_name(provider, "") if isinstance(provider, Mapping) else ""
    if name:
        return name
    explicit = resolve_field(history, ("providerName", "doctorName"))
    return str(explicit) if explicit is not None else None


def resolve_provider_name(
    item: Mapping[str, Any] | None,
    provider_names: Mapping[str, str] | None = None,
    consultation_provider: str | None = None,
    assigned_specialist: str | None = None,
) -> str:
    """Return ``"Dr. ..."`` for the provider behind a prescription or certificate.

    Order: a name stored on the item, the id-to-name map, the consultation's
    provider, the assigned specialist, then ``Unknown Doctor``.
    """

    explicit = resolve_field(item, _EXPLICIT_PROVIDER_KEYS)
    if explicit is not None:
        return format_doctor_name(explicit)

    for key in _PROVIDER_ID_KEYS:
        provider_id = resolve_field(item, (key,))
        if provider_id is None:
            continue
        name = (provider_names or {}).get(str(provider_id))
        if name:
            return format_doctor_name(name)

    for candidate in (consultation_provider, assigned_specialist):
        if candidate and candidate.strip():
            return format_doctor_name(candidate)
    return UNKNOWN_DOCTOR


def provider_ids(items: Iterable[Mapping[str, Any]]) -> list[str]:
    """Return the distinct provider ids referenced by ``items`` in order."""

    seen: dict[str, None] = {}
    for item in items:
        for key in _PROVIDER_ID_KEYS:
            value = resolve_field(item, (key,))
            if value is not None:
                seen.setdefault(str(value), None)
    return list(seen)


def history_items(history: Mapping[str, Any] | None, key: str) -> list[Mapping[str, Any]]:
    """Return the embedded prescriptions or certificates of a history entry."""

    if not isinstance(history, Mapping):
        return []
    items = history.get(key)
    if isinstance(items, Mapping):
        items = [
            {"id": str(item_key), **value}
            for item_key, value in items.items()
            if isinstance(value, Mapping)
        ]
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def build_prescription(
    item: Mapping[str, Any],
    prescribed_by: str,
    *,
    patient_name: str | None = None,
) -> PrescriptionView:
    return PrescriptionView(
        id=_optional_text(item.get("id")),
        medication=_text(item.get("medication")),
        dosage=_text(item.get("dosage")),
        frequency=_text(item.get("frequency")),
        duration=_text(item.get("duration")),
        instructions=_text(item.get("instructions"), ""),
        prescribed_date=_optional_text(
            resolve_field(item, ("prescribedDate", "createdAt"))
        ),
        status=_text(item.get("status"), "active"),
        prescribed_by=prescribed_by,
        label=format_medication(item) or NOT_SPECIFIED,
        patient_id=_optional_text(item.get("patientId")),
        patient_name=patient_name,
    )


def build_certificate(item: Mapping[str, Any], issued_by: str) -> CertificateView:
    return CertificateView(
        id=_optional_text(item.get("id")),
        type=_text(resolve_field(item, ("type", "certificateType"))),
        description=_text(item.get("description"), ""),
        issue_date=_optional_text(
            resolve_field(item, ("issueDate", "issuedDate", "createdAt"))
        ),
        expiry_date=_optional_text(resolve_field(item, ("expiryDate", "validUntil"))),
        status=_text(item.get("status"), "active"),
        issued_by=issued_by,
    )


def build_patient_summary(
    profile: Mapping[str, Any] | None, primary: Mapping[str, Any] | None = None
) -> PatientSummary:
    """Return the patient's contact details, profile fields before embedded ones."""

    layers = [layer for layer in (profile, primary) if isinstance(layer, Mapping)]
    record = ChainMap(*layers) if layers else None
    return PatientSummary(
        first_name=resolver.first_name(record),
        middle_name=resolver.middle_name(record),
        last_name=resolver.last_name(record),
        initials=resolver.initials(record),
        email=resolver.email(record),
        phone=resolver.phone(record),
        gender=resolver.gender(record),
        age=resolver.age(record),
        blood_type=resolver.blood_type(record),
        emergency_contact_phone=resolver.emergency_contact_phone(record),
    )


def _encounter_documents(
    completed: bool,
    history: Mapping[str, Any] | None,
    prescriptions: Sequence[Mapping[str, Any]],
    certificates: Sequence[Mapping[str, Any]],
    provider_names: Mapping[str, str] | None,
    assigned_specialist: str | None,
) -> tuple[ClinicalSummary, list[PrescriptionView], list[CertificateView]]:
    if not completed:
        return ClinicalSummary(), [], []

    consultation_provider = consultation_provider_name(history)

    def _provider(item: Mapping[str, Any]) -> str:
        return resolve_provider_name(
            item, provider_names, consultation_provider, assigned_specialist
        )

    rx_items = history_items(history, "prescriptions") or list(prescriptions)
    cert_items = history_items(history, "certificates") or list(certificates)
    return (
        build_clinical_summary(history),
        [build_prescription(item, _provider(item)) for item in rx_items],
        [build_certificate(item, _provider(item)) for item in cert_items],
    )


def _clinic_fields(
    clinic: Mapping[str, Any] | None, embedded_name: Any
) -> tuple[str, str, str]:
    name = _text(resolve_field(clinic, ("name",), embedded_name), UNKNOWN_CLINIC)
    return (
        name,
        format_clinic_address(clinic, name),
        format_clinic_and_address(clinic, name),
    )


def _doctor_name(record: Mapping[str, Any] | None, first: Any, last: Any) -> str:
    name = format_full_name(record, "") or format_person_name(first, last)
    return format_doctor_name(name)


def assemble_referral(
    referral: Mapping[str, Any],
    lookups: Lookups,
    *,
    medical_history: Mapping[str, Any] | None = None,
    prescriptions: Sequence[Mapping[str, Any]] = (),
    certificates: Sequence[Mapping[str, Any]] = (),
    provider_names: Mapping[str, str] | None = None,
) -> ReferralViewModel:
    """Build the referral details view model."""

    status = _text(referral.get("status"), "")
    clinic_name, address, clinic_and_address = _clinic_fields(
        lookups.get(REFERRING_CLINIC), referral.get("referringClinicName")
    )
    assigned_specialist = format_person_name(
        referral.get("assignedSpecialistFirstName"),
        referral.get("assignedSpecialistLastName"),
    )
    specialist_clinic = lookups.get(SPECIALIST_CLINIC)
    clinical, rx_views, cert_views = _encounter_documents(
        is_completed(status),
        medical_history,
        prescriptions,
        certificates,
        provider_names,
        assigned_specialist,
    )
    date_value = resolve_field(referral, _DATE_KEYS)
    time_value = resolve_field(referral, _TIME_KEYS)

    return ReferralViewModel(
        id=str(referral.get("id", "")),
        status=status,
        status_text=format_status(status),
        clinic=clinic_name,
        address=address,
        clinic_and_address=clinic_and_address,
        date=_optional_text(date_value),
        time=_optional_text(time_value),
        date_time=format_date_time(date_value, time_value),
        clinical=clinical,
        prescriptions=rx_views,
        certificates=cert_views,
        record=dict(referral),
        patient_id=_optional_text(referral.get("patientId")),
        patient_name=resolve_patient_name(lookups.get(PATIENT_PROFILE), referral),
        patient=build_patient_summary(lookups.get(PATIENT_PROFILE), referral),
        referring_doctor_name=_doctor_name(
            lookups.get(REFERRING_DOCTOR),
            referral.get("referringGeneralistFirstName"),
            referral.get("referringGeneralistLastName"),
        ),
        assigned_specialist_name=format_doctor_name(assigned_specialist),
        specialist_clinic=(
            format_clinic_and_address(specialist_clinic)
            if specialist_clinic
            else NOT_ASSIGNED
        ),
        initial_reason_for_referral=_text(
            resolve_field(
                referral, ("initialReasonForReferral", "reasonForReferral", "reason")
            )
        ),
    )


def assemble_visit(
    appointment: Mapping[str, Any],
    lookups: Lookups,
    *,
    medical_history: Mapping[str, Any] | None = None,
    prescriptions: Sequence[Mapping[str, Any]] = (),
    certificates: Sequence[Mapping[str, Any]] = (),
    provider_names: Mapping[str, str] | None = None,
) -> VisitViewModel:
    """Build the visit overview view model for a clinic appointment."""

    status = _text(appointment.get("status"), "")
    clinic_name, address, clinic_and_address = _clinic_fields(
        lookups.get(CLINIC), appointment.get("clinicName")
    )
    doctor = lookups.get(DOCTOR)
    doctor_name = _doctor_name(
        doctor, appointment.get("doctorFirstName"), appointment.get("doctorLastName")
    )
    clinical, rx_views, cert_views = _encounter_documents(
        is_completed(status),
        medical_history,
        prescriptions,
        certificates,
        provider_names,
        doctor_name if doctor_name != UNKNOWN_DOCTOR else None,
    )
    date_value = resolve_field(appointment, _DATE_KEYS)
    time_value = resolve_field(appointment, _TIME_KEYS)

    return VisitViewModel(
        id=str(appointment.get("id", "")),
        status=status,
        status_text=format_status(status),
        clinic=clinic_name,
        address=address,
        clinic_and_address=clinic_and_address,
        date=_optional_text(date_value),
        time=_optional_text(time_value),
        date_time=format_date_time(date_value, time_value),
        clinical=clinical,
        prescriptions=rx_views,
        certificates=cert_views,
        record=dict(appointment),
        doctor_name=doctor_name,
        doctor_specialty=_text(
            resolve_field(doctor, ("specialty", "specialization")), DEFAULT_SPECIALTY
        ),
        consultation_id=_text(
            resolve_field(appointment, ("appointmentConsultationId", "consultationId")),
            "N/A",
        ),
        appointment_purpose=_text(
            resolve_field(appointment, ("patientComplaint", "appointmentPurpose", "type"))
        ),
    )


__all__ = [
    "CLINIC",
    "DOCTOR",
    "PATIENT_PROFILE",
    "REFERRING_CLINIC",
    "REFERRING_DOCTOR",
    "ReferralStatus",
    "SPECIALIST_CLINIC",
    "assemble_referral",
    "assemble_visit",
    "build_certificate",
    "build_clinical_summary",
    "build_patient_summary",
    "build_prescription",
    "consultation_provider_name",
    "history_items",
    "is_completed",
    "provider_ids",
    "resolve_provider_name",
]
