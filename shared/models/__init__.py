"""Pydantic models shared across the reconciliation service."""

from .view_models import (
    AppointmentSummary,
    CertificateView,
    ClinicalSummary,
    PrescriptionView,
    RecordStatus,
    ReferralViewModel,
    SoapNotes,
    VisitViewModel,
)

__all__ = [
    "AppointmentSummary",
    "CertificateView",
    "ClinicalSummary",
    "PrescriptionView",
    "RecordStatus",
    "ReferralViewModel",
    "SoapNotes",
    "VisitViewModel",
]
