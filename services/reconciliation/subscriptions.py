"""Live appointment lists driven by realtime database listeners."""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Iterable, Mapping

from repositories.realtime_db import DatabaseClient, Record, Unsubscribe
from shared.models.view_models import AppointmentSummary
from shared.observability.logger import get_logger
from shared.records.formatting import (
    UNKNOWN_CLINIC,
    format_date_time,
    format_doctor_name,
    format_person_name,
    format_status,
)
from shared.records.resolver import resolve_field
from shared.records.validation import filter_valid, is_valid_appointment, validate_date

from .enricher import resolve_patient_name

logger = get_logger(__name__)

AppointmentsCallback = Callable[[list[AppointmentSummary]], None]

APPOINTMENTS_PATH = "appointments"
_OWNER_FIELDS = {"patient": "patientId", "specialist": "doctorId"}


def summarize_appointment(record: Mapping[str, Any]) -> AppointmentSummary:
    """Return the display fields of one appointment row."""

    status = str(record.get("status") or "")
    return AppointmentSummary(
        id=str(record["id"]),
        status=status,
        status_text=format_status(status),
        date_time=format_date_time(
            record.get("appointmentDate"), record.get("appointmentTime")
        ),
        doctor_name=format_doctor_name(
            format_person_name(
                record.get("doctorFirstName"), record.get("doctorLastName")
            )
        ),
        patient_name=resolve_patient_name(None, record),
        clinic_name=str(resolve_field(record, ("clinicName",), UNKNOWN_CLINIC)),
    )


def _recency(record: Mapping[str, Any]) -> tuple[date, str]:
    parsed = validate_date(record.get("appointmentDate"))
    return (parsed.date() if parsed else date.min, str(record.get("appointmentTime") or ""))


def appointments_for(
    records: Iterable[Record], owner_field: str, user_id: str
) -> list[AppointmentSummary]:
    """Return the user's valid appointments, newest first."""

    mine = [
        record
        for record in filter_valid(records, is_valid_appointment)
        if record.get(owner_field) == user_id
    ]
    mine.sort(key=_recency, reverse=True)
    return [summarize_appointment(record) for record in mine]


def subscribe_appointments(
    client: DatabaseClient,
    user_id: str,
    role: str,
    callback: AppointmentsCallback,
) -> Unsubscribe:
    """Push the user's appointment list to ``callback`` on every change.

    Patients see appointments by ``patientId``; specialists by ``doctorId``.
    Returns the handle that stops the subscription.
    """

    owner_field = _OWNER_FIELDS.get((role or "").strip().lower())
    if owner_field is None:
        raise ValueError(f"Unsupported role '{role}' for appointment subscriptions.")

    def _on_snapshot(records: list[Record]) -> None:
        try:
            callback(appointments_for(records, owner_field, user_id))
        except Exception as exc:
            logger.warning(
                "appointments_push_failed",
                role=role,
                error_type=exc.__class__.__name__,
            )

    return client.listen_to_collection(APPOINTMENTS_PATH, _on_snapshot)


__all__ = [
    "AppointmentsCallback",
    "appointments_for",
    "subscribe_appointments",
    "summarize_appointment",
]
