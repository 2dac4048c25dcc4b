"""Display-string composition for names, clinics, dates and times."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from .resolver import FIRST_NAME_KEYS, resolve_field

NOT_SPECIFIED = "Not specified"
UNKNOWN_DOCTOR = "Unknown Doctor"
UNKNOWN_CLINIC = "Unknown Clinic"
ADDRESS_NOT_PROVIDED = "Address not provided"

_ADDRESS_PARTS: tuple[str, ...] = ("address", "city", "province", "zipCode")

# Ordered (first, last) key groups tried by format_full_name after ``name``.
_NAME_PAIRS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("firstName", "first_name", "givenName"), ("lastName", "last_name", "familyName")),
    (("patientFirstName",), ("patientLastName",)),
)

_DOCTOR_PREFIX = re.compile(r"^\s*dr(?:\.\s*|\s+|$)", re.IGNORECASE)
_TWENTY_FOUR_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")
_MERIDIEM = re.compile(r"\b(am|pm)\b", re.IGNORECASE)
_UNKNOWN_DOCTOR_NAMES = frozenset({"unknown", "unknown doctor"})


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def format_person_name(first: Any, last: Any, fallback: str = "") -> str:
    """Join the trimmed ``first`` and ``last`` parts, or return ``fallback``."""

    joined = " ".join(part for part in (_text(first), _text(last)) if part)
    return joined or fallback


def format_full_name(
    record: Mapping[str, Any] | None, fallback: str = "Unknown User"
) -> str:
    """Return the display name of a patient, doctor or specialist record.

    Tries a single ``name`` field, then first/last pairs (plain spellings
    before ``patient``-prefixed ones), then any first name on its own.
    """

    if not isinstance(record, Mapping):
        return fallback

    name = resolve_field(record, ("name",))
    if isinstance(name, str):
        return _text(name)

    for first_keys, last_keys in _NAME_PAIRS:
        first = resolve_field(record, first_keys)
        last = resolve_field(record, last_keys)
        if first is not None and last is not None:
            return format_person_name(first, last)

    first = resolve_field(record, FIRST_NAME_KEYS)
    if first is not None:
        return _text(first)
    return fallback


def format_doctor_name(name: Any) -> str:
    """Return ``name`` with exactly one ``"Dr. "`` prefix.

    Existing prefixes (``Dr``, ``dr.``, ``Dr. Dr.``) are stripped first so the
    function is idempotent. Blank or placeholder input yields ``Unknown Doctor``.
    """

    stripped = _text(name)
    while True:
        candidate = _DOCTOR_PREFIX.sub("", stripped, count=1).strip()
        if candidate == stripped:
            break
        stripped = candidate
    stripped = " ".join(stripped.split())
    if not stripped or stripped.casefold() in _UNKNOWN_DOCTOR_NAMES:
        return UNKNOWN_DOCTOR
    return f"Dr. {stripped}"


def format_clinic_address(
    clinic: Mapping[str, Any] | None, fallback_name: str | None = None
) -> str:
    """Return a non-empty address line for ``clinic``.

    Present parts of ``address, city, province, zipCode`` are comma-joined;
    otherwise ``addressLine``, then the clinic ``name``, then ``fallback_name``.
    """

    final = _text(fallback_name) or ADDRESS_NOT_PROVIDED
    if not isinstance(clinic, Mapping):
        return final

    parts = [_text(clinic.get(key)) for key in _ADDRESS_PARTS]
    parts = [part for part in parts if part]
    if parts:
        return ", ".join(parts)

    return _text(resolve_field(clinic, ("addressLine", "name"), final))


def format_clinic_and_address(
    clinic: Mapping[str, Any] | None, fallback_name: str | None = None
) -> str:
    """Return ``"{name}, {address}"`` without repeating the clinic name."""

    clinic_name = _text(
        resolve_field(clinic, ("name",), _text(fallback_name) or UNKNOWN_CLINIC)
    )
    address = format_clinic_address(clinic, fallback_name)
    if address == clinic_name or clinic_name in address:
        return address
    return f"{clinic_name}, {address}"


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _text(value)
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_date(value: Any) -> str:
    """Render ``value`` as ``"January 5, 2025"``; unparseable text is kept."""

    parsed = _parse_date(value)
    if parsed is None:
        return _text(value)
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def format_time(value: Any) -> str:
    """Render a 24-hour ``HH:MM`` string as 12-hour time with AM/PM."""

    text = _text(value)
    if not text or _MERIDIEM.search(text):
        return text
    match = _TWENTY_FOUR_HOUR.match(text)
    if match is None:
        return text
    hour = int(match.group(1))
    if hour > 23:
        return text
    meridiem = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{match.group(2)} {meridiem}"


def format_date_time(date_value: Any = None, time_value: Any = None) -> str:
    """Return ``"{date} at {time}"``, whichever half exists, or ``Not specified``."""

    formatted_date = format_date(date_value)
    formatted_time = format_time(time_value)
    if formatted_date and formatted_time:
        return f"{formatted_date} at {formatted_time}"
    return formatted_date or formatted_time or NOT_SPECIFIED


def format_status(status: Any) -> str:
    text = _text(status)
    if not text:
        return "Unknown"
    return text[0].upper() + text[1:].lower()


def format_medication(prescription: Mapping[str, Any] | None) -> str:
    """Return ``"{medication} {dosage}"`` for a prescription entry."""

    if not isinstance(prescription, Mapping):
        return ""
    return format_person_name(
        prescription.get("medication"), prescription.get("dosage")
    )


__all__ = [
    "ADDRESS_NOT_PROVIDED",
    "NOT_SPECIFIED",
    "UNKNOWN_CLINIC",
    "UNKNOWN_DOCTOR",
    "format_clinic_address",
    "format_clinic_and_address",
    "format_date",
    "format_date_time",
    "format_doctor_name",
    "format_full_name",
    "format_medication",
    "format_person_name",
    "format_status",
    "format_time",
]
