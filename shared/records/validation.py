"""Minimal shape checks that keep malformed records out of list views."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Callable

from shared.observability.logger import get_logger

logger = get_logger(__name__)

RecordPredicate = Callable[[Any], bool]

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TIME = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
_NON_DIGIT = re.compile(r"\D")


def _has_text(record: Mapping[str, Any], key: str) -> bool:
    value = record.get(key)
    return isinstance(value, str) and bool(value)


def has_identifier(record: Any) -> bool:
    """Return ``True`` when ``record`` is a mapping with a non-empty ``id``."""

    return isinstance(record, Mapping) and _has_text(record, "id")


def is_valid_user(record: Any) -> bool:
    return isinstance(record, Mapping) and _has_text(record, "uid")


def is_valid_patient(record: Any) -> bool:
    return (
        has_identifier(record)
        and isinstance(record.get("patientFirstName"), str)
        and isinstance(record.get("patientLastName"), str)
    )


is_valid_appointment = has_identifier
is_valid_prescription = has_identifier
is_valid_certificate = has_identifier


def filter_valid(
    records: Iterable[Any], predicate: RecordPredicate = has_identifier
) -> list[Any]:
    """Return the records accepted by ``predicate`` in their original order."""

    accepted: list[Any] = []
    dropped = 0
    for record in records:
        if predicate(record):
            accepted.append(record)
        else:
            dropped += 1
    if dropped:
        logger.debug(
            "invalid_records_dropped",
            predicate=getattr(predicate, "__name__", "predicate"),
            dropped=dropped,
        )
    return accepted


def validate_email(value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    return value if _EMAIL.match(value) else None


def validate_phone(value: Any) -> str | None:
    """Return ``value`` when it carries between 7 and 15 digits."""

    if not isinstance(value, str) or not value:
        return None
    digits = _NON_DIGIT.sub("", value)
    return value if 7 <= len(digits) <= 15 else None


def validate_time(value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    return value if _TIME.match(value) else None


def validate_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def sanitize_string(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().replace("<", "").replace(">", "")


__all__ = [
    "RecordPredicate",
    "filter_valid",
    "has_identifier",
    "is_valid_appointment",
    "is_valid_certificate",
    "is_valid_patient",
    "is_valid_prescription",
    "is_valid_user",
    "sanitize_string",
    "validate_date",
    "validate_email",
    "validate_phone",
    "validate_time",
]
