"""Resolve canonical field values from loosely shaped database records.

Records written by different app versions spell the same field several ways
(``firstName``, ``first_name``, ``patientFirstName``) and sometimes nest them
under ``profile``. Every helper here walks an ordered list of candidate key
paths and returns the first usable value, so callers never chain fallbacks
inline.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_MISSING = object()

FIRST_NAME_KEYS: tuple[str, ...] = (
    "firstName",
    "first_name",
    "givenName",
    "patientFirstName",
)
MIDDLE_NAME_KEYS: tuple[str, ...] = ("middleName", "middle_name", "patientMiddleName")
LAST_NAME_KEYS: tuple[str, ...] = (
    "lastName",
    "last_name",
    "familyName",
    "patientLastName",
)
EMAIL_KEYS: tuple[str, ...] = ("email", "patientEmail", "profile.email")
PHONE_KEYS: tuple[str, ...] = (
    "phone",
    "patientPhone",
    "contactNumber",
    "profile.phone",
)
GENDER_KEYS: tuple[str, ...] = ("gender", "patientGender", "sex", "profile.gender")
AGE_KEYS: tuple[str, ...] = ("age", "patientAge", "profile.age")
BLOOD_TYPE_KEYS: tuple[str, ...] = ("bloodType", "patientBloodType", "profile.bloodType")
EMERGENCY_PHONE_KEYS: tuple[str, ...] = ("emergencyContact.phone", "emergencyPhone")


def _walk(record: Any, path: str) -> Any:
    current = record
    for key in path.split("."):
        if not isinstance(current, Mapping) or key not in current:
            return _MISSING
        current = current[key]
    return current


def _is_usable(value: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def resolve_field(
    record: Mapping[str, Any] | None,
    candidate_keys: Sequence[str],
    fallback: Any = None,
) -> Any:
    """Return the first non-empty value found under ``candidate_keys``.

    Keys are tried in order and may use dotted paths (``profile.phone``).
    ``None`` and blank strings are skipped; ``0`` and ``False`` count as values.
    A missing ``record`` returns ``fallback`` without raising.
    """

    if not isinstance(record, Mapping):
        return fallback
    for key in candidate_keys:
        value = _walk(record, key)
        if _is_usable(value):
            return value
    return fallback


def get_nested_value(
    record: Mapping[str, Any] | None, path: str, fallback: Any = None
) -> Any:
    """Return the value stored at dotted ``path`` even when it is blank."""

    if not isinstance(record, Mapping) or not path:
        return fallback
    value = _walk(record, path)
    if value is _MISSING or value is None:
        return fallback
    return value


def _name_tokens(record: Mapping[str, Any] | None) -> list[str]:
    name = resolve_field(record, ("name",))
    return name.split() if isinstance(name, str) else []


def first_name(record: Mapping[str, Any] | None, fallback: str = "") -> str:
    value = resolve_field(record, FIRST_NAME_KEYS)
    if value is not None:
        return str(value).strip()
    tokens = _name_tokens(record)
    return tokens[0] if tokens else fallback


def middle_name(record: Mapping[str, Any] | None, fallback: str = "") -> str:
    value = resolve_field(record, MIDDLE_NAME_KEYS)
    return str(value).strip() if value is not None else fallback


def last_name(record: Mapping[str, Any] | None, fallback: str = "") -> str:
    value = resolve_field(record, LAST_NAME_KEYS)
    if value is not None:
        return str(value).strip()
    tokens = _name_tokens(record)
    return " ".join(tokens[1:]) if len(tokens) > 1 else fallback


def email(record: Mapping[str, Any] | None, fallback: str = "") -> str:
    return str(resolve_field(record, EMAIL_KEYS, fallback))


def phone(record: Mapping[str, Any] | None, fallback: str = "Not provided") -> str:
    return str(resolve_field(record, PHONE_KEYS, fallback))


def gender(record: Mapping[str, Any] | None, fallback: str = "Not specified") -> str:
    return str(resolve_field(record, GENDER_KEYS, fallback))


def age(record: Mapping[str, Any] | None, fallback: int | None = None) -> int | None:
    value = resolve_field(record, AGE_KEYS)
    if value is None:
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def blood_type(
    record: Mapping[str, Any] | None, fallback: str = "Not specified"
) -> str:
    return str(resolve_field(record, BLOOD_TYPE_KEYS, fallback))


def emergency_contact_phone(
    record: Mapping[str, Any] | None, fallback: str = "Not provided"
) -> str:
    return str(resolve_field(record, EMERGENCY_PHONE_KEYS, fallback))


def initials(record: Mapping[str, Any] | None, fallback: str = "U") -> str:
    """Return up to two upper-case initials for avatar badges."""

    first = first_name(record)
    last = last_name(record)
    if first and last:
        return f"{first[0]}{last[0]}".upper()
    if first:
        return first[0].upper()
    return fallback


__all__ = [
    "AGE_KEYS",
    "BLOOD_TYPE_KEYS",
    "EMAIL_KEYS",
    "EMERGENCY_PHONE_KEYS",
    "FIRST_NAME_KEYS",
    "GENDER_KEYS",
    "LAST_NAME_KEYS",
    "MIDDLE_NAME_KEYS",
    "PHONE_KEYS",
    "age",
    "blood_type",
    "email",
    "emergency_contact_phone",
    "first_name",
    "gender",
    "get_nested_value",
    "initials",
    "last_name",
    "middle_name",
    "phone",
    "resolve_field",
]
