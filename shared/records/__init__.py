"""Field resolution, formatting and validation for denormalized records."""

from .formatting import (
    format_clinic_address,
    format_clinic_and_address,
    format_date_time,
    format_doctor_name,
    format_full_name,
)
from .resolver import get_nested_value, resolve_field
from .validation import filter_valid

__all__ = [
    "filter_valid",
    "format_clinic_address",
    "format_clinic_and_address",
    "format_date_time",
    "format_doctor_name",
    "format_full_name",
    "get_nested_value",
    "resolve_field",
]
