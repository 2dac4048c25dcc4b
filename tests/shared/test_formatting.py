from __future__ import annotations

import pytest

from shared.records.formatting import (
    format_clinic_address,
    format_clinic_and_address,
    format_date,
    format_date_time,
    format_doctor_name,
    format_full_name,
    format_status,
    format_time,
)


def test_clinic_and_address_joins_name_and_address_parts() -> None:
    clinic = {"name": "City Clinic", "address": "123 Main St", "city": "Springfield"}

    assert format_clinic_and_address(clinic) == "City Clinic, 123 Main St, Springfield"


def test_clinic_and_address_drops_duplicated_name() -> None:
    clinic = {"name": "City Clinic", "address": "City Clinic"}

    assert format_clinic_and_address(clinic) == "City Clinic"


def test_clinic_and_address_never_repeats_name_already_in_address() -> None:
    clinic = {"name": "Heart Center", "addressLine": "Heart Center, 9 Oak Ave"}

    result = format_clinic_and_address(clinic)

    assert result == "Heart Center, 9 Oak Ave"
    assert result.count("Heart Center") == 1


@pytest.mark.parametrize(
    ("clinic", "fallback", "expected"),
    [
        ({"addressLine": "Unit 4, Plaza"}, None, "Unit 4, Plaza"),
        ({"name": "Bay Clinic"}, None, "Bay Clinic"),
        ({}, "Referring Clinic", "Referring Clinic"),
        (None, None, "Address not provided"),
    ],
)
def test_clinic_address_fallback_chain(
    clinic: dict | None, fallback: str | None, expected: str
) -> None:
    assert format_clinic_address(clinic, fallback) == expected


@pytest.mark.parametrize(
    ("record", "expected"),
    [
        ({"name": "Dr. House"}, "Dr. House"),
        ({"firstName": "Jane", "lastName": "Doe"}, "Jane Doe"),
        ({"first_name": "Mark", "last_name": "Rivera"}, "Mark Rivera"),
        ({"patientFirstName": "Rosa", "patientLastName": "Santos"}, "Rosa Santos"),
        ({"firstName": "Cher"}, "Cher"),
        ({}, "Unknown User"),
    ],
)
def test_format_full_name_fallback_order(record: dict, expected: str) -> None:
    assert format_full_name(record) == expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Anna Lee", "Dr. Anna Lee"),
        ("Dr. Anna Lee", "Dr. Anna Lee"),
        ("dr anna lee", "Dr. anna lee"),
        ("Dr. Dr. Anna Lee", "Dr. Anna Lee"),
        ("", "Unknown Doctor"),
        (None, "Unknown Doctor"),
        ("Unknown Doctor", "Unknown Doctor"),
        ("Drake Bell", "Dr. Drake Bell"),
        ("Dr", "Unknown Doctor"),
        ("Dr. Dr", "Unknown Doctor"),
    ],
)
def test_format_doctor_name(name: object, expected: str) -> None:
    assert format_doctor_name(name) == expected


@pytest.mark.parametrize(
    "name", ["Anna Lee", "Dr. Anna Lee", "DR.  Anna", "dr.dr. x", "", "unknown"]
)
def test_format_doctor_name_is_idempotent(name: str) -> None:
    once = format_doctor_name(name)

    assert format_doctor_name(once) == once


def test_format_date_and_time() -> None:
    assert format_date("2025-01-05") == "January 5, 2025"
    assert format_date("2025-03-10T08:00:00Z") == "March 10, 2025"
    assert format_date("next week") == "next week"
    assert format_time("14:30") == "2:30 PM"
    assert format_time("00:05") == "12:05 AM"
    assert format_time("02:30 PM") == "02:30 PM"


def test_format_date_time_combines_available_halves() -> None:
    assert format_date_time("2025-03-10", "14:30") == "March 10, 2025 at 2:30 PM"
    assert format_date_time("2025-03-10", None) == "March 10, 2025"
    assert format_date_time(None, "09:00") == "9:00 AM"
    assert format_date_time(None, None) == "Not specified"


def test_format_status() -> None:
    assert format_status("COMPLETED") == "Completed"
    assert format_status(None) == "Unknown"
