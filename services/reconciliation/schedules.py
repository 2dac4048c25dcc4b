"""Lookups that walk a specialist's schedules to a clinic or a room."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterator, Mapping

from repositories.realtime_db import Record
from shared.observability.logger import get_logger
from shared.records.formatting import UNKNOWN_CLINIC
from shared.records.resolver import get_nested_value, resolve_field

from .enricher import CrossReferenceEnricher

logger = get_logger(__name__)

SCHEDULES_COLLECTION = "specialistSchedules"
CLINICS_COLLECTION = "clinics"


@dataclass(frozen=True)
class ClinicReference:
    clinic_id: str
    clinic_name: str


@dataclass(frozen=True)
class RoomAssignment:
    room_or_unit: str | None
    clinic_id: str | None
    schedule_id: str


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _schedules(node: Mapping[str, Any] | None) -> Iterator[tuple[str, Mapping[str, Any]]]:
    if not isinstance(node, Mapping):
        return
    for key, value in node.items():
        if isinstance(value, Mapping):
            yield str(key), value


def _is_active_on(schedule: Mapping[str, Any], day: date) -> bool:
    if schedule.get("isActive") is not True:
        return False
    valid_from = _to_date(schedule.get("validFrom"))
    if valid_from is None or valid_from > day:
        return False
    valid_to = _to_date(schedule.get("validTo"))
    return valid_to is None or valid_to >= day


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


async def get_referring_specialist_clinic(
    enricher: CrossReferenceEnricher,
    specialist_id: str | None,
    today: date | None = None,
) -> ClinicReference | None:
    """Return the clinic of the specialist's most recent active schedule."""

    if not specialist_id:
        return None
    node = await enricher.lookup(
        f"{SCHEDULES_COLLECTION}/{specialist_id}", name="specialistSchedules"
    )
    reference_day = today or date.today()
    active = [
        (key, schedule)
        for key, schedule in _schedules(node)
        if _is_active_on(schedule, reference_day)
    ]
    if not active:
        return None

    _, latest = max(active, key=lambda item: _to_date(item[1].get("validFrom")))
    clinic_id = get_nested_value(latest, "practiceLocation.clinicId")
    if not clinic_id:
        return None

    clinic = await enricher.lookup(
        f"{CLINICS_COLLECTION}/{clinic_id}", name="specialistClinic"
    )
    if clinic is None:
        return None
    return ClinicReference(
        clinic_id=str(clinic_id),
        clinic_name=str(resolve_field(clinic, ("name",), UNKNOWN_CLINIC)),
    )


async def find_room_from_schedule(
    enricher: CrossReferenceEnricher,
    specialist_id: str | None,
    appointment_date: Any,
    appointment_time: str | None,
) -> RoomAssignment | None:
    """Return the room booked for ``appointment_time`` on ``appointment_date``.

    A schedule matches when it is active on that day, its recurrence lists the
    weekday (0 is Sunday) and its slot template has the exact time key.
    """

    day = _to_date(appointment_date)
    if not specialist_id or day is None or not appointment_time:
        return None

    node = await enricher.lookup(
        f"{SCHEDULES_COLLECTION}/{specialist_id}", name="specialistSchedules"
    )
    weekday = _sunday_based_weekday(day)
    for schedule_id, schedule in _schedules(node):
        if not _is_active_on(schedule, day):
            continue
        days = get_nested_value(schedule, "recurrence.dayOfWeek", [])
        if not isinstance(days, list) or weekday not in days:
            continue
        slots = schedule.get("slotTemplate")
        if not isinstance(slots, Mapping) or appointment_time not in slots:
            continue
        return RoomAssignment(
            room_or_unit=get_nested_value(schedule, "practiceLocation.roomOrUnit"),
            clinic_id=get_nested_value(schedule, "practiceLocation.clinicId"),
            schedule_id=schedule_id,
        )

    logger.debug("schedule_room_not_found", weekday=weekday)
    return None


async def resolve_specialist_clinic(
    enricher: CrossReferenceEnricher,
    specialist_id: str | None,
    schedule_id: str | None,
) -> Record | None:
    """Follow schedule -> practice location -> clinic for a referral."""

    if not specialist_id or not schedule_id:
        return None

    def _schedule_path(_: Record | None) -> str:
        return f"{SCHEDULES_COLLECTION}/{specialist_id}/{schedule_id}"

    def _clinic_path(schedule: Record | None) -> str | None:
        clinic_id = get_nested_value(schedule, "practiceLocation.clinicId")
        return f"{CLINICS_COLLECTION}/{clinic_id}" if clinic_id else None

    return await enricher.resolve_chain(
        [_schedule_path, _clinic_path], name="specialistClinic"
    )


__all__ = [
    "ClinicReference",
    "RoomAssignment",
    "find_room_from_schedule",
    "get_referring_specialist_clinic",
    "resolve_specialist_clinic",
]
