"""Record reconciliation: lookups, assembly and live lists of telehealth records."""

from .assembler import assemble_referral, assemble_visit, is_completed
from .enricher import (
    CrossReferenceEnricher,
    EnrichmentResult,
    LookupSpec,
    resolve_patient_name,
)
from .schedules import (
    ClinicReference,
    RoomAssignment,
    find_room_from_schedule,
    get_referring_specialist_clinic,
    resolve_specialist_clinic,
)
from .service import ViewModelService
from .subscriptions import subscribe_appointments

__all__ = [
    "ClinicReference",
    "CrossReferenceEnricher",
    "EnrichmentResult",
    "LookupSpec",
    "RoomAssignment",
    "ViewModelService",
    "assemble_referral",
    "assemble_visit",
    "find_room_from_schedule",
    "get_referring_specialist_clinic",
    "is_completed",
    "resolve_patient_name",
    "resolve_specialist_clinic",
    "subscribe_appointments",
]
