"""Orchestrate reads, lookups and assembly for each screen's view model."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping

from repositories.realtime_db import DatabaseClient, DatabaseClientError, Record
from shared.http.errors import (
    MutationFailedError,
    RecordNotFoundError,
    RecordUnavailableError,
)
from shared.models.view_models import (
    PrescriptionView,
    RecordStatus,
    ReferralViewModel,
    VisitViewModel,
)
from shared.observability.logger import get_logger, get_request_id, request_context
from shared.records.formatting import format_full_name
from shared.records.resolver import get_nested_value, resolve_field
from shared.records.validation import (
    filter_valid,
    is_valid_certificate,
    is_valid_prescription,
)

from .assembler import (
    CLINIC,
    DOCTOR,
    PATIENT_PROFILE,
    REFERRING_CLINIC,
    REFERRING_DOCTOR,
    SPECIALIST_CLINIC,
    assemble_referral,
    assemble_visit,
    build_prescription,
    history_items,
    is_completed,
    provider_ids,
    resolve_provider_name,
)
from .enricher import CrossReferenceEnricher, LookupSpec, resolve_patient_name
from .schedules import resolve_specialist_clinic

logger = get_logger(__name__)

REFERRALS = "referrals"
APPOINTMENTS = "appointments"
MUTABLE_COLLECTIONS = frozenset({REFERRALS, APPOINTMENTS})
SPECIALIST_ROLE = "specialist"

REFERRAL_LOOKUPS: tuple[LookupSpec, ...] = (
    LookupSpec(REFERRING_CLINIC, "referringClinicId", "clinics"),
    LookupSpec(REFERRING_DOCTOR, "referringGeneralistId", "specialists"),
)
VISIT_LOOKUPS: tuple[LookupSpec, ...] = (
    LookupSpec(CLINIC, "clinicId", "clinics"),
    LookupSpec(DOCTOR, "doctorId", "specialists"),
)


def _sort_key(prescription: PrescriptionView) -> str:
    return prescription.prescribed_date or ""


class _EncounterRecords:
    """Clinical records gathered for one completed encounter."""

    def __init__(
        self,
        history: Record | None = None,
        prescriptions: list[Record] | None = None,
        certificates: list[Record] | None = None,
        provider_names: dict[str, str] | None = None,
    ) -> None:
        self.history = history
        self.prescriptions = prescriptions or []
        self.certificates = certificates or []
        self.provider_names = provider_names or {}

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "medical_history": self.history,
            "prescriptions": self.prescriptions,
            "certificates": self.certificates,
            "provider_names": self.provider_names,
        }


class ViewModelService:
    """Build view models from fresh reads; nothing is cached between calls."""

    def __init__(
        self,
        client: DatabaseClient,
        enricher: CrossReferenceEnricher | None = None,
    ) -> None:
        self.client = client
        self.enricher = enricher or CrossReferenceEnricher(client)

    async def _load_primary(self, collection: str, record_id: str) -> Record:
        try:
            record = await self.client.get_document(f"{collection}/{record_id}")
        except DatabaseClientError as exc:
            logger.warning(
                "primary_read_failed", collection=collection, reason=str(exc)
            )
            raise RecordUnavailableError(collection) from exc
        if record is None:
            raise RecordNotFoundError(collection, record_id)
        return record

    async def _patient_profile(self, patient_id: Any) -> Record | None:
        if not patient_id:
            return None
        return await self.enricher.lookup_with_retry(
            f"users/{patient_id}", f"patients/{patient_id}", name=PATIENT_PROFILE
        )

    async def _history_by_appointment(
        self, patient_id: Any, appointment_id: Any
    ) -> Record | None:
        entries = await self.enricher.lookup(
            f"patientMedicalHistory/{patient_id}/entries", name="medicalHistory"
        )
        if not isinstance(entries, Mapping):
            return None
        for key, entry in entries.items():
            if not isinstance(entry, Mapping):
                continue
            if get_nested_value(entry, "relatedAppointment.id") == appointment_id:
                return {"id": str(key), **entry}
        return None

    async def _provider_names(self, provider_ids_: Iterable[str]) -> dict[str, str]:
        ids = list(provider_ids_)
        records = await asyncio.gather(
            *(
                self.enricher.lookup(f"specialists/{provider_id}", name="provider")
                for provider_id in ids
            )
        )
        names: dict[str, str] = {}
        for provider_id, record in zip(ids, records):
            name = format_full_name(record, "")
            if name:
                names[provider_id] = name
        return names

    async def _encounter_records(
        self,
        patient_id: Any,
        consultation_id: Any,
        appointment_id: Any,
    ) -> _EncounterRecords:
        """Load the consultation entry, or appointment-linked documents without one."""

        history = None
        if patient_id and consultation_id:
            history = await self.enricher.lookup(
                f"patientMedicalHistory/{patient_id}/entries/{consultation_id}",
                name="medicalHistory",
            )
        if history is None and patient_id and appointment_id:
            history = await self._history_by_appointment(patient_id, appointment_id)

        prescriptions: list[Record] = []
        certificates: list[Record] = []
        if history is None and appointment_id:
            prescriptions, certificates = await asyncio.gather(
                self.enricher.lookup_collection(
                    "prescriptions", "appointmentId", appointment_id
                ),
                self.enricher.lookup_collection(
                    "certificates", "appointmentId", appointment_id
                ),
            )
            prescriptions = filter_valid(prescriptions, is_valid_prescription)
            certificates = filter_valid(certificates, is_valid_certificate)

        items = [
            *(history_items(history, "prescriptions") or prescriptions),
            *(history_items(history, "certificates") or certificates),
        ]
        return _EncounterRecords(
            history=history,
            prescriptions=prescriptions,
            certificates=certificates,
            provider_names=await self._provider_names(provider_ids(items)),
        )

    async def build_referral_view(
        self,
        referral_id: str,
        *,
        viewer_id: str | None = None,
        viewer_role: str | None = None,
    ) -> ReferralViewModel:
        """Return the referral details view model for ``referral_id``."""

        with request_context(request_id=get_request_id(), view="referral"):
            referral = await self._load_primary(REFERRALS, referral_id)
            patient_id = resolve_field(referral, ("patientId",))

            enrichment, profile = await asyncio.gather(
                self.enricher.enrich(referral, REFERRAL_LOOKUPS),
                self._patient_profile(patient_id),
            )
            lookups: dict[str, Any] = dict(enrichment.records)
            lookups[PATIENT_PROFILE] = profile

            if (viewer_role or "").strip().lower() == SPECIALIST_ROLE:
                specialist_id = resolve_field(
                    referral, ("assignedSpecialistId",), viewer_id
                )
                lookups[SPECIALIST_CLINIC] = await resolve_specialist_clinic(
                    self.enricher,
                    specialist_id,
                    resolve_field(referral, ("specialistScheduleId",)),
                )

            encounter = _EncounterRecords()
            if is_completed(referral.get("status")):
                encounter = await self._encounter_records(
                    patient_id,
                    resolve_field(referral, ("referralConsultationId",)),
                    resolve_field(
                        referral, ("clinicAppointmentId", "appointmentId"), referral_id
                    ),
                )

            view = assemble_referral(referral, lookups, **encounter.as_kwargs())
            logger.info(
                "referral_view_assembled",
                status=view.status,
                failed_lookups=sorted(enrichment.failed),
            )
            return view

    async def build_visit_view(self, appointment_id: str) -> VisitViewModel:
        """Return the visit overview view model for a clinic appointment."""

        with request_context(request_id=get_request_id(), view="visit"):
            appointment = await self._load_primary(APPOINTMENTS, appointment_id)
            enrichment = await self.enricher.enrich(appointment, VISIT_LOOKUPS)

            encounter = _EncounterRecords()
            if is_completed(appointment.get("status")):
                encounter = await self._encounter_records(
                    resolve_field(appointment, ("patientId",)),
                    resolve_field(
                        appointment, ("appointmentConsultationId", "consultationId")
                    ),
                    appointment_id,
                )

            view = assemble_visit(appointment, enrichment.records, **encounter.as_kwargs())
            logger.info(
                "visit_view_assembled",
                status=view.status,
                failed_lookups=sorted(enrichment.failed),
            )
            return view

    async def list_specialist_prescriptions(
        self, specialist_id: str
    ) -> list[PrescriptionView]:
        """Return the specialist's prescriptions with patient names, newest first."""

        with request_context(request_id=get_request_id(), view="prescriptions"):
            records = await self.enricher.lookup_collection(
                "prescriptions", "specialistId", specialist_id
            )
            prescriptions = filter_valid(records, is_valid_prescription)

            patient_ids = list(
                dict.fromkeys(
                    str(item["patientId"]) for item in prescriptions if item.get("patientId")
                )
            )
            specialist, *profiles = await asyncio.gather(
                self.enricher.lookup(f"specialists/{specialist_id}", name="provider"),
                *(self._patient_profile(patient_id) for patient_id in patient_ids),
            )
            profile_by_id = dict(zip(patient_ids, profiles))
            specialist_name = format_full_name(specialist, "")
            provider_names = {specialist_id: specialist_name} if specialist_name else {}

            views = [
                build_prescription(
                    item,
                    resolve_provider_name(item, provider_names),
                    patient_name=resolve_patient_name(
                        profile_by_id.get(str(item.get("patientId"))), item
                    ),
                )
                for item in prescriptions
            ]
            views.sort(key=_sort_key, reverse=True)
            return views

    async def update_status(
        self,
        collection: str,
        record_id: str,
        status: Any,
        reason: str | None = None,
    ) -> RecordStatus:
        """Write a new status once the record is confirmed to exist.

        Nothing is applied locally before the database acknowledges the write;
        a failed write raises :class:`MutationFailedError` and can be retried.
        """

        if collection not in MUTABLE_COLLECTIONS:
            raise ValueError(f"Status updates are not supported for '{collection}'.")
        parsed = RecordStatus.parse(status)
        if parsed is None:
            raise ValueError(f"Unknown status '{status}'.")

        await self._load_primary(collection, record_id)

        fields: dict[str, Any] = {"status": parsed.value}
        if reason and reason.strip():
            fields["declineReason"] = reason.strip()

        path = f"{collection}/{record_id}"
        try:
            await self.client.update_document(path, fields)
        except Exception as exc:
            logger.warning(
                "mutation_failed",
                collection=collection,
                status=parsed.value,
                error_type=exc.__class__.__name__,
            )
            raise MutationFailedError(path, reason=exc.__class__.__name__) from exc

        logger.info("status_updated", collection=collection, status=parsed.value)
        return parsed


__all__ = [
    "APPOINTMENTS",
    "MUTABLE_COLLECTIONS",
    "REFERRALS",
    "REFERRAL_LOOKUPS",
    "VISIT_LOOKUPS",
    "ViewModelService",
]
