from __future__ import annotations

from typing import Any, Mapping

import pytest

from repositories.realtime_db import DatabaseClientError, FixtureDatabaseClient
from services.reconciliation.enricher import CrossReferenceEnricher
from services.reconciliation.service import ViewModelService
from shared.http.errors import (
    MutationFailedError,
    RecordNotFoundError,
    RecordUnavailableError,
)
from shared.models.view_models import RecordStatus


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _service(client: FixtureDatabaseClient) -> ViewModelService:
    return ViewModelService(client, CrossReferenceEnricher(client, timeout=1.0))


@pytest.mark.anyio("asyncio")
async def test_completed_referral_for_specialist_viewer() -> None:
    client = FixtureDatabaseClient()

    view = await _service(client).build_referral_view(
        "ref-completed", viewer_id="spec-lee", viewer_role="specialist"
    )

    assert view.patient_name == "Jane Doe"
    assert view.clinic_and_address == "City Clinic, 123 Main St, Springfield, IL, 62701"
    assert view.patient.email == "jane.doe@example.com"
    assert view.patient.initials == "JD"
    assert view.specialist_clinic == "Heart Center, 9 Oak Ave, Springfield"
    assert view.date_time == "March 10, 2025 at 2:30 PM"
    assert view.referring_doctor_name == "Dr. John Smith"
    assert view.clinical.recorded
    assert view.clinical.diagnosis.startswith("I20.9: Angina pectoris")
    assert [item.id for item in view.prescriptions] == ["rx-3", "rx-4"]
    assert {item.prescribed_by for item in view.prescriptions} == {"Dr. Anna Lee"}
    assert view.certificates[0].issued_by == "Dr. Anna Lee"
    assert "prescriptions" not in client.reads


@pytest.mark.anyio("asyncio")
async def test_specialist_clinic_is_only_resolved_for_specialists() -> None:
    client = FixtureDatabaseClient()

    view = await _service(client).build_referral_view("ref-completed", viewer_role="patient")

    assert view.specialist_clinic == "Not assigned"
    assert not any(path.startswith("specialistSchedules") for path in client.reads)


@pytest.mark.anyio("asyncio")
async def test_patient_name_falls_back_to_referral_fields() -> None:
    client = FixtureDatabaseClient(
        tree={
            "referrals": {
                "r1": {
                    "status": "completed",
                    "patientId": "ghost",
                    "patientFirstName": "Jane",
                    "patientLastName": "Doe",
                }
            }
        }
    )

    view = await _service(client).build_referral_view("r1")

    assert view.patient_name == "Jane Doe"
    assert client.reads[:1] == ["referrals/r1"]
    assert {"users/ghost", "patients/ghost"} <= set(client.reads)


@pytest.mark.anyio("asyncio")
async def test_pending_referral_retries_profile_and_skips_clinical_reads() -> None:
    client = FixtureDatabaseClient()

    view = await _service(client).build_referral_view("ref-pending")

    assert view.patient_name == "Rosa Santos"
    assert view.status_text == "Pending"
    assert view.prescriptions == []
    assert view.clinical.diagnosis == "No diagnosis recorded"
    assert not any(path.startswith("patientMedicalHistory") for path in client.reads)


@pytest.mark.anyio("asyncio")
async def test_failed_lookup_degrades_only_its_own_fields() -> None:
    client = FixtureDatabaseClient(fail_paths=["clinics"])

    view = await _service(client).build_referral_view("ref-completed")

    assert view.clinic_and_address == "City Clinic"
    assert view.patient_name == "Jane Doe"
    assert view.referring_doctor_name == "Dr. John Smith"
    assert view.clinical.recorded


@pytest.mark.anyio("asyncio")
async def test_missing_and_unreadable_primary_records() -> None:
    with pytest.raises(RecordNotFoundError):
        await _service(FixtureDatabaseClient()).build_referral_view("nope")

    with pytest.raises(RecordUnavailableError):
        await _service(FixtureDatabaseClient(fail_paths=["appointments"])).build_visit_view(
            "appt-1"
        )


@pytest.mark.anyio("asyncio")
async def test_completed_visit_uses_consultation_entry() -> None:
    view = await _service(FixtureDatabaseClient()).build_visit_view("appt-1")

    assert view.doctor_name == "Dr. John Smith"
    assert view.doctor_specialty == "General Medicine"
    assert view.consultation_id == "consult-0"
    assert view.appointment_purpose == "Cough, Fever"
    assert view.clinical.diagnosis == "J20.9: Acute bronchitis"
    assert [item.prescribed_by for item in view.prescriptions] == ["Dr. John Smith"]


@pytest.mark.anyio("asyncio")
async def test_confirmed_visit_has_no_clinical_detail() -> None:
    view = await _service(FixtureDatabaseClient()).build_visit_view("appt-2")

    assert view.status_text == "Confirmed"
    assert not view.clinical.recorded
    assert view.certificates == []


def _visit_tree(history_entries: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "appointments": {
            "v1": {"status": "completed", "patientId": "p1", "doctorId": "d1"}
        },
        "specialists": {"d1": {"firstName": "Ray", "lastName": "Cruz"}},
        "patientMedicalHistory": {"p1": {"entries": dict(history_entries)}},
        "prescriptions": {
            "rx-a": {"appointmentId": "v1", "medication": "Cetirizine", "specialistId": "d1"},
            "rx-b": {"appointmentId": "other", "medication": "Ibuprofen"},
        },
        "certificates": {"cert-a": {"appointmentId": "v1", "type": "Medical"}},
    }


@pytest.mark.anyio("asyncio")
async def test_visit_history_found_by_related_appointment() -> None:
    client = FixtureDatabaseClient(
        tree=_visit_tree(
            {"e1": {"relatedAppointment": {"id": "v1"}, "clinicalSummary": "Allergic rhinitis."}}
        )
    )

    view = await _service(client).build_visit_view("v1")

    assert view.clinical.clinical_summary == "Allergic rhinitis."
    assert view.prescriptions == []


@pytest.mark.anyio("asyncio")
async def test_visit_without_history_loads_appointment_documents() -> None:
    client = FixtureDatabaseClient(tree=_visit_tree({}))

    view = await _service(client).build_visit_view("v1")

    assert not view.clinical.recorded
    assert [item.medication for item in view.prescriptions] == ["Cetirizine"]
    assert view.prescriptions[0].prescribed_by == "Dr. Ray Cruz"
    assert view.certificates[0].issued_by == "Dr. Ray Cruz"


@pytest.mark.anyio("asyncio")
async def test_specialist_prescriptions_newest_first_with_patient_names() -> None:
    views = await _service(FixtureDatabaseClient()).list_specialist_prescriptions("spec-lee")

    assert [item.id for item in views] == ["rx-5", "rx-2"]
    assert [item.patient_name for item in views] == ["Unknown Patient", "Rosa Santos"]
    assert {item.prescribed_by for item in views} == {"Dr. Anna Lee"}


@pytest.mark.anyio("asyncio")
async def test_update_status_writes_after_confirming_record() -> None:
    client = FixtureDatabaseClient()

    result = await _service(client).update_status(
        "appointments", "appt-2", "Cancelled", reason="Patient unavailable"
    )

    stored = await client.get_document("appointments/appt-2")
    assert result is RecordStatus.CANCELLED
    assert stored is not None
    assert stored["status"] == "cancelled"
    assert stored["declineReason"] == "Patient unavailable"
    assert "updatedAt" in stored


@pytest.mark.anyio("asyncio")
async def test_update_status_rejects_bad_input() -> None:
    service = _service(FixtureDatabaseClient())

    with pytest.raises(ValueError):
        await service.update_status("appointments", "appt-2", "archived")
    with pytest.raises(ValueError):
        await service.update_status("clinics", "clinic-city", "completed")
    with pytest.raises(RecordNotFoundError):
        await service.update_status("referrals", "missing", "confirmed")


class _ReadOnlyClient(FixtureDatabaseClient):
    async def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        raise DatabaseClientError("Permission denied.")


@pytest.mark.anyio("asyncio")
async def test_failed_write_raises_retryable_error_and_keeps_record() -> None:
    client = _ReadOnlyClient()

    with pytest.raises(MutationFailedError) as excinfo:
        await _service(client).update_status("referrals", "ref-pending", "confirmed")

    stored = await client.get_document("referrals/ref-pending")
    assert stored is not None and stored["status"] == "Pending"
    assert excinfo.value.status_code == 503
    assert excinfo.value.extensions["retryable"] is True


@pytest.mark.anyio("asyncio")
async def test_visit_with_numeric_timestamps_still_assembles() -> None:
    client = FixtureDatabaseClient(
        tree={
            "appointments": {
                "a1": {"status": "completed", "appointmentDate": 1700000000000}
            },
            "prescriptions": {
                "rx-n": {"appointmentId": "a1", "createdAt": 1700000000000, "patientId": 9}
            },
            "certificates": {
                "cert-n": {"appointmentId": "a1", "issueDate": 1700000000000},
                "cert-bad": {"appointmentId": "a1", "id": ""},
            },
        }
    )

    view = await _service(client).build_visit_view("a1")

    assert view.date == "1700000000000"
    assert view.prescriptions[0].prescribed_date == "1700000000000"
    assert view.prescriptions[0].patient_id == "9"
    assert [item.id for item in view.certificates] == ["cert-n"]
    assert view.certificates[0].issue_date == "1700000000000"
