from __future__ import annotations

import asyncio
from typing import Any

import pytest

from repositories.realtime_db import DatabaseClient, DatabaseClientError
from services.reconciliation.enricher import (
    CrossReferenceEnricher,
    LookupSpec,
    resolve_patient_name,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _StubClient(DatabaseClient):
    """Serve documents from a dict; selected paths fail or hang."""

    def __init__(
        self,
        documents: dict[str, dict[str, Any]],
        *,
        failing: set[str] | None = None,
        slow: set[str] | None = None,
    ) -> None:
        self.documents = documents
        self.failing = failing or set()
        self.slow = slow or set()
        self.reads: list[str] = []

    async def get_document(self, path: str) -> dict[str, Any] | None:
        self.reads.append(path)
        if path in self.failing:
            raise DatabaseClientError("transport failure")
        if path in self.slow:
            await asyncio.sleep(1)
        document = self.documents.get(path)
        return {"id": path.rsplit("/", 1)[-1], **document} if document else None

    async def get_collection_by_filter(self, collection, field, value):
        if collection in self.failing:
            raise DatabaseClientError("transport failure")
        return [
            {"id": path.rsplit("/", 1)[-1], **document}
            for path, document in self.documents.items()
            if path.startswith(collection + "/") and document.get(field) == value
        ]

    def listen_to_collection(self, path, callback):  # pragma: no cover - unused
        raise NotImplementedError

    async def update_document(self, path, fields):  # pragma: no cover - unused
        raise NotImplementedError


SPECS = (
    LookupSpec("clinic", "clinicId", "clinics"),
    LookupSpec("doctor", "doctorId", "specialists"),
    LookupSpec("patient", "patientId", "users"),
)


@pytest.mark.anyio("asyncio")
async def test_enrich_tolerates_a_single_failed_lookup() -> None:
    client = _StubClient(
        {
            "clinics/c1": {"name": "City Clinic"},
            "specialists/d1": {"firstName": "John", "lastName": "Smith"},
            "users/p1": {"firstName": "Jane", "lastName": "Doe"},
        },
        failing={"specialists/d1"},
    )
    enricher = CrossReferenceEnricher(client, timeout=0.5)

    result = await enricher.enrich(
        {"clinicId": "c1", "doctorId": "d1", "patientId": "p1"}, SPECS
    )

    assert result.get("clinic") == {"id": "c1", "name": "City Clinic"}
    assert result.get("patient") == {"id": "p1", "firstName": "Jane", "lastName": "Doe"}
    assert result.get("doctor") is None
    assert result.failed == {"doctor"}


@pytest.mark.anyio("asyncio")
async def test_enrich_skips_missing_foreign_keys_without_reading() -> None:
    client = _StubClient({"clinics/c1": {"name": "City Clinic"}})
    enricher = CrossReferenceEnricher(client, timeout=0.5)

    result = await enricher.enrich({"clinicId": "c1", "doctorId": "  "}, SPECS)

    assert client.reads == ["clinics/c1"]
    assert result.get("doctor") is None
    assert result.get("patient") is None
    assert "patient" in result
    assert result.failed == set()


@pytest.mark.anyio("asyncio")
async def test_lookup_times_out_to_none() -> None:
    client = _StubClient({"clinics/c1": {"name": "City Clinic"}}, slow={"clinics/c1"})
    enricher = CrossReferenceEnricher(client, timeout=0.01)

    result = await enricher.enrich({"clinicId": "c1"}, SPECS[:1])

    assert result.get("clinic") is None
    assert result.failed == {"clinic"}


@pytest.mark.anyio("asyncio")
async def test_lookup_with_retry_reads_alternate_path() -> None:
    client = _StubClient({"patients/p1": {"patientFirstName": "Rosa"}})
    enricher = CrossReferenceEnricher(client, timeout=0.5)

    record = await enricher.lookup_with_retry("users/p1", "patients/p1", name="patient")

    assert record == {"id": "p1", "patientFirstName": "Rosa"}
    assert client.reads == ["users/p1", "patients/p1"]


@pytest.mark.anyio("asyncio")
async def test_resolve_chain_runs_steps_in_order_and_stops_at_gap() -> None:
    client = _StubClient(
        {
            "specialistSchedules/s1/sched-1": {"practiceLocation": {"clinicId": "c9"}},
            "clinics/c9": {"name": "Heart Center"},
        }
    )
    enricher = CrossReferenceEnricher(client, timeout=0.5)

    clinic = await enricher.resolve_chain(
        [
            lambda _: "specialistSchedules/s1/sched-1",
            lambda schedule: f"clinics/{schedule['practiceLocation']['clinicId']}",
        ]
    )
    missing = await enricher.resolve_chain(
        [lambda _: "specialistSchedules/s1/other", lambda _: "clinics/c9"]
    )

    assert clinic == {"id": "c9", "name": "Heart Center"}
    assert missing is None
    assert client.reads.count("clinics/c9") == 1


@pytest.mark.anyio("asyncio")
async def test_lookup_collection_degrades_to_empty_list() -> None:
    client = _StubClient({"prescriptions/rx1": {"specialistId": "s1"}}, failing={"prescriptions"})
    enricher = CrossReferenceEnricher(client, timeout=0.5)

    assert await enricher.lookup_collection("prescriptions", "specialistId", "s1") == []


def test_enricher_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        CrossReferenceEnricher(_StubClient({}), timeout=0)


@pytest.mark.parametrize(
    ("profile", "primary", "expected"),
    [
        ({"firstName": "Jane", "lastName": "Doe"}, {}, "Jane Doe"),
        ({"first_name": "Mark", "last_name": "Rivera"}, {}, "Mark Rivera"),
        (None, {"patientFirstName": "Jane", "patientLastName": "Doe"}, "Jane Doe"),
        ({"firstName": "Janet"}, {"patientFirstName": "Jane", "patientLastName": "Doe"}, "Janet"),
        ({"name": "Janet Roe"}, {}, "Janet Roe"),
        ({"firstName": "  "}, {"patientLastName": "Doe"}, "Doe"),
        (None, {"patientFirstName": "Jane"}, "Jane"),
        (None, {}, "Unknown Patient"),
    ],
)
def test_resolve_patient_name(profile: Any, primary: Any, expected: str) -> None:
    assert resolve_patient_name(profile, primary) == expected
