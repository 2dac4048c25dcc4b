"""Best-effort cross-reference lookups against the realtime database.

Every read goes through :meth:`CrossReferenceEnricher.lookup`, which bounds it
with a timeout and turns any failure into ``None``. Independent lookups are
gathered concurrently; dependent ones run as a sequential chain.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from repositories.realtime_db import DatabaseClient, Record
from shared.config.settings import get_settings
from shared.observability.logger import get_logger
from shared.records.formatting import format_full_name, format_person_name
from shared.records.resolver import FIRST_NAME_KEYS, LAST_NAME_KEYS, resolve_field
from shared.models.view_models import UNKNOWN_PATIENT

logger = get_logger(__name__)

ChainStep = Callable[[Optional[Record]], Optional[str]]


@dataclass(frozen=True)
class LookupSpec:
    """Read ``{collection_path}/{primary[foreign_key_field]}`` as ``name``."""

    name: str
    foreign_key_field: str
    collection_path: str

    def path_for(self, primary: Mapping[str, Any] | None) -> str | None:
        key = resolve_field(primary, (self.foreign_key_field,))
        if key is None:
            return None
        return f"{self.collection_path.rstrip('/')}/{str(key).strip()}"


@dataclass
class EnrichmentResult:
    """Records keyed by lookup name; ``None`` marks a skipped or failed lookup."""

    records: dict[str, Record | None] = field(default_factory=dict)
    failed: set[str] = field(default_factory=set)

    def get(self, name: str) -> Record | None:
        return self.records.get(name)

    def __getitem__(self, name: str) -> Record | None:
        return self.records[name]

    def __contains__(self, name: object) -> bool:
        return name in self.records


def _collection(path: str) -> str:
    return path.strip("/").split("/", 1)[0]


class CrossReferenceEnricher:
    """Issue bounded secondary reads that never raise to the caller."""

    def __init__(self, client: DatabaseClient, *, timeout: float | None = None) -> None:
        if timeout is None:
            timeout = get_settings().reconciliation.lookup_timeout_seconds
        if timeout <= 0:
            raise ValueError("Lookup timeout must be positive.")
        self.client = client
        self.timeout = timeout

    async def _read(self, path: str, name: str) -> tuple[Record | None, bool]:
        try:
            record = await asyncio.wait_for(
                self.client.get_document(path), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            reason = "timeout"
        except Exception as exc:
            reason = exc.__class__.__name__
        else:
            return record, False

        logger.warning(
            "lookup_failed",
            lookup=name,
            collection=_collection(path),
            reason=reason,
        )
        return None, True

    async def lookup(self, path: str, *, name: str | None = None) -> Record | None:
        """Return the record at ``path``, or ``None`` when absent, slow or failing."""

        record, _ = await self._read(path, name or _collection(path))
        return record

    async def lookup_collection(
        self, collection: str, field_name: str, value: Any, *, name: str | None = None
    ) -> list[Record]:
        """Return the filtered children of ``collection``; ``[]`` on failure."""

        try:
            return await asyncio.wait_for(
                self.client.get_collection_by_filter(collection, field_name, value),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            reason = "timeout"
        except Exception as exc:
            reason = exc.__class__.__name__
        logger.warning(
            "lookup_failed",
            lookup=name or _collection(collection),
            collection=_collection(collection),
            reason=reason,
        )
        return []

    async def enrich(
        self, primary: Mapping[str, Any] | None, specs: Iterable[LookupSpec]
    ) -> EnrichmentResult:
        """Resolve every spec concurrently and collect whatever succeeded."""

        result = EnrichmentResult()
        pending: list[LookupSpec] = []
        reads = []
        for spec in specs:
            path = spec.path_for(primary)
            if path is None:
                result.records[spec.name] = None
                continue
            pending.append(spec)
            reads.append(self._read(path, spec.name))

        outcomes = await asyncio.gather(*reads)
        for spec, (record, failed) in zip(pending, outcomes):
            result.records[spec.name] = record
            if failed:
                result.failed.add(spec.name)

        logger.debug(
            "enrichment_completed",
            resolved=sorted(name for name, record in result.records.items() if record),
            failed=sorted(result.failed),
        )
        return result

    async def lookup_with_retry(
        self,
        primary_path: str | None,
        alternate_path: str | None,
        *,
        name: str | None = None,
    ) -> Record | None:
        """Read ``primary_path`` and fall back to ``alternate_path`` on ``None``."""

        record = None
        if primary_path:
            record = await self.lookup(primary_path, name=name)
        if record is None and alternate_path:
            logger.debug("lookup_retry", lookup=name, collection=_collection(alternate_path))
            record = await self.lookup(alternate_path, name=name)
        return record

    async def resolve_chain(
        self, steps: Sequence[ChainStep], *, name: str = "chain"
    ) -> Record | None:
        """Run dependent lookups in order, stopping at the first gap.

        Each step receives the previous record (``None`` for the first step)
        and returns the next path, or ``None`` to stop.
        """

        previous: Record | None = None
        for step in steps:
            path = step(previous)
            if not path:
                return None
            previous = await self.lookup(path, name=name)
            if previous is None:
                return None
        return previous


def resolve_patient_name(
    profile: Mapping[str, Any] | None,
    primary: Mapping[str, Any] | None,
    fallback: str = UNKNOWN_PATIENT,
) -> str:
    """Return the patient's display name from the profile or the primary record.

    Any non-empty profile name wins, including a single ``name`` field. The
    names embedded in the primary record are only used without one.
    """

    profile_name = format_person_name(
        resolve_field(profile, FIRST_NAME_KEYS), resolve_field(profile, LAST_NAME_KEYS)
    ) or format_full_name(profile, "")
    if profile_name:
        return profile_name

    embedded = format_person_name(
        resolve_field(primary, ("patientFirstName",)),
        resolve_field(primary, ("patientLastName",)),
    )
    return embedded or fallback


__all__ = [
    "ChainStep",
    "CrossReferenceEnricher",
    "EnrichmentResult",
    "LookupSpec",
    "resolve_patient_name",
]
