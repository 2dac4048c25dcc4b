"""FastAPI application serving reconciled telehealth view models."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, status
from pydantic import Field

from repositories.realtime_db import DatabaseClient, create_database_client
from services.reconciliation.service import (
    APPOINTMENTS,
    REFERRALS,
    ViewModelService,
)
from shared.config.settings import get_settings
from shared.http.errors import register_exception_handlers
from shared.models.view_models import (
    CamelModel,
    PrescriptionView,
    ReferralViewModel,
    VisitViewModel,
)
from shared.observability.logger import configure_logging
from shared.observability.middleware import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
)

SERVICE_NAME = "reconciliation"

_logging_settings = get_settings().logging
configure_logging(
    service_name=SERVICE_NAME,
    level=_logging_settings.level,
    json_logs=_logging_settings.json_logs,
)

app = FastAPI(title="Telehealth Reconciliation Service")
router = APIRouter(tags=["view-models"])

app.add_middleware(RequestTimingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)

_client: DatabaseClient | None = None


class StatusUpdateRequest(CamelModel):
    status: str = Field(..., min_length=1, description="New lifecycle status")
    reason: Optional[str] = Field(
        default=None, description="Decline or cancellation reason shown to the patient"
    )


class StatusUpdateResponse(CamelModel):
    id: str
    status: str


def get_database_client() -> DatabaseClient:
    """Return the process-wide database client, creating it on first use."""

    global _client
    if _client is None:
        _client = create_database_client(get_settings().database)
    return _client


def get_view_model_service(
    client: DatabaseClient = Depends(get_database_client),
) -> ViewModelService:
    return ViewModelService(client)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Return a simple health payload for orchestration checks."""

    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/referrals/{referral_id}", response_model=ReferralViewModel)
async def read_referral(
    referral_id: str,
    viewer_id: Optional[str] = Query(default=None, alias="viewerId"),
    viewer_role: Optional[str] = Query(default=None, alias="viewerRole"),
    service: ViewModelService = Depends(get_view_model_service),
) -> ReferralViewModel:
    """Return the referral details view model."""

    return await service.build_referral_view(
        referral_id, viewer_id=viewer_id, viewer_role=viewer_role
    )


@router.get("/appointments/{appointment_id}/visit", response_model=VisitViewModel)
async def read_visit(
    appointment_id: str,
    service: ViewModelService = Depends(get_view_model_service),
) -> VisitViewModel:
    """Return the visit overview view model."""

    return await service.build_visit_view(appointment_id)


@router.get(
    "/specialists/{specialist_id}/prescriptions",
    response_model=list[PrescriptionView],
)
async def read_specialist_prescriptions(
    specialist_id: str,
    service: ViewModelService = Depends(get_view_model_service),
) -> list[PrescriptionView]:
    return await service.list_specialist_prescriptions(specialist_id)


async def _update_status(
    service: ViewModelService,
    collection: str,
    record_id: str,
    payload: StatusUpdateRequest,
) -> StatusUpdateResponse:
    try:
        updated = await service.update_status(
            collection, record_id, payload.status, payload.reason
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    return StatusUpdateResponse(id=record_id, status=updated.value)


@router.patch("/appointments/{appointment_id}/status", response_model=StatusUpdateResponse)
async def update_appointment_status(
    appointment_id: str,
    payload: StatusUpdateRequest,
    service: ViewModelService = Depends(get_view_model_service),
) -> StatusUpdateResponse:
    """Persist a new appointment status; the write is confirmed before replying."""

    return await _update_status(service, APPOINTMENTS, appointment_id, payload)


@router.patch("/referrals/{referral_id}/status", response_model=StatusUpdateResponse)
async def update_referral_status(
    referral_id: str,
    payload: StatusUpdateRequest,
    service: ViewModelService = Depends(get_view_model_service),
) -> StatusUpdateResponse:
    return await _update_status(service, REFERRALS, referral_id, payload)


app.include_router(router)


__all__ = [
    "SERVICE_NAME",
    "StatusUpdateRequest",
    "StatusUpdateResponse",
    "app",
    "get_database_client",
    "get_view_model_service",
    "health",
]
