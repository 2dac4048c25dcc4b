"""Observability utilities shared by the telehealth reconciliation service."""

from .logger import (
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    request_context,
)
from .middleware import CorrelationIdMiddleware, RequestTimingMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "RequestTimingMiddleware",
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "request_context",
]
