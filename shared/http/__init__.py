"""HTTP helpers and exception definitions used by the service."""

from .errors import (
    MutationFailedError,
    ProblemDetails,
    ProblemDetailsException,
    RecordNotFoundError,
    RecordUnavailableError,
    register_exception_handlers,
)

__all__ = [
    "MutationFailedError",
    "ProblemDetails",
    "ProblemDetailsException",
    "RecordNotFoundError",
    "RecordUnavailableError",
    "register_exception_handlers",
]
