"""Structured logging for view-model assembly.

structlog builds the event dictionaries and loguru owns the sinks. Every line
carries the service, the request id and the view being assembled so that a
failed lookup can be traced back to the screen request that caused it.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from types import FrameType
from typing import Any, Iterator, Mapping, TextIO

import structlog
from loguru import logger as loguru_logger

__all__ = [
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "request_context",
]

_REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)
_CONFIGURED: bool = False
_SERVICE_NAME: str | None = None

# Context keys mirrored into loguru so plain stdlib records show them too.
_LINE_KEYS = ("request_id", "view")


def _render_line(record: Mapping[str, Any]) -> str:
    extra = record.get("extra") or {}
    fields = [
        record["time"].isoformat(),
        f"{record['level'].name:<8}",
        extra.get("service") or "-",
        extra.get("request_id") or "-",
        extra.get("view") or "-",
        str(record.get("message", "")),
    ]
    # loguru treats the returned line as a format template.
    line = " | ".join(fields).replace("{", "{{").replace("}", "}}")
    return line + "\n"


def _coerce_level(level: str | int) -> tuple[int, str]:
    if isinstance(level, int):
        numeric = level
    else:
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
    name = logging.getLevelName(numeric)
    if not isinstance(name, str):  # pragma: no cover - custom numeric levels
        name = "INFO"
    return numeric, name


def get_request_id() -> str | None:
    """Return the request identifier bound to the current context, if any."""

    return _REQUEST_ID.get()


def generate_request_id() -> str:
    return uuid.uuid4().hex


class LoguruInterceptHandler(logging.Handler):
    """Hand stdlib records (structlog output included) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover
        level: str | int
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        context = structlog.contextvars.get_contextvars()
        bound = loguru_logger.bind(
            logger=record.name,
            **{key: context[key] for key in _LINE_KEYS if context.get(key)},
        )
        bound.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _structlog_processors(json_logs: bool) -> list[Any]:
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    *,
    service_name: str | None = None,
    level: str | int = "INFO",
    json_logs: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Install the loguru sink and the structlog pipeline once per process.

    Later calls only rebind ``service_name``. The command line passes
    ``sys.stderr`` as ``stream`` so that its stdout stays pure JSON.
    """

    global _CONFIGURED, _SERVICE_NAME

    numeric_level, level_name = _coerce_level(level)

    if not _CONFIGURED:
        loguru_logger.remove()
        loguru_logger.add(
            stream or sys.stdout,
            level=level_name,
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=_render_line,
        )
        logging.basicConfig(
            handlers=[LoguruInterceptHandler()],
            level=numeric_level,
            force=True,
        )
        logging.captureWarnings(True)

        structlog.configure(
            processors=_structlog_processors(json_logs),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        _CONFIGURED = True

    if service_name:
        _SERVICE_NAME = service_name
        loguru_logger.configure(extra={"service": service_name})
        structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


@contextmanager
def request_context(request_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Bind ``request_id`` and ``extra`` for the block, then restore outer values.

    Nested blocks (the middleware's request around the service's ``view``)
    reuse the outer request id when ``request_id`` is ``get_request_id()``.
    """

    extra.pop("request_id", None)
    rid = request_id or generate_request_id()
    token = _REQUEST_ID.set(rid)

    values = dict(extra)
    if _SERVICE_NAME:
        values.setdefault("service", _SERVICE_NAME)
    bound_keys = list(dict.fromkeys(["request_id", *values]))

    context_api = structlog.contextvars
    previous = context_api.get_contextvars()
    context_api.bind_contextvars(request_id=rid, **values)
    try:
        yield rid
    finally:
        context_api.unbind_contextvars(*bound_keys)
        restore = {key: previous[key] for key in bound_keys if key in previous}
        if restore:
            context_api.bind_contextvars(**restore)
        _REQUEST_ID.reset(token)
