from __future__ import annotations

import logging
import logging.config
import time
from typing import Any
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from taskrelay.core.auth import extract_user_email
from taskrelay.core.config import Settings

TRACE_HEADER = "X-Trace-ID"
_ROTATE_AT_BYTES = 5 * 1024 * 1024
_ROTATED_FILES_KEPT = 3
# Libraries that log on every request or statement; held at WARNING unless asked otherwise.
_CHATTY_LOGGERS: tuple[str, ...] = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic.runtime.migration",
)


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _clean_id(value: int | str | None) -> int | None:
    if isinstance(value, int):
        return value if value > 0 else None
    text = _clean_text(value)
    if text is None or not text.isdigit():
        return None
    return int(text) or None


def bind_log_context(
    *,
    trace_id: str | None = None,
    task_id: int | str | None = None,
    log_id: int | str | None = None,
    actor: str | None = None,
) -> None:
    """Attach request-scoped fields to every log line emitted on this context.

    Blank or malformed values are skipped rather than bound, so callers can pass
    raw header or path values straight through.
    """
    fields: dict[str, Any] = {
        "trace_id": _clean_text(trace_id),
        "task_id": _clean_id(task_id),
        "log_id": _clean_id(log_id),
        "actor": _clean_text(actor),
    }
    present = {key: value for key, value in fields.items() if value is not None}
    if present:
        structlog.contextvars.bind_contextvars(**present)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


def _service_fields(settings: Settings) -> structlog.types.Processor:
    service = settings.app_name
    env = settings.app_env

    def add_service_fields(
        _: Any, __: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("env", env)
        return event_dict

    return add_service_fields


def _handler_config(settings: Settings, level: str) -> dict[str, dict[str, Any]]:
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "taskrelay",
            "level": level,
        }
    }
    if settings.log_file:
        handlers["rotating_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "taskrelay",
            "level": level,
            "filename": settings.log_file,
            "maxBytes": _ROTATE_AT_BYTES,
            "backupCount": _ROTATED_FILES_KEPT,
            "encoding": "utf-8",
        }
    return handlers


def configure_logging(settings: Settings) -> None:
    """Route stdlib and structlog records through one structlog formatter.

    Records from third-party libraries get the same context fields (trace id,
    actor, task id) as our own events because both pass the shared pre-chain.
    """
    level = settings.log_level.upper()
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_fields(settings),
    ]
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    handlers = _handler_config(settings, level)
    chatty_level = "INFO" if settings.sqlalchemy_echo else "WARNING"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "taskrelay": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        structlog.processors.format_exc_info,
                        structlog.processors.EventRenamer("message"),
                        renderer,
                    ],
                }
            },
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": level},
            "loggers": {name: {"level": chatty_level} for name in _CHATTY_LOGGERS},
        }
    )

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class TraceContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with a trace id and log its outcome and latency."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger = get_logger("taskrelay.api.request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = _clean_text(request.headers.get(TRACE_HEADER)) or f"trace-http-{uuid4().hex}"
        request.state.trace_id = trace_id
        clear_log_context()
        bind_log_context(trace_id=trace_id, actor=extract_user_email(request))
        started = time.perf_counter()
        self._logger.info("request.received", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request.failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            clear_log_context()

        response.headers[TRACE_HEADER] = trace_id
        self._logger.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
            trace_id=trace_id,
        )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
