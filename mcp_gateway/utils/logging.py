"""Structured logging setup.

Every log line carries the inbound request id and, once a route has resolved
one, the backend server id. The web layer logs through structlog; library
modules use the standard library and get the same ids through a filter.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog

from mcp_gateway.config.loader import Settings, get_settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
server_id_var: ContextVar[str] = ContextVar("server_id", default="")

# Chatty third-party loggers kept at WARNING unless DEBUG is asked for
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "asyncio")

STDLIB_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s %(server_id)s] %(message)s"


def set_request_id(request_id: str | None = None) -> str:
    """Set the request id for the current context, generating one if absent."""
    request_id = request_id or uuid.uuid4().hex[:8]
    request_id_var.set(request_id)
    server_id_var.set("")
    return request_id


def bind_server(server_id: str) -> None:
    """Tag the rest of the current request's log lines with a server id."""
    server_id_var.set(server_id)


def add_gateway_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding request and server ids."""
    if request_id := request_id_var.get():
        event_dict.setdefault("request_id", request_id)
    if server_id := server_id_var.get():
        event_dict.setdefault("server_id", server_id)
    return event_dict


class GatewayContextFilter(logging.Filter):
    """Copies the context ids onto stdlib records for ``STDLIB_FORMAT``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.server_id = server_id_var.get() or "-"
        return True


def setup_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_gateway_context,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(STDLIB_FORMAT))
    handler.addFilter(GatewayContextFilter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)
