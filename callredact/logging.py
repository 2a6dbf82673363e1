"""structlog setup shared by the redaction worker and the operator CLI.

``configure()`` is called once per process. Log lines are JSON unless
CALLREDACT_LOG_FORMAT=console; the level comes from CALLREDACT_LOG_LEVEL.
Records from stdlib loggers (asyncssh, sqlalchemy) go through the same
renderer so a process emits one format.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

_service_name: str | None = None

# Library loggers that are chatty at INFO.
_QUIET_LOGGERS = ("asyncssh",)


def _add_service_name(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Rename the bound ``_service_name`` context key to ``service``."""
    if "_service_name" in event_dict:
        event_dict["service"] = event_dict.pop("_service_name")
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _route_stdlib(
    stream: TextIO,
    level: int,
    pre_chain: list[structlog.types.Processor],
    renderer: structlog.types.Processor,
) -> None:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *pre_chain,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure(service_name: str, stream: TextIO | None = None) -> None:
    """Configure structlog and stdlib logging for this process.

    Args:
        service_name: Added to every line as ``service``
            (e.g. "redaction-worker", "callredact-cli").
        stream: Destination for log lines; stdout when omitted. The CLI
            passes stderr so its own output can be piped.
    """
    global _service_name

    level = getattr(
        logging, os.environ.get("CALLREDACT_LOG_LEVEL", "INFO").upper(), logging.INFO
    )
    renderer = _renderer(os.environ.get("CALLREDACT_LOG_FORMAT", "json").lower())
    out = stream or sys.stdout

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service_name,
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(out, level, pre_chain, renderer)

    _service_name = service_name
    structlog.contextvars.bind_contextvars(_service_name=service_name)


def reset_context(**extra: str) -> None:
    """Drop all bound context except the service name, then bind ``extra``.

    Called at the start of each recording's task so ``recording_id`` and
    anything bound while processing it never leak into the next one.
    """
    structlog.contextvars.clear_contextvars()
    if _service_name:
        structlog.contextvars.bind_contextvars(_service_name=_service_name)
    if extra:
        structlog.contextvars.bind_contextvars(**extra)
