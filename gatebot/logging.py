"""Structured logging helpers."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.set_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_chat(chat_id: str | int) -> None:
    """Attach the chat id to every log line emitted while handling one update."""

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(chat_id=str(chat_id))


logger = structlog.get_logger()

__all__ = ["bind_chat", "configure_logging", "logger"]
