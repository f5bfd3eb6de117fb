import logging
import sys
from contextlib import AbstractContextManager
from typing import Literal, TypeAlias

import structlog

LogLevel: TypeAlias = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

# Chatty client libraries used by the agents and notifiers
QUIET_LOGGERS = ("LiteLLM", "httpx", "aiohttp.access")

shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="%H:%M:%S"),
]


def make_renderer(json_output: bool = False, colors: bool | None = None):
    if json_output:
        return structlog.processors.JSONRenderer()
    if colors is None:
        colors = sys.stderr.isatty()
    return structlog.dev.ConsoleRenderer(colors=colors)


def configure_logging(level: LogLevel = "INFO", *, json_output: bool = False, colors: bool | None = None):
    structlog.configure(
        processors=[*shared_processors, make_renderer(json_output, colors)],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelNamesMapping()[level.upper()]),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "foreman")


def session_context(user_id: str, agent: str) -> AbstractContextManager:
    """Tag every log line emitted while an instruction runs with its user and agent."""
    return structlog.contextvars.bound_contextvars(user_id=user_id, agent=agent)


def uvicorn_log_config(level: LogLevel = "INFO", *, json_output: bool = False) -> dict:
    formatter = {
        "()": structlog.stdlib.ProcessorFormatter,
        "processor": make_renderer(json_output),
        "foreign_pre_chain": shared_processors,
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter, "access": formatter},
        "handlers": {
            "default": {"formatter": "default", "class": "logging.StreamHandler", "stream": "ext://sys.stderr"},
            "access": {"formatter": "access", "class": "logging.StreamHandler", "stream": "ext://sys.stderr"},
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"level": level},
            "uvicorn.access": {"handlers": ["access"], "level": level, "propagate": False},
        },
    }
