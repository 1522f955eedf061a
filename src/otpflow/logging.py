"""Logging configuration for the API process and the CLI."""

import logging
import sys

from otpflow.api.middleware import RequestContextFilter
from otpflow.config import settings

DEV_FORMAT = "%(levelname)s:     %(name)s - %(message)s"

# Production lines carry the request id so auth events can be correlated
PROD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

# Libraries whose INFO output drowns out auth events
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def _log_format() -> str:
    return DEV_FORMAT if settings.is_development else PROD_FORMAT


def get_uvicorn_log_config() -> dict:
    """dictConfig for uvicorn that shares the application format.

    Access lines stay on uvicorn's own formatter; everything else, including
    otpflow loggers propagating to the root, goes through the request-aware
    handler.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": RequestContextFilter},
        },
        "formatters": {
            "app": {"format": _log_format()},
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
            },
        },
        "handlers": {
            "app": {
                "class": "logging.StreamHandler",
                "formatter": "app",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn.error": {"handlers": ["app"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        },
        "root": {"handlers": ["app"], "level": settings.log_level},
    }


def setup_logging() -> None:
    """Configure root logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(logging.Formatter(_log_format()))

    logging.basicConfig(level=settings.log_level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
