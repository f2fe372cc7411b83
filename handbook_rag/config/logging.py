"""Process-wide logging setup (stdlib logging via dictConfig)."""

from __future__ import annotations

import copy
import logging.config
from typing import Any

LOGGING: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "handbook_rag": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        # request bodies and keys stay out of the logs
        "httpx": {"level": "WARNING"},
        "openai": {"level": "WARNING"},
    },
}


def build_logging_config(level: str = "INFO") -> dict[str, Any]:
    """LOGGING with the application logger set to level (e.g. "DEBUG")."""
    cfg = copy.deepcopy(LOGGING)
    cfg["loggers"]["handbook_rag"]["level"] = level.upper()
    return cfg


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))
