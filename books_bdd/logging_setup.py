"""Logging configuration for the books-bdd command line.

Under pytest, log capture is configured in pyproject.toml instead.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        # httpx logs every request at INFO; the executor already does
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once.

    If the root logger already has handlers, return to prevent duplicate output.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    dictConfig(_dict_config(level.upper()))
