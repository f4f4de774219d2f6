"""
Logging setup for the API process and background import jobs.

Everything logs through module loggers under ``asset_atlas``; this module
installs one stdout handler on the root logger so job output and request
output interleave in a single stream.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown out import progress at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "multipart", "python_multipart")

_is_configured = False


def build_logging_config(level: Optional[str] = None) -> Dict[str, Any]:
    log_level = (level or "INFO").upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": LOG_DATE_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": log_level,
            }
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": {
            "asset_atlas": {"level": log_level},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure logging once per process; later calls are ignored.

    Args:
        level: Log level name such as "DEBUG" or "INFO". Defaults to INFO.
    """
    global _is_configured

    if _is_configured:
        return

    dictConfig(build_logging_config(level))
    logging.getLogger(__name__).debug("Logging configured at %s", (level or "INFO").upper())
    _is_configured = True
