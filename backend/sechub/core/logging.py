"""
Log setup for the SecHub web process and Celery workers.

Every line carries ``action=`` and ``target=`` columns.  Ingestion code sets
them through ``extra``; ``action`` names the step (``nvd_page_fetch``,
``exploit_lookup_error``...) and ``target`` is the CVE id, year or feed the
step worked on.

Usage::

    from sechub.core.logging import configure_logging, get_logger

    configure_logging()
    logger = get_logger(__name__)
    logger.info("page fetched", extra={"action": "nvd_page", "target": "2024"})
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from sechub.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_LOG_FORMAT: str = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "action=%(action)s | target=%(target)s | %(message)s"
)
_DATE_FORMAT: str = "%Y-%m-%dT%H:%M:%S%z"
_ROOT_LOGGER_NAME: str = "sechub"

# httpx logs every NVD and ExploitDB request at INFO.
_QUIET_LOGGERS: tuple[str, ...] = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "celery",
    "httpx",
    "httpcore",
)


# ── Custom Formatter ─────────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """Fill ``action`` and ``target`` with ``-`` when a call site omits them."""

    _DEFAULTS: dict[str, str] = {
        "action": "-",
        "target": "-",
    }

    def format(self, record: logging.LogRecord) -> str:
        for key, default in self._DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return super().format(record)


# ── Public API ───────────────────────────────────────────────────────────────

def configure_logging(
    level: Optional[str] = None, stream: Optional[TextIO] = None
) -> None:
    """Attach the structured handler to the ``sechub`` logger.

    Called from the FastAPI startup hook and at the start of every
    ``sechub.run_ingestion`` Celery task.  Repeated calls only adjust the
    level.

    Args:
        level: Log level name.  Defaults to ``settings.LOG_LEVEL``, or
            ``DEBUG``/``INFO`` depending on ``settings.DEBUG``.
        stream: Where to write; ``sys.stdout`` when omitted.
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL or ("DEBUG" if settings.DEBUG else "INFO")).upper()

    root_logger = logging.getLogger(_ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    if root_logger.handlers:
        for handler in root_logger.handlers:
            handler.setLevel(level)
        return

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured at %s level (NVD API key %s)",
        level,
        "set" if settings.NVD_API_KEY else "not set",
        extra={"action": "logging_init", "target": settings.APP_NAME},
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``sechub`` namespace.

    ``sechub.*`` module names are used as they are; anything else is nested
    as ``sechub.<name>``.
    """
    if name == _ROOT_LOGGER_NAME or name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
