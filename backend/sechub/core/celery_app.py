"""
Celery application instance and configuration.

The Celery app uses Redis as both broker and result backend, configured from
the application settings.  Ingestion runs dispatched here execute in a worker
process instead of the web process.
"""

from __future__ import annotations

from celery import Celery

from sechub.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_TASK_SOFT_TIME_LIMIT_SECONDS: int = 6 * 3600
_TASK_HARD_TIME_LIMIT_SECONDS: int = 6 * 3600 + 600
_RESULT_EXPIRES_SECONDS: int = 86_400
_WORKER_PREFETCH_MULTIPLIER: int = 1


def _create_celery_app() -> Celery:
    """Build and configure the Celery application instance."""
    settings = get_settings()

    app = Celery(
        "sechub",
        broker=settings.REDIS_URL,
        backend=settings.REDIS_URL,
        include=["sechub.tasks.ingestion_tasks"],
    )

    app.conf.update(
        # ── Serialization ────────────────────────────────────────────────
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",

        # ── Time Zones ───────────────────────────────────────────────────
        timezone="UTC",
        enable_utc=True,

        # ── Task Execution ───────────────────────────────────────────────
        # A full run pages through several years of NVD data.
        task_soft_time_limit=_TASK_SOFT_TIME_LIMIT_SECONDS,
        task_time_limit=_TASK_HARD_TIME_LIMIT_SECONDS,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_track_started=True,

        # ── Result Backend ───────────────────────────────────────────────
        result_expires=_RESULT_EXPIRES_SECONDS,

        # ── Worker ───────────────────────────────────────────────────────
        worker_prefetch_multiplier=_WORKER_PREFETCH_MULTIPLIER,
        worker_hijack_root_logger=False,

        # ── Broker ───────────────────────────────────────────────────────
        broker_connection_retry_on_startup=True,
    )

    return app


celery: Celery = _create_celery_app()
