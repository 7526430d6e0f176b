"""
Celery task definitions for running CVE ingestion in a worker.

:func:`run_ingestion` bridges the synchronous Celery worker with the async
:class:`~sechub.ingestion.pipeline.IngestionPipeline`: it creates a fresh
event loop, builds an engine bound to that loop, runs the pipeline to
completion and returns the final progress snapshot.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from sechub.core.celery_app import celery
from sechub.core.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def _execute_ingestion(options: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Run one ingestion to completion and return its progress as a dict.

    Args:
        options: Keyword arguments for
            :class:`~sechub.ingestion.base.IngestionOptions`.

    Raises:
        pydantic.ValidationError: If *options* are invalid.
        Exception: Whatever fatal error terminated the run.
    """
    from sechub.core.database import build_engine, build_session_factory, init_models
    from sechub.ingestion.base import IngestionOptions
    from sechub.ingestion.pipeline import IngestionPipeline

    ingestion_options = IngestionOptions(**(options or {}))

    # Celery spins up a new loop per task, so the web process engine cannot
    # be reused here.
    task_engine = build_engine()
    try:
        await init_models(task_engine)
        pipeline = IngestionPipeline.from_settings(build_session_factory(task_engine))
        progress = await pipeline.run(ingestion_options)
        return progress.as_dict()
    finally:
        await task_engine.dispose()


@celery.task(
    name="sechub.run_ingestion",
    bind=True,
    max_retries=0,
    acks_late=True,
    reject_on_worker_lost=True,
    track_started=True,
)
def run_ingestion(self: Any, options: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Celery task that executes a full ingestion run.

    Non-retryable: a rerun would simply repeat the upserts, and the caller
    decides when to start another one.

    Args:
        self: The Celery task instance (bound via ``bind=True``).
        options: JSON-serialisable ingestion options.

    Returns:
        The final progress snapshot as a JSON-friendly dictionary.
    """
    configure_logging()
    logger.info(
        "Celery task received for ingestion",
        extra={"action": "task_received", "target": "nvd"},
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(_execute_ingestion(options))
    finally:
        loop.close()

    logger.info(
        "Celery task completed for ingestion: %d CVEs processed",
        result["processed_cves"],
        extra={"action": "task_completed", "target": "nvd"},
    )
    return result
