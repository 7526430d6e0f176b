"""
Shared FastAPI dependency functions for the SecHub API.

Provides access to the long-lived :class:`IngestionPipeline` created at
application startup.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from sechub.ingestion.pipeline import IngestionPipeline


def get_pipeline(request: Request) -> IngestionPipeline:
    """Return the ingestion pipeline stored on ``app.state``.

    Usage::

        @router.get("/progress")
        async def progress(
            pipeline: IngestionPipeline = Depends(get_pipeline),
        ) -> IngestionProgressResponse:
            ...

    Raises:
        HTTPException: *503 Service Unavailable* if the application has not
            finished starting up.
    """
    pipeline: IngestionPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion pipeline is not initialised.",
        )
    return pipeline
