"""
Ingestion control endpoints.

Exposes the pipeline's control surface: start a run in the background, poll
its progress, and request a cooperative stop.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from sechub.api.deps import get_pipeline
from sechub.api.schemas.ingestion import (
    IngestionProgressResponse,
    IngestionStartResponse,
)
from sechub.core.logging import get_logger
from sechub.ingestion.base import IngestionOptions
from sechub.ingestion.errors import (
    IngestionAlreadyRunningError,
    IngestionNotRunningError,
)
from sechub.ingestion.pipeline import IngestionPipeline

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/start",
    response_model=IngestionStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a CVE ingestion run",
)
async def start_ingestion(
    options: Optional[IngestionOptions] = Body(default=None),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestionStartResponse:
    """Schedule an ingestion run and return immediately.

    Raises:
        HTTPException: *409 Conflict* if a run is already in progress.
    """
    try:
        pipeline.start(options)
    except IngestionAlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    logger.info(
        "Ingestion run accepted",
        extra={"action": "ingest_accepted", "target": "nvd"},
    )
    return IngestionStartResponse()


@router.get(
    "/progress",
    response_model=IngestionProgressResponse,
    summary="Current ingestion progress",
)
async def get_ingestion_progress(
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestionProgressResponse:
    return IngestionProgressResponse.model_validate(pipeline.get_progress())


@router.post(
    "/stop",
    response_model=IngestionProgressResponse,
    summary="Stop the running ingestion",
)
async def stop_ingestion(
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestionProgressResponse:
    """Request a cooperative stop and wait until the run has drained.

    Raises:
        HTTPException: *409 Conflict* if no run is in progress.
    """
    try:
        await pipeline.stop()
    except IngestionNotRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    return IngestionProgressResponse.model_validate(pipeline.get_progress())
