"""
Pydantic v2 schemas for the ingestion control endpoints.

The request body of ``POST /ingestion/start`` is
:class:`~sechub.ingestion.base.IngestionOptions` itself; this module only
declares the response shapes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from sechub.ingestion.base import IngestionStatus


class IngestionStartResponse(BaseModel):
    """Returned by ``POST /api/v1/ingestion/start`` once a run is scheduled."""

    accepted: bool = True
    status: IngestionStatus = IngestionStatus.RUNNING


class IngestionProgressResponse(BaseModel):
    """Progress snapshot of the current or last ingestion run.

    Attributes:
        total_cves: CVEs NVD reported for the years visited so far.
        processed_cves: CVEs upserted.
        cves_with_exploits: CVEs that carried at least one ExploitDB reference.
        total_exploits: Exploit rows created.
        errors: Error messages accumulated during the run.
        status: ``idle``, ``running``, ``completed`` or ``error``.
        start_time: When the run started.
        end_time: When the run finished.
    """

    model_config = ConfigDict(from_attributes=True)

    total_cves: int = 0
    processed_cves: int = 0
    cves_with_exploits: int = 0
    total_exploits: int = 0
    errors: list[str] = Field(default_factory=list)
    status: IngestionStatus = IngestionStatus.IDLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
