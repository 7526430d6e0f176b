"""
Pydantic v2 schemas for the SecHub REST API.

Re-exports every public schema so consumers can do::

    from sechub.api.schemas import IngestionProgressResponse
"""

from sechub.api.schemas.ingestion import (
    IngestionProgressResponse,
    IngestionStartResponse,
)

__all__: list[str] = [
    "IngestionProgressResponse",
    "IngestionStartResponse",
]
