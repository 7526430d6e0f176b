"""
Shared types for the CVE/exploit ingestion pipeline.

Defines the run options, the progress snapshot and its status enumeration,
the canonical shapes passed between the normalizer, the exploit detail
fetcher and the persistence gateway, and the abstract exploit-lookup
collaborator.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_MAX_CVES: int = 10_000
DEFAULT_START_YEAR: int = 2020
DEFAULT_CONCURRENCY: int = 3


class IngestionStatus(str, Enum):
    """Lifecycle of a pipeline run.

    Attributes:
        IDLE:      No run has started since the pipeline was created.
        RUNNING:   A run is in progress.
        COMPLETED: The last run finished (possibly after a stop request).
        ERROR:     The last run was terminated by a fatal error.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class IngestionOptions(BaseModel):
    """Options accepted by :meth:`IngestionPipeline.start`.

    Every field is optional.  ``end_year`` defaults to the current year and
    years are walked from ``end_year`` down to ``start_year``.
    """

    model_config = ConfigDict(extra="forbid")

    max_cves: int = Field(
        default=DEFAULT_MAX_CVES,
        ge=1,
        description="Cap on CVEs processed across the whole run.",
    )
    start_year: int = Field(
        default=DEFAULT_START_YEAR,
        ge=1999,
        description="Oldest year to ingest (inclusive).",
    )
    end_year: int = Field(
        default_factory=lambda: datetime.now(timezone.utc).year,
        ge=1999,
        description="Most recent year to ingest (inclusive).",
    )
    concurrency: int = Field(
        default=DEFAULT_CONCURRENCY,
        ge=1,
        le=50,
        description="Maximum simultaneous per-CVE tasks.",
    )

    @model_validator(mode="after")
    def check_year_range(self) -> "IngestionOptions":
        """Reject ranges where ``start_year`` is after ``end_year``."""
        if self.start_year > self.end_year:
            raise ValueError(
                f"start_year ({self.start_year}) must not be after "
                f"end_year ({self.end_year})"
            )
        return self


@dataclass
class IngestionProgress:
    """Live counters of a pipeline run.

    Attributes:
        total_cves:         CVEs NVD reported for the years visited so far.
        processed_cves:     CVEs upserted.
        cves_with_exploits: CVEs that carried at least one ExploitDB reference.
        total_exploits:     Exploit rows created.
        errors:             Recoverable (and the final fatal) error messages.
        status:             Current :class:`IngestionStatus`.
        start_time:         When the run started (UTC).
        end_time:           When the run finished (UTC).
    """

    total_cves: int = 0
    processed_cves: int = 0
    cves_with_exploits: int = 0
    total_exploits: int = 0
    errors: list[str] = field(default_factory=list)
    status: IngestionStatus = IngestionStatus.IDLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def snapshot(self) -> IngestionProgress:
        """Return an independent copy safe to hand to pollers."""
        return copy.deepcopy(self)

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return {
            "total_cves": self.total_cves,
            "processed_cves": self.processed_cves,
            "cves_with_exploits": self.cves_with_exploits,
            "total_exploits": self.total_exploits,
            "errors": list(self.errors),
            "status": self.status.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass
class CanonicalCVE:
    """Normalized form of one NVD vulnerability record."""

    cve_id: str
    title: str
    description: str
    cvss_score: Optional[str]
    severity: str
    vendor: Optional[str]
    published_date: Optional[str]
    updated_date: Optional[str]
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExploitReference:
    """An ExploitDB id found in an NVD reference URL."""

    edb_id: str
    url: str


@dataclass
class ExploitCandidate:
    """One result returned by an exploit-lookup collaborator.

    Any field may be missing; the detail fetcher fills the gaps.
    """

    edb_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    exploit_type: Optional[str] = None
    platform: Optional[str] = None
    author: Optional[str] = None
    date_published: Optional[str] = None
    source_url: Optional[str] = None
    verified: bool = False
    exploit_code: Optional[str] = None


@dataclass
class ExploitDetail:
    """Fully populated exploit metadata, ready to persist."""

    edb_id: str
    title: str
    description: str
    exploit_type: str
    platform: str
    author: str
    date_published: str
    source_url: str
    verified: bool = True
    exploit_code: Optional[str] = None


DetailSource = Literal["live", "placeholder"]


@dataclass
class ResolvedExploit:
    """Exploit detail tagged with where its metadata came from."""

    data: ExploitDetail
    source: DetailSource


@dataclass
class ExploitRecord:
    """Insert payload for the exploit table."""

    cve_id: str
    exploit_id: str
    title: str
    description: str
    exploit_type: str
    platform: str
    verified: bool
    date_published: str
    author: str
    source_url: str
    exploit_code: Optional[str] = None
    source: str = "ExploitDB"
    details_source: DetailSource = "placeholder"


class BaseExploitLookup(ABC):
    """Collaborator that resolves exploit metadata from an external source."""

    name: str = "base"

    @abstractmethod
    async def lookup(
        self, cve_id: str, edb_id: Optional[str] = None
    ) -> list[ExploitCandidate]:
        """Return zero or more exploit candidates for *cve_id*.

        Args:
            cve_id: CVE identifier the exploit was referenced from.
            edb_id: ExploitDB id to narrow the search to, when known.

        Returns:
            Candidates in source order; an empty list when nothing matched.
        """
