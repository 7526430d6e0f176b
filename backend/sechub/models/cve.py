"""
CVEEntry model.

Represents one vulnerability disclosure ingested from the NVD feed.  Rows
are keyed by their CVE identifier and updated in place on every re-sighting,
so the surrogate ``id`` stays stable across ingestion runs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sechub.core.database import Base

if TYPE_CHECKING:
    from sechub.models.exploit import Exploit


class CVEEntry(Base):
    """A CVE record as stored by the ingestion pipeline.

    Attributes:
        id: UUID primary key, auto-generated and never changed by upserts.
        cve_id: Official CVE identifier (e.g. ``CVE-2021-41773``), unique.
        title: Synthesised convenience title (``"<id> - <description>..."``).
        description: First English description from NVD.
        cvss_score: CVSS base score as a decimal string, if NVD scored it.
        severity: ``CRITICAL``, ``HIGH``, ``MEDIUM``, ``LOW`` or ``UNKNOWN``.
        vendor: Vendor segment of the first CPE match, if any.
        published_date: NVD ``published`` timestamp string.
        updated_date: NVD ``lastModified`` timestamp string.
        tags: Lowercase tags derived from severity and vendor.
        actively_exploited: Set by the KEV matcher; never written on ingest.
        edb_id: Primary linked ExploitDB id, first write wins.
        created_at: When the row was first inserted.
        updated_at: When the row was last upserted.
        exploits: Exploit rows owned by this CVE.
    """

    __tablename__ = "cve_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    cve_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    cvss_score: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
    )
    severity: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="UNKNOWN",
    )
    vendor: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    published_date: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )
    updated_date: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )
    tags: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    actively_exploited: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        server_default="false",
    )
    edb_id: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # -- Relationships ---------------------------------------------------------
    exploits: Mapped[list[Exploit]] = relationship(
        "Exploit",
        back_populates="cve",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<CVEEntry {self.cve_id} cvss={self.cvss_score} "
            f"severity={self.severity!r} edb_id={self.edb_id}>"
        )
