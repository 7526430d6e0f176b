"""
Exploit model.

Represents one proof-of-concept or exploit entry discovered through an
ExploitDB reference on an NVD record.  Each row belongs to exactly one
:class:`~sechub.models.cve.CVEEntry`; the ExploitDB id is unique across the
whole table.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sechub.core.database import Base

if TYPE_CHECKING:
    from sechub.models.cve import CVEEntry


class Exploit(Base):
    """An exploit record linked to a CVE.

    Attributes:
        id: UUID primary key, auto-generated.
        exploit_id: ExploitDB identifier (e.g. ``"51234"``), unique.
        cve_id: Identifier of the owning :class:`CVEEntry`.
        title: Exploit title.
        description: Short description of the exploit.
        exploit_type: Free-form classification (``remote``, ``webapps``...).
        platform: Target platform.
        verified: ``True`` when sourced from an NVD cross-reference.
        date_published: Publish date string (``YYYY-MM-DD``).
        author: Exploit author.
        source_url: URL the reference was found at.
        exploit_code: Exploit body, populated lazily outside the pipeline.
        source: Source label, ``"ExploitDB"`` for ingested rows.
        details_source: ``"live"`` when metadata came from the ExploitDB
            index, ``"placeholder"`` when it was synthesised.
        created_at: Insert timestamp.
        cve: Parent :class:`CVEEntry` relationship.
    """

    __tablename__ = "exploits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    exploit_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        unique=True,
        index=True,
    )
    cve_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("cve_entries.cve_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    exploit_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    platform: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        server_default="false",
    )
    date_published: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )
    author: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    source_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    exploit_code: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="ExploitDB",
    )
    details_source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="placeholder",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # -- Relationships ---------------------------------------------------------
    cve: Mapped[CVEEntry] = relationship(
        "CVEEntry",
        back_populates="exploits",
        lazy="joined",
    )

    def __repr__(self) -> str:
        return (
            f"<Exploit EDB-{self.exploit_id} cve_id={self.cve_id} "
            f"source={self.details_source!r}>"
        )
