"""
Persistence gateway for the ingestion pipeline.

Wraps the relational store behind the small set of operations the
orchestrator needs.  Every call opens its own short-lived
:class:`~sqlalchemy.ext.asyncio.AsyncSession`, so the concurrent tasks of a
chunk never share a session.  Concurrent calls are expected only for
distinct CVE and ExploitDB identifiers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sechub.core.logging import get_logger
from sechub.ingestion.base import CanonicalCVE, ExploitRecord
from sechub.models.cve import CVEEntry
from sechub.models.exploit import Exploit

logger = get_logger(__name__)


class PersistenceGateway:
    """Idempotent CVE upserts and insert-if-absent exploit storage.

    Args:
        session_factory: Factory producing sessions bound to the target
            database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_cve(self, canonical: CanonicalCVE) -> CVEEntry:
        """Insert *canonical* or update the existing row with the same id.

        The surrogate ``id``, the primary ``edb_id`` link and the
        ``actively_exploited`` flag of an existing row are preserved.

        Returns:
            The stored row, detached from its session.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(CVEEntry).where(CVEEntry.cve_id == canonical.cve_id)
            )
            entry: Optional[CVEEntry] = result.scalar_one_or_none()

            if entry is None:
                entry = CVEEntry(cve_id=canonical.cve_id, edb_id=None)
                session.add(entry)

            entry.title = canonical.title
            entry.description = canonical.description
            entry.cvss_score = canonical.cvss_score
            entry.severity = canonical.severity
            entry.vendor = canonical.vendor
            entry.published_date = canonical.published_date
            entry.updated_date = canonical.updated_date
            entry.tags = list(canonical.tags)
            entry.updated_at = datetime.now(timezone.utc)

            await session.commit()
            return entry

    async def get_cve(self, cve_id: str) -> Optional[CVEEntry]:
        """Return the stored CVE row for *cve_id*, if any."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(CVEEntry).where(CVEEntry.cve_id == cve_id)
            )
            return result.scalar_one_or_none()

    async def exploit_exists(self, edb_id: str) -> bool:
        """Return ``True`` if an exploit with ExploitDB id *edb_id* is stored."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Exploit.id).where(Exploit.exploit_id == edb_id).limit(1)
            )
            return result.first() is not None

    async def insert_exploit(self, record: ExploitRecord) -> Optional[Exploit]:
        """Insert a new exploit row unless its ExploitDB id is already stored.

        Returns:
            The new row, or ``None`` when another writer stored the same
            ExploitDB id first.
        """
        async with self._session_factory() as session:
            exploit = Exploit(
                exploit_id=record.exploit_id,
                cve_id=record.cve_id,
                title=record.title,
                description=record.description,
                exploit_type=record.exploit_type,
                platform=record.platform,
                verified=record.verified,
                date_published=record.date_published,
                author=record.author,
                source_url=record.source_url,
                exploit_code=record.exploit_code,
                source=record.source,
                details_source=record.details_source,
            )
            session.add(exploit)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if not await self.exploit_exists(record.exploit_id):
                    raise
                logger.debug(
                    "EDB-%s already stored, skipping",
                    record.exploit_id,
                    extra={"action": "exploit_duplicate", "target": record.cve_id},
                )
                return None
            return exploit

    async def set_primary_exploit_id(self, cve_id: str, edb_id: str) -> bool:
        """Link *edb_id* as the CVE's primary exploit if none is linked yet.

        Returns:
            ``True`` if the link was written, ``False`` if the CVE already
            had one (or does not exist).
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(CVEEntry)
                .where(CVEEntry.cve_id == cve_id, CVEEntry.edb_id.is_(None))
                .values(edb_id=edb_id)
            )
            await session.commit()
            linked = (result.rowcount or 0) > 0

        if linked:
            logger.debug(
                "Linked EDB-%s as primary exploit",
                edb_id,
                extra={"action": "primary_exploit_linked", "target": cve_id},
            )
        return linked

    async def list_exploits_for_cve(self, cve_id: str) -> list[Exploit]:
        """Return every exploit row owned by *cve_id*."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Exploit).where(Exploit.cve_id == cve_id).order_by(Exploit.exploit_id)
            )
            return list(result.scalars().unique().all())
