"""
Exploit detail resolution.

:class:`ExploitDetailFetcher` turns an ExploitDB reference found on an NVD
record into persistable exploit metadata.  A live lookup is attempted first;
missing fields are filled with placeholders naming the CVE and EDB id, and a
failed or empty lookup yields a fully synthesised record.  The result is
tagged ``"live"`` or ``"placeholder"`` so consumers can tell the two apart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sechub.ingestion.base import (
    BaseExploitLookup,
    ExploitCandidate,
    ExploitDetail,
    ResolvedExploit,
)
from sechub.ingestion.exploitdb import EXPLOIT_URL_TEMPLATE

logger = logging.getLogger(__name__)

PLACEHOLDER_TYPE: str = "Unknown"
PLACEHOLDER_PLATFORM: str = "Multiple"
PLACEHOLDER_AUTHOR: str = "ExploitDB Contributor"


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _placeholder_title(edb_id: str, cve_id: str) -> str:
    return f"Exploit for {cve_id} (EDB-{edb_id})"


class ExploitDetailFetcher:
    """Resolve exploit metadata, always returning something persistable.

    Args:
        lookup: Collaborator queried for live exploit data.
    """

    def __init__(self, lookup: BaseExploitLookup) -> None:
        self.lookup = lookup

    async def resolve(self, edb_id: str, cve_id: str) -> ResolvedExploit:
        """Return exploit detail for *edb_id* as referenced by *cve_id*.

        Lookup failures are logged and treated as "no live data"; they never
        propagate.  ``verified`` is always ``True`` because the reference came
        from NVD.
        """
        try:
            candidates = await self.lookup.lookup(cve_id, edb_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Exploit lookup failed for EDB-%s (%s): %s",
                edb_id,
                cve_id,
                exc,
                extra={"action": "exploit_lookup_error", "target": cve_id},
            )
            candidates = []

        if candidates:
            return ResolvedExploit(
                data=self._from_candidate(candidates[0], edb_id, cve_id),
                source="live",
            )
        return ResolvedExploit(data=self.placeholder(edb_id, cve_id), source="placeholder")

    @staticmethod
    def _from_candidate(
        candidate: ExploitCandidate, edb_id: str, cve_id: str
    ) -> ExploitDetail:
        return ExploitDetail(
            edb_id=edb_id,
            title=candidate.title or _placeholder_title(edb_id, cve_id),
            description=(
                candidate.description
                or f"Verified exploit for {cve_id} from ExploitDB."
            ),
            exploit_type=candidate.exploit_type or PLACEHOLDER_TYPE,
            platform=candidate.platform or PLACEHOLDER_PLATFORM,
            author=candidate.author or PLACEHOLDER_AUTHOR,
            date_published=candidate.date_published or _today(),
            source_url=candidate.source_url or EXPLOIT_URL_TEMPLATE.format(edb_id=edb_id),
            verified=True,
            exploit_code=candidate.exploit_code,
        )

    @staticmethod
    def placeholder(edb_id: str, cve_id: str) -> ExploitDetail:
        """Return the synthesised detail used when no live data exists."""
        return ExploitDetail(
            edb_id=edb_id,
            title=_placeholder_title(edb_id, cve_id),
            description=f"Verified exploit for {cve_id} referenced in NVD database.",
            exploit_type=PLACEHOLDER_TYPE,
            platform=PLACEHOLDER_PLATFORM,
            author=PLACEHOLDER_AUTHOR,
            date_published=_today(),
            source_url=EXPLOIT_URL_TEMPLATE.format(edb_id=edb_id),
            verified=True,
        )
