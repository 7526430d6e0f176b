"""
ExploitDB lookup collaborator.

Resolves exploit metadata from the public ExploitDB CSV index
(``files_exploits.csv``).  The index is downloaded once and kept in memory
for a configurable TTL; the load is guarded by an :class:`asyncio.Lock` so a
chunk of concurrent CVE tasks triggers a single download.

Index columns used: ``id``, ``file``, ``description``, ``date_published``,
``author``, ``type``, ``platform``, ``verified`` and ``codes`` (a
semicolon-separated list that includes CVE identifiers).
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import time
from typing import Iterator, Optional

import httpx

from sechub.config import get_settings
from sechub.ingestion.base import BaseExploitLookup, ExploitCandidate

logger = logging.getLogger(__name__)

EXPLOIT_URL_TEMPLATE: str = "https://www.exploit-db.com/exploits/{edb_id}"


def classify_exploit_type(title: str) -> str:
    """Guess an exploit category from keywords in its title."""
    lowered = title.lower()
    if "remote" in lowered:
        return "Remote Code Execution"
    if "local" in lowered:
        return "Local Privilege Escalation"
    if "sql injection" in lowered or "sqli" in lowered:
        return "SQL Injection"
    if "xss" in lowered or "cross-site" in lowered:
        return "Cross-Site Scripting"
    if "csrf" in lowered:
        return "Cross-Site Request Forgery"
    if "buffer overflow" in lowered:
        return "Buffer Overflow"
    if "denial of service" in lowered or "dos" in lowered:
        return "Denial of Service"
    return "Other"


def classify_platform(title: str) -> str:
    """Guess a target platform from keywords in an exploit title."""
    lowered = title.lower()
    if "windows" in lowered:
        return "Windows"
    if "linux" in lowered:
        return "Linux"
    if "macos" in lowered or "mac os" in lowered:
        return "macOS"
    if "android" in lowered:
        return "Android"
    if "ios" in lowered:
        return "iOS"
    if "web" in lowered or "php" in lowered or "asp" in lowered:
        return "Web"
    return "Multiple"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_index(text: str) -> dict[str, ExploitCandidate]:
    """Parse the CSV index into candidates keyed by ExploitDB id.

    Rows without an ``id`` are skipped.
    """
    return {edb_id: candidate for edb_id, candidate, _ in _iter_rows(text)}


def _iter_rows(text: str) -> Iterator[tuple[str, ExploitCandidate, set[str]]]:
    reader = csv.DictReader(io.StringIO(text))
    for row in reader:
        edb_id = _clean(row.get("id"))
        if not edb_id:
            continue
        title = _clean(row.get("description"))
        exploit_type = _clean(row.get("type"))
        platform = _clean(row.get("platform"))
        if title and not exploit_type:
            exploit_type = classify_exploit_type(title)
        if title and not platform:
            platform = classify_platform(title)
        file_path = _clean(row.get("file"))
        candidate = ExploitCandidate(
            edb_id=edb_id,
            title=title,
            description=f"{title} ({file_path})" if title and file_path else None,
            exploit_type=exploit_type,
            platform=platform,
            author=_clean(row.get("author")),
            date_published=_clean(row.get("date_published")),
            source_url=EXPLOIT_URL_TEMPLATE.format(edb_id=edb_id),
            verified=_clean(row.get("verified")) == "1",
        )
        codes = {
            code.strip().upper()
            for code in (row.get("codes") or "").split(";")
            if code.strip()
        }
        yield edb_id, candidate, codes


class ExploitDBLookup(BaseExploitLookup):
    """Live exploit lookup against the ExploitDB CSV index."""

    name: str = "exploitdb"

    def __init__(
        self,
        index_url: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.index_url: str = index_url or settings.EXPLOITDB_INDEX_URL
        self.ttl_seconds: float = (
            ttl_seconds if ttl_seconds is not None else settings.EXPLOITDB_INDEX_TTL_SECONDS
        )
        self.timeout_seconds: float = timeout_seconds or settings.EXPLOITDB_TIMEOUT_SECONDS
        self._by_id: dict[str, ExploitCandidate] = {}
        self._by_cve: dict[str, list[str]] = {}
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._loaded_at is not None
            and time.monotonic() - self._loaded_at <= self.ttl_seconds
        )

    async def _download(self) -> str:
        timeout = httpx.Timeout(
            connect=10.0,
            read=self.timeout_seconds,
            write=10.0,
            pool=10.0,
        )
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(self.index_url)
            response.raise_for_status()
            return response.text

    async def _ensure_index(self) -> None:
        if self._is_fresh():
            return
        async with self._lock:
            if self._is_fresh():
                return
            text = await self._download()
            by_id: dict[str, ExploitCandidate] = {}
            by_cve: dict[str, list[str]] = {}
            for edb_id, candidate, codes in _iter_rows(text):
                by_id[edb_id] = candidate
                for code in codes:
                    if code.startswith("CVE-"):
                        by_cve.setdefault(code, []).append(edb_id)
            self._by_id = by_id
            self._by_cve = by_cve
            self._loaded_at = time.monotonic()
            logger.info(
                "Loaded ExploitDB index with %d entries (%d CVEs)",
                len(by_id),
                len(by_cve),
            )

    async def lookup(
        self, cve_id: str, edb_id: Optional[str] = None
    ) -> list[ExploitCandidate]:
        """Return index entries for *edb_id*, or for every exploit of *cve_id*.

        Raises:
            httpx.HTTPError: If the index could not be downloaded.
        """
        await self._ensure_index()
        if edb_id:
            candidate = self._by_id.get(edb_id)
            return [candidate] if candidate is not None else []
        return [
            self._by_id[found_id]
            for found_id in self._by_cve.get(cve_id.upper(), [])
            if found_id in self._by_id
        ]
