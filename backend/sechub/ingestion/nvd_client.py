"""
NVD feed client for the ingestion pipeline.

Fetches one page of vulnerability records from the NIST National
Vulnerability Database REST API v2.0.  Every call is a live request: the
client neither caches nor retries.  Failures are translated into
:class:`~sechub.ingestion.errors.NVDFetchError` so the orchestrator can
decide how to back off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from sechub.config import get_settings
from sechub.ingestion.errors import NVDFetchError

logger = logging.getLogger(__name__)

MAX_RESULTS_PER_PAGE: int = 2000


@dataclass
class NVDPage:
    """One page of the NVD feed.

    Attributes:
        vulnerabilities: Raw records, each shaped ``{"cve": {...}}``.
        total_results:   Total number of records NVD reports for the query.
        start_index:     Offset this page was requested at.
    """

    vulnerabilities: list[dict[str, Any]] = field(default_factory=list)
    total_results: int = 0
    start_index: int = 0


class NVDClient:
    """Thin async client for ``/rest/json/cves/2.0``.

    The API key, if configured, is sent as the ``apiKey`` header which raises
    the upstream rate limit from 5 to 50 requests per rolling 30 seconds.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.api_url: str = api_url or settings.NVD_API_URL
        self.api_key: Optional[str] = api_key if api_key is not None else settings.NVD_API_KEY
        self.user_agent: str = user_agent or settings.NVD_USER_AGENT
        self.timeout_seconds: float = timeout_seconds or settings.NVD_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"User-Agent": self.user_agent}
        if self.api_key:
            headers["apiKey"] = self.api_key
        return headers

    async def fetch_page(self, results_per_page: int, start_index: int) -> NVDPage:
        """Fetch one page of CVE records.

        Args:
            results_per_page: Requested page size, clamped to ``1..2000``.
            start_index:      Zero-based offset into the result set.

        Returns:
            The parsed :class:`NVDPage`.

        Raises:
            ValueError: If *start_index* is negative.
            NVDFetchError: On any non-2xx response, timeout, transport error
                or undecodable body.
        """
        if start_index < 0:
            raise ValueError(f"start_index must be >= 0, got {start_index}")
        page_size = max(1, min(int(results_per_page), MAX_RESULTS_PER_PAGE))

        params: dict[str, int] = {
            "resultsPerPage": page_size,
            "startIndex": start_index,
        }
        timeout = httpx.Timeout(
            connect=10.0,
            read=self.timeout_seconds,
            write=10.0,
            pool=10.0,
        )

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(
                    self.api_url,
                    params=params,
                    headers=self._headers(),
                )
                response.raise_for_status()
                payload: dict[str, Any] = response.json()
        except httpx.TimeoutException as exc:
            raise NVDFetchError(f"NVD request timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise NVDFetchError(
                f"NVD API error: {status_code} {exc.response.reason_phrase}",
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NVDFetchError(f"NVD request failed: {exc}") from exc
        except ValueError as exc:
            raise NVDFetchError(f"NVD returned an undecodable body: {exc}") from exc

        if not isinstance(payload, dict):
            raise NVDFetchError("NVD returned an unexpected payload shape")

        vulnerabilities = payload.get("vulnerabilities") or []
        if not isinstance(vulnerabilities, list):
            vulnerabilities = []

        total_results = payload.get("totalResults")
        if not isinstance(total_results, int):
            total_results = len(vulnerabilities)

        logger.debug(
            "Fetched %d NVD records at offset %d (total %d)",
            len(vulnerabilities),
            start_index,
            total_results,
        )
        return NVDPage(
            vulnerabilities=vulnerabilities,
            total_results=total_results,
            start_index=start_index,
        )
