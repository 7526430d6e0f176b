"""
CVE/exploit ingestion pipeline.

Coordinates one batch ingestion run:

1. Reset the progress snapshot and mark the run as RUNNING.
2. Walk years from ``end_year`` down to ``start_year``.
3. For each year, page through the NVD feed in pages of up to 1000 records.
4. Process each page in chunks of ``concurrency`` records; every record of a
   chunk runs concurrently and the next chunk starts only once all of them
   have settled.
5. For each record: normalize, upsert the CVE, then store every newly seen
   ExploitDB reference and link the first one as the CVE's primary exploit.
6. Mark the run COMPLETED, or ERROR if a failure escaped the year loop.

Page failures are recorded and skipped; record failures are recorded and
isolated.  A stop request is honoured at every year, page and chunk boundary
and lets the in-flight chunk drain.

The pipeline is a long-lived service object: construct it once per process
and reuse it.  Only one run may be active at a time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sechub.config import get_settings
from sechub.core.logging import get_logger
from sechub.ingestion.base import (
    ExploitRecord,
    IngestionOptions,
    IngestionProgress,
    IngestionStatus,
)
from sechub.ingestion.errors import (
    IngestionAlreadyRunningError,
    IngestionNotRunningError,
)
from sechub.ingestion.exploitdb import ExploitDBLookup
from sechub.ingestion.exploits import ExploitDetailFetcher
from sechub.ingestion.gateway import PersistenceGateway
from sechub.ingestion.normalizer import extract_cve_id, extract_exploit_refs, normalize
from sechub.ingestion.nvd_client import NVDClient

logger = get_logger(__name__)

PAGE_SIZE: int = 1000
PROGRESS_LOG_EVERY: int = 100


class IngestionPipeline:
    """Drives NVD fetch, normalization, storage and exploit resolution.

    Usage::

        pipeline = IngestionPipeline.from_settings(session_factory)
        pipeline.start(IngestionOptions(max_cves=500))
        ...
        pipeline.get_progress()
        await pipeline.stop()

    Args:
        nvd_client:          Source of NVD pages.
        exploit_fetcher:     Resolves exploit metadata for ExploitDB refs.
        gateway:             Persistence for CVE and exploit rows.
        page_delay:          Seconds to pause after every page.
        error_delay:         Seconds to pause after a failed page.
        record_timeout:      Upper bound for processing a single record;
                             ``None`` disables it.
        stop_poll_interval:  How often :meth:`stop` checks for completion.
        max_page_errors:     Consecutive page failures after which a year
                             is abandoned.
    """

    def __init__(
        self,
        nvd_client: NVDClient,
        exploit_fetcher: ExploitDetailFetcher,
        gateway: PersistenceGateway,
        page_delay: float = 1.0,
        error_delay: float = 5.0,
        record_timeout: Optional[float] = 120.0,
        stop_poll_interval: float = 1.0,
        max_page_errors: int = 10,
    ) -> None:
        self.nvd_client = nvd_client
        self.exploit_fetcher = exploit_fetcher
        self.gateway = gateway
        self.page_delay = page_delay
        self.error_delay = error_delay
        self.record_timeout = record_timeout
        self.stop_poll_interval = stop_poll_interval
        self.max_page_errors = max_page_errors

        self._progress = IngestionProgress()
        self._running: bool = False
        self._claimed_edb_ids: set[str] = set()
        self._stop_requested: bool = False
        self._task: Optional[asyncio.Task[None]] = None

    @classmethod
    def from_settings(
        cls, session_factory: async_sessionmaker[AsyncSession]
    ) -> IngestionPipeline:
        """Build a pipeline with the default collaborators and pacing."""
        settings = get_settings()
        return cls(
            nvd_client=NVDClient(),
            exploit_fetcher=ExploitDetailFetcher(ExploitDBLookup()),
            gateway=PersistenceGateway(session_factory),
            page_delay=settings.INGEST_PAGE_DELAY_SECONDS,
            error_delay=settings.INGEST_ERROR_DELAY_SECONDS,
            record_timeout=settings.INGEST_RECORD_TIMEOUT_SECONDS,
            stop_poll_interval=settings.INGEST_STOP_POLL_SECONDS,
        )

    # -- Control surface ------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def get_progress(self) -> IngestionProgress:
        """Return a copy of the current progress snapshot."""
        return self._progress.snapshot()

    def start(self, options: Optional[IngestionOptions] = None) -> asyncio.Task[None]:
        """Begin a run in the background and return immediately.

        Must be called from inside a running event loop.

        Raises:
            IngestionAlreadyRunningError: If a run is in progress.
        """
        options = options or IngestionOptions()
        self._begin(options)
        task = asyncio.create_task(self._execute(options), name="cve-ingestion")
        task.add_done_callback(self._on_task_done)
        self._task = task
        return task

    async def run(self, options: Optional[IngestionOptions] = None) -> IngestionProgress:
        """Run to completion in the current task.

        Returns:
            The final progress snapshot.

        Raises:
            IngestionAlreadyRunningError: If a run is in progress.
            Exception: Whatever fatal error terminated the run.
        """
        options = options or IngestionOptions()
        self._begin(options)
        await self._execute(options)
        return self.get_progress()

    async def stop(self) -> None:
        """Request cooperative cancellation and wait until the run stops.

        Raises:
            IngestionNotRunningError: If no run is in progress.
        """
        if not self._running:
            raise IngestionNotRunningError("Ingestion pipeline is not running")

        logger.info(
            "Stopping ingestion pipeline",
            extra={"action": "ingest_stop_requested", "target": "nvd"},
        )
        self._stop_requested = True
        while self._running:
            await asyncio.sleep(self.stop_poll_interval)

    # -- Run lifecycle --------------------------------------------------------

    def _begin(self, options: IngestionOptions) -> None:
        if self._running:
            raise IngestionAlreadyRunningError("Ingestion pipeline is already running")

        self._running = True
        self._claimed_edb_ids = set()
        self._stop_requested = False
        self._progress = IngestionProgress(
            status=IngestionStatus.RUNNING,
            start_time=datetime.now(timezone.utc),
        )
        logger.info(
            "Starting CVE ingestion: max_cves=%d years=%d-%d concurrency=%d",
            options.max_cves,
            options.start_year,
            options.end_year,
            options.concurrency,
            extra={"action": "ingest_start", "target": "nvd"},
        )

    async def _execute(self, options: IngestionOptions) -> None:
        progress = self._progress
        try:
            for year in range(options.end_year, options.start_year - 1, -1):
                if self._stop_requested or progress.processed_cves >= options.max_cves:
                    break
                await self._ingest_year(year, options)

            progress.status = IngestionStatus.COMPLETED
            progress.end_time = datetime.now(timezone.utc)
            duration = (progress.end_time - progress.start_time).total_seconds()
            logger.info(
                "Ingestion completed in %.1fs: %d CVEs, %d with exploits, "
                "%d exploits, %d errors",
                duration,
                progress.processed_cves,
                progress.cves_with_exploits,
                progress.total_exploits,
                len(progress.errors),
                extra={"action": "ingest_completed", "target": "nvd"},
            )
        except Exception as exc:
            progress.status = IngestionStatus.ERROR
            progress.end_time = datetime.now(timezone.utc)
            progress.errors.append(f"Pipeline error: {exc}")
            logger.exception(
                "Ingestion pipeline failed: %s",
                exc,
                extra={"action": "ingest_failed", "target": "nvd"},
            )
            raise
        finally:
            self._running = False

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        """Surface fatal errors of a background run that nobody awaits."""
        if task.cancelled():
            if self._progress.status == IngestionStatus.RUNNING:
                self._progress.status = IngestionStatus.ERROR
                self._progress.end_time = datetime.now(timezone.utc)
                self._progress.errors.append("Pipeline error: run was cancelled")
            self._running = False
            logger.warning(
                "Background ingestion task was cancelled",
                extra={"action": "ingest_cancelled", "target": "nvd"},
            )
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background ingestion run terminated: %s",
                exc,
                extra={"action": "ingest_task_failed", "target": "nvd"},
            )

    # -- Year / page / chunk loops --------------------------------------------

    async def _ingest_year(self, year: int, options: IngestionOptions) -> None:
        progress = self._progress
        start_index = 0
        year_total: Optional[int] = None
        consecutive_errors = 0

        logger.info(
            "Processing CVEs from year %d",
            year,
            extra={"action": "ingest_year", "target": str(year)},
        )

        while progress.processed_cves < options.max_cves and not self._stop_requested:
            try:
                page_size = min(PAGE_SIZE, options.max_cves - progress.processed_cves)
                logger.info(
                    "Fetching CVEs for %d, batch starting at %d",
                    year,
                    start_index,
                    extra={"action": "nvd_page_fetch", "target": str(year)},
                )
                page = await self.nvd_client.fetch_page(page_size, start_index)

                if not page.vulnerabilities:
                    logger.info(
                        "No more CVEs for year %d",
                        year,
                        extra={"action": "ingest_year_done", "target": str(year)},
                    )
                    break

                if year_total is None:
                    year_total = page.total_results
                    progress.total_cves += year_total
                    logger.info(
                        "Found %d total CVEs for year %d",
                        page.total_results,
                        year,
                        extra={"action": "ingest_year_total", "target": str(year)},
                    )

                await self._process_page(page.vulnerabilities, options.concurrency)
                start_index += len(page.vulnerabilities)
                consecutive_errors = 0

                await asyncio.sleep(self.page_delay)

            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Error processing year %d, batch %d: %s",
                    year,
                    start_index,
                    exc,
                    extra={"action": "nvd_page_error", "target": str(year)},
                )
                progress.errors.append(f"Year {year} batch {start_index}: {exc}")
                start_index += PAGE_SIZE
                consecutive_errors += 1

                if consecutive_errors >= self.max_page_errors:
                    logger.error(
                        "Abandoning year %d after %d consecutive page errors",
                        year,
                        consecutive_errors,
                        extra={"action": "ingest_year_abandoned", "target": str(year)},
                    )
                    progress.errors.append(
                        f"Year {year}: abandoned after {consecutive_errors} "
                        "consecutive page errors"
                    )
                    break
                if year_total is not None and start_index >= year_total:
                    break
                await asyncio.sleep(self.error_delay)

    async def _process_page(self, vulnerabilities: list[Any], concurrency: int) -> None:
        for offset in range(0, len(vulnerabilities), concurrency):
            if self._stop_requested:
                break
            chunk = vulnerabilities[offset : offset + concurrency]
            await asyncio.gather(
                *(self._process_record(vulnerability) for vulnerability in chunk),
                return_exceptions=True,
            )

    # -- Per-record processing ------------------------------------------------

    async def _process_record(self, vulnerability: Any) -> None:
        cve_id = extract_cve_id(vulnerability)
        if cve_id is None:
            return

        try:
            if self.record_timeout is None:
                await self._process_single_cve(cve_id, vulnerability)
            else:
                await asyncio.wait_for(
                    self._process_single_cve(cve_id, vulnerability),
                    timeout=self.record_timeout,
                )
        except asyncio.TimeoutError:
            logger.error(
                "Timed out processing %s after %.0fs",
                cve_id,
                self.record_timeout,
                extra={"action": "cve_timeout", "target": cve_id},
            )
            self._progress.errors.append(
                f"CVE {cve_id}: timed out after {self.record_timeout}s"
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Error processing %s: %s",
                cve_id,
                exc,
                extra={"action": "cve_error", "target": cve_id},
            )
            self._progress.errors.append(f"CVE {cve_id}: {exc}")

    async def _process_single_cve(self, cve_id: str, vulnerability: Any) -> None:
        progress = self._progress

        canonical = normalize(vulnerability)
        stored = await self.gateway.upsert_cve(canonical)
        progress.processed_cves += 1

        references = extract_exploit_refs(vulnerability)
        if references:
            progress.cves_with_exploits += 1
            primary_edb_id: Optional[str] = stored.edb_id

            for reference in references:
                # One record per run owns each ExploitDB id; claimed before any await.
                if reference.edb_id in self._claimed_edb_ids:
                    continue
                self._claimed_edb_ids.add(reference.edb_id)
                try:
                    if await self.gateway.exploit_exists(reference.edb_id):
                        continue

                    resolved = await self.exploit_fetcher.resolve(reference.edb_id, cve_id)
                    detail = resolved.data
                    inserted = await self.gateway.insert_exploit(
                        ExploitRecord(
                            cve_id=cve_id,
                            exploit_id=reference.edb_id,
                            title=detail.title,
                            description=detail.description,
                            exploit_type=detail.exploit_type,
                            platform=detail.platform,
                            verified=True,
                            date_published=detail.date_published,
                            author=detail.author,
                            source_url=reference.url,
                            exploit_code=None,
                            source="ExploitDB",
                            details_source=resolved.source,
                        )
                    )
                    if inserted is None:
                        continue
                    progress.total_exploits += 1

                    if not primary_edb_id:
                        await self.gateway.set_primary_exploit_id(cve_id, reference.edb_id)
                        primary_edb_id = reference.edb_id
                except Exception as exc:  # noqa: BLE001
                    self._claimed_edb_ids.discard(reference.edb_id)
                    logger.warning(
                        "Failed to process exploit %s for %s: %s",
                        reference.edb_id,
                        cve_id,
                        exc,
                        extra={"action": "exploit_error", "target": cve_id},
                    )
                    progress.errors.append(f"Exploit {reference.edb_id}: {exc}")

            logger.info(
                "%s: found %d ExploitDB references",
                cve_id,
                len(references),
                extra={"action": "exploit_refs_found", "target": cve_id},
            )

        if progress.processed_cves % PROGRESS_LOG_EVERY == 0:
            logger.info(
                "Progress: %d CVEs processed, %d with exploits",
                progress.processed_cves,
                progress.cves_with_exploits,
                extra={"action": "ingest_progress", "target": "nvd"},
            )
