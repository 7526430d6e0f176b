"""
Shared pytest fixtures for the SecHub ingestion test suite.

Provides a file-backed SQLite database (via aiosqlite), the SQL persistence
gateway bound to it, in-memory fakes for the NVD client, the ExploitDB lookup
and the gateway, and a pipeline wired to those fakes with zero pacing delays.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Iterable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sechub.core.database import Base, build_engine, build_session_factory, init_models
from sechub.ingestion.base import (
    BaseExploitLookup,
    CanonicalCVE,
    ExploitCandidate,
    ExploitRecord,
)
from sechub.ingestion.errors import NVDFetchError
from sechub.ingestion.exploits import ExploitDetailFetcher
from sechub.ingestion.gateway import PersistenceGateway
from sechub.ingestion.nvd_client import NVDPage
from sechub.ingestion.pipeline import IngestionPipeline


# ---------------------------------------------------------------------------
# NVD record factory
# ---------------------------------------------------------------------------

def make_nvd_record(
    cve_id: Optional[str] = "CVE-2024-0001",
    description: str = "Path traversal in Apache HTTP Server 2.4.49.",
    score: Optional[float] = 9.8,
    severity: str = "CRITICAL",
    metric_key: str = "cvssMetricV31",
    criteria: Optional[str] = "cpe:2.3:a:apache:http_server:2.4.49:*:*:*:*:*:*:*",
    reference_urls: Iterable[str] = (),
) -> dict[str, Any]:
    """Build a raw NVD v2 vulnerability record shaped ``{"cve": {...}}``."""
    cve: dict[str, Any] = {
        "descriptions": [
            {"lang": "es", "value": "Descripcion en espanol."},
            {"lang": "en", "value": description},
        ],
        "published": "2024-01-15T10:15:00.000",
        "lastModified": "2024-02-01T08:00:00.000",
        "references": [{"url": url, "source": "nvd"} for url in reference_urls],
    }
    if cve_id is not None:
        cve["id"] = cve_id
    if score is not None:
        if metric_key == "cvssMetricV2":
            cve["metrics"] = {
                metric_key: [{"cvssData": {"baseScore": score}, "baseSeverity": severity}]
            }
        else:
            cve["metrics"] = {
                metric_key: [{"cvssData": {"baseScore": score, "baseSeverity": severity}}]
            }
    if criteria is not None:
        cve["configurations"] = [
            {"nodes": [{"cpeMatch": [{"vulnerable": True, "criteria": criteria}]}]}
        ]
    return {"cve": cve}


def exploit_db_url(edb_id: str) -> str:
    return f"https://www.exploit-db.com/exploits/{edb_id}"


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

class FakeNVDClient:
    """Serves slices of a fixed record list and records every call.

    Args:
        records:     The full result set.
        fail_calls:  Zero-based call numbers that raise ``NVDFetchError``.
        always_fail: Raise on every call.
    """

    def __init__(
        self,
        records: Optional[list[dict[str, Any]]] = None,
        fail_calls: Iterable[int] = (),
        always_fail: bool = False,
    ) -> None:
        self.records = list(records or [])
        self.fail_calls = set(fail_calls)
        self.always_fail = always_fail
        self.calls: list[tuple[int, int]] = []

    async def fetch_page(self, results_per_page: int, start_index: int) -> NVDPage:
        call_number = len(self.calls)
        self.calls.append((results_per_page, start_index))
        if self.always_fail or call_number in self.fail_calls:
            raise NVDFetchError("NVD API error: 503 Service Unavailable", status_code=503)
        return NVDPage(
            vulnerabilities=self.records[start_index : start_index + results_per_page],
            total_results=len(self.records),
            start_index=start_index,
        )


class FakeLookup(BaseExploitLookup):
    """Exploit lookup answering from a dict keyed by ExploitDB id.

    Tracks how many lookups overlap; *delay* makes concurrent calls overlap.
    """

    name = "fake"

    def __init__(
        self,
        candidates: Optional[dict[str, ExploitCandidate]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.candidates = candidates or {}
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, Optional[str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def lookup(
        self, cve_id: str, edb_id: Optional[str] = None
    ) -> list[ExploitCandidate]:
        self.calls.append((cve_id, edb_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.error is not None:
            raise self.error
        candidate = self.candidates.get(edb_id or "")
        return [candidate] if candidate is not None else []


class FakeGateway:
    """In-memory persistence gateway that also measures concurrency.

    Args:
        delay:        Seconds ``upsert_cve`` sleeps, so concurrent calls overlap.
        fail_cves:    CVE ids whose upsert raises ``RuntimeError("boom")``.
        fail_inserts: ExploitDB ids whose insert raises ``RuntimeError``.
    """

    def __init__(
        self,
        delay: float = 0.0,
        fail_cves: Iterable[str] = (),
        fail_inserts: Iterable[str] = (),
    ) -> None:
        self.delay = delay
        self.fail_cves = set(fail_cves)
        self.fail_inserts = set(fail_inserts)
        self.cves: dict[str, SimpleNamespace] = {}
        self.exploits: dict[str, ExploitRecord] = {}
        self.upsert_calls: list[str] = []
        self.primary_calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upsert_cve(self, canonical: CanonicalCVE) -> SimpleNamespace:
        self.upsert_calls.append(canonical.cve_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if canonical.cve_id in self.fail_cves:
                raise RuntimeError("boom")
        finally:
            self.in_flight -= 1

        entry = self.cves.get(canonical.cve_id)
        if entry is None:
            entry = SimpleNamespace(cve_id=canonical.cve_id, edb_id=None)
            self.cves[canonical.cve_id] = entry
        entry.canonical = canonical
        return entry

    async def get_cve(self, cve_id: str) -> Optional[SimpleNamespace]:
        return self.cves.get(cve_id)

    async def exploit_exists(self, edb_id: str) -> bool:
        return edb_id in self.exploits

    async def insert_exploit(self, record: ExploitRecord) -> ExploitRecord:
        if record.exploit_id in self.fail_inserts:
            raise RuntimeError(f"insert rejected for {record.exploit_id}")
        self.exploits[record.exploit_id] = record
        return record

    async def set_primary_exploit_id(self, cve_id: str, edb_id: str) -> bool:
        self.primary_calls.append((cve_id, edb_id))
        entry = self.cves.get(cve_id)
        if entry is None or entry.edb_id is not None:
            return False
        entry.edb_id = edb_id
        return True

    async def list_exploits_for_cve(self, cve_id: str) -> list[ExploitRecord]:
        return [record for record in self.exploits.values() if record.cve_id == cve_id]


def build_pipeline(
    nvd_client: Any,
    gateway: Any,
    lookup: Optional[BaseExploitLookup] = None,
    **kwargs: Any,
) -> IngestionPipeline:
    """Return a pipeline with zero pacing delays wired to the given fakes."""
    options: dict[str, Any] = {
        "page_delay": 0.0,
        "error_delay": 0.0,
        "record_timeout": 5.0,
        "stop_poll_interval": 0.01,
    }
    options.update(kwargs)
    return IngestionPipeline(
        nvd_client=nvd_client,
        exploit_fetcher=ExploitDetailFetcher(lookup or FakeLookup()),
        gateway=gateway,
        **options,
    )


# ---------------------------------------------------------------------------
# Database engine and gateway fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed SQLite engine and provision all tables.

    A file is used instead of ``:memory:`` so every pooled connection sees
    the same database.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'sechub-test.db'}")
    await init_models(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest.fixture()
def gateway(session_factory: async_sessionmaker[AsyncSession]) -> PersistenceGateway:
    """A SQL persistence gateway bound to the test database."""
    return PersistenceGateway(session_factory)


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()


# ---------------------------------------------------------------------------
# FastAPI application with a fake-backed pipeline
# ---------------------------------------------------------------------------

@pytest.fixture()
def api_gateway() -> FakeGateway:
    return FakeGateway(delay=0.01)


@pytest.fixture()
def api_pipeline(api_gateway: FakeGateway) -> IngestionPipeline:
    """Pipeline served by the test app: five records, one with an exploit."""
    records = [
        make_nvd_record(f"CVE-2024-000{n}") for n in range(1, 5)
    ] + [make_nvd_record("CVE-2024-0005", reference_urls=[exploit_db_url("50383")])]
    return build_pipeline(FakeNVDClient(records), api_gateway)


@pytest_asyncio.fixture()
async def test_app(api_pipeline: IngestionPipeline):
    """Return the FastAPI application with the fake pipeline on ``app.state``.

    Startup hooks are not run, so no database connection is made.
    """
    from sechub.main import create_app

    app = create_app()
    app.state.pipeline = api_pipeline

    yield app

    if api_pipeline.is_running:
        await api_pipeline.stop()


@pytest_asyncio.fixture()
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx.AsyncClient wired to the test FastAPI app."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
