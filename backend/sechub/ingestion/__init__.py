"""SecHub ingestion pipeline - NVD CVE and ExploitDB cross-reference loader."""

from sechub.ingestion.base import (
    BaseExploitLookup,
    CanonicalCVE,
    ExploitCandidate,
    ExploitDetail,
    ExploitRecord,
    ExploitReference,
    IngestionOptions,
    IngestionProgress,
    IngestionStatus,
    ResolvedExploit,
)
from sechub.ingestion.errors import (
    IngestionAlreadyRunningError,
    IngestionError,
    IngestionNotRunningError,
    NVDFetchError,
)
from sechub.ingestion.exploitdb import ExploitDBLookup
from sechub.ingestion.exploits import ExploitDetailFetcher
from sechub.ingestion.gateway import PersistenceGateway
from sechub.ingestion.normalizer import extract_exploit_refs, normalize
from sechub.ingestion.nvd_client import NVDClient, NVDPage
from sechub.ingestion.pipeline import IngestionPipeline

__all__ = [
    "BaseExploitLookup",
    "CanonicalCVE",
    "ExploitCandidate",
    "ExploitDetail",
    "ExploitRecord",
    "ExploitReference",
    "IngestionOptions",
    "IngestionProgress",
    "IngestionStatus",
    "ResolvedExploit",
    "IngestionError",
    "IngestionAlreadyRunningError",
    "IngestionNotRunningError",
    "NVDFetchError",
    "ExploitDBLookup",
    "ExploitDetailFetcher",
    "PersistenceGateway",
    "extract_exploit_refs",
    "normalize",
    "NVDClient",
    "NVDPage",
    "IngestionPipeline",
]
