"""
Normalization of raw NVD records.

Pure functions that turn one NVD vulnerability record into a
:class:`~sechub.ingestion.base.CanonicalCVE` and pull ExploitDB references
out of its reference URLs.  Nothing here raises on malformed input: absent
or wrongly typed fields degrade to ``None`` or a sentinel value.

Two heuristics are kept on purpose because downstream consumers depend on
their output:

* the title is synthesised as ``"<id> - <first 100 chars of description>..."``
  rather than fetched from NVD;
* the vendor is the fourth colon-separated segment of the first CPE match
  criteria string, which is wrong for malformed or unusual CPE strings.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from sechub.ingestion.base import CanonicalCVE, ExploitReference

NO_DESCRIPTION: str = "No description available"
UNKNOWN_SEVERITY: str = "UNKNOWN"
TITLE_DESCRIPTION_CHARS: int = 100

# Probed in this order; the first metric block present wins.
_METRIC_KEYS: tuple[str, ...] = ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2")

_EXPLOIT_DB_RE = re.compile(r"exploit-db\.com/exploits/(\d+)", re.IGNORECASE)


def _cve_body(raw: Any) -> dict[str, Any]:
    """Accept either the NVD wrapper ``{"cve": {...}}`` or the inner object."""
    if not isinstance(raw, dict):
        return {}
    inner = raw.get("cve")
    if isinstance(inner, dict):
        return inner
    return raw


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _first_metric(cve: dict[str, Any]) -> Optional[dict[str, Any]]:
    metrics = cve.get("metrics")
    if not isinstance(metrics, dict):
        return None
    for key in _METRIC_KEYS:
        entries = _as_list(metrics.get(key))
        if entries and isinstance(entries[0], dict):
            return entries[0]
    return None


def extract_cve_id(raw: Any) -> Optional[str]:
    """Return the record's CVE identifier, or ``None`` if it has none."""
    cve_id = _cve_body(raw).get("id")
    if isinstance(cve_id, str) and cve_id.strip():
        return cve_id.strip()
    return None


def extract_description(raw: Any) -> str:
    """Return the first English description, or the fixed sentinel."""
    for entry in _as_list(_cve_body(raw).get("descriptions")):
        if isinstance(entry, dict) and entry.get("lang") == "en":
            value = entry.get("value")
            if isinstance(value, str) and value:
                return value
    return NO_DESCRIPTION


def extract_title(raw: Any) -> str:
    """Synthesise the convenience title from the id and description."""
    cve_id = extract_cve_id(raw) or ""
    description = extract_description(raw)
    return f"{cve_id} - {description[:TITLE_DESCRIPTION_CHARS]}..."


def extract_cvss_score(raw: Any) -> Optional[str]:
    """Return the base score of the preferred metric block as a string."""
    metric = _first_metric(_cve_body(raw))
    if metric is None:
        return None
    cvss_data = metric.get("cvssData")
    if not isinstance(cvss_data, dict):
        return None
    score = cvss_data.get("baseScore")
    if score is None or isinstance(score, bool):
        return None
    return str(score)


def extract_severity(raw: Any) -> str:
    """Return the severity of the preferred metric block.

    CVSS v3 blocks carry ``baseSeverity`` inside ``cvssData``; v2 blocks
    carry it on the metric entry itself.
    """
    metric = _first_metric(_cve_body(raw))
    if metric is None:
        return UNKNOWN_SEVERITY
    cvss_data = metric.get("cvssData")
    severity = cvss_data.get("baseSeverity") if isinstance(cvss_data, dict) else None
    if not severity:
        severity = metric.get("baseSeverity")
    if isinstance(severity, str) and severity:
        return severity.upper()
    return UNKNOWN_SEVERITY


def extract_vendor(raw: Any) -> Optional[str]:
    """Return the vendor segment of the first CPE match criteria.

    ``cpe:2.3:a:apache:httpd:...`` yields ``"apache"``.  NVD v2 wraps nodes
    in a list of configurations; the flat ``{"nodes": [...]}`` form is read
    as well.
    """
    configurations = _cve_body(raw).get("configurations")
    if isinstance(configurations, dict):
        configurations = [configurations]

    for configuration in _as_list(configurations):
        if not isinstance(configuration, dict):
            continue
        for node in _as_list(configuration.get("nodes")):
            if not isinstance(node, dict):
                continue
            for match in _as_list(node.get("cpeMatch")):
                if not isinstance(match, dict):
                    continue
                criteria = match.get("criteria")
                if isinstance(criteria, str) and criteria:
                    parts = criteria.split(":")
                    if len(parts) > 3:
                        return parts[3]
    return None


def extract_tags(raw: Any) -> list[str]:
    """Return lowercase severity and vendor tags, in that order."""
    tags: list[str] = []
    severity = extract_severity(raw)
    if severity != UNKNOWN_SEVERITY:
        tags.append(severity.lower())
    vendor = extract_vendor(raw)
    if vendor:
        tags.append(vendor.lower())
    return tags


def extract_exploit_refs(raw: Any) -> list[ExploitReference]:
    """Return every ExploitDB reference found in the record's URLs.

    Duplicate ids across reference entries are kept; uniqueness is enforced
    at insert time by the persistence gateway.
    """
    refs: list[ExploitReference] = []
    for reference in _as_list(_cve_body(raw).get("references")):
        if not isinstance(reference, dict):
            continue
        url = reference.get("url")
        if not isinstance(url, str):
            continue
        match = _EXPLOIT_DB_RE.search(url)
        if match:
            refs.append(ExploitReference(edb_id=match.group(1), url=url))
    return refs


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def normalize(raw: Any) -> CanonicalCVE:
    """Convert one raw NVD record into a :class:`CanonicalCVE`.

    A record without an identifier normalizes with an empty ``cve_id``;
    callers are expected to skip such records before persisting.
    """
    cve = _cve_body(raw)
    return CanonicalCVE(
        cve_id=extract_cve_id(raw) or "",
        title=extract_title(raw),
        description=extract_description(raw),
        cvss_score=extract_cvss_score(raw),
        severity=extract_severity(raw),
        vendor=extract_vendor(raw),
        published_date=_optional_str(cve.get("published")),
        updated_date=_optional_str(cve.get("lastModified")),
        tags=extract_tags(raw),
    )
