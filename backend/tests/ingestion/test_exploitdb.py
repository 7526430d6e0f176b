"""
Tests for the ExploitDB index lookup.

Covers CSV parsing, the title keyword classifiers, lookups by ExploitDB id
and by CVE, index caching, and propagation of download failures.
"""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from sechub.ingestion.exploitdb import (
    ExploitDBLookup,
    classify_exploit_type,
    classify_platform,
    parse_index,
)

SAMPLE_INDEX = (
    "id,file,description,date_published,author,type,platform,port,"
    "date_added,date_updated,verified,codes,tags,aliases,screenshot_url,"
    "application_url,source_url\n"
    "50383,exploits/multiple/webapps/50383.sh,"
    "Apache HTTP Server 2.4.49 - Path Traversal & Remote Code Execution (RCE),"
    "2021-10-06,Lucas Souza,webapps,multiple,,2021-10-06,2021-10-06,1,"
    "CVE-2021-41773,,,,,\n"
    "50406,exploits/multiple/webapps/50406.sh,"
    "Apache HTTP Server 2.4.50 - Remote Code Execution (RCE) (2),"
    "2021-10-11,Valentin Lobstein,webapps,multiple,,2021-10-11,2021-10-11,0,"
    "CVE-2021-42013;CVE-2021-41773;OSVDB-1,,,,,\n"
    "51000,exploits/linux/local/51000.c,"
    "Linux Kernel 5.8 - Local Privilege Escalation,"
    "2022-03-01,someone,,,,2022-03-01,2022-03-01,1,cve-2022-0847,,,,,\n"
    ",exploits/broken.txt,row without id,2020-01-01,nobody,dos,windows,,,,0,,,,,,\n"
)


def test_parse_index_reads_rows() -> None:
    index = parse_index(SAMPLE_INDEX)

    assert set(index) == {"50383", "50406", "51000"}
    entry = index["50383"]
    assert entry.title.startswith("Apache HTTP Server 2.4.49")
    assert entry.author == "Lucas Souza"
    assert entry.exploit_type == "webapps"
    assert entry.platform == "multiple"
    assert entry.date_published == "2021-10-06"
    assert entry.verified is True
    assert entry.source_url == "https://www.exploit-db.com/exploits/50383"
    assert entry.description.endswith("(exploits/multiple/webapps/50383.sh)")
    assert index["50406"].verified is False


def test_blank_type_and_platform_fall_back_to_classifiers() -> None:
    entry = parse_index(SAMPLE_INDEX)["51000"]

    assert entry.exploit_type == "Local Privilege Escalation"
    assert entry.platform == "Linux"


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Foo 1.0 - Remote Code Execution", "Remote Code Execution"),
        ("Bar - Local Privilege Escalation", "Local Privilege Escalation"),
        ("Shop 2.1 - SQL Injection", "SQL Injection"),
        ("Blog - Stored XSS", "Cross-Site Scripting"),
        ("Router - CSRF Add Admin", "Cross-Site Request Forgery"),
        ("Server - Stack Buffer Overflow", "Buffer Overflow"),
        ("Daemon - Denial of Service", "Denial of Service"),
        ("Something else entirely", "Other"),
    ],
)
def test_classify_exploit_type(title: str, expected: str) -> None:
    assert classify_exploit_type(title) == expected


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Microsoft Windows 10 - Something", "Windows"),
        ("Linux Kernel - Something", "Linux"),
        ("Apple macOS 12 - Something", "macOS"),
        ("Android Messages - Something", "Android"),
        ("WordPress Plugin (PHP) - Something", "Web"),
        ("Generic Appliance", "Multiple"),
    ],
)
def test_classify_platform(title: str, expected: str) -> None:
    assert classify_platform(title) == expected


@pytest.mark.asyncio
async def test_lookup_by_edb_id() -> None:
    lookup = ExploitDBLookup(index_url="https://index.test/files.csv", ttl_seconds=60)

    with patch.object(lookup, "_download", AsyncMock(return_value=SAMPLE_INDEX)):
        found = await lookup.lookup("CVE-2021-41773", "50406")
        missing = await lookup.lookup("CVE-2021-41773", "99999")

    assert [c.edb_id for c in found] == ["50406"]
    assert missing == []


@pytest.mark.asyncio
async def test_lookup_by_cve_returns_every_exploit() -> None:
    lookup = ExploitDBLookup(index_url="https://index.test/files.csv", ttl_seconds=60)

    with patch.object(lookup, "_download", AsyncMock(return_value=SAMPLE_INDEX)):
        by_cve = await lookup.lookup("CVE-2021-41773")
        lowercase_code = await lookup.lookup("CVE-2022-0847")

    assert sorted(c.edb_id for c in by_cve) == ["50383", "50406"]
    assert [c.edb_id for c in lowercase_code] == ["51000"]


@pytest.mark.asyncio
async def test_index_downloaded_once_for_concurrent_lookups() -> None:
    lookup = ExploitDBLookup(index_url="https://index.test/files.csv", ttl_seconds=60)
    download = AsyncMock(return_value=SAMPLE_INDEX)

    with patch.object(lookup, "_download", download):
        await asyncio.gather(
            lookup.lookup("CVE-2021-41773"),
            lookup.lookup("CVE-2021-42013"),
            lookup.lookup("CVE-2022-0847"),
        )
        await lookup.lookup("CVE-2021-41773", "50383")

    assert download.await_count == 1


@pytest.mark.asyncio
async def test_expired_index_is_reloaded() -> None:
    lookup = ExploitDBLookup(index_url="https://index.test/files.csv", ttl_seconds=60)
    download = AsyncMock(return_value=SAMPLE_INDEX)

    with patch.object(lookup, "_download", download):
        await lookup.lookup("CVE-2021-41773")
        lookup._loaded_at = time.monotonic() - 120
        await lookup.lookup("CVE-2021-41773")

    assert download.await_count == 2


@pytest.mark.asyncio
async def test_download_failure_propagates() -> None:
    lookup = ExploitDBLookup(index_url="https://index.test/files.csv")
    failing = AsyncMock(side_effect=httpx.ConnectError("unreachable"))

    with patch.object(lookup, "_download", failing):
        with pytest.raises(httpx.ConnectError):
            await lookup.lookup("CVE-2021-41773")
