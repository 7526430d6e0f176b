"""Exception types raised by the ingestion pipeline and its collaborators."""

from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for ingestion errors."""


class NVDFetchError(IngestionError):
    """An NVD page could not be fetched.

    Attributes:
        status_code: HTTP status returned by NVD, or ``None`` for transport
            failures (timeouts, connection errors).
        retryable: ``True`` for rate-limit and transient statuses.  The
            client never retries; the flag is advisory for the caller.
    """

    RETRYABLE_STATUSES: frozenset[int] = frozenset({403, 429, 502, 503, 504})

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = status_code is None or status_code in self.RETRYABLE_STATUSES


class IngestionAlreadyRunningError(IngestionError):
    """``start`` was called while a run is in progress."""


class IngestionNotRunningError(IngestionError):
    """``stop`` was called while no run is in progress."""
