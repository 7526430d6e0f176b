"""SecHub CVE and exploit ingestion service."""

__version__ = "1.0.0"
