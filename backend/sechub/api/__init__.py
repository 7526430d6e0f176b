"""HTTP API for the SecHub ingestion service."""
