"""Ingestion layer - HTTP fetching of source documents."""

from chapterbell.ingestion.http_client import HTTPClient, HTTPClientError

__all__ = ["HTTPClient", "HTTPClientError"]
