"""
HTTP fetch layer for source documents.

Provides:
- HTTPClientError: raised for transport failures and non-2xx responses
- HTTPClient: async client that returns a document body as text

Retrying is not done here: the fetch worker owns the attempt budget and
retries fetch and parse together.
"""

import logging
from types import TracebackType

import httpx

logger = logging.getLogger(__name__)

# httpx decodes br transparently when the brotli package is installed.
DEFAULT_ACCEPT_ENCODING = "gzip, deflate, br"


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class HTTPClient:
    """
    Async HTTP client for fetching source documents.

    Features:
    - gzip/brotli response negotiation
    - Per-request headers from the target configuration
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient() as client:
            body = await client.fetch_body(
                "https://comic-rss.com/feed.rss",
                headers={"Referer": "https://comic-rss.com"},
            )
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Request timeout in seconds.
            user_agent: Default User-Agent header (target headers override it).
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        default_headers = {"Accept-Encoding": DEFAULT_ACCEPT_ENCODING}
        if self.user_agent:
            default_headers["User-Agent"] = self.user_agent
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=default_headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_body(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> str:
        """
        Perform a GET request and return the decoded body.

        Args:
            url: Document URL
            headers: Extra request headers

        Returns:
            Response body as text

        Raises:
            HTTPClientError: On transport errors or non-2xx status codes
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        try:
            response = await self._client.get(url, headers=headers or None)
        except httpx.HTTPError as e:
            raise HTTPClientError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise HTTPClientError(
                f"Request to {url} failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        logger.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response.text
