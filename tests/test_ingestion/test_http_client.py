"""Tests for the source document HTTP client."""

import httpx
import pytest
import respx

from chapterbell.ingestion.http_client import HTTPClient, HTTPClientError

URL = "https://comic-json.com/test.json"


class TestHTTPClient:
    """Tests for HTTPClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_body_text(self):
        respx.get(URL).mock(return_value=httpx.Response(200, text='{"comic": {}}'))

        async with HTTPClient() as client:
            body = await client.fetch_body(URL)

        assert body == '{"comic": {}}'

    @pytest.mark.asyncio
    @respx.mock
    async def test_default_and_extra_headers(self):
        route = respx.get(URL).mock(return_value=httpx.Response(200, text=""))

        async with HTTPClient(user_agent="chapterbell-test") as client:
            await client.fetch_body(URL, headers={"Referer": "https://comic-json.com"})

        request = route.calls.last.request
        assert request.headers["User-Agent"] == "chapterbell-test"
        assert request.headers["Referer"] == "https://comic-json.com"
        assert "br" in request.headers["Accept-Encoding"]
        assert "gzip" in request.headers["Accept-Encoding"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises(self):
        respx.get(URL).mock(return_value=httpx.Response(404, text="not here"))

        async with HTTPClient() as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.fetch_body(URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.response_body == "not here"

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_wrapped(self):
        respx.get(URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        async with HTTPClient() as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.fetch_body(URL)

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = HTTPClient()

        with pytest.raises(RuntimeError):
            await client.fetch_body(URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_follows_redirects(self):
        respx.get(URL).mock(
            return_value=httpx.Response(301, headers={"Location": "https://cdn.comic-json.com/test.json"})
        )
        respx.get("https://cdn.comic-json.com/test.json").mock(
            return_value=httpx.Response(200, text="moved")
        )

        async with HTTPClient() as client:
            assert await client.fetch_body(URL) == "moved"
