"""Tests for the catalog API client."""

import httpx
import pytest

from listenlens.core.exceptions import NetworkError, RateLimitedError, UnauthorizedError
from listenlens.domain.catalog.api import CatalogClient

BASE_URL = "https://api.test/v1"


def make_client(handler, market=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CatalogClient(BASE_URL, client=http_client, market=market)


def recorder(payload, status_code=200, headers=None):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status_code, json=payload, headers=headers)

    return handler, requests


class TestRequests:
    @pytest.mark.anyio
    async def test_top_tracks_query(self):
        handler, requests = recorder({"items": [], "total": 0})
        client = make_client(handler)

        await client.get_top_tracks("tok", limit=50, offset=100, time_range="short_term")

        request = requests[0]
        assert request.url.path == "/v1/me/top/tracks"
        assert request.url.params["limit"] == "50"
        assert request.url.params["offset"] == "100"
        assert request.url.params["time_range"] == "short_term"
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.anyio
    async def test_market_is_sent_only_when_configured(self):
        handler, requests = recorder({"items": [], "total": 0})

        await make_client(handler).get_saved_tracks("tok")
        await make_client(handler, market="SE").get_saved_albums("tok")

        assert "market" not in requests[0].url.params
        assert requests[1].url.params["market"] == "SE"

    @pytest.mark.anyio
    async def test_get_artists_joins_ids_and_drops_nulls(self):
        handler, requests = recorder({"artists": [{"id": "a"}, None]})
        client = make_client(handler)

        artists = await client.get_artists("tok", ["a", "missing"])

        assert artists == [{"id": "a"}]
        assert requests[0].url.params["ids"] == "a,missing"

    @pytest.mark.anyio
    async def test_get_artists_rejects_oversized_lookup(self):
        handler, requests = recorder({"artists": []})
        client = make_client(handler)

        with pytest.raises(ValueError):
            await client.get_artists("tok", [str(i) for i in range(51)])
        assert requests == []

    @pytest.mark.anyio
    async def test_followed_artists_unwrapped(self):
        handler, requests = recorder({"artists": {"items": [], "total": 7}})
        client = make_client(handler)

        followed = await client.get_followed_artists("tok", limit=1)

        assert followed == {"items": [], "total": 7}
        assert requests[0].url.params["type"] == "artist"
        assert "after" not in requests[0].url.params


class TestErrorMapping:
    @pytest.mark.anyio
    async def test_401_is_unauthorized(self):
        handler, _ = recorder({"error": "expired"}, status_code=401)

        with pytest.raises(UnauthorizedError):
            await make_client(handler).get_me("tok")

    @pytest.mark.anyio
    async def test_429_is_rate_limited(self):
        handler, _ = recorder({}, status_code=429, headers={"Retry-After": "3"})

        with pytest.raises(RateLimitedError) as exc_info:
            await make_client(handler).get_me("tok")

        assert exc_info.value.retry_after == 3.0
        assert exc_info.value.status_code == 429

    @pytest.mark.anyio
    async def test_server_error_is_network_error(self):
        handler, _ = recorder({}, status_code=503)

        with pytest.raises(NetworkError) as exc_info:
            await make_client(handler).get_me("tok")

        assert exc_info.value.status_code == 503

    @pytest.mark.anyio
    async def test_transport_error_is_network_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError):
            await make_client(handler).get_me("tok")

    @pytest.mark.anyio
    async def test_invalid_json_is_network_error(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(NetworkError):
            await make_client(handler).get_me("tok")
