"""
Tests for the Huntress REST client using httpx.MockTransport.
"""

import httpx
import pytest

from credentials import Credentials
from errors import UpstreamError
from huntress_client import HuntressClient

CREDS = Credentials(api_key="key", api_secret="secret")


class CountingGate:
    def __init__(self):
        self.admitted = 0

    async def admit(self):
        self.admitted += 1


def make_client(handler, gate=None) -> HuntressClient:
    return HuntressClient(CREDS, rate_gate=gate, transport=httpx.MockTransport(handler))


class TestHuntressClientRequests:

    @pytest.mark.asyncio
    async def test_get_builds_url_and_auth_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"account": {"id": 1}})

        async with make_client(handler) as client:
            data = await client.get("/account")

        assert data == {"account": {"id": 1}}
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == "https://api.huntress.io/v1/account"
        assert request.headers["authorization"] == CREDS.basic_auth_header()

    @pytest.mark.asyncio
    async def test_query_params_drop_none(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"agents": []})

        async with make_client(handler) as client:
            await client.get("/agents", {"page": 2, "limit": 50, "platform": None})

        params = dict(seen[0].url.params)
        assert params == {"page": "2", "limit": "50"}

    @pytest.mark.asyncio
    async def test_rate_gate_admitted_per_request(self):
        gate = CountingGate()

        async with make_client(lambda request: httpx.Response(200, json={}), gate) as client:
            await client.get("/account")
            await client.get("/organizations")

        assert gate.admitted == 2


class TestHuntressClientErrors:

    @pytest.mark.asyncio
    async def test_upstream_message_is_used(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Agent not found"})

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get("/agents/9")

        assert str(exc_info.value) == "Huntress API error: Agent not found"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_non_json_error_uses_transport_text(self):
        def handler(request):
            return httpx.Response(500, text="<html>oops</html>")

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get("/account")

        assert exc_info.value.status_code == 500
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get("/account")

        assert "connection refused" in str(exc_info.value)
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_body(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError, match="invalid JSON"):
                await client.get("/account")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
