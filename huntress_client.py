"""
Huntress REST API client.

A thin async wrapper around httpx: every call is a GET against the fixed
Huntress v1 base URL, authenticated with HTTP Basic auth, throttled by the
shared RateGate. Responses are returned as decoded JSON without any
transformation. Failures are raised as UpstreamError.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from credentials import Credentials
from errors import UpstreamError
from rate_limiter import RateGate

BASE_URL = "https://api.huntress.io/v1"


def _upstream_message(response: httpx.Response) -> Optional[str]:
    """Extract the 'message' field of an upstream error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
    return None


class HuntressClient:
    """Authenticated GET-only client for the Huntress API."""

    def __init__(
        self,
        credentials: Credentials,
        rate_gate: Optional[RateGate] = None,
        base_url: str = BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            credentials: API key / secret pair used for Basic auth
            rate_gate: Gate admitted before every request (shared across clients)
            base_url: API root; every endpoint path is appended to it
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.credentials = credentials
        self.rate_gate = rate_gate
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": credentials.basic_auth_header(),
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def get(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Issue GET <base_url><endpoint> and return the decoded JSON body.

        Args:
            endpoint: Path beginning with '/', e.g. '/agents/42'
            params: Query parameters; entries whose value is None are dropped

        Raises:
            UpstreamError: Non-2xx status, network failure or non-JSON body
        """
        query = {k: v for k, v in (params or {}).items() if v is not None}

        if self.rate_gate is not None:
            await self.rate_gate.admit()

        logging.debug(f"GET {endpoint} params={query}")
        try:
            response = await self._http.get(endpoint, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _upstream_message(e.response) or str(e)
            logging.info(f"Huntress API returned {e.response.status_code} for {endpoint}: {message}")
            raise UpstreamError(message, status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logging.info(f"Huntress API request to {endpoint} failed: {e!r}")
            raise UpstreamError(str(e) or type(e).__name__) from e

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"invalid JSON in response from {endpoint}", status_code=response.status_code) from e

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "HuntressClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
