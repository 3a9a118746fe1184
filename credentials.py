"""
Credential handling for the Huntress MCP Server.

Huntress authenticates API calls with an API key / API secret pair sent as
HTTP Basic auth. Credentials come from one of two channels:

1. Environment variables (stdio and HTTP mode):
     export HUNTRESS_API_KEY="your-api-key"
     export HUNTRESS_API_SECRET="your-api-secret"

2. Query parameters (HTTP mode only), overriding the environment per request:
     /mcp?apiKey=...&apiSecret=...
   The configuration-style names huntressApiKey / huntressApiSecret are
   accepted as well.

Credentials are never persisted and never logged in clear text.
"""

import base64
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

API_KEY_ENV = "HUNTRESS_API_KEY"
API_SECRET_ENV = "HUNTRESS_API_SECRET"

# Query parameter names, in order of preference
API_KEY_PARAMS = ("apiKey", "huntressApiKey")
API_SECRET_PARAMS = ("apiSecret", "huntressApiSecret")


@dataclass(frozen=True)
class Credentials:
    """
    A Huntress API key / secret pair.

    Attributes:
        api_key: Public half of the pair
        api_secret: Secret half of the pair
    """
    api_key: str
    api_secret: str

    def __post_init__(self):
        if not isinstance(self.api_key, str) or not self.api_key.strip():
            raise ValueError("api_key must be a non-empty string")
        if not isinstance(self.api_secret, str) or not self.api_secret.strip():
            raise ValueError("api_secret must be a non-empty string")

    def basic_auth_header(self) -> str:
        """Value for the Authorization header: Basic base64(key:secret)."""
        token = base64.b64encode(f"{self.api_key}:{self.api_secret}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    @property
    def masked_key(self) -> str:
        if len(self.api_key) <= 4:
            return "***"
        return f"{self.api_key[:4]}***"

    def __str__(self) -> str:
        """String representation with sensitive data masked."""
        return f"Credentials(api_key={self.masked_key}, api_secret=***)"

    def __repr__(self) -> str:
        return self.__str__()


def _build(api_key: Optional[str], api_secret: Optional[str], source: str) -> Optional[Credentials]:
    api_key = (api_key or "").strip()
    api_secret = (api_secret or "").strip()

    if not api_key and not api_secret:
        return None

    if not api_key or not api_secret:
        missing = "API key" if not api_key else "API secret"
        logging.warning(f"Incomplete Huntress credentials from {source}: {missing} is missing")
        return None

    return Credentials(api_key=api_key, api_secret=api_secret)


def credentials_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[Credentials]:
    """
    Read credentials from HUNTRESS_API_KEY / HUNTRESS_API_SECRET.

    Returns None when either variable is missing or empty.
    """
    env = os.environ if environ is None else environ
    return _build(env.get(API_KEY_ENV), env.get(API_SECRET_ENV), "environment")


def credentials_from_query(query_params: Optional[Mapping[str, str]]) -> Optional[Credentials]:
    """
    Read credentials from HTTP query parameters.

    Args:
        query_params: Any mapping of query parameter names to values
            (e.g. starlette's QueryParams)

    Returns:
        Credentials, or None if the request does not carry a complete pair
    """
    if not query_params:
        return None

    api_key = next((query_params.get(name) for name in API_KEY_PARAMS if query_params.get(name)), None)
    api_secret = next((query_params.get(name) for name in API_SECRET_PARAMS if query_params.get(name)), None)
    return _build(api_key, api_secret, "query parameters")


def resolve_credentials(
    query_params: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[Credentials]:
    """Query parameters take precedence over the environment."""
    return credentials_from_query(query_params) or credentials_from_env(environ)
