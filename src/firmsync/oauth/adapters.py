"""
Provider adapters: the per-provider code that talks to a third-party API.

An adapter knows how to pull raw records with a tenant's tokens and how to
exchange a refresh token for a new access token. It holds no tenant state;
the same adapter instance serves every tenant connected to its provider.

RestProviderAdapter covers the common case of a JSON REST API behind a
bearer token with a standard OAuth2 refresh_token grant.
"""
import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from firmsync.clock import utcnow
from firmsync.oauth.errors import TokenRefreshError
from firmsync.oauth.tokens import Tokens

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0


class ProviderAdapter(Protocol):
    name: str

    async def pull_data(self, tokens: Tokens, real_time: bool = False) -> Any: ...

    async def refresh(self, tokens: Tokens) -> Tokens: ...


class RestProviderAdapter:
    """
    Generic JSON REST adapter.

    Usage:
        adapter = RestProviderAdapter(
            "quickbooks",
            base_url="https://api.example.com/v3",
            records_path="/invoices",
            records_key="data",
            token_url="https://oauth.example.com/token",
            client_id="...",
            client_secret="...",
        )
        records = await adapter.pull_data(tokens)
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        records_path: str = "/records",
        records_key: Optional[str] = None,
        token_url: Optional[str] = None,
        client_id: str = "",
        client_secret: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            name: Provider key, e.g. "quickbooks".
            base_url: API root, without trailing slash.
            records_path: Path appended to base_url for the records listing.
            records_key: If the API wraps its list ({"data": [...]}), the key to unwrap.
            token_url: OAuth2 token endpoint used for refresh.
            client_id / client_secret: OAuth2 client credentials for refresh.
            http_client: Shared httpx.AsyncClient. If None, one is opened per call.
        """
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.records_path = records_path
        self.records_key = records_key
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = http_client

    @classmethod
    def from_config(cls, name: str, config: Dict[str, str]) -> "RestProviderAdapter":
        """Build an adapter from one entry of Settings.providers."""
        return cls(
            name,
            base_url=config["base_url"],
            records_path=config.get("records_path", "/records"),
            records_key=config.get("records_key") or None,
            token_url=config.get("token_url") or None,
            client_id=config.get("client_id", ""),
            client_secret=config.get("client_secret", ""),
        )

    async def pull_data(self, tokens: Tokens, real_time: bool = False) -> Any:
        """
        GET the records listing with the tenant's bearer token.

        Returns the decoded payload, unwrapped by records_key when configured.
        Shape validation is left to the caller.

        Raises:
            httpx.HTTPStatusError: on a non-2xx response.
        """
        url = f"{self.base_url}{self.records_path}"
        params = {"realtime": "true"} if real_time else None
        headers = {"Authorization": f"{tokens.token_type} {tokens.access_token}"}

        response = await self._request("GET", url, headers=headers, params=params)
        response.raise_for_status()
        payload = response.json()

        if self.records_key and isinstance(payload, dict):
            payload = payload.get(self.records_key)
        if isinstance(payload, list):
            logger.info("Pulled %d %s records", len(payload), self.name)
        return payload

    async def refresh(self, tokens: Tokens) -> Tokens:
        """
        Exchange the refresh token for a new access token.

        Raises:
            TokenRefreshError: if no refresh token or token_url is available,
                or the provider rejects the grant.
        """
        if not tokens.refresh_token:
            raise TokenRefreshError(f"No refresh token for {self.name}")
        if not self.token_url:
            raise TokenRefreshError(f"No token_url configured for {self.name}")

        response = await self._request(
            "POST",
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": tokens.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        if response.status_code >= 400:
            raise TokenRefreshError(
                f"{self.name} token refresh failed: {response.status_code} {response.text[:200]}"
            )

        body = response.json()
        return Tokens(
            access_token=body["access_token"],
            # Providers may omit the refresh token when it is not rotated
            refresh_token=body.get("refresh_token", tokens.refresh_token),
            expires_in=body.get("expires_in"),
            created_at=utcnow(),
            token_type=body.get("token_type", tokens.token_type),
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http is not None:
            return await self._http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT) as client:
            return await client.request(method, url, **kwargs)
