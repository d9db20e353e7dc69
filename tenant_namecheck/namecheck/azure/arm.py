"""Minimal Azure Resource Manager REST client (tenants, subscriptions, Resource Graph)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from azure.core.exceptions import ClientAuthenticationError

from namecheck.errors import AuthenticationError, QueryExecutionError, QueryTimeoutError

logger = logging.getLogger(__name__)

ARM_BASE_URL = "https://management.azure.com"
ARM_SCOPE = "https://management.azure.com/.default"
RESOURCES_API_VERSION = "2022-12-01"
RESOURCE_GRAPH_API_VERSION = "2021-03-01"

# Upper bound on followed nextLink pages
MAX_PAGES = 50


class ArmClient:
    """Bearer-token ARM client built on httpx.

    The credential is any azure-identity async credential (anything with an
    awaitable get_token(scope)).
    """

    def __init__(
        self,
        credential: Any,
        auth_mode: str = "",
        base_url: str = ARM_BASE_URL,
    ) -> None:
        self._credential = credential
        self._auth_mode = auth_mode
        self._base_url = base_url.rstrip("/")
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._client

    async def get_token(self) -> str:
        """Acquire an ARM access token from the credential."""
        try:
            token = await self._credential.get_token(ARM_SCOPE)
        except ClientAuthenticationError as e:
            raise AuthenticationError(self._auth_mode, f"token acquisition failed: {e.message}") from e
        return token.token

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {await self.get_token()}"}

        try:
            resp = await client.request(method, url, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(client.timeout.read or 0.0) from e
        except httpx.HTTPError as e:
            raise QueryExecutionError(f"ARM request failed: {e}") from e

        if resp.status_code != 200:
            try:
                err_msg = resp.json().get("error", {}).get("message", resp.text)
            except ValueError:
                err_msg = resp.text
            raise QueryExecutionError(f"ARM API error ({resp.status_code}): {err_msg}")

        try:
            data = resp.json()
        except ValueError as e:
            preview = resp.text[:200] if resp.text else "(empty)"
            raise QueryExecutionError(f"ARM API returned non-JSON response: {preview}") from e

        if not isinstance(data, dict):
            raise QueryExecutionError(
                f"Unexpected ARM response type: {type(data).__name__}"
            )
        return data

    async def _list(self, path: str) -> list[dict[str, Any]]:
        """GET a collection, following nextLink pages."""
        items: list[dict[str, Any]] = []
        url: str | None = path
        params: dict[str, str] | None = {"api-version": RESOURCES_API_VERSION}

        for _ in range(MAX_PAGES):
            if url is None:
                break
            data = await self._request("GET", url, params=params)
            items.extend(v for v in data.get("value", []) if isinstance(v, dict))
            url = data.get("nextLink")
            # nextLink already carries the api-version
            params = None
        return items

    async def list_tenants(self) -> list[dict[str, Any]]:
        return await self._list("/tenants")

    async def list_subscriptions(self) -> list[dict[str, Any]]:
        return await self._list("/subscriptions")

    async def query_resources(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST a Resource Graph query and return the raw response body."""
        logger.debug("Resource Graph request: %s", body.get("query"))
        return await self._request(
            "POST",
            "/providers/Microsoft.ResourceGraph/resources",
            params={"api-version": RESOURCE_GRAPH_API_VERSION},
            json=body,
        )

    async def close(self) -> None:
        """Close the HTTP client and the underlying credential."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        close = getattr(self._credential, "close", None)
        if close is not None:
            await close()
