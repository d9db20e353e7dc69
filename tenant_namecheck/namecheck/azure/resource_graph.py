"""Resource Graph query engine: build, scope, execute and parse name lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from namecheck.azure.credentials import AuthenticatedClient
from namecheck.errors import QueryExecutionError, QueryTimeoutError
from namecheck.settings.models import ValidationSettings

logger = logging.getLogger(__name__)

QUERY_TIMEOUT_SECONDS = 5.0

CANARY_QUERY = "Resources | where type =~ 'microsoft.resources/subscriptions' | limit 1"


class ResourceRow(BaseModel):
    """One row of an objectArray result; only the id is required."""

    model_config = ConfigDict(extra="ignore")

    id: str


def escape_kql_string(value: str) -> str:
    """Escape a value for use inside a single-quoted KQL string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_name_query(resource_name: str, resource_type: str) -> str:
    """Case-insensitive exact match on name and type."""
    return (
        "Resources"
        f" | where name =~ '{escape_kql_string(resource_name)}'"
        f" | where type =~ '{escape_kql_string(resource_type)}'"
        " | project id, name, type, resourceGroup"
    )


def parse_resource_ids(data: Any) -> list[str]:
    """Extract ids from an objectArray payload, skipping rows without one."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise QueryExecutionError(
            f"Unexpected Resource Graph data format: {type(data).__name__}"
        )

    ids: list[str] = []
    skipped = 0
    for row in data:
        try:
            parsed = ResourceRow.model_validate(row)
        except ValidationError:
            skipped += 1
            continue
        if parsed.id:
            ids.append(parsed.id)
        else:
            skipped += 1

    if skipped:
        logger.debug("Skipped %d Resource Graph rows without an id", skipped)
    return ids


class ResourceGraphEngine:
    """Runs tenant-scoped Resource Graph queries with a hard timeout."""

    def __init__(self, timeout: float = QUERY_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout

    async def resolve_tenant(
        self, settings: ValidationSettings, client: AuthenticatedClient,
    ) -> str:
        """Return the configured tenant, or the first one the credential can see.

        A single tenant listing serves both discovery and the access check.
        """
        tenants = await client.arm.list_tenants()
        tenant_ids = [t.get("tenantId") for t in tenants if t.get("tenantId")]

        if settings.tenant_id:
            if settings.tenant_id not in tenant_ids:
                raise QueryExecutionError(f"Could not access tenant {settings.tenant_id}")
            return settings.tenant_id

        if not tenant_ids:
            raise QueryExecutionError("Could not determine tenant ID")
        return tenant_ids[0]

    def build_request(self, query: str, settings: ValidationSettings) -> dict[str, Any]:
        body: dict[str, Any] = {
            "query": query,
            "options": {"resultFormat": "objectArray"},
        }
        if settings.subscription_ids:
            body["subscriptions"] = list(settings.subscription_ids)
        return body

    async def run_query(
        self,
        query: str,
        settings: ValidationSettings,
        client: AuthenticatedClient,
    ) -> dict[str, Any]:
        """Execute a query against the resolved tenant and return the raw body."""
        tenant_id = await self.resolve_tenant(settings, client)
        body = self.build_request(query, settings)

        logger.debug(
            "Querying tenant %s across %s",
            tenant_id,
            f"{len(settings.subscription_ids)} subscription(s)"
            if settings.subscription_ids else "all subscriptions",
        )

        try:
            return await asyncio.wait_for(
                client.arm.query_resources(body), timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Resource Graph query timed out after %g seconds", self._timeout)
            raise QueryTimeoutError(self._timeout) from e

    async def find_resource_ids(
        self,
        resource_name: str,
        resource_type: str,
        settings: ValidationSettings,
        client: AuthenticatedClient,
    ) -> list[str]:
        """Return ids of existing resources with this name and type (empty if none)."""
        query = build_name_query(resource_name, resource_type)
        response = await self.run_query(query, settings, client)
        return parse_resource_ids(response.get("data"))
