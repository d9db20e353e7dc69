"""Shared test fixtures and configuration."""

import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

# Add tenant_namecheck/ to Python path so `from namecheck.xxx` imports work
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "tenant_namecheck"))

import pytest

os.environ["NAMECHECK_DEV_MODE"] = "true"

from namecheck.azure.credentials import CredentialResolver  # noqa: E402
from namecheck.azure.resource_graph import ResourceGraphEngine  # noqa: E402
from namecheck.azure.secrets import SecretProvider  # noqa: E402
from namecheck.cache import ValidationCache  # noqa: E402
from namecheck.settings.models import (  # noqa: E402
    AuthMode,
    KeyVaultSettings,
    ServicePrincipalSettings,
    ValidationSettings,
)
from namecheck.validator.service import ValidationService  # noqa: E402

TENANT_ID = "11111111-1111-1111-1111-111111111111"
SUBSCRIPTION_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def subscription_id() -> str:
    return SUBSCRIPTION_ID


@pytest.fixture
def mi_settings() -> ValidationSettings:
    """Enabled managed-identity settings scoped to one subscription."""
    return ValidationSettings(
        enabled=True,
        auth_mode=AuthMode.managed_identity,
        tenant_id=TENANT_ID,
        subscription_ids=[SUBSCRIPTION_ID],
    )


@pytest.fixture
def sp_settings() -> ValidationSettings:
    """Enabled service-principal settings with a plain client secret."""
    return ValidationSettings(
        enabled=True,
        auth_mode=AuthMode.service_principal,
        tenant_id=TENANT_ID,
        service_principal=ServicePrincipalSettings(
            client_id="app-client-id",
            client_secret="plain-secret",
        ),
    )


@pytest.fixture
def vault_settings() -> ValidationSettings:
    """Service-principal settings with both a vault entry and a plain secret."""
    return ValidationSettings(
        enabled=True,
        auth_mode=AuthMode.service_principal,
        tenant_id=TENANT_ID,
        service_principal=ServicePrincipalSettings(
            client_id="app-client-id",
            client_secret="plain-secret",
            client_secret_vault_name="sp-secret",
        ),
        key_vault=KeyVaultSettings(
            vault_uri="https://kv-naming.vault.azure.net/",
            client_secret_name="default-secret",
        ),
    )


# ---------------------------------------------------------------------------
# Validation service wiring
# ---------------------------------------------------------------------------


class MemorySettingsStore:
    def __init__(self, settings: ValidationSettings) -> None:
        self.settings = settings
        self.saved: list[ValidationSettings] = []
        self.load_count = 0

    async def load(self) -> ValidationSettings:
        self.load_count += 1
        return self.settings

    async def save(self, settings: ValidationSettings) -> None:
        self.saved.append(settings)
        self.settings = settings


class ScriptedArm:
    """ARM stand-in: answers Resource Graph queries from a name -> ids table."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        self.existing: dict[str, list[str]] = {}
        self.queries: list[dict[str, Any]] = []
        self.subscriptions: list[dict[str, Any]] = []
        self.query_error: Exception | None = None
        self.subscription_error: Exception | None = None
        self.token_error: Exception | None = None
        self.closed = False

    def exists(self, name: str, *ids: str) -> None:
        self.existing[name.lower()] = list(ids) or [f"/subscriptions/s/resourceGroups/rg/x/{name}"]

    async def get_token(self) -> str:
        if self.token_error is not None:
            raise self.token_error
        return "token"

    async def list_tenants(self) -> list[dict[str, Any]]:
        return [{"tenantId": self.tenant_id}]

    async def list_subscriptions(self) -> list[dict[str, Any]]:
        if self.subscription_error is not None:
            raise self.subscription_error
        return self.subscriptions

    async def query_resources(self, body: dict[str, Any]) -> dict[str, Any]:
        self.queries.append(body)
        if self.query_error is not None:
            raise self.query_error
        query = body["query"]
        for name, ids in self.existing.items():
            if f"name =~ '{name}'" in query.lower():
                return {"data": [{"id": i} for i in ids]}
        return {"data": []}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def arm(tenant_id) -> ScriptedArm:
    return ScriptedArm(tenant_id)


@pytest.fixture
def make_service(arm) -> Callable[..., ValidationService]:
    """Build a ValidationService wired to the scripted ARM client."""

    def factory(
        settings: ValidationSettings,
        global_enabled: bool = True,
        credential_error: Exception | None = None,
        secret_key: str | None = None,
        engine: ResourceGraphEngine | None = None,
    ) -> ValidationService:
        def managed_identity():
            if credential_error is not None:
                raise credential_error
            return SimpleNamespace(kind="mi")

        resolver = CredentialResolver(
            SecretProvider(secret_key=secret_key),
            managed_identity_factory=managed_identity,
            service_principal_factory=lambda t, c, s: SimpleNamespace(kind="sp"),
            arm_client_factory=lambda credential, mode: arm,
        )
        return ValidationService(
            MemorySettingsStore(settings),
            resolver,
            engine=engine,
            cache=ValidationCache(),
            global_enabled=global_enabled,
        )

    return factory
