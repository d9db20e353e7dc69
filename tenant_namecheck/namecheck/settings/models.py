"""Validation settings models."""

from __future__ import annotations

import hashlib
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENCRYPTED_PREFIX = "encrypted:"


class AuthMode(str, Enum):
    """How the service authenticates to the Azure tenant."""

    managed_identity = "ManagedIdentity"
    service_principal = "ServicePrincipal"


class ConflictStrategy(str, Enum):
    """What to do when a candidate name already exists."""

    notify_only = "NotifyOnly"
    auto_increment = "AutoIncrement"
    fail = "Fail"
    suffix_random = "SuffixRandom"


class ServicePrincipalSettings(BaseModel):
    """App registration used for ServicePrincipal auth."""

    model_config = ConfigDict(extra="ignore")

    client_id: str = ""
    client_secret: str | None = None
    client_secret_vault_name: str | None = None

    @property
    def has_encrypted_secret(self) -> bool:
        return bool(self.client_secret and self.client_secret.startswith(ENCRYPTED_PREFIX))


class KeyVaultSettings(BaseModel):
    """Key Vault holding the service principal secret."""

    model_config = ConfigDict(extra="ignore")

    vault_uri: str = ""
    client_secret_name: str = ""


class CacheSettings(BaseModel):
    enabled: bool = True
    duration_minutes: int = Field(default=60, ge=1)


class ValidationSettings(BaseModel):
    """Per-tenant validation configuration."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    auth_mode: AuthMode = AuthMode.managed_identity
    tenant_id: str | None = None
    subscription_ids: list[str] = Field(default_factory=list)
    service_principal: ServicePrincipalSettings | None = None
    key_vault: KeyVaultSettings | None = None
    cache: CacheSettings = Field(default_factory=CacheSettings)
    conflict_strategy: ConflictStrategy = ConflictStrategy.notify_only
    excluded_resource_types: list[str] = Field(default_factory=list)
    max_auto_increment_attempts: int = Field(default=10, ge=1, le=100)
    random_suffix_length: int = Field(default=4, ge=1, le=16)

    @field_validator("subscription_ids", "excluded_resource_types")
    @classmethod
    def _dedupe(cls, values: list[str]) -> list[str]:
        """Strip blanks and duplicates while keeping the original order."""
        seen: dict[str, None] = {}
        for v in values:
            v = v.strip()
            if v:
                seen.setdefault(v, None)
        return list(seen)

    @field_validator("tenant_id")
    @classmethod
    def _blank_tenant_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value

    @model_validator(mode="after")
    def _check_service_principal(self) -> ValidationSettings:
        if self.auth_mode == AuthMode.service_principal and self.service_principal is None:
            raise ValueError("service_principal settings are required for ServicePrincipal auth")
        return self

    def is_excluded(self, resource_type: str) -> bool:
        """Return True if the resource type is excluded (case-insensitive)."""
        lowered = resource_type.lower()
        return any(t.lower() == lowered for t in self.excluded_resource_types)

    def fingerprint(self) -> str:
        """Stable hash of the fields that determine the authenticated client."""
        auth_fields = self.model_dump_json(
            include={"auth_mode", "tenant_id", "service_principal", "key_vault"},
        )
        return hashlib.sha256(auth_fields.encode("utf-8")).hexdigest()

    def redacted(self) -> dict:
        """Dump the settings with secret material replaced by flags."""
        data = self.model_dump(mode="json")
        sp = data.get("service_principal")
        if sp is not None:
            sp["has_client_secret"] = bool(sp.pop("client_secret", None))
        return data
