"""Validation data models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationRequest(BaseModel):
    """A (name, type) pair to check against the tenant."""

    model_config = ConfigDict(frozen=True)

    resource_name: str = Field(..., min_length=1)
    resource_type: str = Field(..., min_length=1)


class ValidationResult(BaseModel):
    """Outcome of checking one name against the tenant."""

    model_config = ConfigDict(frozen=True)

    validation_performed: bool = False
    exists_in_azure: bool = False
    conflicting_resource_ids: list[str] = Field(default_factory=list)
    warning: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_consistency(self) -> ValidationResult:
        if self.conflicting_resource_ids and not self.exists_in_azure:
            raise ValueError("conflicting_resource_ids requires exists_in_azure")
        if not self.validation_performed and (
            self.exists_in_azure or self.conflicting_resource_ids
        ):
            raise ValueError("an unperformed validation cannot report a conflict")
        return self

    @classmethod
    def not_performed(cls, warning: str | None = None) -> ValidationResult:
        return cls(validation_performed=False, exists_in_azure=False, warning=warning)

    @classmethod
    def from_resource_ids(cls, resource_ids: list[str]) -> ValidationResult:
        return cls(
            validation_performed=True,
            exists_in_azure=bool(resource_ids),
            conflicting_resource_ids=list(resource_ids),
        )


class SubscriptionAccess(BaseModel):
    """A subscription visible to the authenticated identity."""

    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str = ""
    state: str | None = None
    has_read_access: bool = True


class ConnectionTestResult(BaseModel):
    """Diagnostic report from an operator-initiated connection test."""

    authenticated: bool = False
    auth_mode: str = ""
    tenant_id: str | None = None
    accessible_subscriptions: list[SubscriptionAccess] = Field(default_factory=list)
    query_access: bool = False
    query_succeeded: bool = False
    message: str = ""
    error: str | None = None
