"""Tenant name validation models."""

from namecheck.validator.models import (
    ConnectionTestResult,
    SubscriptionAccess,
    ValidationRequest,
    ValidationResult,
)

__all__ = [
    "ConnectionTestResult",
    "SubscriptionAccess",
    "ValidationRequest",
    "ValidationResult",
]
