"""Exception taxonomy for tenant name validation."""

from __future__ import annotations


class NameCheckError(Exception):
    """Base class for all name-validation failures."""


class SettingsError(NameCheckError):
    """Validation settings are missing or inconsistent."""


class AuthenticationError(NameCheckError):
    """Credential construction failed for the configured auth mode."""

    def __init__(self, auth_mode: str, reason: str) -> None:
        self.auth_mode = auth_mode
        self.reason = reason
        super().__init__(f"Authentication failed ({auth_mode}): {reason}")


class SecretResolutionError(NameCheckError):
    """The client secret could not be retrieved or decrypted."""


class SecretNotFoundError(SecretResolutionError):
    """No client secret is configured in the vault or local settings."""


class QueryTimeoutError(NameCheckError):
    """A Resource Graph query exceeded its time budget."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Resource Graph query timed out after {timeout:g} seconds")


class QueryExecutionError(NameCheckError):
    """A Resource Graph query failed or returned an unusable response."""


class StaleSettingsError(NameCheckError):
    """Validation settings were replaced while a request was using the old ones."""
