"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from namecheck.db.database import Database
    from namecheck.validator.service import ValidationService

_database: Database | None = None
_validation_service: ValidationService | None = None
_secret_key: str | None = None


def get_validation_service() -> ValidationService:
    """FastAPI dependency: return the shared ValidationService."""
    assert _validation_service is not None, "ValidationService not initialised"
    return _validation_service


def get_secret_key() -> str | None:
    """FastAPI dependency: return the application key used to encrypt client secrets."""
    return _secret_key
