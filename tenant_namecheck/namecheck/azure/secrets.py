"""Client secret resolution: Key Vault, encrypted settings, or plain settings."""

from __future__ import annotations

import base64
import hashlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from azure.identity.aio import DefaultAzureCredential
from azure.keyvault.secrets.aio import SecretClient
from cryptography.fernet import Fernet, InvalidToken

from namecheck.errors import SecretNotFoundError, SecretResolutionError
from namecheck.settings.models import ENCRYPTED_PREFIX, ValidationSettings

logger = logging.getLogger(__name__)

SecretClientFactory = Callable[[str], AsyncContextManager[Any]]


@asynccontextmanager
async def default_secret_client(vault_uri: str) -> AsyncIterator[SecretClient]:
    """Open a Key Vault client authenticated with the ambient identity."""
    credential = DefaultAzureCredential()
    async with credential:
        async with SecretClient(vault_url=vault_uri, credential=credential) as client:
            yield client


def _fernet(secret_key: str) -> Fernet:
    digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_secret(value: str, secret_key: str) -> str:
    """Return value in the 'encrypted:' form understood by SecretProvider."""
    token = _fernet(secret_key).encrypt(value.encode("utf-8")).decode("ascii")
    return f"{ENCRYPTED_PREFIX}{token}"


def decrypt_secret(value: str, secret_key: str) -> str:
    """Decrypt an 'encrypted:'-prefixed value (prefix optional)."""
    if value.startswith(ENCRYPTED_PREFIX):
        value = value[len(ENCRYPTED_PREFIX):]
    return _fernet(secret_key).decrypt(value.encode("ascii")).decode("utf-8")


class SecretProvider:
    """Resolves the service principal client secret.

    Resolution order, first configured source wins:
    1. Key Vault entry (any vault failure is fatal, no fallback).
    2. Local value prefixed with 'encrypted:' (decrypted with the app key).
    3. Local plain value.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        secret_client_factory: SecretClientFactory | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._secret_client_factory = secret_client_factory or default_secret_client

    async def resolve_client_secret(self, settings: ValidationSettings) -> str:
        sp = settings.service_principal
        if sp is None:
            raise SecretNotFoundError("Service principal settings are not configured")

        vault_uri = settings.key_vault.vault_uri if settings.key_vault else ""
        entry_name = sp.client_secret_vault_name or (
            settings.key_vault.client_secret_name if settings.key_vault else ""
        )

        if vault_uri or sp.client_secret_vault_name:
            if not vault_uri:
                raise SecretResolutionError(
                    "A Key Vault secret name is configured but no vault URI is set"
                )
            if not entry_name:
                raise SecretResolutionError(
                    "A Key Vault URI is configured but no secret name is set"
                )
            logger.info("Resolving client secret via key vault (%s)", vault_uri)
            return await self._from_vault(vault_uri, entry_name)

        if sp.client_secret and sp.has_encrypted_secret:
            logger.info("Resolving client secret via decrypted settings value")
            return self._decrypt(sp.client_secret)

        if sp.client_secret:
            logger.info("Resolving client secret via plain settings value")
            return sp.client_secret

        logger.warning("No client secret source configured")
        raise SecretNotFoundError("Client secret not found in Key Vault or configuration")

    async def _from_vault(self, vault_uri: str, entry_name: str) -> str:
        try:
            async with self._secret_client_factory(vault_uri) as client:
                secret = await client.get_secret(entry_name)
        except Exception as e:
            logger.error(
                "Failed to retrieve secret '%s' from key vault: %s",
                entry_name, type(e).__name__,
            )
            raise SecretResolutionError(
                f"Failed to retrieve client secret '{entry_name}' from Key Vault"
            ) from e

        value = getattr(secret, "value", None)
        if not value:
            raise SecretResolutionError(
                f"Key Vault secret '{entry_name}' has no value"
            )
        return value

    def _decrypt(self, value: str) -> str:
        if not self._secret_key:
            raise SecretResolutionError(
                "Client secret is encrypted but no application secret key is configured"
            )
        try:
            return decrypt_secret(value, self._secret_key)
        except (InvalidToken, ValueError) as e:
            logger.error("Failed to decrypt client secret")
            raise SecretResolutionError("Failed to decrypt client secret") from e
