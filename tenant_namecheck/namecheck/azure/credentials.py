"""Credential resolution and the shared authenticated ARM client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from azure.identity.aio import ClientSecretCredential, DefaultAzureCredential

from namecheck.azure.arm import ArmClient
from namecheck.azure.secrets import SecretProvider
from namecheck.errors import AuthenticationError, SecretResolutionError, StaleSettingsError
from namecheck.settings.models import AuthMode, ValidationSettings

logger = logging.getLogger(__name__)

ArmClientFactory = Callable[[Any, str], ArmClient]


@dataclass(frozen=True)
class AuthenticatedClient:
    """A credential plus the ARM client built on it, tied to one settings fingerprint."""

    credential: Any
    arm: ArmClient
    auth_mode: AuthMode
    fingerprint: str
    generation: int = 0

    async def close(self) -> None:
        await self.arm.close()


def managed_identity_credential() -> Any:
    return DefaultAzureCredential()


def service_principal_credential(tenant_id: str, client_id: str, client_secret: str) -> Any:
    return ClientSecretCredential(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )


class CredentialResolver:
    """Owns the single live AuthenticatedClient for the process.

    The first caller to find no matching client builds one while holding the
    lock; concurrent callers wait on the lock and then reuse that client.
    A settings change replaces the client rather than mutating it.

    Every invalidate() starts a new settings generation. Callers that pass the
    generation their settings were read under are refused with
    StaleSettingsError once a newer generation exists, so a request holding
    old settings can never install or reuse a client built from them.
    """

    def __init__(
        self,
        secret_provider: SecretProvider,
        managed_identity_factory: Callable[[], Any] = managed_identity_credential,
        service_principal_factory: Callable[[str, str, str], Any] = service_principal_credential,
        arm_client_factory: ArmClientFactory | None = None,
    ) -> None:
        self._secret_provider = secret_provider
        self._managed_identity_factory = managed_identity_factory
        self._service_principal_factory = service_principal_factory
        self._arm_client_factory = arm_client_factory or (
            lambda credential, mode: ArmClient(credential, auth_mode=mode)
        )
        self._client: AuthenticatedClient | None = None
        self._lock = asyncio.Lock()
        self._generation = 0
        self.authentication_count = 0

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_client(self) -> bool:
        return self._client is not None

    @property
    def current(self) -> AuthenticatedClient | None:
        return self._client

    async def ensure_authenticated(
        self, settings: ValidationSettings, generation: int | None = None,
    ) -> AuthenticatedClient:
        """Return the client for these settings, building it if needed.

        generation is the value of `generation` when the settings were read;
        None means the settings are known to be current.
        """
        if generation is None:
            generation = self._generation
        fingerprint = settings.fingerprint()
        client = self._client
        if (
            client is not None
            and client.fingerprint == fingerprint
            and client.generation == generation
        ):
            return client

        async with self._lock:
            return await self._ensure_locked(settings, fingerprint, generation)

    async def _ensure_locked(
        self, settings: ValidationSettings, fingerprint: str, generation: int,
    ) -> AuthenticatedClient:
        """Build or reuse the client; caller must hold the lock."""
        if generation != self._generation:
            raise StaleSettingsError(
                "Validation settings changed while the request was in progress"
            )

        stale = self._client
        if stale is not None:
            if stale.fingerprint == fingerprint:
                return stale
            logger.info("Validation settings changed, discarding authenticated client")
            self._client = None
            await stale.close()

        credential = await self._build_credential(settings)
        mode = settings.auth_mode.value
        try:
            arm = self._arm_client_factory(credential, mode)
        except Exception as e:
            raise AuthenticationError(mode, f"could not create ARM client: {e}") from e

        self._client = AuthenticatedClient(
            credential=credential,
            arm=arm,
            auth_mode=settings.auth_mode,
            fingerprint=fingerprint,
            generation=generation,
        )
        self.authentication_count += 1
        logger.info("Azure ARM client authenticated using %s", mode)
        return self._client

    async def _build_credential(self, settings: ValidationSettings) -> Any:
        mode = settings.auth_mode

        if mode == AuthMode.managed_identity:
            logger.info("Using managed identity for Azure authentication")
            try:
                return self._managed_identity_factory()
            except Exception as e:
                raise AuthenticationError(mode.value, f"credential construction failed: {type(e).__name__}") from e

        if mode == AuthMode.service_principal:
            sp = settings.service_principal
            if sp is None:
                raise AuthenticationError(mode.value, "service principal settings are required")
            if not settings.tenant_id:
                raise AuthenticationError(mode.value, "tenant_id is required")
            if not sp.client_id:
                raise AuthenticationError(mode.value, "client_id is required")

            try:
                secret = await self._secret_provider.resolve_client_secret(settings)
            except SecretResolutionError as e:
                raise AuthenticationError(mode.value, str(e)) from e

            logger.info("Using service principal %s for Azure authentication", sp.client_id)
            try:
                return self._service_principal_factory(settings.tenant_id, sp.client_id, secret)
            except Exception as e:
                # exception text may echo the secret
                raise AuthenticationError(mode.value, f"credential construction failed: {type(e).__name__}") from e

        raise AuthenticationError(str(mode), "unsupported authentication mode")

    async def invalidate(self) -> None:
        """Discard the live client and start a new generation; caller must hold the lock."""
        self._generation += 1
        stale, self._client = self._client, None
        if stale is not None:
            await stale.close()

    async def close(self) -> None:
        async with self._lock:
            await self.invalidate()
