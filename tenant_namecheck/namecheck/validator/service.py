"""Tenant validation service: single-name, batch, conflict resolution, diagnostics."""

from __future__ import annotations

import functools
import logging

from namecheck.azure.credentials import CredentialResolver
from namecheck.azure.resource_graph import CANARY_QUERY, ResourceGraphEngine
from namecheck.cache import CACHE_KEY_PREFIX, ValidationCache
from namecheck.conflict.resolver import (
    REASON_UNAVAILABLE,
    ConflictOutcome,
    Resolution,
    append_random_suffix,
    resolve_conflict,
)
from namecheck.errors import NameCheckError, QueryTimeoutError
from namecheck.settings.models import ConflictStrategy, ValidationSettings
from namecheck.settings.store import SettingsStore
from namecheck.validator.models import (
    ConnectionTestResult,
    SubscriptionAccess,
    ValidationRequest,
    ValidationResult,
)

logger = logging.getLogger(__name__)

SETTINGS_CHANGED_WARNING = "Validation settings changed during validation"


class ValidationService:
    """Answers "does this name already exist in the tenant?".

    Errors while validating a name never propagate: they come back as a
    result with validation_performed=False and a warning, so a validation
    outage does not block name generation.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        credentials: CredentialResolver,
        engine: ResourceGraphEngine | None = None,
        cache: ValidationCache | None = None,
        global_enabled: bool = True,
    ) -> None:
        self._store = settings_store
        self._credentials = credentials
        self._engine = engine or ResourceGraphEngine()
        self._cache = cache if cache is not None else ValidationCache()
        self.global_enabled = global_enabled
        self._settings: ValidationSettings | None = None

    @property
    def cache(self) -> ValidationCache:
        return self._cache

    # -- settings --

    async def get_settings(self) -> ValidationSettings:
        if self._settings is None:
            loaded = await self._store.load()
            # an update may have landed while the store was being read
            if self._settings is None:
                self._settings = loaded
        return self._settings

    async def _settings_snapshot(self) -> tuple[ValidationSettings, int]:
        """Return the current settings with the generation they belong to."""
        settings = await self.get_settings()
        return settings, self._credentials.generation

    async def update_settings(self, settings: ValidationSettings) -> None:
        """Persist settings and drop the authenticated client and cached results.

        Runs under the credential lock and starts a new credential generation,
        so requests still holding the old settings can neither authenticate
        with them nor cache what they find. Errors propagate to the operator.
        """
        async with self._credentials.lock:
            await self._store.save(settings)
            self._settings = settings
            await self._credentials.invalidate()
            self._cache.invalidate_all(f"{CACHE_KEY_PREFIX}*")
        logger.info("Azure validation settings updated")

    async def is_validation_enabled(self) -> bool:
        """Check the operator kill switch first, then the tenant settings."""
        if not self.global_enabled:
            return False
        settings = await self.get_settings()
        return settings.enabled

    # -- single name --

    async def validate_name(self, resource_name: str, resource_type: str) -> ValidationResult:
        try:
            if not await self.is_validation_enabled():
                return ValidationResult.not_performed()
            settings, generation = await self._settings_snapshot()
            if settings.is_excluded(resource_type):
                return ValidationResult.not_performed(
                    f"Resource type {resource_type} is excluded from tenant validation"
                )
        except Exception as e:
            logger.error("Could not load validation settings: %s", e)
            return ValidationResult.not_performed(f"Validation error: {e}")

        return await self._validate_enabled(resource_name, resource_type, settings, generation)

    async def _validate_enabled(
        self,
        resource_name: str,
        resource_type: str,
        settings: ValidationSettings,
        generation: int,
        check_cache: bool = True,
    ) -> ValidationResult:
        if check_cache and settings.cache.enabled:
            cached = self._cache.get(resource_type, resource_name)
            if cached is not None:
                logger.info("Azure validation cache hit for %s", resource_name)
                return cached

        try:
            client = await self._credentials.ensure_authenticated(settings, generation)
            resource_ids = await self._engine.find_resource_ids(
                resource_name, resource_type, settings, client,
            )
        except QueryTimeoutError as e:
            logger.warning("Validation of %s timed out: %s", resource_name, e)
            return ValidationResult.not_performed(f"Validation timed out: {e}")
        except NameCheckError as e:
            logger.error("Error validating %s against Azure: %s", resource_name, e)
            return ValidationResult.not_performed(f"Validation error: {e}")
        except Exception as e:
            logger.exception("Unexpected error validating %s against Azure", resource_name)
            return ValidationResult.not_performed(f"Validation error: {e}")

        result = ValidationResult.from_resource_ids(resource_ids)

        # results found under replaced settings are returned but never cached
        if settings.cache.enabled and generation == self._credentials.generation:
            self._cache.set(
                resource_type, resource_name, result, settings.cache.duration_minutes,
            )

        logger.info(
            "Azure validation completed for %s: exists=%s", resource_name, result.exists_in_azure,
        )
        return result

    # -- batch --

    async def validate_batch(
        self, requests: list[ValidationRequest],
    ) -> dict[str, ValidationResult]:
        """Validate many names, authenticating once and querying only cache misses.

        Misses are queried one at a time to bound load on Resource Graph. If
        the settings are replaced mid-batch, the remaining misses come back
        unperformed rather than being checked against the old scope.
        Results are keyed by resource name; a repeated name keeps its last result.
        """
        try:
            enabled = await self.is_validation_enabled()
            settings, generation = await self._settings_snapshot() if enabled else (None, 0)
        except Exception as e:
            logger.error("Could not load validation settings: %s", e)
            return {
                r.resource_name: ValidationResult.not_performed(f"batch validation error: {e}")
                for r in requests
            }

        if settings is None:
            return {r.resource_name: ValidationResult.not_performed() for r in requests}

        results: dict[str, ValidationResult] = {}
        misses: list[ValidationRequest] = []

        for req in requests:
            if settings.is_excluded(req.resource_type):
                results[req.resource_name] = ValidationResult.not_performed(
                    f"Resource type {req.resource_type} is excluded from tenant validation"
                )
                continue
            if settings.cache.enabled:
                cached = self._cache.get(req.resource_type, req.resource_name)
                if cached is not None:
                    results[req.resource_name] = cached
                    continue
            misses.append(req)

        if not misses:
            return results

        logger.info(
            "Batch validation: %d cached, %d to query", len(requests) - len(misses), len(misses),
        )

        try:
            await self._credentials.ensure_authenticated(settings, generation)
        except Exception as e:
            logger.error("Error in batch validation: %s", e)
            for req in misses:
                results.setdefault(
                    req.resource_name,
                    ValidationResult.not_performed(f"batch validation error: {e}"),
                )
            return results

        for index, req in enumerate(misses):
            if generation != self._credentials.generation:
                logger.warning(
                    "Validation settings changed mid-batch, %d name(s) left unchecked",
                    len(misses) - index,
                )
                for rest in misses[index:]:
                    results[rest.resource_name] = ValidationResult.not_performed(
                        SETTINGS_CHANGED_WARNING
                    )
                break
            results[req.resource_name] = await self._validate_enabled(
                req.resource_name, req.resource_type, settings, generation, check_cache=False,
            )
        return results

    # -- conflict resolution --

    async def validate_and_resolve(self, resource_name: str, resource_type: str) -> Resolution:
        """Validate a name and apply the configured conflict strategy.

        Never raises: with validation switched off the name is accepted as
        is, and when the settings cannot be read it is accepted with reason
        "validation unavailable".
        """
        try:
            if not await self.is_validation_enabled():
                return Resolution(
                    outcome=ConflictOutcome.accepted,
                    final_name=resource_name,
                    result=ValidationResult.not_performed(),
                )
            settings = await self.get_settings()
        except Exception as e:
            logger.error("Could not load validation settings: %s", e)
            return Resolution(
                outcome=ConflictOutcome.accepted,
                final_name=resource_name,
                reason=REASON_UNAVAILABLE,
                result=ValidationResult.not_performed(f"Validation error: {e}"),
            )

        result = await self.validate_name(resource_name, resource_type)

        mutate = None
        if settings.conflict_strategy == ConflictStrategy.suffix_random:
            mutate = functools.partial(
                append_random_suffix, length=settings.random_suffix_length,
            )

        async def revalidate(name: str) -> ValidationResult:
            return await self.validate_name(name, resource_type)

        return await resolve_conflict(
            resource_name,
            result,
            settings.conflict_strategy,
            validate=revalidate,
            mutate=mutate,
            max_attempts=settings.max_auto_increment_attempts,
        )

    # -- diagnostics --

    async def test_connection(self) -> ConnectionTestResult:
        """Check authentication, subscription visibility and query access. Never raises."""
        try:
            settings, generation = await self._settings_snapshot()
        except Exception as e:
            logger.error("Error testing Azure connection: %s", e)
            return ConnectionTestResult(message="Connection test failed", error=str(e))

        if not settings.enabled:
            return ConnectionTestResult(
                auth_mode=settings.auth_mode.value,
                tenant_id=settings.tenant_id,
                message="validation is not enabled",
            )

        result = ConnectionTestResult(
            auth_mode=settings.auth_mode.value,
            tenant_id=settings.tenant_id,
        )

        try:
            client = await self._credentials.ensure_authenticated(settings, generation)
            await client.arm.get_token()
        except Exception as e:
            logger.error("Connection test authentication failed: %s", e)
            result.message = "Connection test failed"
            result.error = str(e)
            return result

        result.authenticated = True

        try:
            subscriptions = await client.arm.list_subscriptions()
            result.accessible_subscriptions = [
                SubscriptionAccess(
                    id=s.get("subscriptionId", ""),
                    display_name=s.get("displayName", ""),
                    state=s.get("state"),
                )
                for s in subscriptions
                if s.get("subscriptionId")
            ]
        except Exception as e:
            logger.warning("Subscription enumeration failed: %s", e)

        try:
            response = await self._engine.run_query(CANARY_QUERY, settings, client)
            result.query_access = True
            result.query_succeeded = "data" in response
        except Exception as e:
            logger.warning("Resource Graph test query failed: %s", e)
            result.error = f"Resource Graph query failed: {e}"

        result.message = (
            "Successfully connected to Azure"
            if result.query_succeeded
            else "Authenticated but Resource Graph query failed"
        )
        return result
