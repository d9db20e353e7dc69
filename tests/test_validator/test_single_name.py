"""Tests for single-name validation: enablement, cache-aside, degradation."""

from __future__ import annotations

import asyncio

import pytest

from namecheck.azure.resource_graph import ResourceGraphEngine
from namecheck.errors import QueryExecutionError, QueryTimeoutError
from namecheck.settings.models import CacheSettings

STORAGE = "Microsoft.Storage/storageAccounts"


class TestEnablement:
    @pytest.mark.asyncio
    async def test_global_kill_switch_skips_everything(self, make_service, arm, mi_settings) -> None:
        service = make_service(mi_settings, global_enabled=False)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert result.exists_in_azure is False
        assert arm.queries == []
        assert len(service.cache) == 0
        assert service._store.load_count == 0

    @pytest.mark.asyncio
    async def test_tenant_settings_disabled(self, make_service, arm, mi_settings) -> None:
        settings = mi_settings.model_copy(update={"enabled": False})
        service = make_service(settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert result.warning is None
        assert arm.queries == []

    @pytest.mark.asyncio
    async def test_excluded_resource_type(self, make_service, arm, mi_settings) -> None:
        settings = mi_settings.model_copy(update={"excluded_resource_types": [STORAGE.lower()]})
        service = make_service(settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert "excluded" in result.warning
        assert arm.queries == []


class TestValidateName:
    @pytest.mark.asyncio
    async def test_existing_name(self, make_service, arm, mi_settings) -> None:
        arm.exists("storageacct01", "/subscriptions/s/storageacct01")
        service = make_service(mi_settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is True
        assert result.exists_in_azure is True
        assert result.conflicting_resource_ids == ["/subscriptions/s/storageacct01"]

    @pytest.mark.asyncio
    async def test_free_name(self, make_service, arm, mi_settings) -> None:
        service = make_service(mi_settings)

        result = await service.validate_name("storageacct99", STORAGE)

        assert result.validation_performed is True
        assert result.exists_in_azure is False
        assert result.conflicting_resource_ids == []

    @pytest.mark.asyncio
    async def test_cache_round_trip_issues_one_query(self, make_service, arm, mi_settings) -> None:
        arm.exists("storageacct01")
        service = make_service(mi_settings)

        first = await service.validate_name("storageacct01", STORAGE)
        second = await service.validate_name("storageacct01", STORAGE)

        assert len(arm.queries) == 1
        assert second == first

    @pytest.mark.asyncio
    async def test_cache_disabled_queries_every_time(self, make_service, arm, mi_settings) -> None:
        settings = mi_settings.model_copy(update={"cache": CacheSettings(enabled=False)})
        service = make_service(settings)

        await service.validate_name("storageacct01", STORAGE)
        await service.validate_name("storageacct01", STORAGE)

        assert len(arm.queries) == 2
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_settings_update_invalidates_cache(self, make_service, arm, mi_settings) -> None:
        service = make_service(mi_settings)
        await service.validate_name("storageacct01", STORAGE)
        assert len(arm.queries) == 1

        await service.update_settings(mi_settings.model_copy(update={"subscription_ids": ["other-sub"]}))
        await service.validate_name("storageacct01", STORAGE)

        assert len(arm.queries) == 2
        assert arm.queries[-1]["subscriptions"] == ["other-sub"]

    @pytest.mark.asyncio
    async def test_settings_update_forces_reauthentication(self, make_service, arm, mi_settings) -> None:
        service = make_service(mi_settings)
        await service.validate_name("a", STORAGE)
        await service.update_settings(mi_settings)
        await service.validate_name("b", STORAGE)

        assert service._credentials.authentication_count == 2
        assert arm.closed is True


class TestDegradation:
    @pytest.mark.asyncio
    async def test_slow_query_times_out_into_warning(self, make_service, arm, mi_settings) -> None:
        async def slow_query(body):
            arm.queries.append(body)
            await asyncio.sleep(1)
            return {"data": [{"id": "/late"}]}

        arm.query_resources = slow_query
        service = make_service(mi_settings, engine=ResourceGraphEngine(timeout=0.05))

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert result.exists_in_azure is False
        assert "timed out after 0.05 seconds" in result.warning
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_timeout_becomes_warning(self, make_service, arm, mi_settings) -> None:
        arm.query_error = QueryTimeoutError(5.0)
        service = make_service(mi_settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert result.exists_in_azure is False
        assert "timed out" in result.warning

    @pytest.mark.asyncio
    async def test_query_error_becomes_warning_and_is_not_cached(self, make_service, arm, mi_settings) -> None:
        arm.query_error = QueryExecutionError("ARM API error (500): boom")
        service = make_service(mi_settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert "boom" in result.warning
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_authentication_failure_becomes_warning(self, make_service, arm, mi_settings) -> None:
        service = make_service(mi_settings, credential_error=RuntimeError("no identity"))

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert "ManagedIdentity" in result.warning
        assert arm.queries == []

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_warning(self, make_service, arm, mi_settings) -> None:
        arm.query_error = KeyError("data")
        service = make_service(mi_settings)

        result = await service.validate_name("storageacct01", STORAGE)

        assert result.validation_performed is False
        assert result.warning.startswith("Validation error")
