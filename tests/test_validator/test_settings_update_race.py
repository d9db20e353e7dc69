"""Tests for settings updates that land while validations are in flight."""

from __future__ import annotations

import asyncio

import pytest

from namecheck.settings.models import AuthMode
from namecheck.validator.models import ValidationRequest
from namecheck.validator.service import SETTINGS_CHANGED_WARNING

VM = "Microsoft.Compute/virtualMachines"


def _pause_first_query(arm) -> tuple[asyncio.Event, asyncio.Event]:
    """Hold the first Resource Graph query until `release` is set."""
    started = asyncio.Event()
    release = asyncio.Event()
    original = arm.query_resources

    async def paused(body):
        if not started.is_set():
            started.set()
            await release.wait()
        return await original(body)

    arm.query_resources = paused
    return started, release


class TestUpdateDuringBatch:
    @pytest.mark.asyncio
    async def test_in_flight_batch_does_not_restore_old_client(
        self, make_service, arm, mi_settings, sp_settings,
    ) -> None:
        service = make_service(mi_settings)
        started, release = _pause_first_query(arm)

        batch = asyncio.create_task(service.validate_batch([
            ValidationRequest(resource_name="vm-first", resource_type=VM),
            ValidationRequest(resource_name="vm-second", resource_type=VM),
        ]))
        await started.wait()

        await service.update_settings(sp_settings)
        fresh = await service.validate_name("vm-newcall", VM)

        release.set()
        results = await batch

        resolver = service._credentials
        assert resolver.current.auth_mode == AuthMode.service_principal
        assert resolver.authentication_count == 2

        # the query already running finishes, but its answer is not cached
        assert results["vm-first"].validation_performed is True
        assert service.cache.get(VM, "vm-first") is None

        # names not yet queried are not checked against the replaced settings
        assert results["vm-second"].validation_performed is False
        assert results["vm-second"].warning == SETTINGS_CHANGED_WARNING
        assert len(arm.queries) == 2

        assert fresh.validation_performed is True
        assert service.cache.get(VM, "vm-newcall") is not None

    @pytest.mark.asyncio
    async def test_in_flight_single_name_is_not_cached(
        self, make_service, arm, mi_settings,
    ) -> None:
        service = make_service(mi_settings)
        started, release = _pause_first_query(arm)

        pending = asyncio.create_task(service.validate_name("vm-app-001", VM))
        await started.wait()
        await service.update_settings(mi_settings.model_copy(update={"subscription_ids": ["other-sub"]}))
        release.set()
        result = await pending

        assert result.validation_performed is True
        assert len(service.cache) == 0

        await service.validate_name("vm-app-001", VM)
        assert arm.queries[-1]["subscriptions"] == ["other-sub"]
