"""Settings API: validation settings and connection diagnostics."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from namecheck.azure.secrets import encrypt_secret
from namecheck.deps import get_secret_key, get_validation_service
from namecheck.errors import SettingsError
from namecheck.settings.models import ValidationSettings
from namecheck.validator.models import ConnectionTestResult
from namecheck.validator.service import ValidationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


def _prepare_secret(
    incoming: ValidationSettings,
    current: ValidationSettings,
    secret_key: str | None,
) -> ValidationSettings:
    """Keep the stored secret when none is sent, and encrypt new plain secrets."""
    sp = incoming.service_principal
    if sp is None:
        return incoming

    if sp.client_secret is None:
        if current.service_principal and current.service_principal.client_secret:
            sp = sp.model_copy(update={"client_secret": current.service_principal.client_secret})
    elif sp.has_encrypted_secret:
        if not secret_key:
            raise SettingsError(
                "An encrypted client secret was supplied but no application secret key is configured"
            )
    elif sp.client_secret and secret_key:
        sp = sp.model_copy(update={"client_secret": encrypt_secret(sp.client_secret, secret_key)})

    return incoming.model_copy(update={"service_principal": sp})


@router.get("/settings/validation")
async def get_validation_settings(
    service: ValidationService = Depends(get_validation_service),
) -> dict:
    """Return the current validation settings (client secret is redacted)."""
    settings = await service.get_settings()
    data = settings.redacted()
    data["global_enabled"] = service.global_enabled
    return data


@router.put("/settings/validation")
async def update_validation_settings(
    body: ValidationSettings,
    service: ValidationService = Depends(get_validation_service),
    secret_key: str | None = Depends(get_secret_key),
) -> dict:
    """Replace the validation settings.

    Omitting service_principal.client_secret keeps the stored secret. Saving
    clears the authenticated client and every cached validation result.
    """
    try:
        current = await service.get_settings()
        settings = _prepare_secret(body, current, secret_key)
        await service.update_settings(settings)
    except SettingsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error saving validation settings: %s", e)
        raise HTTPException(status_code=500, detail=f"Error saving settings: {e}")

    logger.info(
        "Validation settings updated: enabled=%s, auth_mode=%s, subscriptions=%d, strategy=%s",
        settings.enabled,
        settings.auth_mode.value,
        len(settings.subscription_ids),
        settings.conflict_strategy.value,
    )
    data = settings.redacted()
    data["global_enabled"] = service.global_enabled
    return data


@router.post("/settings/validation/test", response_model=ConnectionTestResult)
async def test_validation_connection(
    service: ValidationService = Depends(get_validation_service),
) -> ConnectionTestResult:
    """Verify authentication, subscription access and Resource Graph access."""
    return await service.test_connection()
