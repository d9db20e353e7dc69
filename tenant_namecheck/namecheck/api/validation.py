"""Validation API: single, batch and conflict-resolving name checks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from namecheck.conflict.resolver import Resolution
from namecheck.deps import get_validation_service
from namecheck.validator.models import ValidationRequest, ValidationResult
from namecheck.validator.service import ValidationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["validation"])


class BatchValidationRequest(BaseModel):
    requests: list[ValidationRequest] = Field(..., max_length=500)


class BatchValidationResponse(BaseModel):
    results: dict[str, ValidationResult] = Field(default_factory=dict)


@router.post("/validation/name", response_model=ValidationResult)
async def validate_name(
    body: ValidationRequest,
    service: ValidationService = Depends(get_validation_service),
) -> ValidationResult:
    """Check whether a single name already exists in the tenant."""
    return await service.validate_name(body.resource_name, body.resource_type)


@router.post("/validation/batch", response_model=BatchValidationResponse)
async def validate_batch(
    body: BatchValidationRequest,
    service: ValidationService = Depends(get_validation_service),
) -> BatchValidationResponse:
    """Check many names at once; results are keyed by resource name."""
    results = await service.validate_batch(body.requests)
    return BatchValidationResponse(results=results)


@router.post("/validation/resolve", response_model=Resolution)
async def validate_and_resolve(
    body: ValidationRequest,
    service: ValidationService = Depends(get_validation_service),
) -> Resolution:
    """Validate a name and apply the configured conflict strategy."""
    return await service.validate_and_resolve(body.resource_name, body.resource_type)


@router.get("/health")
async def health(
    service: ValidationService = Depends(get_validation_service),
) -> dict:
    """Report whether tenant validation is currently active."""
    try:
        enabled = await service.is_validation_enabled()
    except Exception as e:
        return {"healthy": False, "validation_enabled": False, "error": str(e)}
    return {"healthy": True, "validation_enabled": enabled, "error": ""}
