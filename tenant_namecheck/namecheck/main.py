"""FastAPI application -- tenant name validation entrypoint."""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI

import namecheck.deps as deps
from namecheck.api.settings import router as settings_router
from namecheck.api.validation import router as validation_router
from namecheck.azure.credentials import CredentialResolver
from namecheck.azure.secrets import SecretProvider
from namecheck.db.database import Database
from namecheck.settings.store import SettingsStore
from namecheck.validator.service import ValidationService

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in _TRUE_VALUES


def _load_options() -> dict:
    """Load service options from the options JSON file or env fallback."""
    opts_path = os.environ.get("NAMECHECK_OPTIONS_PATH", "/data/options.json")
    if Path(opts_path).exists():
        return json.loads(Path(opts_path).read_text())
    return {
        "azure_tenant_name_validation_enabled": _env_flag("AZURE_TENANT_NAME_VALIDATION_ENABLED"),
        "secret_key": os.environ.get("NAMECHECK_SECRET_KEY", ""),
        "db_path": os.environ.get("NAMECHECK_DB_PATH", ""),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init resources on startup, clean up on shutdown."""
    log_level = logging.DEBUG if os.environ.get("NAMECHECK_DEV_MODE") else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    options = _load_options()
    logger.info(
        "Name validation service starting with options: %s",
        {k: v for k, v in options.items() if "key" not in k},
    )

    deps._database = Database(db_path=options.get("db_path") or None)
    await deps._database.connect()
    logger.info("Database connected")

    deps._secret_key = options.get("secret_key") or None
    credentials = CredentialResolver(SecretProvider(secret_key=deps._secret_key))
    deps._validation_service = ValidationService(
        SettingsStore(deps._database),
        credentials,
        global_enabled=bool(options.get("azure_tenant_name_validation_enabled", False)),
    )
    logger.info(
        "Tenant name validation globally %s",
        "enabled" if deps._validation_service.global_enabled else "disabled",
    )

    yield

    # Shutdown
    await credentials.close()
    if deps._database:
        await deps._database.close()
    deps._database = None
    deps._validation_service = None
    deps._secret_key = None


app = FastAPI(
    title="Tenant Name Validation",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(validation_router)
app.include_router(settings_router)
