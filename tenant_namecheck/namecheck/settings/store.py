"""Persistence for validation settings on top of the settings table."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from namecheck.db.database import Database
from namecheck.settings.models import ValidationSettings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "azure_validation_settings"


class SettingsStore:
    """Reads and writes ValidationSettings as a JSON document."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def load(self) -> ValidationSettings:
        """Return stored settings, or defaults if none are stored or they are unreadable."""
        raw = await self._database.get_setting(SETTINGS_KEY)
        if not raw:
            return ValidationSettings()
        try:
            return ValidationSettings.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error("Error loading validation settings, using defaults: %s", e)
            return ValidationSettings()

    async def save(self, settings: ValidationSettings) -> None:
        await self._database.set_setting(SETTINGS_KEY, settings.model_dump_json())
