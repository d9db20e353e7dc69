"""In-process TTL cache for tenant validation results."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from namecheck.validator.models import ValidationResult

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "azure-validation:"


def make_cache_key(resource_type: str, resource_name: str) -> str:
    """Namespace by type before name so equal names of different types never collide."""
    return f"{CACHE_KEY_PREFIX}{resource_type}:{resource_name}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: ValidationResult
    expires_at: float


class ValidationCache:
    """Thread-safe key/value store with per-entry TTL and prefix invalidation.

    Expired entries are not scanned for; they miss on lookup and are dropped
    at that point.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, resource_type: str, resource_name: str) -> ValidationResult | None:
        key = make_cache_key(resource_type, resource_name)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(
        self,
        resource_type: str,
        resource_name: str,
        result: ValidationResult,
        ttl_minutes: int,
    ) -> None:
        key = make_cache_key(resource_type, resource_name)
        entry = CacheEntry(
            key=key,
            value=result,
            expires_at=self._clock() + ttl_minutes * 60,
        )
        with self._lock:
            self._entries[key] = entry

    def invalidate_all(self, prefix: str = CACHE_KEY_PREFIX) -> int:
        """Drop every entry whose key starts with prefix (a trailing '*' is accepted)."""
        prefix = prefix.rstrip("*")
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.info("Invalidated %d cached validation results", len(doomed))
        return len(doomed)
