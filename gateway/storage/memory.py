"""Process-local storage provider."""

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from gateway.storage.base import compile_key_pattern
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: float | None = None


class InMemoryStorageProvider:
    """Dict-backed store with lazy expiry.

    Expired keys are evicted when they are next touched. No method awaits
    between reading and writing, so every operation is atomic within the
    event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: dict[str, _Entry] = {}
        self._clock = clock

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() > entry.expires_at:
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        return copy.deepcopy(entry.value) if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self._data[key] = _Entry(copy.deepcopy(value), self._expiry(ttl_seconds))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def keys(self, pattern: str | None = None) -> list[str]:
        regex = compile_key_pattern(pattern)
        return [key for key in list(self._data) if self._live_entry(key) and regex.fullmatch(key)]

    async def append(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        entry = self._live_entry(key)
        if entry is None:
            entry = _Entry([])
            self._data[key] = entry
        elif not isinstance(entry.value, list):
            entry.value = [entry.value]

        entry.value.append(copy.deepcopy(value))
        if ttl_seconds is not None:
            entry.expires_at = self._expiry(ttl_seconds)

    async def append_if_absent(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        if self._live_entry(key) is not None:
            return False
        self._data[key] = _Entry([copy.deepcopy(value)], self._expiry(ttl_seconds))
        return True

    async def get_list(self, key: str) -> list[Any]:
        entry = self._live_entry(key)
        if entry is None:
            return []
        value = entry.value if isinstance(entry.value, list) else [entry.value]
        return copy.deepcopy(value)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug(f"Discarding {len(self._data)} in-memory keys")
        self._data.clear()
