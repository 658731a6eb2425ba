"""Key/value storage abstraction."""

import re
from typing import Any, Protocol


class StorageProvider(Protocol):
    """Async key/value store with per-key expiry.

    Absence is reported as None, False or an empty list. Backend failures raise
    StorageBackendError so callers can tell the two apart.
    """

    async def get(self, key: str) -> Any | None:
        """Return the value stored under key, or None."""
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store value under key, replacing any previous value."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key if present."""
        ...

    async def exists(self, key: str) -> bool:
        """Check whether a live key exists."""
        ...

    async def keys(self, pattern: str | None = None) -> list[str]:
        """List live keys matching a pattern where '*' matches any run of characters."""
        ...

    async def append(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Atomically push value onto the list under key and refresh its expiry."""
        ...

    async def append_if_absent(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Atomically start a list under key with value, only if key does not exist.

        Returns:
            True if the list was created, False if key was already present
        """
        ...

    async def get_list(self, key: str) -> list[Any]:
        """Return the list stored under key, or an empty list."""
        ...

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


def compile_key_pattern(pattern: str | None) -> re.Pattern[str]:
    """Compile a key pattern into a regex matching the whole key."""
    if not pattern:
        return re.compile(r".*", re.DOTALL)
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)
