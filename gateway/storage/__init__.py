"""Storage providers."""

from gateway.storage.base import StorageProvider
from gateway.storage.memory import InMemoryStorageProvider
from gateway.storage.redis import RedisStorageProvider

__all__ = ["InMemoryStorageProvider", "RedisStorageProvider", "StorageProvider"]
