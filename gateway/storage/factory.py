"""Storage provider selection."""

from gateway.config import Settings
from gateway.storage.base import StorageProvider
from gateway.storage.memory import InMemoryStorageProvider
from gateway.storage.redis import RedisStorageProvider
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


async def create_storage_provider(settings: Settings) -> StorageProvider:
    """Build the configured storage provider.

    With fallback enabled, redis is pinged once and an in-memory store is
    used instead when it does not answer.
    """
    if settings.storage_type != "redis":
        logger.info("Using in-memory storage")
        return InMemoryStorageProvider()

    provider = RedisStorageProvider(settings.redis_url, timeout=settings.redis_timeout_seconds)
    if not settings.storage_fallback_to_memory:
        logger.info(f"Using redis storage at {settings.redis_url}")
        return provider

    if await provider.ping():
        logger.info(f"Using redis storage at {settings.redis_url}")
        return provider

    logger.warning("Redis unavailable, falling back to in-memory storage")
    await provider.close()
    return InMemoryStorageProvider()
