"""Short and long-term user memory kept in the storage provider."""

import hashlib
import re
import time
from datetime import UTC, datetime
from typing import Any

from cuid2 import cuid_wrapper
from pydantic import BaseModel

from gateway.errors import AppError, ErrorCode, StorageBackendError
from gateway.storage.base import StorageProvider
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

_suffix = cuid_wrapper()

SHORT_TERM_TTL_SECONDS = 60 * 60
LONG_TERM_TTL_SECONDS = 30 * 24 * 60 * 60
SEARCH_LIMIT = 5

# First match wins, in declaration order.
CATEGORY_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "personal_info": [
        re.compile(r"my name is|i'm called|me llamo|mi nombre es", re.IGNORECASE),
        re.compile(r"i'm from|i live in|i was born in|soy de|vivo en|nacido en", re.IGNORECASE),
        re.compile(r"my age|i am \d+ years old|mi edad|tengo \d+ años", re.IGNORECASE),
        re.compile(r"my job|i work at|i work as|mi trabajo|trabajo en|trabajo como", re.IGNORECASE),
    ],
    "preferences": [
        re.compile(r"i like|i love|i prefer|me gusta|me encanta|prefiero", re.IGNORECASE),
        re.compile(r"i don't like|i hate|no me gusta|odio|detesto", re.IGNORECASE),
        re.compile(r"my favou?rite|mi favorito|mi preferido", re.IGNORECASE),
    ],
    "skills": [
        re.compile(r"i know|i have experience|conozco|tengo experiencia", re.IGNORECASE),
        re.compile(r"i program in|i code in|programo en|trabajo con", re.IGNORECASE),
        re.compile(r"specialist in|expert in|especialista en|experto en", re.IGNORECASE),
    ],
    "goals": [
        re.compile(r"i want to learn|my goal|quiero aprender|mi objetivo", re.IGNORECASE),
        re.compile(r"i plan to|i'm going to|planeo|voy a|mi meta", re.IGNORECASE),
    ],
    "coding_style": [
        re.compile(r"i always use|my style|siempre uso|prefiero usar|mi estilo", re.IGNORECASE),
        re.compile(r"this is how i|esta es mi forma|así es como", re.IGNORECASE),
    ],
}

MEMORY_CATEGORIES = [*CATEGORY_PATTERNS, "general"]


class InfoAnalysis(BaseModel):
    """Whether a message carries user information worth storing."""

    should_store: bool
    category: str
    reason: str


class LongTermMemory(BaseModel):
    """A long-term fact about a user."""

    key: str
    content: str
    category: str
    timestamp: datetime
    user_id: str


def derive_user_id(conversation_id: str) -> str:
    """Derive a pseudo user id from a conversation id.

    This is a weak identity: anyone holding the conversation id maps to the
    same user.
    """
    return hashlib.sha256(conversation_id.encode("utf-8")).hexdigest()[:16]


def analyze_user_info(content: str) -> InfoAnalysis:
    """Classify free text into a memory category."""
    for category, patterns in CATEGORY_PATTERNS.items():
        if any(pattern.search(content) for pattern in patterns):
            return InfoAnalysis(should_store=True, category=category, reason=f"Detected {category} information")
    return InfoAnalysis(should_store=False, category="general", reason="No relevant personal information detected")


class UserMemoryService:
    """Scratch memory per conversation and durable facts per user."""

    def __init__(
        self,
        storage: StorageProvider,
        short_term_ttl: int = SHORT_TERM_TTL_SECONDS,
        long_term_ttl: int = LONG_TERM_TTL_SECONDS,
    ):
        self.storage = storage
        self.short_term_ttl = short_term_ttl
        self.long_term_ttl = long_term_ttl

    async def store_short_term(self, conversation_id: str, key: str, data: Any) -> str:
        storage_key = f"temp:{conversation_id}:{key}"
        try:
            await self.storage.set(
                storage_key,
                {"data": data, "timestamp": datetime.now(UTC).isoformat(), "conversationId": conversation_id},
                self.short_term_ttl,
            )
        except StorageBackendError as e:
            raise _storage_error("Failed to store short-term memory", e) from e
        logger.debug(f"Stored short-term memory {storage_key}")
        return storage_key

    async def get_short_term(self, conversation_id: str, key: str) -> Any | None:
        try:
            stored = await self.storage.get(f"temp:{conversation_id}:{key}")
        except StorageBackendError as e:
            raise _storage_error("Failed to read short-term memory", e) from e
        return stored.get("data") if stored else None

    async def store_long_term(self, user_id: str, content: str, category: str) -> LongTermMemory:
        now = datetime.now(UTC)
        key = f"longterm:{user_id}:{category}:{time.time_ns() // 1_000_000}-{_suffix()[:6]}"
        memory = LongTermMemory(key=key, content=content, category=category, timestamp=now, user_id=user_id)
        try:
            await self.storage.set(key, memory.model_dump(mode="json"), self.long_term_ttl)
        except StorageBackendError as e:
            raise _storage_error("Failed to store long-term memory", e) from e
        logger.info(f"Stored long-term memory ({category}) for user {user_id}")
        return memory

    async def search_long_term(self, user_id: str, query: str, limit: int = SEARCH_LIMIT) -> list[LongTermMemory]:
        """Substring search over a user's long-term memories, newest first."""
        needle = query.lower()
        try:
            keys = await self.storage.keys(f"longterm:{user_id}:*")
            memories = []
            for key in keys:
                raw = await self.storage.get(key)
                if raw is None:
                    continue
                memory = LongTermMemory.model_validate(raw)
                if needle in memory.content.lower() or needle in memory.category.lower():
                    memories.append(memory)
        except StorageBackendError as e:
            raise _storage_error("Failed to search long-term memory", e) from e

        memories.sort(key=lambda m: m.timestamp, reverse=True)
        return memories[:limit]


def _storage_error(message: str, error: Exception) -> AppError:
    return AppError(ErrorCode.STORAGE_ERROR, message, {"originalError": str(error)})
