"""Conversation message models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class MessageRole(StrEnum):
    """Who authored a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationMessage(BaseModel):
    """A single immutable entry in a conversation history."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime | None = None
    metadata: dict[str, Any] | None = None

    def to_storage(self) -> dict[str, Any]:
        """Serialize into a JSON-safe dict for storage providers."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_storage(cls, raw: dict[str, Any]) -> "ConversationMessage":
        return cls.model_validate(raw)
