"""Request models for the memory tool endpoints."""

from typing import Any, Literal

from pydantic import Field, model_validator

from gateway.models.chat import ApiModel

MemoryCategory = Literal["personal_info", "preferences", "skills", "goals", "coding_style", "general"]


class ShortTermMemoryRequest(ApiModel):
    conversation_id: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1, max_length=200)
    data: Any


class ShortTermLookupRequest(ApiModel):
    conversation_id: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1, max_length=200)


class _UserScopedRequest(ApiModel):
    user_id: str | None = None
    conversation_id: str | None = None

    @model_validator(mode="after")
    def require_identity(self):
        if not self.user_id and not self.conversation_id:
            raise ValueError("Either userId or conversationId is required")
        return self


class LongTermMemoryRequest(_UserScopedRequest):
    """Store a long-term fact; the category is inferred when omitted."""

    content: str = Field(..., min_length=1, max_length=4000)
    category: MemoryCategory | None = None


class LongTermSearchRequest(_UserScopedRequest):
    query: str = Field(..., min_length=1, max_length=500)


class AnalyzeInfoRequest(ApiModel):
    content: str = Field(..., min_length=1, max_length=4000)
