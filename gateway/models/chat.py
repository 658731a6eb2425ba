"""Request and response models for the chat and media endpoints."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from gateway.models.model_config import ModelType, TaskType


class ApiModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(ApiModel):
    """A user turn submitted to the gateway."""

    prompt: str = Field(..., min_length=1, max_length=4000)
    conversation_id: str = Field(..., min_length=1, max_length=200)
    model_type: ModelType = ModelType.SIMPLE
    task_type: TaskType = TaskType.CHAT
    use_memory: bool = False
    use_knowledge_base: bool = False
    max_tokens: int | None = Field(default=None, ge=1, le=8192)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    @field_validator("prompt", mode="before")
    @classmethod
    def strip_prompt(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class UncensoredChatRequest(ApiModel):
    """Plain conversation with the unfiltered simple model."""

    prompt: str = Field(..., min_length=1, max_length=4000)
    conversation_id: str = Field(..., min_length=1, max_length=200)
    max_tokens: int | None = Field(default=None, ge=1, le=8192)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    @field_validator("prompt", mode="before")
    @classmethod
    def strip_prompt(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    def to_chat_request(self) -> ChatRequest:
        return ChatRequest(
            prompt=self.prompt,
            conversation_id=self.conversation_id,
            model_type=ModelType.SIMPLE,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


class Usage(ApiModel):
    """Token usage for one chat turn."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost=None if self.cost is None and other.cost is None else (self.cost or 0) + (other.cost or 0),
        )


class GeneratedMedia(ApiModel):
    """A media artifact produced during a turn."""

    type: Literal["image", "audio", "video"]
    url: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatResponse(ApiModel):
    """The gateway's reply to a user turn."""

    id: str
    message: str
    model_used: str
    tools_used: list[str] = Field(default_factory=list)
    conversation_id: str
    media: list[GeneratedMedia] | None = None
    usage: Usage | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: datetime
    version: str
    storage: str
    knowledge_index: bool
