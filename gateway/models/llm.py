"""Provider-agnostic models for upstream completion calls."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from gateway.models.chat import Usage
from gateway.models.messages import ConversationMessage


class StructuredCall(BaseModel):
    """Tool call reported through the provider's function-calling channel."""

    kind: Literal["structured"] = "structured"
    id: str | None = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class TextDetectedCall(BaseModel):
    """Tool call the model wrote out as plain text."""

    kind: Literal["text"] = "text"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    matched_span: tuple[int, int]


ToolCall = Annotated[StructuredCall | TextDetectedCall, Field(discriminator="kind")]


class InlineAttachment(BaseModel):
    """Binary payload returned inline by a multimodal model."""

    mime_type: str
    data: bytes


class CompletionRequest(BaseModel):
    """One chat-completion call to an upstream provider."""

    model: str
    messages: list[ConversationMessage]
    max_tokens: int | None = None
    temperature: float | None = None
    tools: list[dict[str, Any]] | None = None
    modalities: list[str] | None = None
    cache_key: str | None = None


class CompletionResult(BaseModel):
    """Normalized upstream completion."""

    id: str | None = None
    content: str = ""
    tool_calls: list[StructuredCall] = Field(default_factory=list)
    attachments: list[InlineAttachment] = Field(default_factory=list)
    usage: Usage | None = None
    model: str | None = None
