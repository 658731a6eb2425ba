"""State carried through the chat-turn graph."""

from pydantic import BaseModel, Field

from gateway.models.chat import ChatRequest, ChatResponse, Usage
from gateway.models.llm import InlineAttachment, ToolCall
from gateway.models.messages import ConversationMessage
from gateway.models.model_config import ModelConfig


class ChatTurnState(BaseModel):
    """One chat turn, from the recorded user message to the final response.

    Nodes return partial updates; fields stay at their defaults until the node
    responsible for them has run.
    """

    request: ChatRequest

    # Model resolution
    model: ModelConfig | None = None
    supports_tools: bool = False
    tools_enabled: bool = False
    enabled_tools: list[str] = Field(default_factory=list)

    # Outbound context
    window: list[ConversationMessage] = Field(default_factory=list)
    user_context: str = ""

    # Primary generation
    content: str = ""
    calls: list[ToolCall] = Field(default_factory=list)
    attachments: list[InlineAttachment] = Field(default_factory=list)
    usage: Usage | None = None

    # Tool execution and follow-up
    tools_used: list[str] = Field(default_factory=list)
    tool_context: str = ""
    reply: str = ""

    response: ChatResponse | None = None
