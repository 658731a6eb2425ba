"""Anthropic chat client with rate limiting and error handling."""

from dataclasses import dataclass
from typing import Any, Literal

from anthropic import AsyncAnthropic
from anthropic.types import Message
from pydantic import BaseModel

from gateway.clients.base import RetryConfig, request_with_retries
from gateway.clients.rate_limit import RateLimiter
from gateway.models.chat import Usage
from gateway.models.llm import CompletionRequest, CompletionResult, StructuredCall
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.services.context_manager import TiktokenEstimator, TokenEstimator
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


class AnthropicMessage(BaseModel):
    """Message format for the Anthropic API."""

    role: Literal["user", "assistant"]
    content: str


class AnthropicTool(BaseModel):
    """Tool definition for the Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic client."""

    max_tokens: int = 1000
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0

    max_conversation_tokens: int = 200000
    token_headroom: int = 2000  # Reserved for the response


def to_anthropic_tools(tools: list[dict[str, Any]] | None) -> list[AnthropicTool] | None:
    """Convert OpenAI-format function schemas to Anthropic tools."""
    if not tools:
        return None
    converted = []
    for tool in tools:
        function = tool.get("function", tool)
        converted.append(
            AnthropicTool(
                name=function["name"],
                description=function.get("description", ""),
                input_schema=function.get("parameters") or {"type": "object", "properties": {}},
            )
        )
    return converted


def split_system_prompt(messages: list[ConversationMessage]) -> tuple[str, list[AnthropicMessage]]:
    """Fold system messages into one system prompt and merge consecutive same-role turns."""
    system_parts: list[str] = []
    converted: list[AnthropicMessage] = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            system_parts.append(message.content)
            continue
        if converted and converted[-1].role == message.role.value:
            converted[-1] = AnthropicMessage(
                role=converted[-1].role, content=f"{converted[-1].content}\n\n{message.content}"
            )
        else:
            converted.append(AnthropicMessage(role=message.role.value, content=message.content))
    return "\n\n".join(system_parts), converted


class AnthropicClient:
    """Chat provider for Claude models."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None,
        config: AnthropicConfig | None = None,
        timeout: float | None = None,
        rate_limiter: RateLimiter | None = None,
        estimator: TokenEstimator | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            config: Client configuration
            timeout: Request timeout in seconds, library default when None
            rate_limiter: Shared rate limiter
            estimator: Token estimator used for rate limiting and truncation
            client: Preconfigured SDK client
        """
        if client is None:
            if not api_key:
                raise ValueError("ANTHROPIC_API_KEY is required")
            kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = AsyncAnthropic(**kwargs)

        self.client = client
        self.config = config or AnthropicConfig()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.estimator = estimator or TiktokenEstimator()

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        system_prompt, messages = split_system_prompt(request.messages)
        tools = to_anthropic_tools(request.tools)
        messages = self.truncate_conversation(messages, system_prompt, tools)

        estimated_tokens = self.estimator.estimate(system_prompt + "".join(m.content for m in messages))
        await self.rate_limiter.check_rate_limit(estimated_tokens, self.name)

        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or self.config.max_tokens,
            "temperature": request.temperature if request.temperature is not None else self.config.temperature,
            "messages": [m.model_dump() for m in messages],
        }
        if system_prompt:
            params["system"] = system_prompt
        if tools:
            params["tools"] = [tool.model_dump() for tool in tools]

        logger.debug(f"Anthropic call to {request.model} with {len(messages)} messages")
        retry = RetryConfig(max_retries=self.config.max_retries, retry_delay=self.config.retry_delay)
        response: Message = await request_with_retries(lambda: self.client.messages.create(**params), retry, self.name)

        logger.debug(f"Response received - Stop reason: {response.stop_reason}, blocks: {len(response.content)}")
        return self._to_result(response)

    @staticmethod
    def _to_result(response: Message) -> CompletionResult:
        text_parts: list[str] = []
        tool_calls: list[StructuredCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(StructuredCall(id=block.id, name=block.name, args=dict(block.input or {})))
            else:
                logger.warning(f"Unknown content block type: {block.type}")

        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        return CompletionResult(
            id=response.id,
            content="".join(text_parts),
            tool_calls=tool_calls,
            usage=usage,
            model=response.model,
        )

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Drop the oldest messages until the conversation fits the context window.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Newest messages that fit within the limit
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimator.estimate(system_prompt)
        if tools:
            available_tokens -= self.estimator.estimate(
                "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            )

        truncated: list[AnthropicMessage] = []
        current_tokens = 0
        for message in reversed(messages):
            message_tokens = self.estimator.estimate(message.content)
            if current_tokens + message_tokens > available_tokens:
                break
            truncated.insert(0, message)
            current_tokens += message_tokens

        if len(truncated) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated
