"""Tests for upstream clients: message conversion, truncation, parsing and retries."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from pydantic import ValidationError

from gateway.clients.anthropic import (
    AnthropicClient,
    AnthropicConfig,
    AnthropicMessage,
    split_system_prompt,
    to_anthropic_tools,
)
from gateway.clients.base import ChatProviderRouter, RetryConfig, request_with_retries
from gateway.clients.media import OpenAIMediaClient, video_seconds
from gateway.clients.openrouter import OpenRouterClient, parse_data_url
from gateway.config import Settings
from gateway.errors import AppError, ErrorCode
from gateway.models.llm import CompletionRequest
from gateway.models.media import VideoOperation
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.models.model_config import ModelConfig, ModelProvider

TOOL_SCHEMA = {
    "type": "function",
    "function": {
        "name": "storeUserInfo",
        "description": "Store user info",
        "parameters": {"type": "object", "properties": {"info": {"type": "string"}}, "required": ["info"]},
    },
}


class StatusError(Exception):
    def __init__(self, status_code: int, headers: dict | None = None):
        super().__init__(f"status {status_code}")
        self.status_code = status_code
        self.response = SimpleNamespace(headers=headers or {})


def messages(*pairs: tuple[MessageRole, str]) -> list[ConversationMessage]:
    return [ConversationMessage(role=role, content=content) for role, content in pairs]


class TestAnthropicConversion:
    """Tests for converting gateway messages to the Anthropic format."""

    def test_system_messages_become_system_prompt(self):
        system, converted = split_system_prompt(
            messages(
                (MessageRole.SYSTEM, "Be nice."),
                (MessageRole.USER, "Hi"),
                (MessageRole.SYSTEM, "Internal context"),
                (MessageRole.USER, "Again"),
                (MessageRole.ASSISTANT, "Hello"),
            )
        )

        assert system == "Be nice.\n\nInternal context"
        assert converted == [
            AnthropicMessage(role="user", content="Hi\n\nAgain"),
            AnthropicMessage(role="assistant", content="Hello"),
        ]

    def test_tool_schemas(self):
        tools = to_anthropic_tools([TOOL_SCHEMA])
        assert tools[0].name == "storeUserInfo"
        assert tools[0].input_schema["required"] == ["info"]
        assert to_anthropic_tools(None) is None


class TestConversationTruncation:
    """Tests for conversation truncation functionality."""

    @pytest.fixture
    def anthropic_client(self):
        """Create AnthropicClient for testing."""
        config = AnthropicConfig(max_conversation_tokens=10000, token_headroom=1000)
        # Mock estimator for consistent testing
        return AnthropicClient(api_key=None, config=config, estimator=Mock(), client=MagicMock())

    def test_truncate_conversation_within_limit(self, anthropic_client):
        """Test that conversations within limits are not truncated."""
        anthropic_client.estimator.estimate.return_value = 100

        conversation = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
        ]

        result = anthropic_client.truncate_conversation(conversation, "System prompt")

        assert result == conversation

    def test_truncate_conversation_exceeds_limit(self, anthropic_client):
        """Test that conversations exceeding limits are truncated from the beginning."""
        anthropic_client.estimator.estimate.side_effect = lambda text: 500 if "System prompt" in text else 3000

        conversation = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
            AnthropicMessage(role="assistant", content="Response 2"),
            AnthropicMessage(role="user", content="Message 3"),
        ]

        result = anthropic_client.truncate_conversation(conversation, "System prompt")

        # 10000 - 1000 headroom - 500 system leaves room for two 3000-token messages
        assert [m.content for m in result] == ["Response 2", "Message 3"]

    def test_truncate_conversation_empty_messages(self, anthropic_client):
        """Test truncation with empty message list."""
        assert anthropic_client.truncate_conversation([], "System prompt") == []


class TestAnthropicClient:
    """Tests for AnthropicClient.complete against a mocked SDK."""

    @pytest.mark.asyncio
    async def test_complete_maps_text_and_tool_use(self):
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                id="msg_1",
                model="claude-3-5-sonnet-20241022",
                stop_reason="tool_use",
                content=[
                    SimpleNamespace(type="text", text="Let me note that."),
                    SimpleNamespace(type="tool_use", id="tu_1", name="storeUserInfo", input={"info": "X"}),
                ],
                usage=SimpleNamespace(input_tokens=12, output_tokens=8),
            )
        )
        estimator = Mock()
        estimator.estimate.return_value = 1
        client = AnthropicClient(api_key=None, estimator=estimator, client=sdk)

        result = await client.complete(
            CompletionRequest(
                model="claude-3-5-sonnet-20241022",
                messages=messages((MessageRole.SYSTEM, "Be nice."), (MessageRole.USER, "Remember X")),
                tools=[TOOL_SCHEMA],
            )
        )

        assert result.content == "Let me note that."
        assert result.tool_calls[0].name == "storeUserInfo"
        assert result.tool_calls[0].args == {"info": "X"}
        assert result.usage.total_tokens == 20

        params = sdk.messages.create.await_args.kwargs
        assert params["system"] == "Be nice."
        assert params["messages"] == [{"role": "user", "content": "Remember X"}]
        assert params["tools"][0]["name"] == "storeUserInfo"
        assert params["max_tokens"] == AnthropicConfig().max_tokens

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            AnthropicClient(api_key=None)


class TestOpenRouterClient:
    """Tests for OpenRouterClient.complete against a mocked SDK."""

    @pytest.fixture
    def sdk(self):
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(
                id="gen-1",
                model="meta-llama/llama-4-scout:free",
                choices=[
                    SimpleNamespace(
                        message=SimpleNamespace(
                            content=None,
                            tool_calls=[
                                SimpleNamespace(
                                    id="call_1",
                                    function=SimpleNamespace(name="storeUserInfo", arguments='{"info": "X"}'),
                                ),
                                SimpleNamespace(
                                    id="call_2",
                                    function=SimpleNamespace(name="recallUserInfo", arguments="{not json"),
                                ),
                            ],
                            images=[{"type": "image_url", "image_url": {"url": "data:image/png;base64,aGVsbG8="}}],
                        )
                    )
                ],
                usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
            )
        )
        return sdk

    @pytest.mark.asyncio
    async def test_complete_parses_calls_and_attachments(self, sdk):
        client = OpenRouterClient(api_key="key", client=sdk)

        result = await client.complete(
            CompletionRequest(
                model="meta-llama/llama-4-scout:free",
                messages=messages((MessageRole.USER, "Hi")),
                tools=[TOOL_SCHEMA],
                modalities=["image", "text"],
                cache_key="c1",
            )
        )

        assert result.content == ""
        assert [(call.name, call.args) for call in result.tool_calls] == [
            ("storeUserInfo", {"info": "X"}),
            ("recallUserInfo", {}),
        ]
        assert result.attachments[0].mime_type == "image/png"
        assert result.attachments[0].data == b"hello"
        assert result.usage.total_tokens == 7

        params = sdk.chat.completions.create.await_args.kwargs
        assert params["tools"] == [TOOL_SCHEMA]
        assert params["tool_choice"] == "auto"
        assert params["extra_body"] == {"modalities": ["image", "text"], "prompt_cache_key": "c1"}
        assert params["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_no_tools_no_tool_choice(self, sdk):
        client = OpenRouterClient(api_key="key", client=sdk)

        await client.complete(CompletionRequest(model="m", messages=messages((MessageRole.USER, "Hi"))))

        params = sdk.chat.completions.create.await_args.kwargs
        assert "tools" not in params
        assert "tool_choice" not in params
        assert "extra_body" not in params

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", ["null", "[]", '"x"', "42", ["info"]])
    async def test_non_object_arguments_become_empty(self, arguments):
        """Test that tool arguments which are not a JSON object do not abort the turn."""
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(
                id="gen-2",
                model="m",
                choices=[
                    SimpleNamespace(
                        message=SimpleNamespace(
                            content="",
                            tool_calls=[
                                SimpleNamespace(
                                    id="call_1", function=SimpleNamespace(name="storeUserInfo", arguments=arguments)
                                )
                            ],
                        )
                    )
                ],
                usage=None,
            )
        )
        client = OpenRouterClient(api_key="key", client=sdk)

        result = await client.complete(CompletionRequest(model="m", messages=messages((MessageRole.USER, "Hi"))))

        assert [(call.name, call.args) for call in result.tool_calls] == [("storeUserInfo", {})]

    @pytest.mark.asyncio
    async def test_calls_without_name_are_skipped(self):
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(
                id="gen-3",
                model="m",
                choices=[
                    SimpleNamespace(
                        message=SimpleNamespace(
                            content="",
                            tool_calls=[
                                SimpleNamespace(id="call_1", function=SimpleNamespace(name=None, arguments="{}")),
                                SimpleNamespace(id="call_2", function=None),
                                SimpleNamespace(
                                    id="call_3",
                                    function=SimpleNamespace(name="recallUserInfo", arguments='{"query": "q"}'),
                                ),
                            ],
                        )
                    )
                ],
                usage=None,
            )
        )
        client = OpenRouterClient(api_key="key", client=sdk)

        result = await client.complete(CompletionRequest(model="m", messages=messages((MessageRole.USER, "Hi"))))

        assert [(call.id, call.name) for call in result.tool_calls] == [("call_3", "recallUserInfo")]

    def test_parse_data_url(self):
        attachment = parse_data_url("data:image/jpeg;base64,aGVsbG8=")
        assert attachment.mime_type == "image/jpeg"
        assert attachment.data == b"hello"
        assert parse_data_url("https://example.com/cat.png") is None
        assert parse_data_url("data:image/png;base64,@@@") is None


class TestRetries:
    """Tests for request_with_retries."""

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        call = AsyncMock(side_effect=[StatusError(500), StatusError(502), "ok"])
        result = await request_with_retries(call, RetryConfig(max_retries=3, retry_delay=0), "test")
        assert result == "ok"
        assert call.await_count == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        call = AsyncMock(side_effect=StatusError(400))
        with pytest.raises(StatusError):
            await request_with_retries(call, RetryConfig(max_retries=3, retry_delay=0), "test")
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        call = AsyncMock(side_effect=[StatusError(429, {"retry-after": "2"}), "ok"])
        with patch("gateway.clients.base.asyncio.sleep", AsyncMock()) as sleep:
            result = await request_with_retries(call, RetryConfig(max_retries=3, retry_delay=0), "test")
        assert result == "ok"
        sleep.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_long_retry_after_is_not_waited(self):
        call = AsyncMock(side_effect=StatusError(429, {"retry-after": "600"}))
        with pytest.raises(StatusError):
            await request_with_retries(call, RetryConfig(max_retries=3, retry_delay=0), "test")
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        call = AsyncMock(side_effect=StatusError(503))
        with pytest.raises(StatusError):
            await request_with_retries(call, RetryConfig(max_retries=2, retry_delay=0), "test")
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_retries_still_makes_one_attempt(self):
        call = AsyncMock(return_value="ok")
        assert await request_with_retries(call, RetryConfig(max_retries=0, retry_delay=0), "test") == "ok"
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries_raises_upstream_error(self):
        call = AsyncMock(side_effect=StatusError(503))
        with pytest.raises(StatusError):
            await request_with_retries(call, RetryConfig(max_retries=0, retry_delay=0), "test")
        assert call.await_count == 1

    def test_settings_reject_zero_retries(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, upstream_max_retries=0)


class TestProviderRouter:
    """Tests for ChatProviderRouter."""

    def test_missing_provider(self):
        router = ChatProviderRouter({})
        model = ModelConfig(id="claude-chat", name="claude", provider=ModelProvider.ANTHROPIC)
        with pytest.raises(AppError) as exc_info:
            router.for_model(model)
        assert exc_info.value.code == ErrorCode.MODEL_NOT_AVAILABLE


class TestOpenAIMediaClient:
    """Tests for OpenAIMediaClient against a mocked SDK."""

    @pytest.mark.parametrize(("duration", "expected"), [(1, "4"), (4, "4"), (5, "8"), (10, "12")])
    def test_video_seconds(self, duration, expected):
        assert video_seconds(duration) == expected

    @pytest.mark.asyncio
    async def test_dall_e_requests_inline_image(self):
        sdk = MagicMock()
        sdk.images.generate = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(b64_json="aGVsbG8=", url=None, revised_prompt="a cat")])
        )
        client = OpenAIMediaClient(api_key=None, client=sdk)

        result = await client.generate_image("dall-e-3", "cat", "1024x1024", "high")

        assert result.data == b"hello"
        assert result.revised_prompt == "a cat"
        params = sdk.images.generate.await_args.kwargs
        assert params["response_format"] == "b64_json"
        assert params["quality"] == "hd"

    @pytest.mark.asyncio
    async def test_poll_maps_status(self):
        sdk = MagicMock()
        sdk.videos.retrieve = AsyncMock(
            return_value=SimpleNamespace(
                id="video_1", status="failed", progress=100, error=SimpleNamespace(message="blocked")
            )
        )
        client = OpenAIMediaClient(api_key=None, client=sdk)

        operation = await client.poll_video(VideoOperation(id="video_1"))

        assert operation.done is True
        assert operation.error == "blocked"
