"""OpenRouter chat client on the OpenAI-compatible API."""

import base64
import binascii
import json
from typing import Any

from openai import AsyncOpenAI

from gateway.clients.base import RetryConfig, request_with_retries
from gateway.clients.rate_limit import RateLimiter
from gateway.models.chat import Usage
from gateway.models.llm import CompletionRequest, CompletionResult, InlineAttachment, StructuredCall
from gateway.services.context_manager import CharacterRatioEstimator, TokenEstimator
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def parse_data_url(url: str) -> InlineAttachment | None:
    """Decode a base64 data URL into an attachment."""
    if not url.startswith("data:") or ";base64," not in url:
        return None
    header, payload = url[len("data:") :].split(";base64,", 1)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Discarding malformed inline attachment: {e}")
        return None
    return InlineAttachment(mime_type=header or "application/octet-stream", data=data)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class OpenRouterClient:
    """Chat provider for models hosted on OpenRouter."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        estimator: TokenEstimator | None = None,
        client: AsyncOpenAI | None = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError("OPENROUTER_API_KEY is required")
            kwargs: dict[str, Any] = {"api_key": api_key, "base_url": base_url, "max_retries": 0}
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = AsyncOpenAI(**kwargs)
        self.client = client
        self.retry = retry or RetryConfig()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.estimator = estimator or CharacterRatioEstimator()

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one chat completion.

        Args:
            request: Provider-agnostic completion request

        Returns:
            CompletionResult with content, structured tool calls and inline attachments
        """
        estimated_tokens = sum(self.estimator.estimate(m.content) for m in request.messages)
        await self.rate_limiter.check_rate_limit(estimated_tokens, self.name)

        params: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in request.messages],
        }
        if request.max_tokens:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.tools:
            params["tools"] = request.tools
            params["tool_choice"] = "auto"

        extra_body: dict[str, Any] = {}
        if request.modalities:
            extra_body["modalities"] = request.modalities
        if request.cache_key:
            extra_body["prompt_cache_key"] = request.cache_key
        if extra_body:
            params["extra_body"] = extra_body

        logger.debug(
            f"OpenRouter call to {request.model} with {len(request.messages)} messages, "
            f"{len(request.tools) if request.tools else 0} tools"
        )
        response = await request_with_retries(
            lambda: self.client.chat.completions.create(**params), self.retry, self.name
        )

        if not response.choices:
            return CompletionResult(id=response.id, model=response.model, usage=self._usage(response))

        message = response.choices[0].message
        return CompletionResult(
            id=response.id,
            content=message.content or "",
            tool_calls=self._tool_calls(message),
            attachments=self._attachments(message),
            usage=self._usage(response),
            model=response.model,
        )

    @staticmethod
    def _tool_calls(message: Any) -> list[StructuredCall]:
        calls = []
        for tool_call in message.tool_calls or []:
            function = _field(tool_call, "function")
            name = _field(function, "name") if function is not None else None
            if not name:
                logger.warning(f"Skipping tool call without a function name: {tool_call!r}")
                continue

            raw_args = _field(function, "arguments") or "{}"
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            except json.JSONDecodeError:
                args = None
            if not isinstance(args, dict):
                logger.warning(f"Malformed arguments for tool {name}: {raw_args!r}")
                args = {}
            calls.append(StructuredCall(id=_field(tool_call, "id"), name=name, args=args))
        return calls

    @staticmethod
    def _attachments(message: Any) -> list[InlineAttachment]:
        attachments = []
        for image in _field(message, "images") or []:
            url = _field(_field(image, "image_url") or {}, "url")
            attachment = parse_data_url(url) if url else None
            if attachment is not None:
                attachments.append(attachment)
        return attachments

    @staticmethod
    def _usage(response: Any) -> Usage | None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return None
        return Usage(
            prompt_tokens=usage.prompt_tokens or 0,
            completion_tokens=usage.completion_tokens or 0,
            total_tokens=usage.total_tokens or 0,
        )
