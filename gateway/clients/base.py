"""Provider protocols, routing and shared retry logic."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from gateway.errors import AppError, ErrorCode
from gateway.models.llm import CompletionRequest, CompletionResult
from gateway.models.media import AudioResult, ImageResult, VideoOperation
from gateway.models.model_config import ModelConfig, ModelProvider
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

MAX_RETRY_AFTER_SECONDS = 120

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Retry policy for upstream calls."""

    max_retries: int = 3
    retry_delay: float = 1.0


class ChatProvider(Protocol):
    """Upstream chat-completion client."""

    name: str

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...


class MediaProvider(Protocol):
    """Upstream client for image, speech and video generation."""

    name: str

    async def generate_image(self, model: str, prompt: str, size: str, quality: str) -> ImageResult: ...

    async def synthesize_speech(self, model: str, text: str, voice: str, speed: float) -> AudioResult: ...

    async def submit_video(self, model: str, prompt: str, seconds: int, size: str) -> VideoOperation: ...

    async def poll_video(self, operation: VideoOperation) -> VideoOperation: ...

    async def download_video(self, operation: VideoOperation) -> bytes: ...


class ChatProviderRouter:
    """Resolves the chat client serving a model's provider."""

    def __init__(self, providers: dict[ModelProvider, ChatProvider]):
        self.providers = providers

    def for_model(self, model: ModelConfig) -> ChatProvider:
        provider = self.providers.get(model.provider)
        if provider is None:
            raise AppError(
                ErrorCode.MODEL_NOT_AVAILABLE,
                f"No client configured for provider {model.provider}",
                {"modelId": model.id, "provider": str(model.provider)},
            )
        return provider


async def request_with_retries(call: Callable[[], Awaitable[T]], config: RetryConfig, provider: str) -> T:
    """Run an upstream request, retrying rate limits and server errors.

    max_retries counts attempts; anything below one still makes a single attempt.
    """
    attempts = max(1, config.max_retries)
    for attempt in range(attempts):
        last_attempt = attempt >= attempts - 1
        try:
            return await call()

        except Exception as e:
            status = getattr(e, "status_code", None)
            if status == 429:
                retry_after = 60
                response = getattr(e, "response", None)
                if response is not None and getattr(response, "headers", None):
                    try:
                        retry_after = int(response.headers.get("retry-after", 60))
                    except (TypeError, ValueError):
                        retry_after = 60

                if retry_after < MAX_RETRY_AFTER_SECONDS and not last_attempt:
                    logger.warning(f"{provider} rate limited, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue
                raise

            if isinstance(status, int) and status < 500:
                raise

            if not last_attempt:
                delay = config.retry_delay * (2**attempt)
                logger.warning(f"{provider} request failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue
            raise

    raise RuntimeError(f"Failed to complete {provider} request after {attempts} attempts")
