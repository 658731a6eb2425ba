"""OpenAI client for image, speech and video generation."""

import base64
from typing import Any

from openai import AsyncOpenAI

from gateway.clients.base import RetryConfig, request_with_retries
from gateway.models.media import AudioResult, ImageResult, VideoOperation
from gateway.utils.logging import get_logger

logger = get_logger(__name__)

VIDEO_SECONDS = (4, 8, 12)


def video_seconds(duration: int) -> str:
    """Round a requested duration up to a length the video API accepts."""
    for seconds in VIDEO_SECONDS:
        if duration <= seconds:
            return str(seconds)
    return str(VIDEO_SECONDS[-1])


class OpenAIMediaClient:
    """Media provider backed by the OpenAI images, audio and videos APIs."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
        client: AsyncOpenAI | None = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError("OPENAI_API_KEY is required")
            kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = AsyncOpenAI(**kwargs)
        self.client = client
        self.retry = retry or RetryConfig()

    async def generate_image(self, model: str, prompt: str, size: str, quality: str) -> ImageResult:
        params: dict[str, Any] = {"model": model, "prompt": prompt, "size": size, "n": 1}
        if model.startswith("dall-e"):
            params["response_format"] = "b64_json"
            params["quality"] = "hd" if quality == "high" else "standard"
        else:
            params["quality"] = "high" if quality == "high" else "medium"

        response = await request_with_retries(lambda: self.client.images.generate(**params), self.retry, self.name)
        if not response.data:
            return ImageResult()

        image = response.data[0]
        data = base64.b64decode(image.b64_json) if image.b64_json else None
        return ImageResult(data=data, url=image.url, revised_prompt=getattr(image, "revised_prompt", None))

    async def synthesize_speech(self, model: str, text: str, voice: str, speed: float) -> AudioResult:
        response = await request_with_retries(
            lambda: self.client.audio.speech.create(
                model=model, voice=voice, input=text, speed=speed, response_format="wav"
            ),
            self.retry,
            self.name,
        )
        return AudioResult(data=response.content, mime_type="audio/wav")

    async def submit_video(self, model: str, prompt: str, seconds: int, size: str) -> VideoOperation:
        video = await request_with_retries(
            lambda: self.client.videos.create(model=model, prompt=prompt, seconds=video_seconds(seconds), size=size),
            self.retry,
            self.name,
        )
        logger.info(f"Submitted video job {video.id} ({video.status})")
        return self._operation(video)

    async def poll_video(self, operation: VideoOperation) -> VideoOperation:
        video = await self.client.videos.retrieve(operation.id)
        return self._operation(video)

    async def download_video(self, operation: VideoOperation) -> bytes:
        content = await request_with_retries(
            lambda: self.client.videos.download_content(operation.id, variant="video"), self.retry, self.name
        )
        return content.content

    @staticmethod
    def _operation(video: Any) -> VideoOperation:
        error = None
        if video.status == "failed":
            error = getattr(getattr(video, "error", None), "message", None) or "Video generation failed"
        return VideoOperation(
            id=video.id,
            done=video.status in ("completed", "failed"),
            error=error,
            progress=getattr(video, "progress", None),
        )
