"""Media generation request models and provider results."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import Field, field_validator

from gateway.models.chat import ApiModel

ImageStyle = Literal["photorealistic", "artistic", "cartoon", "abstract"]
AspectRatio = Literal["1:1", "16:9", "9:16", "4:3"]


class _PromptRequest(ApiModel):
    prompt: str = Field(..., min_length=1, max_length=4000)
    conversation_id: str = Field(..., min_length=1, max_length=200)

    @field_validator("prompt", mode="before")
    @classmethod
    def strip_prompt(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class ImageRequest(_PromptRequest):
    """Image generation request."""

    style: ImageStyle | None = None
    quality: Literal["standard", "high"] = "standard"
    aspect_ratio: AspectRatio = "1:1"


class AudioRequest(_PromptRequest):
    """Text-to-speech request."""

    voice: Literal["male", "female"] = "female"
    speed: float = Field(default=1.0, ge=0.5, le=2.0)


class VideoRequest(_PromptRequest):
    """Video generation request."""

    duration: int = Field(default=4, ge=1, le=10)
    quality: Literal["draft", "standard", "high"] = "standard"


@dataclass
class ImageResult:
    """Image returned by a media provider, either inline or by URL."""

    data: bytes | None = None
    url: str | None = None
    mime_type: str = "image/png"
    revised_prompt: str | None = None


@dataclass
class AudioResult:
    """Synthesized speech."""

    data: bytes
    mime_type: str = "audio/wav"


@dataclass
class VideoOperation:
    """Handle on a long-running video generation job."""

    id: str
    done: bool = False
    error: str | None = None
    progress: int | None = None
