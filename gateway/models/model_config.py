"""Model catalog data types."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ModelType(StrEnum):
    """Conversation style requested by the client."""

    SIMPLE = "simple"
    WITH_TOOLS = "with_tools"
    MEMORY = "memory"


class TaskType(StrEnum):
    """Kind of work a model is asked to do."""

    CHAT = "chat"
    IMAGE = "image"
    AUDIO = "audio"
    VISION = "vision"


class ModelProvider(StrEnum):
    """Upstream vendor serving a model."""

    OPENROUTER = "openrouter"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class ModelCapabilities(BaseModel):
    """Capability flags advertised by a model."""

    model_config = ConfigDict(frozen=True)

    tools: bool = False
    vision: bool = False
    streaming: bool = False
    image_generation: bool = False
    audio_processing: bool = False


class ModelConfig(BaseModel):
    """Catalog entry describing one upstream model."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str
    name: str
    provider: ModelProvider
    capabilities: ModelCapabilities | None = Field(default_factory=ModelCapabilities)
    max_tokens: int = 0
    cost_per_1k_tokens: float | None = None
    is_active: bool = True
