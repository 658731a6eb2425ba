"""Application settings loaded from the environment."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_SYSTEM_PROMPT = "You are a smart, friendly and helpful AI assistant."

MEMORY_PROMPT_ADDENDUM = (
    "You have an excellent memory and know the people you talk with well. You remember their tastes, "
    "preferences, experiences and the important details they have shared with you in earlier conversations.\n\n"
    "When someone tells you something important about themselves, you remember it naturally, and you use it in "
    "a natural, conversational way, like a good friend who knows them well.\n\n"
    'NEVER say that you are "searching your memory" or "saving information". Simply act as if you naturally '
    "remember these things about the person."
)


class Settings(BaseSettings):
    """Gateway configuration."""

    # Upstream providers
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    upstream_timeout: float | None = None
    upstream_max_retries: int = Field(default=3, ge=1)
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    # Storage
    storage_type: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    storage_fallback_to_memory: bool = True
    redis_timeout_seconds: float = 5.0
    conversation_ttl_seconds: int = 7 * 24 * 60 * 60
    short_term_ttl_seconds: int = 60 * 60
    long_term_ttl_seconds: int = 30 * 24 * 60 * 60

    # Knowledge index
    knowledge_index_path: str | None = None
    knowledge_collection: str = "user-knowledge"

    # Context
    context_token_budget: int = 8000
    token_estimator: Literal["chars", "tiktoken"] = "chars"

    # Prompts
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    fallback_reply: str = "Understood, I'll keep that in mind."

    # Media generation
    media_root: str = "./generated"
    video_model: str = "sora-2"
    video_poll_interval_seconds: float = 10.0
    video_max_attempts: int = 30

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    def build_system_prompt(self, use_knowledge_base: bool, use_memory: bool) -> str:
        """Return the system prompt for a new conversation."""
        if use_knowledge_base or use_memory:
            return f"{self.system_prompt}\n\n{MEMORY_PROMPT_ADDENDUM}"
        return self.system_prompt
