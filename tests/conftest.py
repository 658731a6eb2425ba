"""Shared fixtures and fakes."""

import asyncio
from typing import Any

import pytest

from gateway.config import Settings
from gateway.dependencies import ServiceContainer, build_services
from gateway.models.llm import CompletionRequest, CompletionResult
from gateway.models.media import AudioResult, ImageResult, VideoOperation
from gateway.models.model_config import ModelProvider
from gateway.services.knowledge import KnowledgeHit
from gateway.storage.memory import InMemoryStorageProvider


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChatProvider:
    """Chat provider replaying scripted results."""

    name = "fake"

    def __init__(self, *results: CompletionResult | Exception):
        self.results = list(results)
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        result = self.results.pop(0) if self.results else CompletionResult(content="ok")
        if isinstance(result, Exception):
            raise result
        return result


class FakeKnowledgeIndex:
    """Knowledge index returning every stored document of the requested type."""

    def __init__(self, documents: dict[str, str] | None = None):
        self.documents: dict[str, tuple[str, dict[str, Any]]] = {
            doc_id: (content, {"type": "user_knowledge", "category": "general"})
            for doc_id, content in (documents or {}).items()
        }
        self.upserts: list[tuple[str, str, dict[str, Any]]] = []
        self.searches: list[str] = []

    async def upsert(self, doc_id: str, content: str, metadata: dict[str, Any]) -> None:
        self.upserts.append((doc_id, content, metadata))
        self.documents[doc_id] = (content, metadata)

    async def search(self, query: str, top_k: int = 5, where: dict[str, Any] | None = None) -> list[KnowledgeHit]:
        self.searches.append(query)
        hits = [
            KnowledgeHit(id=doc_id, content=content, score=1.0, metadata=metadata)
            for doc_id, (content, metadata) in self.documents.items()
            if not where or all(metadata.get(key) == value for key, value in where.items())
        ]
        return hits[:top_k]


class FakeMediaProvider:
    """Media provider with scripted video progress."""

    name = "fake-media"

    def __init__(self, image: ImageResult | None = None, audio: AudioResult | None = None, polls_until_done=None):
        self.image = image or ImageResult(data=b"\x89PNG fake", mime_type="image/png")
        self.audio = audio or AudioResult(data=b"RIFF fake wav")
        self.polls_until_done = polls_until_done
        self.poll_count = 0
        self.video_error: str | None = None
        self.image_calls: list[dict[str, Any]] = []

    async def generate_image(self, model: str, prompt: str, size: str, quality: str) -> ImageResult:
        self.image_calls.append({"model": model, "prompt": prompt, "size": size, "quality": quality})
        return self.image

    async def synthesize_speech(self, model: str, text: str, voice: str, speed: float) -> AudioResult:
        return self.audio

    async def submit_video(self, model: str, prompt: str, seconds: int, size: str) -> VideoOperation:
        return VideoOperation(id="video-op-1")

    async def poll_video(self, operation: VideoOperation) -> VideoOperation:
        self.poll_count += 1
        done = self.polls_until_done is not None and self.poll_count >= self.polls_until_done
        return VideoOperation(id=operation.id, done=done, error=self.video_error if done else None)

    async def download_video(self, operation: VideoOperation) -> bytes:
        return b"fake mp4 bytes"


class YieldingStorageProvider(InMemoryStorageProvider):
    """In-memory store that yields to the event loop before every operation."""

    async def exists(self, key: str) -> bool:
        await asyncio.sleep(0)
        return await super().exists(key)

    async def append(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await asyncio.sleep(0)
        await super().append(key, value, ttl_seconds)

    async def append_if_absent(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        await asyncio.sleep(0)
        return await super().append_if_absent(key, value, ttl_seconds)

    async def get_list(self, key: str) -> list[Any]:
        await asyncio.sleep(0)
        return await super().get_list(key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        media_root=str(tmp_path / "generated"),
        video_poll_interval_seconds=0,
        video_max_attempts=3,
    )


@pytest.fixture
def make_services(settings):
    """Build a container around fakes."""

    def _make(
        provider: FakeChatProvider | None = None,
        knowledge_index: FakeKnowledgeIndex | None = None,
        media_provider: FakeMediaProvider | None = None,
        storage: InMemoryStorageProvider | None = None,
    ) -> ServiceContainer:
        providers = {ModelProvider.OPENROUTER: provider} if provider is not None else {}
        return build_services(
            settings,
            storage or InMemoryStorageProvider(),
            chat_providers=providers,
            media_provider=media_provider,
            knowledge_index=knowledge_index,
        )

    return _make
