"""Service wiring for the gateway process."""

from dataclasses import dataclass

from fastapi import Request

from gateway.clients.anthropic import AnthropicClient
from gateway.clients.base import ChatProvider, ChatProviderRouter, MediaProvider, RetryConfig
from gateway.clients.media import OpenAIMediaClient
from gateway.clients.openrouter import OpenRouterClient
from gateway.clients.rate_limit import RateLimiter
from gateway.config import Settings
from gateway.models.model_config import ModelProvider
from gateway.repositories.conversation import ConversationRepository
from gateway.services.context_manager import ContextManager, create_token_estimator
from gateway.services.knowledge import ChromaKnowledgeIndex, KnowledgeIndex, KnowledgeService
from gateway.services.media_store import MediaStore
from gateway.services.model_selector import ModelSelector
from gateway.services.orchestrator import GenerationOrchestrator
from gateway.services.user_memory import UserMemoryService
from gateway.storage.base import StorageProvider
from gateway.storage.factory import create_storage_provider
from gateway.tools.executor import ToolExecutionEngine
from gateway.tools.registry import ToolsRegistry
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived collaborator of the gateway."""

    settings: Settings
    storage: StorageProvider
    repository: ConversationRepository
    selector: ModelSelector
    knowledge: KnowledgeService
    user_memory: UserMemoryService
    media_store: MediaStore
    orchestrator: GenerationOrchestrator

    async def close(self) -> None:
        await self.storage.close()


def build_services(
    settings: Settings,
    storage: StorageProvider,
    chat_providers: dict[ModelProvider, ChatProvider],
    media_provider: MediaProvider | None = None,
    knowledge_index: KnowledgeIndex | None = None,
    selector: ModelSelector | None = None,
) -> ServiceContainer:
    """Compose the services from already-built backends."""
    repository = ConversationRepository(storage, settings.conversation_ttl_seconds)
    selector = selector or ModelSelector()
    knowledge = KnowledgeService(knowledge_index)
    media_store = MediaStore(settings.media_root)

    orchestrator = GenerationOrchestrator(
        settings=settings,
        repository=repository,
        context_manager=ContextManager(repository, create_token_estimator(settings.token_estimator)),
        selector=selector,
        tools_registry=ToolsRegistry(knowledge, repository),
        engine=ToolExecutionEngine(),
        knowledge=knowledge,
        router=ChatProviderRouter(chat_providers),
        media_store=media_store,
        media_provider=media_provider,
    )

    return ServiceContainer(
        settings=settings,
        storage=storage,
        repository=repository,
        selector=selector,
        knowledge=knowledge,
        user_memory=UserMemoryService(storage, settings.short_term_ttl_seconds, settings.long_term_ttl_seconds),
        media_store=media_store,
        orchestrator=orchestrator,
    )


def create_chat_providers(settings: Settings) -> dict[ModelProvider, ChatProvider]:
    """Build a chat client for every provider with credentials."""
    retry = RetryConfig(max_retries=settings.upstream_max_retries)
    estimator = create_token_estimator(settings.token_estimator)
    providers: dict[ModelProvider, ChatProvider] = {}

    if settings.openrouter_api_key:
        providers[ModelProvider.OPENROUTER] = OpenRouterClient(
            settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=settings.upstream_timeout,
            retry=retry,
            rate_limiter=RateLimiter(settings.requests_per_minute, settings.tokens_per_minute),
            estimator=estimator,
        )
    if settings.anthropic_api_key:
        providers[ModelProvider.ANTHROPIC] = AnthropicClient(
            settings.anthropic_api_key,
            timeout=settings.upstream_timeout,
            rate_limiter=RateLimiter(settings.requests_per_minute, settings.tokens_per_minute),
            estimator=estimator,
        )

    if not providers:
        logger.warning("No chat provider credentials configured; chat requests will fail")
    return providers


def create_knowledge_index(settings: Settings) -> KnowledgeIndex | None:
    if not settings.knowledge_index_path:
        logger.info("Knowledge index not configured, knowledge tools disabled")
        return None
    try:
        return ChromaKnowledgeIndex(settings.knowledge_index_path, settings.knowledge_collection)
    except Exception as e:
        logger.warning(f"Knowledge index unavailable, knowledge tools disabled: {e}")
        return None


async def create_container(settings: Settings) -> ServiceContainer:
    """Build the full service graph from settings."""
    storage = await create_storage_provider(settings)

    media_provider = None
    if settings.openai_api_key:
        media_provider = OpenAIMediaClient(
            settings.openai_api_key,
            timeout=settings.upstream_timeout,
            retry=RetryConfig(max_retries=settings.upstream_max_retries),
        )

    container = build_services(
        settings,
        storage,
        chat_providers=create_chat_providers(settings),
        media_provider=media_provider,
        knowledge_index=create_knowledge_index(settings),
    )
    container.media_store.ensure_directories()
    return container


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.container
