"""API endpoints for the chat gateway."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from gateway import __version__
from gateway.api.envelope import success_response
from gateway.dependencies import ServiceContainer, get_container
from gateway.errors import AppError, ErrorCode
from gateway.models.chat import ChatRequest, HealthResponse, UncensoredChatRequest
from gateway.models.media import AudioRequest, ImageRequest, VideoRequest
from gateway.models.memory import (
    AnalyzeInfoRequest,
    LongTermMemoryRequest,
    LongTermSearchRequest,
    ShortTermLookupRequest,
    ShortTermMemoryRequest,
)
from gateway.services.user_memory import analyze_user_info, derive_user_id
from gateway.storage.memory import InMemoryStorageProvider
from gateway.utils.logging import get_logger, preview

logger = get_logger(__name__)

router = APIRouter()


@router.post("/api/chat", tags=["Chat"])
async def chat(
    body: ChatRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    """Send a user turn and get the assistant's reply."""
    logger.info(f"Chat turn for {body.conversation_id}: {preview(body.prompt)}")
    response = await services.orchestrator.send_message(body)
    return success_response(request, response)


@router.post("/api/chat/uncensored", tags=["Chat"])
async def chat_uncensored(
    body: UncensoredChatRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    """Plain conversation with the simple model, no tools or memory."""
    response = await services.orchestrator.send_message(body.to_chat_request())
    return success_response(request, response)


@router.post("/api/chat/image", tags=["Media"])
async def generate_image(
    body: ImageRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    response = await services.orchestrator.generate_image(body)
    return success_response(request, response)


@router.post("/api/chat/audio", tags=["Media"])
async def generate_audio(
    body: AudioRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    response = await services.orchestrator.generate_audio(body)
    return success_response(request, response)


@router.post("/api/chat/video", tags=["Media"])
async def generate_video(
    body: VideoRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    """Generate a video. Blocks until the upstream job finishes or times out."""
    response = await services.orchestrator.generate_video(body)
    return success_response(request, response)


@router.get("/api/conversations/{conversation_id}", tags=["Conversations"])
async def get_conversation(
    conversation_id: str, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    if not await services.repository.conversation_exists(conversation_id):
        raise AppError(
            ErrorCode.CONVERSATION_NOT_FOUND,
            f"Conversation {conversation_id} not found",
            {"conversationId": conversation_id},
        )
    history = await services.repository.get_history(conversation_id)
    return success_response(
        request,
        {
            "conversationId": conversation_id,
            "messages": [message.model_dump(mode="json", exclude_none=True) for message in history],
            "totalMessages": len(history),
        },
    )


@router.delete("/api/conversations/{conversation_id}", tags=["Conversations"])
async def delete_conversation(
    conversation_id: str, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    await services.repository.delete_conversation(conversation_id)
    return success_response(request, {"conversationId": conversation_id, "deleted": True})


@router.get("/api/models", tags=["Models"])
async def list_models(request: Request, services: ServiceContainer = Depends(get_container)) -> JSONResponse:
    models = services.selector.get_available_models()
    return success_response(request, [model.model_dump(mode="json") for model in models])


@router.post("/api/tools/memory/short-term", tags=["Memory"])
async def store_short_term_memory(
    body: ShortTermMemoryRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    key = await services.user_memory.store_short_term(body.conversation_id, body.key, body.data)
    return success_response(request, {"key": key, "ttlSeconds": services.user_memory.short_term_ttl})


@router.post("/api/tools/memory/short-term/get", tags=["Memory"])
async def get_short_term_memory(
    body: ShortTermLookupRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    data = await services.user_memory.get_short_term(body.conversation_id, body.key)
    return success_response(request, {"key": body.key, "found": data is not None, "data": data})


@router.post("/api/tools/memory/long-term", tags=["Memory"])
async def store_long_term_memory(
    body: LongTermMemoryRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    user_id = body.user_id or derive_user_id(body.conversation_id)
    category = body.category or analyze_user_info(body.content).category
    memory = await services.user_memory.store_long_term(user_id, body.content, category)
    return success_response(request, memory)


@router.post("/api/tools/memory/long-term/search", tags=["Memory"])
async def search_long_term_memory(
    body: LongTermSearchRequest, request: Request, services: ServiceContainer = Depends(get_container)
) -> JSONResponse:
    user_id = body.user_id or derive_user_id(body.conversation_id)
    memories = await services.user_memory.search_long_term(user_id, body.query)
    return success_response(
        request,
        {"userId": user_id, "results": [m.model_dump(mode="json") for m in memories], "count": len(memories)},
    )


@router.post("/api/tools/memory/analyze", tags=["Memory"])
async def analyze_memory(body: AnalyzeInfoRequest, request: Request) -> JSONResponse:
    return success_response(request, analyze_user_info(body.content))


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(services: ServiceContainer = Depends(get_container)) -> HealthResponse:
    """Health check endpoint."""
    storage = "memory" if isinstance(services.storage, InMemoryStorageProvider) else "redis"
    return HealthResponse(
        status="healthy" if await services.storage.ping() else "degraded",
        timestamp=datetime.now(UTC),
        version=__version__,
        storage=storage,
        knowledge_index=services.knowledge.available,
    )
