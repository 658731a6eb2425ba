"""Generation orchestrator: chat turns and media generation."""

import asyncio

from gateway.clients.base import ChatProviderRouter, MediaProvider
from gateway.config import Settings
from gateway.errors import AppError, ErrorCode, classify_provider_error
from gateway.graphs.chat import create_chat_graph
from gateway.graphs.nodes import ChatTurnNodes, cuid
from gateway.models.chat import ChatRequest, ChatResponse, GeneratedMedia
from gateway.models.llm import CompletionRequest
from gateway.models.media import AudioRequest, ImageRequest, ImageResult, VideoOperation, VideoRequest
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.models.model_config import ModelConfig, ModelProvider, ModelType, TaskType
from gateway.repositories.conversation import ConversationRepository
from gateway.services.context_manager import ContextManager
from gateway.services.knowledge import KnowledgeService
from gateway.services.media_store import MediaKind, MediaStore
from gateway.services.model_selector import ModelSelector
from gateway.tools.executor import ToolExecutionEngine
from gateway.tools.registry import ToolsRegistry
from gateway.utils.logging import get_logger, preview

logger = get_logger(__name__)

STYLE_PROMPTS = {
    "photorealistic": "photorealistic, highly detailed, natural lighting",
    "artistic": "artistic illustration, expressive brushwork",
    "cartoon": "cartoon style, bold outlines, vibrant colors",
    "abstract": "abstract composition, shapes and color fields",
}

# Closest size each upstream API accepts for an aspect ratio.
IMAGE_SIZES = {"1:1": "1024x1024", "16:9": "1792x1024", "9:16": "1024x1792", "4:3": "1792x1024"}
VIDEO_SIZES = {"draft": "720x1280", "standard": "1280x720", "high": "1792x1024"}
VOICES = {"female": "nova", "male": "onyx"}


def enhance_image_prompt(prompt: str, style: str | None) -> str:
    if style and style in STYLE_PROMPTS:
        return f"{prompt}, {STYLE_PROMPTS[style]}"
    return prompt


class GenerationOrchestrator:
    """Entry point for every user request that reaches an upstream model."""

    def __init__(
        self,
        settings: Settings,
        repository: ConversationRepository,
        context_manager: ContextManager,
        selector: ModelSelector,
        tools_registry: ToolsRegistry,
        engine: ToolExecutionEngine,
        knowledge: KnowledgeService,
        router: ChatProviderRouter,
        media_store: MediaStore,
        media_provider: MediaProvider | None = None,
    ):
        self.settings = settings
        self.repository = repository
        self.selector = selector
        self.router = router
        self.media_store = media_store
        self.media_provider = media_provider

        self.nodes = ChatTurnNodes(
            settings=settings,
            repository=repository,
            context_manager=context_manager,
            selector=selector,
            tools_registry=tools_registry,
            engine=engine,
            knowledge=knowledge,
            router=router,
            media_store=media_store,
        )
        self.graph = create_chat_graph(self.nodes)

    async def send_message(self, request: ChatRequest) -> ChatResponse:
        """Run one user turn.

        Chat and vision requests go through the chat graph; image and audio
        requests are dispatched to media generation.

        Args:
            request: The user turn

        Returns:
            ChatResponse with the visible reply

        Raises:
            AppError: On selection, storage or upstream failure
        """
        logger.info(
            f"Chat request for {request.conversation_id}: type={request.model_type}, task={request.task_type}, "
            f"memory={request.use_memory}, knowledge={request.use_knowledge_base}"
        )

        if request.task_type == TaskType.IMAGE:
            return await self.generate_image(
                ImageRequest(prompt=request.prompt, conversation_id=request.conversation_id)
            )
        if request.task_type == TaskType.AUDIO:
            return await self.generate_audio(
                AudioRequest(prompt=request.prompt, conversation_id=request.conversation_id)
            )

        result = await self.graph.ainvoke({"request": request}, {"recursion_limit": 20})
        response: ChatResponse = result["response"]
        logger.info(f"Reply for {request.conversation_id} via {response.model_used}: {preview(response.message)}")
        return response

    async def generate_image(self, request: ImageRequest) -> ChatResponse:
        """Generate an image, store it, and record the exchange."""
        model = self.selector.select_model(ModelType.SIMPLE, TaskType.IMAGE, False)
        prompt = enhance_image_prompt(request.prompt, request.style)
        size = IMAGE_SIZES[request.aspect_ratio]

        try:
            if model.provider == ModelProvider.OPENAI:
                result = await self._media().generate_image(model.name, prompt, size, request.quality)
            else:
                result = await self._image_from_chat_model(model, prompt)
        except AppError:
            raise
        except Exception as e:
            raise self._generation_error(e, ErrorCode.IMAGE_GENERATION_ERROR, "Image generation failed") from e

        if result.data:
            url = (await self.media_store.save(MediaKind.IMAGE, result.data, result.mime_type)).url
        elif result.url:
            url = result.url
        else:
            raise AppError(ErrorCode.IMAGE_GENERATION_ERROR, "The model returned no image", {"model": model.name})

        metadata = {"prompt": request.prompt, "style": request.style, "size": size, "format": result.mime_type}
        if result.revised_prompt:
            metadata["revisedPrompt"] = result.revised_prompt
        return await self._record_media_turn(
            request.conversation_id, "image", request.prompt, url, model.name, metadata
        )

    async def generate_audio(self, request: AudioRequest) -> ChatResponse:
        """Synthesize speech for the prompt and store it as WAV."""
        model = self.selector.select_model(ModelType.SIMPLE, TaskType.AUDIO, False)
        voice = VOICES[request.voice]

        try:
            result = await self._media().synthesize_speech(model.name, request.prompt, voice, request.speed)
        except AppError:
            raise
        except Exception as e:
            raise self._generation_error(e, ErrorCode.AUDIO_GENERATION_ERROR, "Audio generation failed") from e

        if not result.data:
            raise AppError(ErrorCode.AUDIO_GENERATION_ERROR, "The model returned no audio", {"model": model.name})

        stored = await self.media_store.save(MediaKind.AUDIO, result.data, result.mime_type)
        metadata = {"voice": request.voice, "speed": request.speed, "format": result.mime_type, "size": stored.size}
        return await self._record_media_turn(
            request.conversation_id, "audio", request.prompt, stored.url, model.name, metadata
        )

    async def generate_video(self, request: VideoRequest) -> ChatResponse:
        """Submit a video job, poll until it finishes, then download and store it.

        Polling uses a fixed interval and gives up after the configured number
        of attempts.

        Raises:
            AppError: VIDEO_GENERATION_ERROR on failure or timeout
        """
        media = self._media()
        model_name = self.settings.video_model
        size = VIDEO_SIZES[request.quality]

        try:
            operation = await media.submit_video(model_name, request.prompt, request.duration, size)
            operation = await self._wait_for_video(operation)
            data = await media.download_video(operation)
        except AppError:
            raise
        except Exception as e:
            raise self._generation_error(e, ErrorCode.VIDEO_GENERATION_ERROR, "Video generation failed") from e

        stored = await self.media_store.save(MediaKind.VIDEO, data, "video/mp4")
        metadata = {"duration": request.duration, "quality": request.quality, "size": stored.size}
        return await self._record_media_turn(
            request.conversation_id, "video", request.prompt, stored.url, model_name, metadata
        )

    async def _wait_for_video(self, operation: VideoOperation) -> VideoOperation:
        attempts = 0
        max_attempts = self.settings.video_max_attempts
        while not operation.done:
            if attempts >= max_attempts:
                raise AppError(
                    ErrorCode.VIDEO_GENERATION_ERROR,
                    "Video generation timed out",
                    {"operationId": operation.id, "attempts": attempts},
                )
            await asyncio.sleep(self.settings.video_poll_interval_seconds)
            operation = await self.media_provider.poll_video(operation)
            attempts += 1
            logger.debug(f"Video job {operation.id} poll {attempts}/{max_attempts}, progress: {operation.progress}")

        if operation.error:
            raise AppError(
                ErrorCode.VIDEO_GENERATION_ERROR,
                "Video generation failed",
                {"operationId": operation.id, "originalError": operation.error},
            )
        return operation

    async def _image_from_chat_model(self, model: ModelConfig, prompt: str) -> ImageResult:
        completion = await self.nodes.complete(
            model,
            CompletionRequest(
                model=model.name,
                messages=[ConversationMessage(role=MessageRole.USER, content=prompt)],
                modalities=["image", "text"],
            ),
        )
        if not completion.attachments:
            return ImageResult()
        attachment = completion.attachments[0]
        return ImageResult(data=attachment.data, mime_type=attachment.mime_type)

    async def _record_media_turn(
        self, conversation_id: str, kind: str, prompt: str, url: str, model_name: str, metadata: dict
    ) -> ChatResponse:
        await self.repository.add_message(
            conversation_id, ConversationMessage(role=MessageRole.USER, content=f"Generate {kind}: {prompt}")
        )
        summary = f"{kind.capitalize()} generated: {url}"
        await self.repository.add_message(
            conversation_id,
            ConversationMessage(role=MessageRole.ASSISTANT, content=summary, metadata={"mediaUrl": url, "type": kind}),
        )
        logger.info(f"Generated {kind} for {conversation_id}: {url}")
        return ChatResponse(
            id=cuid(),
            message=summary,
            model_used=model_name,
            conversation_id=conversation_id,
            media=[GeneratedMedia(type=kind, url=url, metadata=metadata)],
        )

    def _media(self) -> MediaProvider:
        if self.media_provider is None:
            raise AppError(ErrorCode.MODEL_NOT_AVAILABLE, "No media generation provider is configured")
        return self.media_provider

    @staticmethod
    def _generation_error(error: Exception, code: ErrorCode, message: str) -> AppError:
        logger.error(f"{message}: {error}")
        if isinstance(getattr(error, "status_code", None), int):
            return classify_provider_error(error, "openai")
        return AppError(code, message, {"originalError": str(error)})
