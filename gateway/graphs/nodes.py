"""Node implementations for the chat-turn graph."""

from typing import Any

from cuid2 import cuid_wrapper

from gateway.clients.base import ChatProviderRouter
from gateway.config import Settings
from gateway.errors import AppError, classify_provider_error
from gateway.graphs.state import ChatTurnState
from gateway.models.chat import ChatResponse, GeneratedMedia, Usage
from gateway.models.llm import CompletionRequest, CompletionResult, StructuredCall, TextDetectedCall
from gateway.models.messages import ConversationMessage, MessageRole
from gateway.models.model_config import ModelConfig
from gateway.repositories.conversation import ConversationRepository
from gateway.services.context_manager import ContextManager
from gateway.services.knowledge import KnowledgeService
from gateway.services.media_store import MediaKind, MediaStore
from gateway.services.model_selector import ModelSelector
from gateway.tools.base import RECALL_USER_INFO, STORE_USER_INFO
from gateway.tools.detection import detect_text_tool_calls, scrub_reply, strip_tool_syntax
from gateway.tools.executor import ToolExecutionEngine
from gateway.tools.registry import ToolsRegistry
from gateway.utils.logging import get_logger, preview

logger = get_logger(__name__)

cuid = cuid_wrapper()

AUTO_RECALL_QUERY = "user preferences personal information"
AUTO_RECALL_LIMIT = 3


def splice_user_context(window: list[ConversationMessage], user_context: str) -> list[ConversationMessage]:
    """Append recalled context to the system message of an outbound window.

    Returns a new list; stored history is never touched.
    """
    spliced = list(window)
    for i, message in enumerate(spliced):
        if message.role == MessageRole.SYSTEM:
            spliced[i] = message.model_copy(update={"content": f"{message.content}\n\n{user_context}"})
            return spliced
    return [ConversationMessage(role=MessageRole.SYSTEM, content=user_context), *spliced]


def follow_up_instruction(prompt: str, tools_used: list[str]) -> str:
    actions = ""
    if STORE_USER_INFO in tools_used:
        actions += " and stored it for future reference"
    if RECALL_USER_INFO in tools_used:
        actions += " and recalled relevant information"
    return (
        f'The user said: "{prompt}"\n\n'
        f"You have processed this information{actions}.\n\n"
        "Respond naturally to the user without mentioning tools, storage, or memory operations. "
        "Just have a natural conversation."
    )


def build_follow_up_messages(
    window: list[ConversationMessage], prompt: str, tools_used: list[str], tool_context: str
) -> list[ConversationMessage]:
    """Assemble the tool-free second call.

    The prior window without its trailing user turn, then the internal
    instruction, the internal tool context when there is one, and the user
    prompt again.
    """
    prior = window[:-1] if window and window[-1].role == MessageRole.USER else list(window)
    messages = [*prior, ConversationMessage(role=MessageRole.SYSTEM, content=follow_up_instruction(prompt, tools_used))]
    if tool_context.strip():
        messages.append(
            ConversationMessage(
                role=MessageRole.SYSTEM,
                content=f"Internal context (do not mention explicitly): {tool_context.strip()}",
            )
        )
    messages.append(ConversationMessage(role=MessageRole.USER, content=prompt))
    return messages


def add_usage(first: Usage | None, second: Usage | None) -> Usage | None:
    if first is None:
        return second
    if second is None:
        return first
    return first + second


class ChatTurnNodes:
    """Graph nodes for one chat turn, bound to their collaborators."""

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
    ):
        self.settings = settings
        self.repository = repository
        self.context_manager = context_manager
        self.selector = selector
        self.tools_registry = tools_registry
        self.engine = engine
        self.knowledge = knowledge
        self.router = router
        self.media_store = media_store

    async def record_user_turn(self, state: ChatTurnState) -> dict[str, Any]:
        """Open the conversation with a system message if needed, then record the user turn."""
        request = state.request
        system_prompt = self.settings.build_system_prompt(request.use_knowledge_base, request.use_memory)
        if await self.repository.open_conversation(
            request.conversation_id, ConversationMessage(role=MessageRole.SYSTEM, content=system_prompt)
        ):
            logger.info(f"Started conversation {request.conversation_id}")

        await self.repository.add_message(
            request.conversation_id, ConversationMessage(role=MessageRole.USER, content=request.prompt)
        )
        return {"request": request}

    async def resolve_model(self, state: ChatTurnState) -> dict[str, Any]:
        request = state.request
        model = self.selector.select_model(request.model_type, request.task_type, request.use_memory)
        supports_tools = self.selector.supports_tools(request.model_type, request.use_memory)
        tools_enabled = supports_tools and model.capabilities.tools

        logger.info(f"Selected model {model.id} ({model.name}), tools enabled: {tools_enabled}")
        return {"model": model, "supports_tools": supports_tools, "tools_enabled": tools_enabled}

    async def build_context(self, state: ChatTurnState) -> dict[str, Any]:
        """Choose the outbound window; the current user turn is always last."""
        request = state.request
        if state.supports_tools and request.use_memory:
            context = await self.context_manager.get_optimized_context(request.conversation_id)
            window = list(context.messages)
        else:
            window = await self.context_manager.get_token_optimized_context(
                request.conversation_id, self.settings.context_token_budget
            )

        if not window or window[-1].role != MessageRole.USER or window[-1].content != request.prompt:
            window.append(ConversationMessage(role=MessageRole.USER, content=request.prompt))
        return {"window": window}

    async def auto_recall(self, state: ChatTurnState) -> dict[str, Any]:
        """Best-effort lookup of stored user facts, spliced into the outbound system message."""
        if not state.request.use_knowledge_base or not self.knowledge.available:
            return {"user_context": ""}

        try:
            recalled = await self.knowledge.recall_user_info(AUTO_RECALL_QUERY)
        except Exception as e:
            logger.warning(f"Automatic recall failed: {e}")
            return {"user_context": ""}

        facts = [hit["content"] for hit in recalled.get("results", [])[:AUTO_RECALL_LIMIT] if hit.get("content")]
        if not facts:
            return {"user_context": ""}

        user_context = f"User context: {'. '.join(facts)}"
        logger.info(f"Added {len(facts)} recalled facts to context")
        return {"user_context": user_context, "window": splice_user_context(state.window, user_context)}

    async def generate(self, state: ChatTurnState) -> dict[str, Any]:
        """Primary upstream call; collects structured and inline tool calls."""
        request = state.request
        model = state.model
        tools = (
            self.tools_registry.get_tools(request.conversation_id, request.use_memory, request.use_knowledge_base)
            if state.tools_enabled
            else {}
        )

        completion = await self.complete(
            model,
            CompletionRequest(
                model=model.name,
                messages=state.window,
                max_tokens=request.max_tokens or model.max_tokens or None,
                temperature=request.temperature,
                tools=self.tools_registry.get_schemas(tools),
                modalities=["image", "text"] if model.capabilities.image_generation else None,
                cache_key=request.conversation_id,
            ),
        )

        calls: list[StructuredCall | TextDetectedCall] = list(completion.tool_calls)
        if tools:
            detected, content = detect_text_tool_calls(completion.content, tools)
            calls.extend(detected)
        else:
            content = strip_tool_syntax(completion.content)

        logger.info(f"Primary generation returned {len(calls)} tool calls, content: {preview(content)}")
        return {
            "content": content,
            "calls": calls,
            "enabled_tools": list(tools),
            "attachments": completion.attachments,
            "usage": completion.usage,
        }

    async def execute_tools(self, state: ChatTurnState) -> dict[str, Any]:
        request = state.request
        tools = self.tools_registry.get_tools(request.conversation_id, request.use_memory, request.use_knowledge_base)
        tools = {name: tool for name, tool in tools.items() if name in state.enabled_tools}

        outcome = await self.engine.execute(state.calls, tools)
        return {"tools_used": outcome.tools_used, "tool_context": outcome.context}

    async def follow_up(self, state: ChatTurnState) -> dict[str, Any]:
        """Second, tool-free call that produces the natural reply."""
        request = state.request
        model = state.model
        messages = build_follow_up_messages(state.window, request.prompt, state.tools_used, state.tool_context)

        completion = await self.complete(
            model,
            CompletionRequest(
                model=model.name,
                messages=messages,
                max_tokens=request.max_tokens or model.max_tokens or None,
                temperature=request.temperature,
                cache_key=f"{request.conversation_id}_followup",
            ),
        )

        reply = scrub_reply(completion.content).strip()
        if not reply:
            logger.info("Follow-up returned no content, using fallback reply")
            reply = self.settings.fallback_reply
        return {"reply": reply, "usage": add_usage(state.usage, completion.usage)}

    async def finalize(self, state: ChatTurnState) -> dict[str, Any]:
        """Record the assistant turn and build the response."""
        request = state.request
        reply = state.reply or state.content

        media: list[GeneratedMedia] = []
        for attachment in state.attachments:
            stored = await self.media_store.save(MediaKind.IMAGE, attachment.data, attachment.mime_type)
            media.append(GeneratedMedia(type="image", url=stored.url, metadata={"format": attachment.mime_type}))

        await self.repository.add_message(
            request.conversation_id, ConversationMessage(role=MessageRole.ASSISTANT, content=reply)
        )

        response = ChatResponse(
            id=cuid(),
            message=reply,
            model_used=state.model.name,
            tools_used=state.tools_used,
            conversation_id=request.conversation_id,
            media=media or None,
            usage=state.usage,
        )
        return {"response": response}

    async def complete(self, model: ModelConfig, request: CompletionRequest) -> CompletionResult:
        """Call the provider serving the model, classifying any failure."""
        provider = self.router.for_model(model)
        try:
            return await provider.complete(request)
        except AppError:
            raise
        except Exception as e:
            logger.error(f"{provider.name} call for {model.id} failed: {e}")
            raise classify_provider_error(e, provider.name) from e
