"""Tools registry: the single dispatch table for tool calls."""

from typing import Any

from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from gateway.repositories.conversation import ConversationRepository
from gateway.services.knowledge import KnowledgeService
from gateway.tools.conversation_search import create_search_conversation_tool
from gateway.tools.knowledge import create_recall_user_info_tool, create_store_user_info_tool


class ToolsRegistry:
    """Builds the tools enabled for a turn, bound to its conversation."""

    def __init__(self, knowledge: KnowledgeService, repository: ConversationRepository):
        self.knowledge = knowledge
        self.repository = repository

    def get_tools(self, conversation_id: str, use_memory: bool, use_knowledge_base: bool) -> dict[str, StructuredTool]:
        """Return the enabled tools keyed by name.

        Knowledge tools require both the request flag and a configured index;
        conversation search requires the memory flag.
        """
        tools: list[StructuredTool] = []

        if use_knowledge_base and self.knowledge.available:
            tools.append(create_store_user_info_tool(self.knowledge))
            tools.append(create_recall_user_info_tool(self.knowledge))

        if use_memory:
            tools.append(create_search_conversation_tool(self.repository, conversation_id))

        return {tool.name: tool for tool in tools}

    @staticmethod
    def get_schemas(tools: dict[str, StructuredTool]) -> list[dict[str, Any]] | None:
        """Render tools as OpenAI function schemas, or None when there are none."""
        if not tools:
            return None
        return [convert_to_openai_tool(tool) for tool in tools.values()]
