"""Knowledge base tools: storeUserInfo and recallUserInfo."""

from typing import Any

from langchain_core.tools import StructuredTool, tool

from gateway.services.knowledge import KnowledgeService
from gateway.tools.base import RECALL_USER_INFO, STORE_USER_INFO, RecallUserInfoInput, StoreUserInfoInput


def create_store_user_info_tool(knowledge: KnowledgeService) -> StructuredTool:
    @tool(STORE_USER_INFO, args_schema=StoreUserInfoInput)
    async def store_user_info(info: str) -> dict[str, Any]:
        """Store important user information that should be remembered for future conversations.

        Use whenever the user shares personal details, preferences, habits or experiences.
        Examples: sleep schedule, food preferences, hobbies, work details, personal facts.
        """
        return await knowledge.store_user_info(info)

    return store_user_info


def create_recall_user_info_tool(knowledge: KnowledgeService) -> StructuredTool:
    @tool(RECALL_USER_INFO, args_schema=RecallUserInfoInput)
    async def recall_user_info(query: str) -> dict[str, Any]:
        """Recall stored information about the user to personalize the response.

        Use when the user asks about themselves or when earlier personal details are relevant.
        """
        return await knowledge.recall_user_info(query)

    return recall_user_info
