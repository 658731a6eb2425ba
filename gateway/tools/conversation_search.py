"""searchConversation tool over the stored conversation history."""

import math
from typing import Any

from langchain_core.tools import StructuredTool, tool

from gateway.models.messages import ConversationMessage
from gateway.repositories.conversation import ConversationRepository
from gateway.tools.base import SEARCH_CONVERSATION, SearchConversationInput, Timeframe

EDGE_WINDOW = 10


def select_timeframe(history: list[ConversationMessage], timeframe: Timeframe) -> list[ConversationMessage]:
    """Slice the history down to the requested part of the conversation."""
    match timeframe:
        case "recent":
            return history[-EDGE_WINDOW:]
        case "beginning":
            return history[:EDGE_WINDOW]
        case "middle":
            total = len(history)
            return history[math.floor(total * 0.3) : math.floor(total * 0.7)]
        case _:
            return history


def matches_query(content: str, query: str) -> bool:
    """Case-insensitive match on the whole query or any query word longer than three characters."""
    content = content.lower()
    query = query.lower()
    if query in content:
        return True
    return any(len(word) > 3 and word in content for word in query.split())


def search_history(history: list[ConversationMessage], query: str, timeframe: Timeframe = "all") -> dict[str, Any]:
    """Search a conversation history.

    Args:
        history: Full conversation history
        query: Phrase to look for
        timeframe: Window of the history to search

    Returns:
        Result dict with ``found`` and, on a hit, the matching turns
    """
    if not history:
        return {"found": False, "message": "No conversation history"}

    matches = [message for message in select_timeframe(history, timeframe) if matches_query(message.content, query)]
    if not matches:
        scope = "the whole conversation" if timeframe == "all" else f"the {timeframe} part of the conversation"
        return {"found": False, "message": f'Nothing about "{query}" in {scope}'}

    return {
        "found": True,
        "message": f'Found {len(matches)} relevant message(s) about "{query}"',
        "context": "\n---\n".join(f"{m.role.value}: {m.content}" for m in matches),
        "timeframe": timeframe,
        "totalMessages": len(matches),
    }


def create_search_conversation_tool(repository: ConversationRepository, conversation_id: str) -> StructuredTool:
    @tool(SEARCH_CONVERSATION, args_schema=SearchConversationInput)
    async def search_conversation(query: str, timeframe: Timeframe = "all") -> dict[str, Any]:
        """Search earlier parts of this conversation for something the user said before.

        Use when the user refers back to an earlier message or when recent context is not enough.
        """
        history = await repository.get_history(conversation_id)
        return search_history(history, query, timeframe)

    return search_conversation
