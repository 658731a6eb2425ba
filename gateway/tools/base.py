"""Tool names and input schemas shared by the tool modules."""

from typing import Literal

from pydantic import BaseModel, Field

STORE_USER_INFO = "storeUserInfo"
RECALL_USER_INFO = "recallUserInfo"
SEARCH_CONVERSATION = "searchConversation"

KNOWLEDGE_TOOLS = frozenset({STORE_USER_INFO, RECALL_USER_INFO})

# Older tool names some models still emit, with their argument renames.
TOOL_ALIASES: dict[str, tuple[str, dict[str, str]]] = {
    "addResource": (STORE_USER_INFO, {"resource": "info"}),
    "getInformation": (RECALL_USER_INFO, {}),
    "retrieveConversationMemory": (SEARCH_CONVERSATION, {}),
}

Timeframe = Literal["recent", "middle", "beginning", "all"]


class StoreUserInfoInput(BaseModel):
    """Input schema for storeUserInfo."""

    info: str = Field(
        ...,
        min_length=1,
        description="The user information to remember, written as a short standalone statement",
    )


class RecallUserInfoInput(BaseModel):
    """Input schema for recallUserInfo."""

    query: str = Field(..., min_length=1, description="What to look up about the user")


class SearchConversationInput(BaseModel):
    """Input schema for searchConversation."""

    query: str = Field(..., min_length=1, description="Words or phrase to look for in earlier messages")
    timeframe: Timeframe = Field(
        default="all",
        description="Part of the conversation to search: recent, middle, beginning or all",
    )
