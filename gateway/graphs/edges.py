"""Routing for the chat-turn graph."""

from typing import Literal

from gateway.graphs.state import ChatTurnState
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


def needs_follow_up(state: ChatTurnState) -> bool:
    """A second, tool-free call is needed after any tool call or when the visible content is empty."""
    return bool(state.calls) or not state.content.strip()


def route_after_generation(state: ChatTurnState) -> Literal["execute_tools", "follow_up", "finalize"]:
    """Route from the primary generation."""
    if state.calls:
        logger.debug(f"Routing {len(state.calls)} tool calls to execution")
        return "execute_tools"
    if needs_follow_up(state):
        logger.debug("Empty primary content, routing to follow-up")
        return "follow_up"
    return "finalize"


def route_after_tools(state: ChatTurnState) -> Literal["follow_up", "finalize"]:
    """Route from tool execution."""
    return "follow_up" if needs_follow_up(state) else "finalize"
