"""Chat-turn graph."""

from langgraph.graph import END, StateGraph

from gateway.graphs.edges import route_after_generation, route_after_tools
from gateway.graphs.nodes import ChatTurnNodes
from gateway.graphs.state import ChatTurnState
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


def create_chat_graph(nodes: ChatTurnNodes):
    """Create the graph that runs one chat turn.

    record_user_turn -> resolve_model -> build_context -> auto_recall -> generate,
    then either straight to finalize or through execute_tools and/or
    follow_up first.

    Args:
        nodes: Node implementations bound to their collaborators

    Returns:
        Compiled LangGraph workflow
    """
    workflow = StateGraph(ChatTurnState)

    workflow.add_node("record_user_turn", nodes.record_user_turn)
    workflow.add_node("resolve_model", nodes.resolve_model)
    workflow.add_node("build_context", nodes.build_context)
    workflow.add_node("auto_recall", nodes.auto_recall)
    workflow.add_node("generate", nodes.generate)
    workflow.add_node("execute_tools", nodes.execute_tools)
    workflow.add_node("follow_up", nodes.follow_up)
    workflow.add_node("finalize", nodes.finalize)

    workflow.set_entry_point("record_user_turn")
    workflow.add_edge("record_user_turn", "resolve_model")
    workflow.add_edge("resolve_model", "build_context")
    workflow.add_edge("build_context", "auto_recall")
    workflow.add_edge("auto_recall", "generate")

    workflow.add_conditional_edges(
        "generate",
        route_after_generation,
        {
            "execute_tools": "execute_tools",
            "follow_up": "follow_up",
            "finalize": "finalize",
        },
    )
    workflow.add_conditional_edges(
        "execute_tools",
        route_after_tools,
        {
            "follow_up": "follow_up",
            "finalize": "finalize",
        },
    )
    workflow.add_edge("follow_up", "finalize")
    workflow.add_edge("finalize", END)

    compiled = workflow.compile()
    logger.debug("Chat graph compiled")
    return compiled
