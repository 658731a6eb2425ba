"""Tool execution and internal context compilation."""

import json
from dataclasses import dataclass, field
from typing import Any

from langchain_core.tools import StructuredTool

from gateway.models.llm import StructuredCall, TextDetectedCall
from gateway.tools.base import RECALL_USER_INFO, SEARCH_CONVERSATION, STORE_USER_INFO, TOOL_ALIASES
from gateway.utils.logging import get_logger, preview

logger = get_logger(__name__)

RECALL_CONTEXT_LIMIT = 3


@dataclass
class ToolExecution:
    """One executed tool call."""

    name: str
    args: dict[str, Any]
    result: dict[str, Any]


@dataclass
class ToolExecutionOutcome:
    """Everything the follow-up phase needs from tool execution."""

    executions: list[ToolExecution] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    context: str = ""


def resolve_alias(name: str, args: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Map a legacy tool name and its arguments onto the current tool."""
    if name not in TOOL_ALIASES:
        return name, args
    target, renames = TOOL_ALIASES[name]
    return target, {renames.get(key, key): value for key, value in args.items()}


class ToolExecutionEngine:
    """Runs tool calls in order and never lets one failure abort the turn."""

    async def execute(
        self, calls: list[StructuredCall | TextDetectedCall], tools: dict[str, StructuredTool]
    ) -> ToolExecutionOutcome:
        """Execute calls against the enabled tools.

        Args:
            calls: Structured and text-detected calls, in execution order
            tools: Enabled tools keyed by name

        Returns:
            ToolExecutionOutcome with names used and the internal context string
        """
        outcome = ToolExecutionOutcome()

        for call in calls:
            name, args = resolve_alias(call.name, call.args)
            tool = tools.get(name)
            if tool is None:
                logger.warning(f"Model requested unavailable tool {call.name!r}, skipping")
                outcome.executions.append(
                    ToolExecution(name=name, args=args, result={"success": False, "error": f"Unknown tool: {name}"})
                )
                continue

            try:
                result = await tool.ainvoke(args)
            except Exception as e:
                logger.error(f"Tool {name} failed: {e}")
                result = {"success": False, "error": str(e)}

            if not isinstance(result, dict):
                result = {"success": True, "output": result}

            logger.info(f"Executed tool {name} ({call.kind}) -> {preview(json.dumps(result, default=str), 80)}")
            outcome.executions.append(ToolExecution(name=name, args=args, result=result))
            outcome.tools_used.append(name)

        outcome.context = compile_tool_context(outcome.executions)
        return outcome


def compile_tool_context(executions: list[ToolExecution]) -> str:
    """Condense tool results into text the model may use but must not quote."""
    lines: list[str] = []
    for execution in executions:
        result = execution.result
        if execution.name == RECALL_USER_INFO:
            hits = result.get("results", [])[:RECALL_CONTEXT_LIMIT]
            facts = [hit.get("content") for hit in hits if hit.get("content")]
            if facts:
                lines.append(f"Information found: {'. '.join(facts)}")
        elif execution.name == SEARCH_CONVERSATION:
            if result.get("found"):
                lines.append(f"Conversation context: {result.get('context', '')}")
        elif execution.name == STORE_USER_INFO:
            if result.get("success"):
                lines.append(f"Stored for later: {execution.args.get('info', '')}")
    return "\n".join(lines)
