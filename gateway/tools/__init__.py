"""Tools the chat models can call."""

from gateway.tools.executor import ToolExecutionEngine, ToolExecutionOutcome
from gateway.tools.registry import ToolsRegistry

__all__ = ["ToolExecutionEngine", "ToolExecutionOutcome", "ToolsRegistry"]
