"""Tool catalog, executors and the tool-call loop."""

from .tools import (
    Confirmation,
    FatalToolError,
    FunctionToolExecutor,
    Tool,
    ToolExecutionError,
    ToolExecutor,
    ToolResult,
)
from .loop import LoopState, ToolCallLoop, ToolLoopResult
from .mcp_executor import MCPToolExecutor

__all__ = [
    "Confirmation",
    "FatalToolError",
    "FunctionToolExecutor",
    "Tool",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolResult",
    "LoopState",
    "ToolCallLoop",
    "ToolLoopResult",
    "MCPToolExecutor",
]
