"""Tool catalog and executors for the tool-call loop."""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional
from pydantic import BaseModel

from llm.errors import OrchestratorError

logger = logging.getLogger(__name__)


class ToolExecutionError(OrchestratorError):
    """A single tool call failed. The loop reports it to the model and goes on."""


class FatalToolError(OrchestratorError):
    """A tool failure that must abort the whole loop.

    ``partial_result`` is filled by the loop with everything gathered so far.
    """

    def __init__(self, message: str, partial_result: Any = None):
        super().__init__(message)
        self.partial_result = partial_result


class Confirmation(str, Enum):
    """Answer of a human asked to approve a tool call."""
    CONFIRMED = "confirmed"
    DENIED = "denied"
    QUIT = "quit"


class ToolResult(BaseModel):
    """Result from tool execution."""
    tool_call_id: str
    tool_name: str
    content: str
    error: Optional[str] = None
    success: bool = True


class Tool:
    """
    Function-tool definition in the OpenAI format.

    Built fluently:

        Tool("say_hello", "Say hello to someone").add_parameter(
            "name", "string", "The person to greet", required=True
        )
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.parameters: Dict[str, Any] = {
            "type": "object",
            "properties": {},
            "required": []
        }

    def add_parameter(
        self,
        name: str,
        param_type: str,
        description: str = "",
        required: bool = False
    ) -> "Tool":
        self.parameters["properties"][name] = {
            "type": param_type,
            "description": description
        }
        if required and name not in self.parameters["required"]:
            self.parameters["required"].append(name)
        return self

    def get_definition(self) -> Dict:
        """Get OpenAI-compatible tool definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }

    @classmethod
    def from_definition(cls, definition: Dict) -> "Tool":
        """
        Build a tool from an OpenAI function definition or an MCP tool entry
        ({name, description, inputSchema}).
        """
        entry = definition.get("function", definition)
        if "name" not in entry:
            raise ValueError(f"Tool definition without a name: {definition}")

        tool = cls(entry["name"], entry.get("description") or "")
        schema = entry.get("parameters") or entry.get("inputSchema")
        if schema:
            tool.parameters = {
                "type": schema.get("type", "object"),
                "properties": dict(schema.get("properties") or {}),
                "required": list(schema.get("required") or [])
            }
        return tool

    def __repr__(self) -> str:
        return f"Tool(name={self.name!r})"


class ToolExecutor(ABC):
    """Runs tool calls by name with raw JSON arguments."""

    # False when execute() must not be called from several threads at once
    reentrant: bool = True

    @abstractmethod
    def execute(self, name: str, arguments_json: str) -> str:
        """
        Execute a tool.

        Args:
            name: Tool name
            arguments_json: JSON object with the call arguments

        Returns:
            JSON-compatible string result

        Raises:
            ToolExecutionError: The call failed; reported back to the model
            FatalToolError: The loop must stop
        """
        pass


class FunctionToolExecutor(ToolExecutor):
    """Executes registered Python callables."""

    def __init__(self):
        self._functions: Dict[str, Callable[..., Any]] = {}

    def register(self, name: str, fn: Optional[Callable[..., Any]] = None):
        """
        Register fn under name. Usable as a decorator:

            @executor.register("say_hello")
            def say_hello(name): ...
        """
        if fn is None:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self._functions[name] = func
                return func
            return decorator

        self._functions[name] = fn
        return fn

    def execute(self, name: str, arguments_json: str) -> str:
        fn = self._functions.get(name)
        if fn is None:
            raise ToolExecutionError(f"Unknown tool '{name}'")

        try:
            arguments = json.loads(arguments_json) if arguments_json and arguments_json.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"Invalid arguments for '{name}': {e}") from e
        if not isinstance(arguments, dict):
            raise ToolExecutionError(f"Arguments for '{name}' must be a JSON object")

        logger.debug(f"Calling {name} with {arguments}")
        try:
            result = fn(**arguments)
        except (ToolExecutionError, FatalToolError):
            raise
        except Exception as e:
            raise ToolExecutionError(f"{name} raised {type(e).__name__}: {e}") from e

        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return json.dumps(result)
