"""Tool-call loop: lets the model call tools until it answers."""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, List, Optional
from pydantic import BaseModel

from llm.base_client import BaseLLMClient, Message, Role, ToolCall
from .tools import Confirmation, FatalToolError, Tool, ToolExecutor, ToolResult

logger = logging.getLogger(__name__)

FINISH_STOP = "stop"
FINISH_MAX_ROUNDS = "max_rounds"
FINISH_USER_QUIT = "user_quit"

DENIED_RESULT = json.dumps({
    "status": "denied",
    "message": "Tool execution was denied by user"
})
EMPTY_RESULT = json.dumps({"error": "Function execution returned empty result"})

ConfirmCallback = Callable[[str, str], Confirmation]


class LoopState(str, Enum):
    """States of the tool-call loop."""
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class ToolLoopResult(BaseModel):
    """Result of a tool-call loop run."""
    finish_reason: str
    results: List[str] = []  # tool result contents, in execution order
    last_assistant_message: str = ""
    messages: List[Message] = []
    rounds: int = 0
    tool_results: List[ToolResult] = []


class ToolCallLoop:
    """
    Detects tool calls in model turns, executes them, and feeds the results
    back until the model stops calling tools.

    Parallel calls of one turn run on a thread pool. Their results are
    always reported in request order.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        tools: List[Tool],
        executor: ToolExecutor,
        max_rounds: int = 10,
        parallel: bool = False,
        max_workers: int = 4,
        temperature: Optional[float] = 0.0,
        confirm: Optional[ConfirmCallback] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize tool-call loop.

        Args:
            llm_client: Model that decides on tool calls
            tools: Tool catalog offered to the model
            executor: Runs the tool calls
            max_rounds: Maximum model rounds before giving up
            parallel: Let the model request several tools per turn and run them concurrently
            max_workers: Thread pool size in parallel mode
            temperature: Sampling temperature for the tools model
            confirm: Optional human confirmation, asked before each call
            logger: Logger to use (default: module logger)
        """
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1, got {max_rounds}")

        self.llm_client = llm_client
        self.tools = list(tools)
        self.executor = executor
        self.max_rounds = max_rounds
        self.parallel = parallel
        self.max_workers = max_workers
        self.temperature = temperature
        self.confirm = confirm
        self.logger = logger or logging.getLogger(__name__)
        self.state = LoopState.DONE
        self.tool_definitions = [tool.get_definition() for tool in self.tools]
        self._executor_lock = threading.Lock()

    def run(self, messages: List[Message]) -> ToolLoopResult:
        """
        Run the loop on a copy of messages.

        Returns:
            ToolLoopResult; finish_reason is the model's own ("stop" when it
            gave none), "max_rounds" or "user_quit"

        Raises:
            FatalToolError: With partial_result set to a ToolLoopResult
            TransportError: Model call failed
            ContextExceededError: Prompt too large for the model
        """
        result = ToolLoopResult(finish_reason="", messages=list(messages))

        for round_number in range(1, self.max_rounds + 1):
            self.state = LoopState.AWAITING_MODEL
            result.rounds = round_number
            self.logger.info(f"Tool loop round {round_number}/{self.max_rounds}")

            response = self.llm_client.chat(
                messages=result.messages,
                tools=self.tool_definitions,
                temperature=self.temperature,
                parallel_tool_calls=self.parallel
            )

            if not response.tool_calls:
                self.state = LoopState.DONE
                result.finish_reason = response.finish_reason or FINISH_STOP
                result.last_assistant_message = response.content or ""
                if result.last_assistant_message:
                    result.messages.append(
                        Message(role=Role.ASSISTANT.value, content=result.last_assistant_message)
                    )
                self.logger.info(
                    f"Tool loop finished after {round_number} rounds "
                    f"({len(result.tool_results)} tool calls)"
                )
                return result

            if response.content:
                result.last_assistant_message = response.content
            result.messages.append(Message(
                role=Role.ASSISTANT.value,
                content=response.content or "",
                tool_calls=response.tool_calls
            ))
            self.state = LoopState.EXECUTING_TOOLS
            self.logger.info(f"Model requested {len(response.tool_calls)} tool call(s)")

            decisions = self._confirm_all(response.tool_calls)
            if decisions is None:
                # drop the tool_calls turn no tool message answers
                result.messages.pop()
                self.state = LoopState.DONE
                result.finish_reason = FINISH_USER_QUIT
                self.logger.info("Tool loop stopped by user")
                return result

            round_results = self._execute_all(response.tool_calls, decisions, result)
            for tool_result in round_results:
                result.tool_results.append(tool_result)
                result.results.append(tool_result.content)
                result.messages.append(Message(
                    role=Role.TOOL.value,
                    content=tool_result.content,
                    tool_call_id=tool_result.tool_call_id
                ))

        self.state = LoopState.DONE
        result.finish_reason = FINISH_MAX_ROUNDS
        self.logger.warning(f"Tool loop reached the limit of {self.max_rounds} rounds")
        return result

    def _confirm_all(self, calls: List[ToolCall]) -> Optional[List[Confirmation]]:
        """Ask for confirmation in request order. None means the user quit."""
        if self.confirm is None:
            return [Confirmation.CONFIRMED] * len(calls)

        decisions = []
        for call in calls:
            decision = self.confirm(call.name, call.arguments)
            if decision == Confirmation.QUIT:
                return None
            decisions.append(decision)
        return decisions

    def _execute_all(
        self,
        calls: List[ToolCall],
        decisions: List[Confirmation],
        partial: ToolLoopResult
    ) -> List[ToolResult]:
        results: List[Optional[ToolResult]] = [None] * len(calls)
        fatal: Optional[FatalToolError] = None

        pending = []
        for index, (call, decision) in enumerate(zip(calls, decisions)):
            if decision == Confirmation.DENIED:
                self.logger.info(f"Tool call {call.name} denied by user")
                results[index] = ToolResult(
                    tool_call_id=call.id,
                    tool_name=call.name,
                    content=DENIED_RESULT,
                    error="denied",
                    success=False
                )
            else:
                pending.append(index)

        if self.parallel and len(pending) > 1:
            workers = min(self.max_workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tool") as pool:
                futures = {index: pool.submit(self._execute_one, calls[index]) for index in pending}
                for index in pending:
                    try:
                        results[index] = futures[index].result()
                    except FatalToolError as e:
                        if fatal is None:
                            fatal = e
        else:
            for index in pending:
                try:
                    results[index] = self._execute_one(calls[index])
                except FatalToolError as e:
                    fatal = e
                    break

        if fatal is not None:
            for tool_result in results:
                if tool_result is not None:
                    partial.tool_results.append(tool_result)
                    partial.results.append(tool_result.content)
            partial.messages.pop()
            self.state = LoopState.DONE
            partial.finish_reason = "error"
            fatal.partial_result = partial
            self.logger.error(f"Tool loop aborted: {fatal}")
            raise fatal

        return results

    def _execute_one(self, call: ToolCall) -> ToolResult:
        self.logger.debug(f"Executing {call.name} ({call.id}) with {call.arguments}")
        try:
            if self.executor.reentrant:
                content = self.executor.execute(call.name, call.arguments)
            else:
                with self._executor_lock:
                    content = self.executor.execute(call.name, call.arguments)
        except FatalToolError:
            raise
        except Exception as e:
            self.logger.warning(f"Tool {call.name} failed: {e}")
            return ToolResult(
                tool_call_id=call.id,
                tool_name=call.name,
                content=json.dumps({"error": f"Function execution failed: {e}"}),
                error=str(e),
                success=False
            )

        if not content:
            self.logger.warning(f"Tool {call.name} returned an empty result")
            return ToolResult(
                tool_call_id=call.id,
                tool_name=call.name,
                content=EMPTY_RESULT,
                error="empty result",
                success=False
            )

        return ToolResult(tool_call_id=call.id, tool_name=call.name, content=content)
