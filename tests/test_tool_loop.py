"""Tests for the tool-call loop."""

import json
import threading
import time

import pytest
from llm.base_client import BaseLLMClient, LLMResponse, Message, ToolCall
from react.loop import FINISH_MAX_ROUNDS, FINISH_USER_QUIT, LoopState, ToolCallLoop
from react.tools import (
    Confirmation,
    FatalToolError,
    FunctionToolExecutor,
    Tool,
    ToolExecutionError,
    ToolExecutor,
)


class ScriptedToolModel(BaseLLMClient):
    """Plays back a list of responses; repeats the last one when exhausted."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def chat(self, messages, tools=None, temperature=0.7, max_tokens=None, top_p=None, parallel_tool_calls=None):
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "parallel_tool_calls": parallel_tool_calls,
        })
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]

    def stream(self, messages, temperature=0.7, max_tokens=None, top_p=None):
        return iter([])

    def embed(self, text):
        return [0.0]

    def get_provider_name(self):
        return "fake"

    def get_model_name(self):
        return "fake-tools"


def _calls(*specs):
    return LLMResponse(
        content="",
        finish_reason="tool_calls",
        tool_calls=[
            ToolCall(id=f"call_{i}", name=name, arguments=json.dumps(args))
            for i, (name, args) in enumerate(specs)
        ]
    )


SAY_HELLO = Tool("say_hello", "Say hello to someone").add_parameter(
    "name", "string", "The person to greet", required=True
)
STOP = LLMResponse(content="All done", finish_reason="stop")


class TestTool:
    """Test tool definitions."""

    def test_definition_format(self):
        definition = SAY_HELLO.get_definition()
        assert definition == {
            "type": "function",
            "function": {
                "name": "say_hello",
                "description": "Say hello to someone",
                "parameters": {
                    "type": "object",
                    "properties": {"name": {"type": "string", "description": "The person to greet"}},
                    "required": ["name"]
                }
            }
        }

    def test_from_mcp_definition(self):
        tool = Tool.from_definition({
            "name": "add",
            "description": "Add numbers",
            "inputSchema": {
                "type": "object",
                "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                "required": ["a", "b"]
            }
        })
        assert tool.name == "add"
        assert tool.parameters["required"] == ["a", "b"]

    def test_from_openai_definition_round_trip(self):
        tool = Tool.from_definition(SAY_HELLO.get_definition())
        assert tool.get_definition() == SAY_HELLO.get_definition()


class TestFunctionToolExecutor:
    """Test the callable-backed executor."""

    def setup_method(self):
        """Set up test fixtures."""
        self.executor = FunctionToolExecutor()

        @self.executor.register("add")
        def add(a, b):
            return {"result": a + b}

        self.executor.register("echo", lambda text: text)

    def test_structured_result_is_json(self):
        assert json.loads(self.executor.execute("add", '{"a": 1, "b": 2}')) == {"result": 3}

    def test_string_result_untouched(self):
        assert self.executor.execute("echo", '{"text": "hi"}') == "hi"

    def test_unknown_tool(self):
        with pytest.raises(ToolExecutionError):
            self.executor.execute("missing", "{}")

    def test_invalid_json(self):
        with pytest.raises(ToolExecutionError):
            self.executor.execute("add", "{not json")

    def test_function_error_wrapped(self):
        with pytest.raises(ToolExecutionError):
            self.executor.execute("add", '{"a": 1}')


class TestToolCallLoop:
    """Test the detection/execution state machine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.executor = FunctionToolExecutor()
        self.executor.register("say_hello", lambda name: f"Hello {name}")

    def test_no_tool_calls_finishes_immediately(self):
        model = ScriptedToolModel([STOP])
        loop = ToolCallLoop(model, [SAY_HELLO], self.executor)

        result = loop.run([])

        assert result.finish_reason == "stop"
        assert result.last_assistant_message == "All done"
        assert result.results == []
        assert result.rounds == 1
        assert loop.state == LoopState.DONE

    def test_missing_finish_reason_defaults_to_stop(self):
        model = ScriptedToolModel([LLMResponse(content="ok")])
        result = ToolCallLoop(model, [SAY_HELLO], self.executor).run([])
        assert result.finish_reason == "stop"

    def test_parallel_results_in_request_order(self):
        release_alice = threading.Event()
        executor = FunctionToolExecutor()

        def say_hello(name):
            # Alice finishes last
            if name == "Alice":
                release_alice.wait(timeout=2)
            else:
                release_alice.set()
            return f"Hello {name}"

        executor.register("say_hello", say_hello)
        model = ScriptedToolModel([
            _calls(("say_hello", {"name": "Alice"}), ("say_hello", {"name": "Bob"})),
            STOP,
        ])
        loop = ToolCallLoop(model, [SAY_HELLO], executor, parallel=True)

        result = loop.run([])

        assert result.results == ["Hello Alice", "Hello Bob"]
        assert [r.tool_call_id for r in result.tool_results] == ["call_0", "call_1"]
        assert result.finish_reason == "stop"
        assert model.calls[0]["parallel_tool_calls"] is True

        followup = model.calls[1]["messages"]
        assert followup[0].role == "assistant"
        assert [tc.name for tc in followup[0].tool_calls] == ["say_hello", "say_hello"]
        assert [(m.role, m.content, m.tool_call_id) for m in followup[1:]] == [
            ("tool", "Hello Alice", "call_0"),
            ("tool", "Hello Bob", "call_1"),
        ]

    def test_sequential_mode(self):
        model = ScriptedToolModel([
            _calls(("say_hello", {"name": "Alice"}), ("say_hello", {"name": "Bob"})),
            STOP,
        ])
        result = ToolCallLoop(model, [SAY_HELLO], self.executor).run([])

        assert result.results == ["Hello Alice", "Hello Bob"]
        assert model.calls[0]["parallel_tool_calls"] is False

    def test_terminates_at_round_limit(self):
        greeting = _calls(("say_hello", {"name": "Bob"}))
        greeting.content = "Let me greet Bob."
        model = ScriptedToolModel([greeting])
        loop = ToolCallLoop(model, [SAY_HELLO], self.executor, max_rounds=3)

        result = loop.run([])

        assert result.finish_reason == FINISH_MAX_ROUNDS
        assert result.last_assistant_message == "Let me greet Bob."
        assert result.rounds == 3
        assert len(model.calls) == 3
        assert result.results == ["Hello Bob"] * 3

    def test_invalid_round_limit(self):
        with pytest.raises(ValueError):
            ToolCallLoop(ScriptedToolModel([STOP]), [], self.executor, max_rounds=0)

    def test_tool_error_fed_back_to_model(self):
        def broken():
            raise RuntimeError("kaput")

        self.executor.register("broken", broken)
        model = ScriptedToolModel([_calls(("broken", {})), STOP])

        result = ToolCallLoop(model, [SAY_HELLO], self.executor).run([])

        assert result.finish_reason == "stop"
        error = json.loads(result.results[0])
        assert error["error"].startswith("Function execution failed:")
        assert "kaput" in error["error"]
        assert result.tool_results[0].success is False
        assert model.calls[1]["messages"][-1].role == "tool"

    def test_empty_result_reported(self):
        self.executor.register("silent", lambda: "")
        model = ScriptedToolModel([_calls(("silent", {})), STOP])

        result = ToolCallLoop(model, [], self.executor).run([])

        assert json.loads(result.results[0]) == {"error": "Function execution returned empty result"}

    def test_fatal_error_aborts_with_partial_result(self):
        def explode():
            raise FatalToolError("disk on fire")

        self.executor.register("explode", explode)
        model = ScriptedToolModel([
            _calls(("say_hello", {"name": "Bob"})),
            _calls(("say_hello", {"name": "Alice"}), ("explode", {})),
            STOP,
        ])

        with pytest.raises(FatalToolError) as exc_info:
            ToolCallLoop(model, [SAY_HELLO], self.executor).run([])

        partial = exc_info.value.partial_result
        assert partial.results == ["Hello Bob", "Hello Alice"]
        assert partial.rounds == 2
        assert [m.role for m in partial.messages] == ["assistant", "tool"]

    def test_fatal_error_in_parallel_mode(self):
        def explode():
            raise FatalToolError("disk on fire")

        self.executor.register("explode", explode)
        model = ScriptedToolModel([_calls(("explode", {}), ("say_hello", {"name": "Bob"}))])

        with pytest.raises(FatalToolError) as exc_info:
            ToolCallLoop(model, [SAY_HELLO], self.executor, parallel=True).run([])

        assert exc_info.value.partial_result.results == ["Hello Bob"]

    def test_denied_call(self):
        model = ScriptedToolModel([
            _calls(("say_hello", {"name": "Alice"}), ("say_hello", {"name": "Bob"})),
            STOP,
        ])

        def confirm(name, arguments):
            return Confirmation.DENIED if "Alice" in arguments else Confirmation.CONFIRMED

        result = ToolCallLoop(model, [SAY_HELLO], self.executor, confirm=confirm).run([])

        assert json.loads(result.results[0]) == {
            "status": "denied",
            "message": "Tool execution was denied by user"
        }
        assert result.results[1] == "Hello Bob"

    def test_quit_stops_loop(self):
        calls = []
        self.executor.register("say_hello", lambda name: calls.append(name) or f"Hello {name}")
        model = ScriptedToolModel([_calls(("say_hello", {"name": "Bob"})), STOP])

        result = ToolCallLoop(
            model, [SAY_HELLO], self.executor,
            confirm=lambda name, arguments: Confirmation.QUIT
        ).run([Message(role="user", content="Greet Bob")])

        assert result.finish_reason == FINISH_USER_QUIT
        assert calls == []
        assert len(model.calls) == 1
        assert [m.role for m in result.messages] == ["user"]

    def test_non_reentrant_executor_is_serialized(self):
        class CountingExecutor(ToolExecutor):
            reentrant = False

            def __init__(self):
                self.active = 0
                self.max_active = 0
                self.guard = threading.Lock()

            def execute(self, name, arguments_json):
                with self.guard:
                    self.active += 1
                    self.max_active = max(self.max_active, self.active)
                time.sleep(0.02)
                with self.guard:
                    self.active -= 1
                return "ok"

        executor = CountingExecutor()
        model = ScriptedToolModel([
            _calls(*[("say_hello", {"name": str(i)}) for i in range(4)]),
            STOP,
        ])

        result = ToolCallLoop(model, [SAY_HELLO], executor, parallel=True).run([])

        assert result.results == ["ok"] * 4
        assert executor.max_active == 1

    def test_input_messages_not_mutated(self):
        messages = []
        model = ScriptedToolModel([_calls(("say_hello", {"name": "Bob"})), STOP])

        ToolCallLoop(model, [SAY_HELLO], self.executor).run(messages)

        assert messages == []
