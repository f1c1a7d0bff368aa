"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, Role, StreamChunk, ToolCall
from .errors import OrchestratorError, TransportError, ContextExceededError, StreamCancelledError
from .factory import create_llm_client, LLMProvider
from .streaming import CancellationToken, CompletionStream, StreamingCompletionEngine

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "Role",
    "StreamChunk",
    "ToolCall",
    "OrchestratorError",
    "TransportError",
    "ContextExceededError",
    "StreamCancelledError",
    "create_llm_client",
    "LLMProvider",
    "CancellationToken",
    "CompletionStream",
    "StreamingCompletionEngine",
]
