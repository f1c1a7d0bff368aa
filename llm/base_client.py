"""Base LLM client interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, List, Dict, Iterator
from pydantic import BaseModel


class Role(str, Enum):
    """Message roles understood by the completion provider."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """Tool call requested by the model."""
    id: str
    name: str
    arguments: str = "{}"  # raw JSON, passed to the executor untouched


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant", "tool"
    content: str = ""
    tool_call_id: Optional[str] = None  # For tool responses
    tool_calls: Optional[List[ToolCall]] = None  # For assistant messages with tool calls


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None
    reasoning: Optional[str] = None


class StreamChunk(BaseModel):
    """One unit of a streamed completion.

    ``finish_reason`` is empty while more chunks are coming.
    """
    content: str = ""
    reasoning: str = ""
    finish_reason: str = ""


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        parallel_tool_calls: Optional[bool] = None
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            tools: Optional list of tool definitions for function calling
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            top_p: Nucleus sampling value
            parallel_tool_calls: Allow several tool calls in one turn

        Returns:
            LLMResponse with content and optional tool calls

        Raises:
            TransportError: Provider or network failure
            ContextExceededError: Prompt larger than the model context
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[Message],
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None
    ) -> Iterator[StreamChunk]:
        """
        Stream a chat completion.

        Returns:
            Iterator of StreamChunk in arrival order
        """
        pass

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Compute the embedding vector of a text.

        Raises:
            TransportError: Provider or network failure
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass

    def get_embedding_model_name(self) -> Optional[str]:
        """Get the name of the embedding model, if any."""
        return None
