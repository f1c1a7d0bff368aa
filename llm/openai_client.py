"""OpenAI-compatible LLM client implementation."""

import os
import logging
from typing import Optional, List, Dict, Any, Iterator

import openai
from openai import OpenAI

from .base_client import BaseLLMClient, Message, LLMResponse, StreamChunk, ToolCall
from .errors import TransportError, ContextExceededError

logger = logging.getLogger(__name__)

# Error codes/types used by engines when the prompt overflows the context window
CONTEXT_EXCEEDED_CODES = {"context_length_exceeded", "exceed_context_size_error"}
CONTEXT_EXCEEDED_MARKERS = (
    "context length",
    "context size",
    "context window",
    "maximum context",
)


def translate_error(error: Exception) -> Exception:
    """Map an openai SDK exception onto the orchestration error taxonomy."""
    if isinstance(error, openai.APIStatusError):
        code = getattr(error, "code", None)
        body = error.body if isinstance(error.body, dict) else {}
        nested = body.get("error")
        error_type = body.get("type")
        if isinstance(nested, dict):
            error_type = error_type or nested.get("type")
        message = str(error).lower()
        if (
            code in CONTEXT_EXCEEDED_CODES
            or error_type in CONTEXT_EXCEEDED_CODES
            or (error.status_code == 400 and any(m in message for m in CONTEXT_EXCEEDED_MARKERS))
        ):
            return ContextExceededError(str(error))
    return TransportError(str(error))


class OpenAIClient(BaseLLMClient):
    """Client for OpenAI and OpenAI-compatible engines (llama.cpp, Docker Model Runner, Ollama)."""

    DEFAULT_MODEL = "ai/qwen2.5:latest"
    DEFAULT_EMBEDDING_MODEL = "ai/mxbai-embed-large"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        embedding_model: Optional[str] = None
    ):
        """
        Initialize OpenAI-compatible client.

        Args:
            api_key: API key (falls back to OPENAI_API_KEY env var)
            model: Chat model to use
            base_url: Engine URL, None for api.openai.com
            embedding_model: Model used by embed()
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.embedding_model = embedding_model or self.DEFAULT_EMBEDDING_MODEL
        self.base_url = base_url

        if not self.api_key:
            # Local engines ignore the key but the SDK refuses an empty one
            logger.warning("No API key provided, using placeholder key")
            self.api_key = "none"

        self.client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        logger.info(f"OpenAI client initialized with model: {self.model} ({self.base_url or 'api.openai.com'})")

    def _to_openai_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Convert messages to OpenAI format."""
        openai_messages = []
        for msg in messages:
            openai_msg = {"role": msg.role, "content": msg.content}
            if msg.tool_call_id:
                openai_msg["tool_call_id"] = msg.tool_call_id
            # Include tool_calls for assistant messages that made tool calls
            if msg.tool_calls:
                openai_msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": tc.arguments
                        }
                    }
                    for tc in msg.tool_calls
                ]
            openai_messages.append(openai_msg)
        return openai_messages

    def _build_kwargs(
        self,
        messages: List[Message],
        temperature: Optional[float],
        max_tokens: Optional[int],
        top_p: Optional[float]
    ) -> Dict[str, Any]:
        kwargs = {
            "model": self.model,
            "messages": self._to_openai_messages(messages),
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if top_p is not None:
            kwargs["top_p"] = top_p
        return kwargs

    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        parallel_tool_calls: Optional[bool] = None
    ) -> LLMResponse:
        """Send chat completion request."""
        kwargs = self._build_kwargs(messages, temperature, max_tokens, top_p)

        # Add tools if provided
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
            if parallel_tool_calls is not None:
                kwargs["parallel_tool_calls"] = parallel_tool_calls

        logger.debug(f"Request sent: {kwargs}")

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise translate_error(e) from e

        if not response.choices:
            raise TransportError("no choices found")

        choice = response.choices[0]
        content = choice.message.content or ""

        # Extract tool calls if present
        tool_calls = None
        if choice.message.tool_calls:
            tool_calls = [
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments or "{}"
                )
                for tc in choice.message.tool_calls
            ]

        # Extract usage
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=choice.finish_reason,
            reasoning=getattr(choice.message, "reasoning_content", None)
        )

    def stream(
        self,
        messages: List[Message],
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None
    ) -> Iterator[StreamChunk]:
        """Stream a chat completion, one StreamChunk per provider delta."""
        kwargs = self._build_kwargs(messages, temperature, max_tokens, top_p)
        logger.debug(f"Streaming request sent: {kwargs}")

        try:
            stream = self.client.chat.completions.create(stream=True, **kwargs)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise translate_error(e) from e

        try:
            with stream:
                for chunk in stream:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    yield StreamChunk(
                        content=(delta.content or "") if delta else "",
                        reasoning=(getattr(delta, "reasoning_content", None) or "") if delta else "",
                        finish_reason=choice.finish_reason or ""
                    )
        except openai.OpenAIError as e:
            logger.error(f"Stream error: {e}")
            raise translate_error(e) from e

    def embed(self, text: str) -> List[float]:
        """Embed a text with the configured embedding model."""
        try:
            response = self.client.embeddings.create(
                model=self.embedding_model,
                input=text
            )
        except openai.OpenAIError as e:
            logger.error(f"Error embedding text: {e}")
            raise translate_error(e) from e

        if not response.data:
            raise TransportError("no embedding returned")
        return list(response.data[0].embedding)

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openai"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model

    def get_embedding_model_name(self) -> Optional[str]:
        return self.embedding_model
