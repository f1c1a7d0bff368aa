"""Conversation context compression for LLM context window management."""

import logging
from typing import Any, List, Optional

from llm.base_client import BaseLLMClient, Message, Role
from llm.errors import OrchestratorError
from llm.streaming import ChunkCallback, StreamingCompletionEngine
from .conversation import ConversationStore
from .models import CompressionOutcome, CompressionState

logger = logging.getLogger(__name__)


class CompressionError(OrchestratorError):
    """
    Summarization failed; the conversation was left untouched.

    ``partial_result`` carries work finished before the failure, such as the
    answer of a turn whose closing checkpoint failed.
    """

    def __init__(self, message: str, partial_result: Any = None):
        super().__init__(message)
        self.partial_result = partial_result


class CompressionInstructions:
    """System instructions for the summarization agent."""

    MINIMALIST = (
        "You are a context compression assistant. Your task is to summarize conversations "
        "concisely, preserving key facts, decisions, and context needed for continuation."
    )

    EXPERT = """You are a context compression specialist. Your task is to analyze the conversation history and compress it while preserving all essential information.

## Instructions:
1. **Preserve Critical Information**: Keep all important facts, decisions, code snippets, file paths, function names, and technical details
2. **Remove Redundancy**: Eliminate repetitive discussions, failed attempts, and conversational fluff
3. **Maintain Chronology**: Keep the logical flow and order of important events
4. **Summarize Discussions**: Convert long discussions into concise summaries with key takeaways
5. **Keep Context**: Ensure the compressed version provides enough context for continuing the conversation

## Output Format:
Return a compressed version of the conversation that:
- Uses clear, concise language
- Groups related topics together
- Highlights key decisions and outcomes
- Preserves technical accuracy
- Maintains references to files, functions, and code

## Compression Guidelines:
- Remove: Greetings, acknowledgments, verbose explanations, failed attempts
- Keep: Facts, code, decisions, file paths, function signatures, error messages, requirements
- Summarize: Long discussions into bullet points with essential information"""


class CompressionPrompts:
    """Compaction instructions sent as the first user message."""

    MINIMALIST = (
        "Summarize the conversation history concisely, preserving key facts, decisions, "
        "and context needed for continuation."
    )
    STRUCTURED = """Compress this conversation into a brief summary including:
- Main topics discussed
- Key decisions/conclusions
- Important context for next exchanges
Keep it under 200 words."""
    ULTRA_SHORT = "Summarize this conversation: extract key facts, decisions, and essential context only."
    CONTINUITY_FOCUS = (
        "Create a compact summary of this conversation that preserves all information "
        "needed to continue the discussion naturally."
    )


class ContextCompressor:
    """Secondary agent that condenses a message history into a summary."""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        prompt: str = CompressionPrompts.MINIMALIST,
        system_instructions: str = CompressionInstructions.MINIMALIST,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None
    ):
        """
        Initialize compressor.

        Args:
            llm_client: LLM client for summarization
            prompt: Compaction instruction
            system_instructions: System message of the summarization agent
            temperature: Sampling temperature (0.0 keeps summaries deterministic)
            max_tokens: Optional cap on the summary length
        """
        self.llm_client = llm_client
        self.prompt = prompt
        self.system_instructions = system_instructions
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_messages(self, messages: List[Message]) -> List[Message]:
        if not messages:
            raise CompressionError("no messages provided")

        conversation_text = "".join(
            f"{msg.role}: {msg.content}\n" for msg in messages
        )
        return [
            Message(role=Role.SYSTEM.value, content=self.system_instructions),
            Message(role=Role.USER.value, content=self.prompt),
            Message(role=Role.USER.value, content="CONVERSATION:\n" + conversation_text),
        ]

    def compress(self, messages: List[Message]) -> CompressionOutcome:
        """
        Summarize the messages.

        Raises:
            CompressionError: No messages, provider failure, or empty summary
        """
        request = self._build_messages(messages)
        try:
            response = self.llm_client.chat(
                messages=request,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except OrchestratorError as e:
            logger.error(f"Failed to compress context: {e}")
            raise CompressionError(f"summarization failed: {e}") from e

        return self._outcome(response.content, response.finish_reason or "")

    def compress_stream(
        self,
        messages: List[Message],
        on_chunk: ChunkCallback
    ) -> CompressionOutcome:
        """Summarize the messages, streaming the summary through on_chunk."""
        request = self._build_messages(messages)
        engine = StreamingCompletionEngine(
            self.llm_client,
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )
        try:
            text, finish_reason = engine.generate(request, on_chunk)
        except OrchestratorError as e:
            logger.error(f"Failed to compress context: {e}")
            raise CompressionError(f"summarization failed: {e}") from e

        return self._outcome(text, finish_reason)

    def _outcome(self, text: str, finish_reason: str) -> CompressionOutcome:
        if not text or not text.strip():
            raise CompressionError("summarization returned an empty summary")
        return CompressionOutcome(compressed_text=text.strip(), finish_reason=finish_reason)


class CompressionTrigger:
    """
    Replaces an overgrown conversation with a summary.

    Called by the caller at conversation checkpoints, never on a timer.
    """

    # Summaries above this share of the threshold will trigger again soon
    WARN_RATIO = 0.8

    def __init__(
        self,
        compressor: ContextCompressor,
        threshold: int,
        preserve_system_instructions: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize trigger.

        Args:
            compressor: Summarization agent
            threshold: Size (characters) above which compression fires; <= 0 disables it
            preserve_system_instructions: Keep the original instructions in front
                of the summary, inside the single system message
            logger: Logger to use (default: module logger)
        """
        self.compressor = compressor
        self.threshold = threshold
        self.preserve_system_instructions = preserve_system_instructions
        self.state = CompressionState.NORMAL
        self.logger = logger or logging.getLogger(__name__)

    def should_compress(self, store: ConversationStore) -> bool:
        if self.threshold <= 0:
            return False
        return store.approximate_size() > self.threshold

    def maybe_compress(self, store: ConversationStore) -> Optional[CompressionOutcome]:
        """
        Compress the store if it is over the threshold.

        Returns:
            The outcome, or None when no compression was needed
        """
        if not self.should_compress(store):
            self.logger.debug(
                f"Context size {store.approximate_size()} within threshold {self.threshold}"
            )
            return None

        self.logger.info(
            f"Context size {store.approximate_size()} exceeds threshold {self.threshold}; compressing..."
        )
        return self.compress(store)

    def compress(self, store: ConversationStore) -> CompressionOutcome:
        """
        Compress the store unconditionally.

        Raises:
            CompressionError: The store is unchanged, including when the
                summary would not make the history smaller
        """
        size_before = store.approximate_size()
        original_instructions = store.system_instructions
        self.state = CompressionState.COMPRESSING
        try:
            outcome = self.compressor.compress(store.all())
        finally:
            self.state = CompressionState.NORMAL

        if self.preserve_system_instructions and original_instructions:
            seed = f"{original_instructions}\n\n{outcome.compressed_text}"
        else:
            seed = outcome.compressed_text

        if len(seed) >= size_before:
            raise CompressionError(
                f"summary of {len(seed)} characters does not shrink a context of {size_before}"
            )

        store.reset()
        store.set_system_instructions(seed)

        size_after = store.approximate_size()
        self.logger.info(f"Context compressed from {size_before} to {size_after} characters")
        if self.threshold > 0 and size_after > self.WARN_RATIO * self.threshold:
            self.logger.warning(
                f"Compressed context size {size_after} still exceeds "
                f"{int(self.WARN_RATIO * 100)}% of threshold {self.threshold}"
            )
        return outcome
