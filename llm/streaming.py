"""Streaming completion engine with cooperative cancellation."""

import logging
import queue
import threading
from typing import Callable, Iterator, List, Optional, Tuple

from .base_client import BaseLLMClient, Message, StreamChunk
from .errors import StreamCancelledError

logger = logging.getLogger(__name__)

# on_chunk(text, finish_reason); finish_reason is "" while more is coming
ChunkCallback = Callable[[str, str], None]

END_OF_REASONING = "end_of_reasoning"

_END = object()


class CancellationToken:
    """Cancellation flag shared between a stream and whoever may stop it."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CompletionStream:
    """
    Lazy, finite, non-restartable iterator over the chunks of one completion.

    The provider iterator is drained by a daemon thread into a queue. The
    consumer waits on the queue with a short timeout and checks the token on
    every wake-up, so a stop is honoured even when the transport never yields.
    """

    def __init__(
        self,
        source: Iterator[StreamChunk],
        token: CancellationToken,
        poll_interval: float = 0.05
    ):
        self._source = source
        self._token = token
        self._poll_interval = poll_interval
        self._queue: "queue.Queue" = queue.Queue()
        self._closed = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._finished = False

    def _pump(self) -> None:
        source = self._source
        try:
            for chunk in source:
                if self._token.cancelled or self._closed.is_set():
                    break
                self._queue.put(chunk)
        except Exception as e:
            self._queue.put(e)
        finally:
            close = getattr(source, "close", None)
            if close is not None:
                try:
                    close()
                except Exception as e:
                    logger.warning(f"Failed to close provider stream: {e}")
            self._queue.put(_END)

    def _start(self) -> None:
        self._thread = threading.Thread(
            target=self._pump,
            name="completion-stream",
            daemon=True
        )
        self._thread.start()

    def __iter__(self) -> "CompletionStream":
        return self

    def __next__(self) -> StreamChunk:
        if self._finished:
            raise StopIteration
        if self._thread is None:
            self._start()

        while True:
            if self._token.cancelled:
                self._finish()
                raise StreamCancelledError()
            try:
                item = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                continue

            if item is _END:
                self._finish()
                raise StopIteration
            if isinstance(item, Exception):
                self._finish()
                raise item
            # The stop may have landed while we were blocked on the queue
            if self._token.cancelled:
                self._finish()
                raise StreamCancelledError()
            return item

    def _finish(self) -> None:
        self._finished = True
        self._closed.set()

    def close(self) -> None:
        """Stop consuming; the reader thread exits at its next chunk."""
        self._finish()


class StreamingCompletionEngine:
    """
    Drives a streaming completion and delivers chunks through callbacks.

    ``stop()`` may be called from any thread. It only affects a generation in
    flight: every generation starts by clearing the cancellation flag.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        temperature: Optional[float] = 0.7,
        top_p: Optional[float] = None,
        max_tokens: Optional[int] = None,
        poll_interval: float = 0.05,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize streaming engine.

        Args:
            llm_client: Completion provider
            temperature: Sampling temperature
            top_p: Nucleus sampling value
            max_tokens: Maximum tokens in response
            poll_interval: Seconds between cancellation checks while waiting
            logger: Logger to use (default: module logger)
        """
        self.llm_client = llm_client
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.poll_interval = poll_interval
        self.token = CancellationToken()
        self.logger = logger or logging.getLogger(__name__)
        self._last_partial_response = ""

    @property
    def last_partial_response(self) -> str:
        """Text received during the most recent generation, even a failed one."""
        return self._last_partial_response

    def stop(self) -> None:
        """Interrupt the stream in flight."""
        self.logger.info("Stream stop requested")
        self.token.cancel()

    def stream(self, messages: List[Message]) -> CompletionStream:
        """Open a cancellable stream of chunks for these messages."""
        self.token.reset()
        source = self.llm_client.stream(
            messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p
        )
        return CompletionStream(source, self.token, self.poll_interval)

    def generate(
        self,
        messages: List[Message],
        on_chunk: ChunkCallback
    ) -> Tuple[str, str]:
        """
        Stream a completion, calling on_chunk for each piece of text.

        Returns:
            (response text, finish reason)

        Raises:
            StreamCancelledError: stop() was called; carries the partial text
            Exception: whatever on_chunk raised, unchanged
        """
        response, _, finish_reason = self._run(messages, on_chunk, None)
        return response, finish_reason

    def generate_with_reasoning(
        self,
        messages: List[Message],
        on_reasoning: ChunkCallback,
        on_chunk: ChunkCallback
    ) -> Tuple[str, str, str]:
        """
        Stream a completion that may carry a reasoning trace.

        Reasoning chunks go to on_reasoning, which receives
        ("", "end_of_reasoning") when the answer starts.

        Returns:
            (response text, reasoning text, finish reason)
        """
        return self._run(messages, on_chunk, on_reasoning)

    def generate_once(self, messages: List[Message]) -> Tuple[str, str]:
        """Buffer the whole stream and return (text, finish reason)."""
        return self.generate(messages, lambda content, finish_reason: None)

    def _run(
        self,
        messages: List[Message],
        on_chunk: ChunkCallback,
        on_reasoning: Optional[ChunkCallback]
    ) -> Tuple[str, str, str]:
        response = ""
        reasoning = ""
        finish_reason = ""
        chunks_delivered = 0
        reasoning_started = False
        reasoning_ended = False

        self._last_partial_response = ""
        stream = self.stream(messages)
        self.logger.debug(f"Streaming completion with {len(messages)} messages")

        try:
            for chunk in stream:
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason

                if chunk.reasoning and on_reasoning is not None:
                    reasoning_started = True
                    on_reasoning(chunk.reasoning, "")
                    reasoning += chunk.reasoning

                if chunk.content:
                    if reasoning_started and not reasoning_ended:
                        reasoning_ended = True
                        on_reasoning("", END_OF_REASONING)
                    on_chunk(chunk.content, "")
                    response += chunk.content
                    chunks_delivered += 1
                    self._last_partial_response = response

        except StreamCancelledError:
            self.logger.info(f"Stream canceled after {chunks_delivered} chunks")
            raise StreamCancelledError(
                partial_response=response,
                partial_reasoning=reasoning,
                chunks_delivered=chunks_delivered,
                finish_reason=finish_reason
            ) from None
        finally:
            stream.close()

        # Last call with empty content signals the end of the stream
        if finish_reason:
            on_chunk("", finish_reason)

        self.logger.info(f"Stream completed ({chunks_delivered} chunks, finish_reason={finish_reason!r})")
        return response, reasoning, finish_reason
