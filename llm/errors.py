"""Error taxonomy shared by the orchestration layer."""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for every error raised by the orchestration layer."""


class TransportError(OrchestratorError):
    """The completion provider or the network failed."""


class ContextExceededError(OrchestratorError):
    """The prompt does not fit in the model context window.

    Kept apart from TransportError so a caller can compress the conversation
    and try again.
    """


class StreamCancelledError(OrchestratorError):
    """A stream was stopped on request.

    Not a failure. The text delivered before the stop stays available on
    ``partial_response``.
    """

    def __init__(
        self,
        message: str = "stream canceled by user",
        partial_response: str = "",
        partial_reasoning: str = "",
        chunks_delivered: int = 0,
        finish_reason: Optional[str] = None
    ):
        super().__init__(message)
        self.partial_response = partial_response
        self.partial_reasoning = partial_reasoning
        self.chunks_delivered = chunks_delivered
        self.finish_reason = finish_reason or ""
