"""Conversation memory and context compression."""

from .models import CompressionOutcome, CompressionState
from .conversation import ConversationStore
from .context_manager import (
    CompressionError,
    CompressionInstructions,
    CompressionPrompts,
    CompressionTrigger,
    ContextCompressor,
)

__all__ = [
    "CompressionOutcome",
    "CompressionState",
    "ConversationStore",
    "CompressionError",
    "CompressionInstructions",
    "CompressionPrompts",
    "CompressionTrigger",
    "ContextCompressor",
]
