"""Memory data models."""

from enum import Enum
from pydantic import BaseModel


class CompressionState(str, Enum):
    """States of the compression trigger."""
    NORMAL = "normal"
    COMPRESSING = "compressing"


class CompressionOutcome(BaseModel):
    """Result of a context compression."""
    compressed_text: str
    finish_reason: str = ""
