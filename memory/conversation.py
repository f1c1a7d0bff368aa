"""In-memory conversation store with a pinned system message."""

import json
from typing import List

from llm.base_client import Message, Role

VALID_ROLES = {role.value for role in Role}


class ConversationStore:
    """
    Ordered message log used as the literal prompt history.

    Index 0 always holds the system message (possibly empty) and no other
    system message is ever stored. Not thread-safe: a store belongs to one
    session.
    """

    def __init__(self, system_instructions: str = ""):
        self._messages: List[Message] = [
            Message(role=Role.SYSTEM.value, content=system_instructions)
        ]

    @property
    def system_instructions(self) -> str:
        return self._messages[0].content

    def set_system_instructions(self, instructions: str) -> None:
        """Replace the pinned system message content."""
        self._messages[0] = Message(role=Role.SYSTEM.value, content=instructions)

    def append(self, role: str, content: str) -> None:
        """
        Append a message.

        A system message replaces the pinned one instead of being appended.

        Raises:
            ValueError: Unknown role
        """
        self.append_message(Message(role=_role_value(role), content=content))

    def append_message(self, message: Message) -> None:
        """Append a complete message (tool calls, tool results)."""
        role = _role_value(message.role)
        if role == Role.SYSTEM.value:
            self.set_system_instructions(message.content)
            return
        self._messages.append(message.model_copy(update={"role": role}))

    def reset(self) -> None:
        """Drop everything but the system message."""
        self._messages = self._messages[:1]

    def remove_last(self, n: int) -> None:
        """Remove the last n messages, never the system message."""
        if n <= 0:
            return
        n = min(n, len(self._messages) - 1)
        self._messages = self._messages[:len(self._messages) - n]

    def all(self) -> List[Message]:
        """Return a copy of the ordered messages."""
        return list(self._messages)

    def approximate_size(self) -> int:
        """Total number of characters across message contents."""
        return sum(len(msg.content) for msg in self._messages)

    def estimate_tokens(self) -> int:
        """Rough token count (1 token ~ 4 characters)."""
        return self.approximate_size() // 4

    def export_json(self) -> str:
        """Serialize the history as a JSON list of {role, content}."""
        return json.dumps(
            [{"role": msg.role, "content": msg.content} for msg in self._messages],
            indent=2
        )

    def __len__(self) -> int:
        return len(self._messages)


def _role_value(role) -> str:
    value = role.value if isinstance(role, Role) else str(role)
    if value not in VALID_ROLES:
        raise ValueError(f"Unknown message role: {role}")
    return value
