"""Core domain types shared across layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ChatRole(StrEnum):
    """Closed set of roles a seed or generated chat message can carry."""

    SYSTEM = "System"
    USER = "User"
    ASSISTANT = "Assistant"

    @classmethod
    def parse(cls, value: object) -> ChatRole:
        """
        Resolve a role from its configured spelling, ignoring case.

        Returns
        -------
        ChatRole
            Matching role.

        Raises
        ------
        ValueError
            When the value names no known role.
        """
        if isinstance(value, ChatRole):
            return value
        text = str(value).strip().lower()
        for role in cls:
            if role.value.lower() == text:
                return role
        allowed = ", ".join(role.value for role in cls)
        message = f"Unsupported prompt type: {value!r} (expected one of {allowed})"
        raise ValueError(message)


@dataclass(frozen=True)
class ChatMessage:
    """Role-tagged chat message."""

    role: ChatRole
    content: str


SeedConversation = tuple[ChatMessage, ...]


__all__ = ["ChatMessage", "ChatRole", "SeedConversation"]
