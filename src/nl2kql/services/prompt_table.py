"""Seed conversations indexed by (category, dataset)."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from nl2kql.config.settings import DatasetBinding, PromptEntry, Settings, dataset_key
from nl2kql.core.types import ChatMessage, ChatRole, SeedConversation


def _lookup_key(category: str, name: str) -> str:
    return dataset_key(category, name).casefold()


def to_chat_message(prompt: PromptEntry) -> ChatMessage:
    """
    Convert a configured prompt entry into a role-tagged message.

    Returns
    -------
    ChatMessage
        Message carrying the prompt's role and content.
    """
    match prompt.type:
        case ChatRole.SYSTEM:
            return ChatMessage(ChatRole.SYSTEM, prompt.content)
        case ChatRole.USER:
            return ChatMessage(ChatRole.USER, prompt.content)
        case ChatRole.ASSISTANT:
            return ChatMessage(ChatRole.ASSISTANT, prompt.content)


class PromptTable:
    """
    Read-only mapping from a case-insensitive (category, dataset) key to its seed conversation.

    Built once from validated settings; role validation already happened when
    the settings were parsed, so construction cannot fail on roles.
    """

    def __init__(self, bindings: tuple[DatasetBinding, ...]) -> None:
        table: dict[str, SeedConversation] = {}
        keys: list[str] = []
        for binding in bindings:
            table[_lookup_key(binding.category, binding.name)] = tuple(
                to_chat_message(prompt) for prompt in binding.prompts
            )
            keys.append(binding.key)
        self._table: Mapping[str, SeedConversation] = MappingProxyType(table)
        self._keys = tuple(keys)

    @classmethod
    def from_settings(cls, settings: Settings) -> PromptTable:
        """
        Build the table from every configured dataset binding.

        Returns
        -------
        PromptTable
            Table covering all bindings.
        """
        return cls(settings.kusto)

    def lookup(self, category: str, dataset: str) -> SeedConversation | None:
        """
        Return the seed conversation for a pair, or None when it is not configured.

        Returns
        -------
        SeedConversation | None
            Ordered seed messages.
        """
        return self._table.get(_lookup_key(category, dataset))

    def supported_keys(self) -> tuple[str, ...]:
        """Every configured pair, in configuration order."""
        return self._keys

    def __len__(self) -> int:
        return len(self._table)


__all__ = ["PromptTable", "to_chat_message"]
