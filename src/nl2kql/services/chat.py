"""Chat-completion adapter for Azure OpenAI deployments.

This is the only module that imports the ``openai`` package.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any, Protocol

import openai
from azure.identity import DefaultAzureCredential, get_bearer_token_provider

from nl2kql.config.settings import ModelSettings
from nl2kql.core.types import ChatMessage, ChatRole

log = logging.getLogger(__name__)

COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"

_OPENAI_ROLES = {
    ChatRole.SYSTEM: "system",
    ChatRole.USER: "user",
    ChatRole.ASSISTANT: "assistant",
}


class ChatCompleter(Protocol):
    """Given an ordered conversation, return the assistant's reply text."""

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Return the first text segment of the assistant reply."""
        ...


def to_openai_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    """
    Convert chat messages to the OpenAI ``messages`` wire shape.

    Returns
    -------
    list[dict[str, str]]
        One ``{"role", "content"}`` dict per message.
    """
    return [{"role": _OPENAI_ROLES[m.role], "content": m.content} for m in messages]


def _first_text(raw: Any) -> str | None:
    """Extract the first choice's text from a ChatCompletion."""
    if not raw.choices:
        return None
    return raw.choices[0].message.content


class AzureOpenAIChatCompleter:
    """
    ChatCompleter backed by ``openai.AsyncAzureOpenAI``.

    The client is created on first use. An API key is used when configured;
    otherwise an Entra ID bearer-token provider from ``azure-identity`` is used.

    Parameters
    ----------
    model:
        Endpoint, deployment, and optional key for the Azure OpenAI resource.
    client:
        Optional pre-built async client, mainly for tests.
    """

    def __init__(self, model: ModelSettings, *, client: openai.AsyncAzureOpenAI | None = None) -> None:
        self._model = model
        self._client = client
        self._lock = threading.Lock()

    def _build_client(self) -> openai.AsyncAzureOpenAI:
        if self._model.key:
            log.info("Using API key authentication for %s", self._model.endpoint)
            return openai.AsyncAzureOpenAI(
                azure_endpoint=self._model.endpoint,
                api_key=self._model.key,
                api_version=self._model.api_version,
            )
        log.info("Using Entra ID authentication for %s", self._model.endpoint)
        token_provider = get_bearer_token_provider(
            DefaultAzureCredential(), COGNITIVE_SERVICES_SCOPE
        )
        return openai.AsyncAzureOpenAI(
            azure_endpoint=self._model.endpoint,
            azure_ad_token_provider=token_provider,
            api_version=self._model.api_version,
        )

    @property
    def client(self) -> openai.AsyncAzureOpenAI:
        """Lazily constructed async client."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._build_client()
        return self._client

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """
        Submit the conversation to the configured deployment.

        Returns
        -------
        str
            Text of the first choice; empty when the model returned no content.
        """
        raw = await self.client.chat.completions.create(
            model=self._model.deployment,
            messages=to_openai_messages(messages),
        )
        return _first_text(raw) or ""


__all__ = [
    "COGNITIVE_SERVICES_SCOPE",
    "AzureOpenAIChatCompleter",
    "ChatCompleter",
    "to_openai_messages",
]
