"""Translate natural-language prompts into KQL using seeded chat conversations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from mcp import types

from nl2kql.config.settings import DEFAULT_MAX_TOKENS
from nl2kql.core.types import ChatMessage, ChatRole
from nl2kql.services.chat import ChatCompleter
from nl2kql.services.errors import (
    GenerationError,
    InternalError,
    InvalidArgumentError,
    ProblemError,
    log_problem,
)
from nl2kql.services.prompt_table import PromptTable

LOG = logging.getLogger("nl2kql.services.generation")

SYSTEM_INSTRUCTION = ChatMessage(
    ChatRole.SYSTEM,
    "You are a helpful assistant that translates natural language queries into KQL queries. "
    "You will receive a system message indicating the structure of a given KQL table, "
    "followed by a few examples showing expected outputs.",
)
SYSTEM_PROMPT_DELIMITER = "\n---\n"
SAMPLING_TEMPERATURE = 0.7
CODE_FENCE = "```"


def strip_code_fence(text: str) -> str:
    """
    Remove one leading and, when present, one trailing triple-backtick fence.

    Only applies when the text starts with a fence. Whitespace and any
    language tag after the opening fence are left untouched.

    Returns
    -------
    str
        Text with at most one fence stripped from each end.
    """
    if not text.startswith(CODE_FENCE):
        return text
    text = text[len(CODE_FENCE) :]
    if text.endswith(CODE_FENCE):
        text = text[: -len(CODE_FENCE)]
    return text


class SamplingSession(Protocol):
    """Subset of ``mcp.server.session.ServerSession`` used for client sampling."""

    def check_client_capability(self, capability: types.ClientCapabilities) -> bool:
        """Return whether the connected client advertised the capability."""
        ...

    async def create_message(  # noqa: PLR0913
        self,
        messages: list[types.SamplingMessage],
        *,
        max_tokens: int,
        system_prompt: str | None = None,
        include_context: Literal["none", "thisServer", "allServers"] | None = None,
        temperature: float | None = None,
    ) -> types.CreateMessageResult:
        """Ask the client to sample a completion."""
        ...


@dataclass(frozen=True)
class SamplingRequest:
    """Arguments for a ``sampling/createMessage`` request."""

    system_prompt: str
    messages: list[types.SamplingMessage]
    include_context: Literal["allServers"] = "allServers"
    temperature: float = SAMPLING_TEMPERATURE


def _sampling_role(message: ChatMessage) -> Literal["user", "assistant"]:
    match message.role:
        case ChatRole.USER:
            return "user"
        case ChatRole.ASSISTANT:
            return "assistant"
        case _:
            detail = f"Cannot convert message of role {message.role!r} to a sampling message role."
            raise InternalError(detail)


def build_sampling_request(
    seed: Sequence[ChatMessage],
    prompt: str,
    *,
    system_instruction: ChatMessage = SYSTEM_INSTRUCTION,
) -> SamplingRequest:
    """
    Fold a seed conversation into a sampling request.

    System messages (the fixed instruction first, then each seed system message
    in order) are joined into one system prompt; user and assistant turns pass
    through in order, followed by the user prompt.

    Returns
    -------
    SamplingRequest
        Request ready to hand to the client session.
    """
    system_parts = [system_instruction.content]
    turns: list[ChatMessage] = []
    for message in seed:
        if message.role is ChatRole.SYSTEM:
            system_parts.append(message.content)
        else:
            turns.append(message)
    turns.append(ChatMessage(ChatRole.USER, prompt))
    return SamplingRequest(
        system_prompt=SYSTEM_PROMPT_DELIMITER.join(system_parts),
        messages=[
            types.SamplingMessage(
                role=_sampling_role(message),
                content=types.TextContent(type="text", text=message.content),
            )
            for message in turns
        ],
    )


def _sampled_text(result: types.CreateMessageResult) -> str:
    content = result.content
    blocks = content if isinstance(content, list) else [content]
    for block in blocks:
        text = getattr(block, "text", None)
        if text is not None:
            return text
    return ""


def supports_sampling(session: SamplingSession | None) -> bool:
    """
    Report whether a session can serve sampling requests.

    Returns
    -------
    bool
        True when the client advertised the sampling capability.
    """
    if session is None:
        return False
    return session.check_client_capability(
        types.ClientCapabilities(sampling=types.SamplingCapability())
    )


class QueryGenerationService:
    """
    Generate KQL from a natural-language prompt for a configured dataset.

    Parameters
    ----------
    prompts:
        Seed conversations per (category, dataset).
    chat:
        Directly held chat capability.
    max_tokens:
        Token budget for sampling requests routed through the client.
    """

    def __init__(
        self,
        prompts: PromptTable,
        chat: ChatCompleter,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.prompts = prompts
        self.chat = chat
        self.max_tokens = max_tokens

    def _seed_for(self, category: str, dataset: str, prompt: str) -> tuple[ChatMessage, ...]:
        if not prompt:
            message = "Prompt cannot be null or empty."
            raise InvalidArgumentError(message, extras={"parameter": "prompt"})
        if not dataset:
            message = "Table cannot be null or empty."
            raise InvalidArgumentError(message, extras={"parameter": "table"})
        seed = self.prompts.lookup(category, dataset)
        if seed is None:
            supported = self.prompts.supported_keys()
            message = (
                f"The table '{dataset}' in category '{category}' is not supported. "
                f"Supported tables: {';'.join(supported)}"
            )
            raise InvalidArgumentError(message, extras={"supported": list(supported)})
        return seed

    async def generate_query(
        self,
        category: str,
        dataset: str,
        prompt: str,
        *,
        use_sampling: bool = False,
        session: SamplingSession | None = None,
    ) -> str:
        """
        Produce query text for ``prompt`` against the named dataset.

        Parameters
        ----------
        category:
            Dataset category.
        dataset:
            Dataset (table) name.
        prompt:
            Natural-language description of the desired query.
        use_sampling:
            Route generation through the calling client's sampling capability.
        session:
            Calling client session, required for sampling.

        Returns
        -------
        str
            Raw generated text, possibly wrapped in a code fence.

        Raises
        ------
        InvalidArgumentError
            Empty prompt or dataset, or an unsupported (category, dataset) pair.
        GenerationError
            When the model returns no text.
        """
        seed = self._seed_for(category, dataset, prompt)

        if use_sampling and supports_sampling(session):
            text = await self._sample(session, seed, prompt)  # type: ignore[arg-type]
        else:
            if use_sampling:
                LOG.info("Client does not support sampling; using the configured chat model")
            text = await self._complete(seed, prompt)
        if not text:
            error = GenerationError(f"The model returned no query text for: {prompt}")
            log_problem(LOG, error.problem_detail)
            raise error
        return text

    async def _complete(self, seed: Sequence[ChatMessage], prompt: str) -> str:
        messages = [SYSTEM_INSTRUCTION, *seed, ChatMessage(ChatRole.USER, prompt)]
        try:
            return await self.chat.complete(messages)
        except ProblemError as exc:
            log_problem(LOG, exc.problem_detail)
            raise
        except Exception:
            LOG.exception("Error encountered when generating query")
            raise

    async def _sample(self, session: SamplingSession, seed: Sequence[ChatMessage], prompt: str) -> str:
        request = build_sampling_request(seed, prompt)
        LOG.debug("Requesting client sampling with %d message(s)", len(request.messages))
        try:
            result = await session.create_message(
                request.messages,
                max_tokens=self.max_tokens,
                system_prompt=request.system_prompt,
                include_context=request.include_context,
                temperature=request.temperature,
            )
        except Exception:
            LOG.exception("Error encountered when sampling from the client")
            raise
        return _sampled_text(result)


__all__ = [
    "SAMPLING_TEMPERATURE",
    "SYSTEM_INSTRUCTION",
    "SYSTEM_PROMPT_DELIMITER",
    "QueryGenerationService",
    "SamplingRequest",
    "SamplingSession",
    "build_sampling_request",
    "strip_code_fence",
    "supports_sampling",
]
