"""MCP server exposing query tools and generated resources."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from urllib.request import url2pathname

from anyio import to_thread
from mcp import types
from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel import NotificationOptions
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl

from nl2kql.config.serving_models import ServerConfig
from nl2kql.config.settings import Settings
from nl2kql.serving.mcp.dispatch import QueryToolService
from nl2kql.serving.mcp.registry import register_tools
from nl2kql.serving.mcp.resources import (
    ResourceRecord,
    ResourceRegistry,
    SessionNotifier,
    is_binary_mime,
)
from nl2kql.services.chat import AzureOpenAIChatCompleter, ChatCompleter
from nl2kql.services.errors import NotFoundError
from nl2kql.services.execution import QueryExecutionService
from nl2kql.services.generation import QueryGenerationService
from nl2kql.services.prompt_table import PromptTable
from nl2kql.storage.engines import QueryRunner, default_router

LOG = logging.getLogger("nl2kql.serving.mcp.server")

INSTRUCTIONS = (
    "Translates natural-language prompts into KQL for the configured tables and runs them. "
    "Call 'list-supported-tables' first; 'execute-kusto-query' with outputType 'Csv' "
    "registers the result as a subscribable resource."
)


@dataclass
class ServerServices:
    """Bundle of services shared by the tools and resource handlers, plus a cleanup hook."""

    settings: Settings
    prompts: PromptTable
    generator: QueryGenerationService
    executor: QueryExecutionService
    registry: ResourceRegistry
    notifier: SessionNotifier
    tools: QueryToolService
    close: Callable[[], None]


def build_services(
    settings: Settings,
    *,
    chat: ChatCompleter | None = None,
    runner: QueryRunner | None = None,
    temp_dir: Path | None = None,
) -> ServerServices:
    """
    Wire every service from validated settings.

    Parameters
    ----------
    settings:
        Settings loaded at startup.
    chat:
        Chat capability; defaults to the configured Azure OpenAI deployment.
    runner:
        Query engine; defaults to the Kusto/DuckDB router.
    temp_dir:
        Directory for generated CSV files.

    Returns
    -------
    ServerServices
        Services plus a close hook for engine connections.
    """
    prompts = PromptTable.from_settings(settings)
    resolved_chat = chat or AzureOpenAIChatCompleter(settings.model)
    generator = QueryGenerationService(prompts, resolved_chat, max_tokens=settings.model.max_tokens)

    if runner is None:
        router = default_router()
        resolved_runner: QueryRunner = router
        close = router.close
    else:
        resolved_runner = runner
        close = getattr(runner, "close", lambda: None)
    executor = QueryExecutionService(settings, resolved_runner)

    notifier = SessionNotifier()
    registry = ResourceRegistry(notifier)
    tools = QueryToolService(settings, generator, executor, registry, temp_dir=temp_dir)
    return ServerServices(
        settings=settings,
        prompts=prompts,
        generator=generator,
        executor=executor,
        registry=registry,
        notifier=notifier,
        tools=tools,
        close=close,
    )


def read_resource_content(record: ResourceRecord) -> str | bytes:
    """
    Load the content behind a record.

    ``file://`` URIs are read from disk, as bytes for binary MIME types and as
    UTF-8 text otherwise. Other URI schemes carry no local content.

    Returns
    -------
    str | bytes
        Resource content.
    """
    binary = is_binary_mime(record.mime_type)
    parsed = urlparse(record.uri)
    if parsed.scheme != "file":
        return b"" if binary else ""
    path = Path(url2pathname(parsed.path))
    if binary:
        return path.read_bytes()
    return path.read_text(encoding="utf-8")


class Nl2KqlServer(FastMCP):
    """FastMCP server whose resources come from the shared :class:`ResourceRegistry`."""

    def __init__(self, services: ServerServices, *, name: str = "nl2kql") -> None:
        super().__init__(name, instructions=INSTRUCTIONS)
        self.services = services
        self._mcp_server.subscribe_resource()(self._subscribe)
        self._mcp_server.unsubscribe_resource()(self._unsubscribe)
        self._advertise_resource_capabilities()

    def _advertise_resource_capabilities(self) -> None:
        """Report subscribe and list-changed support during initialization."""
        base = self._mcp_server.get_capabilities

        def _get_capabilities(
            notification_options: NotificationOptions,
            experimental_capabilities: dict[str, dict[str, Any]],
        ) -> types.ServerCapabilities:
            capabilities = base(notification_options, experimental_capabilities)
            return capabilities.model_copy(
                update={
                    "resources": types.ResourcesCapability(subscribe=True, listChanged=True),
                }
            )

        self._mcp_server.get_capabilities = _get_capabilities  # type: ignore[method-assign]

    def _attach_session(self) -> None:
        try:
            session = self._mcp_server.request_context.session
        except LookupError:
            return
        self.services.notifier.attach(session)

    async def list_resources(self) -> list[types.Resource]:
        """List every registered resource."""
        self._attach_session()
        return [record.to_mcp() for record in self.services.registry.list()]

    async def read_resource(self, uri: AnyUrl | str) -> Iterable[ReadResourceContents]:
        """
        Read a registered resource.

        Returns
        -------
        Iterable[ReadResourceContents]
            Single content entry, binary or text according to the MIME type.

        Raises
        ------
        NotFoundError
            When no resource is registered under ``uri``.
        """
        self._attach_session()
        record = self.services.registry.get(str(uri))
        if record is None:
            message = f"Resource with uri {uri} not found."
            raise NotFoundError(message)
        content = await to_thread.run_sync(read_resource_content, record)
        return [ReadResourceContents(content=content, mime_type=record.mime_type)]

    async def _subscribe(self, uri: AnyUrl) -> None:
        self._attach_session()
        self.services.registry.subscribe(str(uri))

    async def _unsubscribe(self, uri: AnyUrl) -> None:
        self._attach_session()
        self.services.registry.unsubscribe(str(uri))


def create_mcp_server(
    settings: Settings,
    *,
    config: ServerConfig | None = None,
    chat: ChatCompleter | None = None,
    runner: QueryRunner | None = None,
    temp_dir: Path | None = None,
) -> tuple[Nl2KqlServer, ServerServices]:
    """
    Create the MCP server instance plus the services behind it.

    Returns
    -------
    tuple[Nl2KqlServer, ServerServices]
        Configured MCP server and its services (``services.close`` releases engines).
    """
    resolved_config = config or ServerConfig()
    services = build_services(settings, chat=chat, runner=runner, temp_dir=temp_dir)
    server = Nl2KqlServer(services, name=resolved_config.server_name)
    register_tools(server, services.tools, services.notifier)
    LOG.info("Registered tools for %d dataset binding(s)", len(settings.kusto))
    return server, services


__all__ = [
    "INSTRUCTIONS",
    "Nl2KqlServer",
    "ServerServices",
    "build_services",
    "create_mcp_server",
    "read_resource_content",
]
