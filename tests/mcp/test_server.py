"""MCP server wiring: tools, resource listing, and resource reads."""

from __future__ import annotations

import json
from pathlib import Path

import anyio
import pytest
from mcp import types
from mcp.server.fastmcp.exceptions import ToolError
from mcp.shared.exceptions import McpError
from mcp.shared.memory import create_connected_server_and_client_session
from pydantic import AnyUrl

from nl2kql.config.serving_models import ServerConfig
from nl2kql.config.settings import Settings
from nl2kql.serving.mcp.registry import _wrap
from nl2kql.serving.mcp.resources import ResourceRecord
from nl2kql.serving.mcp.server import (
    Nl2KqlServer,
    ServerServices,
    create_mcp_server,
    read_resource_content,
)
from nl2kql.services.errors import InvalidArgumentError, NotFoundError
from tests._helpers.fakes import FakeChatCompleter, FakeQueryRunner


@pytest.fixture
def runner() -> FakeQueryRunner:
    """Engine stub shared with the server."""
    return FakeQueryRunner()


@pytest.fixture
def server_and_services(
    settings: Settings, runner: FakeQueryRunner, tmp_path: Path
) -> tuple[Nl2KqlServer, ServerServices]:
    """
    Build a server around stub capabilities.

    Returns
    -------
    tuple[Nl2KqlServer, ServerServices]
        Server and the services behind it.
    """
    return create_mcp_server(
        settings,
        config=ServerConfig(server_name="nl2kql-test"),
        chat=FakeChatCompleter(),
        runner=runner,
        temp_dir=tmp_path,
    )


def _file_record(path: Path, mime_type: str) -> ResourceRecord:
    return ResourceRecord(
        name=path.name,
        uri=path.resolve().as_uri(),
        mime_type=mime_type,
        size=path.stat().st_size,
    )


def test_server_registers_query_tools(
    server_and_services: tuple[Nl2KqlServer, ServerServices],
) -> None:
    """The three query tools are advertised."""
    server, _ = server_and_services
    tools = anyio.run(server.list_tools)
    names = sorted(tool.name for tool in tools)
    if names != ["execute-kusto-query", "generate-kusto-query", "list-supported-tables"]:
        pytest.fail(f"Unexpected tool names: {names}")
    if server.name != "nl2kql-test":
        pytest.fail("Server name should come from the config")


def test_list_resources_reflects_registry(
    server_and_services: tuple[Nl2KqlServer, ServerServices], tmp_path: Path
) -> None:
    """Registered records are listed as MCP resources."""
    server, services = server_and_services
    if anyio.run(server.list_resources):
        pytest.fail("Expected no resources before registration")
    path = tmp_path / "rows.csv"
    path.write_text("a,\n1,\n", encoding="utf-8")
    services.registry.add(_file_record(path, "text/csv"))
    resources = anyio.run(server.list_resources)
    if [str(resource.uri) for resource in resources] != [path.resolve().as_uri()]:
        pytest.fail(f"Unexpected resources: {resources}")


def test_read_resource_text_and_binary(
    server_and_services: tuple[Nl2KqlServer, ServerServices], tmp_path: Path
) -> None:
    """Text MIME types read as str, binary ones as bytes."""
    server, services = server_and_services
    text_path = tmp_path / "rows.csv"
    text_path.write_text("a,\n1,\n", encoding="utf-8")
    blob_path = tmp_path / "blob.bin"
    blob_path.write_bytes(b"\x00\x01")
    text_record = _file_record(text_path, "text/csv")
    blob_record = _file_record(blob_path, "application/octet-stream")
    services.registry.add(text_record)
    services.registry.add(blob_record)

    text_contents = list(anyio.run(server.read_resource, text_record.uri))
    if text_contents[0].content != "a,\n1,\n" or text_contents[0].mime_type != "text/csv":
        pytest.fail(f"Unexpected text contents: {text_contents}")
    blob_contents = list(anyio.run(server.read_resource, blob_record.uri))
    if blob_contents[0].content != b"\x00\x01":
        pytest.fail(f"Unexpected binary contents: {blob_contents}")


def test_read_unknown_resource(server_and_services: tuple[Nl2KqlServer, ServerServices]) -> None:
    """Unknown URIs are not found."""
    server, _ = server_and_services
    with pytest.raises(NotFoundError, match="not found"):
        anyio.run(server.read_resource, "file:///does/not/exist.csv")


def test_read_resource_content_other_scheme() -> None:
    """Non-file URIs carry no local content."""
    record = ResourceRecord(name="r", uri="https://example.com/r", mime_type="image/png")
    if read_resource_content(record) != b"":
        pytest.fail("Expected empty binary content")
    text_record = ResourceRecord(name="r", uri="https://example.com/r", mime_type="text/plain")
    if read_resource_content(text_record) != "":
        pytest.fail("Expected empty text content")


def test_services_close_releases_runner(
    server_and_services: tuple[Nl2KqlServer, ServerServices], runner: FakeQueryRunner
) -> None:
    """Closing the services closes the query engine."""
    _, services = server_and_services
    services.close()
    if not runner.closed:
        pytest.fail("Expected the runner to be closed")


def test_tool_wrapper_maps_problem_errors() -> None:
    """Typed failures reach the client as tool errors carrying Problem Details."""

    async def _failing() -> str:
        message = "Invalid output type specified: 'Xml'"
        raise InvalidArgumentError(message)

    with pytest.raises(ToolError) as excinfo:
        anyio.run(_wrap(_failing))
    payload = json.loads(str(excinfo.value))
    if payload["code"] != "invalid_argument" or payload["status"] != 400:
        pytest.fail(f"Unexpected problem payload: {payload}")
    if "Xml" not in payload["detail"]:
        pytest.fail("Detail should carry the original message")


def test_tool_wrapper_reraises_untyped_errors() -> None:
    """Untyped failures propagate unchanged."""

    async def _failing() -> str:
        message = "boom"
        raise RuntimeError(message)

    with pytest.raises(RuntimeError, match="boom"):
        anyio.run(_wrap(_failing))


def test_initialization_advertises_resource_subscriptions(
    server_and_services: tuple[Nl2KqlServer, ServerServices],
) -> None:
    """Clients are told that subscribe and list-changed are supported."""
    server, _ = server_and_services
    resources = server._mcp_server.create_initialization_options().capabilities.resources
    if resources is None or not resources.subscribe or not resources.listChanged:
        pytest.fail(f"Unexpected resources capability: {resources}")


def test_client_subscription_round_trip(
    server_and_services: tuple[Nl2KqlServer, ServerServices], tmp_path: Path
) -> None:
    """Subscribe and unsubscribe requests from a connected client reach the registry."""
    server, services = server_and_services
    path = tmp_path / "rows.csv"
    path.write_text("a,\n1,\n", encoding="utf-8")
    record = _file_record(path, "text/csv")
    received: list[str] = []
    updated = anyio.Event()

    async def _on_message(message: object) -> None:
        if isinstance(message, types.ServerNotification):
            received.append(message.root.method)
            if isinstance(message.root, types.ResourceUpdatedNotification):
                updated.set()

    async def _scenario() -> None:
        async with create_connected_server_and_client_session(
            server._mcp_server, message_handler=_on_message
        ) as client:
            await client.subscribe_resource(AnyUrl(record.uri))
            if not services.registry.is_subscribed(record.uri):
                pytest.fail("Subscription should be recorded")
            services.registry.add(record)
            services.registry.update(record.model_copy(update={"size": 1}))
            await services.notifier.drain()
            with anyio.fail_after(5):
                await updated.wait()
            await client.unsubscribe_resource(AnyUrl(record.uri))
            if services.registry.is_subscribed(record.uri):
                pytest.fail("Subscription should be removed")
            with pytest.raises(McpError):
                await client.unsubscribe_resource(AnyUrl(record.uri))

    anyio.run(_scenario)
    if "notifications/resources/list_changed" not in received:
        pytest.fail(f"Expected a list-changed notification, got {received}")
    if "notifications/resources/updated" not in received:
        pytest.fail(f"Expected an updated notification, got {received}")
