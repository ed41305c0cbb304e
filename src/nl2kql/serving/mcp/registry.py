"""MCP tool registration and error-to-problem mapping."""

# Annotations stay evaluated here: FastMCP inspects them to find the Context parameter.

import functools
import json
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from nl2kql.serving.mcp.dispatch import QueryToolService
from nl2kql.serving.mcp.models import QueryParameters, RunQueryParameters
from nl2kql.serving.mcp.resources import SessionNotifier
from nl2kql.services.errors import ProblemError, log_problem

LOG = logging.getLogger("nl2kql.serving.mcp.tools")

P = ParamSpec("P")
T = TypeVar("T")


def _wrap(tool: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """
    Wrap a tool so typed failures are logged and surfaced as Problem Details.

    Returns
    -------
    Callable[P, Awaitable[T]]
        Wrapped coroutine function with the original signature.
    """

    @functools.wraps(tool)
    async def _inner(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await tool(*args, **kwargs)
        except ProblemError as exc:
            log_problem(LOG, exc.problem_detail)
            raise ToolError(json.dumps(exc.problem_detail.to_dict(), default=str)) from exc
        except Exception:
            LOG.exception("Error encountered in tool %s", tool.__name__)
            raise

    return _inner


def register_tools(mcp: FastMCP, service: QueryToolService, notifier: SessionNotifier) -> None:
    """
    Register the query tools on the given FastMCP instance.

    Parameters
    ----------
    mcp:
        FastMCP instance to register tools against.
    service:
        Tool orchestration service.
    notifier:
        Notifier that is bound to the calling session on every invocation.
    """

    @mcp.tool(name="list-supported-tables", description="Lists all supported tables.")
    @_wrap
    async def list_supported_tables(ctx: Context) -> dict[str, object]:
        notifier.attach(ctx.session)
        return service.list_supported_tables().model_dump()

    @mcp.tool(
        name="generate-kusto-query",
        description="Generates a KQL query using the given table information.",
    )
    @_wrap
    async def generate_kusto_query(parameters: QueryParameters, ctx: Context) -> str:
        notifier.attach(ctx.session)
        return await service.generate(parameters, session=ctx.session)

    @mcp.tool(
        name="execute-kusto-query",
        description=(
            "Generates and runs a KQL query against the given table. Returns results in Json "
            "format or Csv format, depending on the outputType parameter."
        ),
    )
    @_wrap
    async def execute_kusto_query(parameters: RunQueryParameters, ctx: Context) -> str:
        notifier.attach(ctx.session)
        return await service.execute(parameters, session=ctx.session)
