"""Query engine protocol, tabular results, and per-binding engine routing."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from nl2kql.config.settings import DatasetBinding

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    """Fully materialized, row-oriented result set."""

    columns: tuple[str, ...]
    rows: list[tuple[object, ...]] = field(default_factory=list)

    def records(self) -> list[dict[str, object]]:
        """
        Return one mapping per row keyed by column name.

        Returns
        -------
        list[dict[str, object]]
            Rows as dictionaries.
        """
        return [dict(zip(self.columns, row, strict=False)) for row in self.rows]


class QueryRunner(Protocol):
    """Blocking engine call: run ``query`` against the dataset a binding points at."""

    def run(self, binding: DatasetBinding, query: str) -> QueryResult:
        """Execute the query and return its primary result table."""
        ...


class UnsupportedEngineError(LookupError):
    """No runner is registered for a binding's engine."""


class EngineRouter:
    """
    Dispatch each binding to the runner registered for its ``engine``.

    Parameters
    ----------
    runners:
        Mapping from engine name (``kusto``, ``duckdb``) to runner.
    """

    def __init__(self, runners: Mapping[str, QueryRunner]) -> None:
        self._runners = dict(runners)

    @property
    def engines(self) -> Sequence[str]:
        """Registered engine names."""
        return tuple(self._runners)

    def run(self, binding: DatasetBinding, query: str) -> QueryResult:
        """
        Run the query on the binding's engine.

        Returns
        -------
        QueryResult
            Engine result.

        Raises
        ------
        UnsupportedEngineError
            When the binding names an engine without a runner.
        """
        runner = self._runners.get(binding.engine)
        if runner is None:
            message = f"No query engine registered for '{binding.engine}'"
            raise UnsupportedEngineError(message)
        log.debug("Routing %s to %s engine", binding.key, binding.engine)
        return runner.run(binding, query)

    def close(self) -> None:
        """Release resources held by runners that keep connections open."""
        for runner in self._runners.values():
            close = getattr(runner, "close", None)
            if close is not None:
                close()


def default_router() -> EngineRouter:
    """
    Build a router with the Kusto and DuckDB runners.

    Returns
    -------
    EngineRouter
        Router covering every supported engine.
    """
    from nl2kql.storage.duckdb_client import DuckDBQueryRunner  # noqa: PLC0415
    from nl2kql.storage.kusto_client import KustoQueryRunner  # noqa: PLC0415

    return EngineRouter({"kusto": KustoQueryRunner(), "duckdb": DuckDBQueryRunner()})


__all__ = [
    "EngineRouter",
    "QueryResult",
    "QueryRunner",
    "UnsupportedEngineError",
    "default_router",
]
