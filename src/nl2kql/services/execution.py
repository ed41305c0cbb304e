"""Execute generated queries and render results as JSON rows or CSV text."""

from __future__ import annotations

import json
import logging
from functools import partial

from anyio import to_thread

from nl2kql.config.settings import DatasetBinding, Settings
from nl2kql.services.errors import InvalidArgumentError
from nl2kql.storage.engines import QueryResult, QueryRunner

LOG = logging.getLogger("nl2kql.services.execution")


def _json_value(value: object) -> str:
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    return str(value)


def rows_to_json(result: QueryResult) -> str:
    """
    Serialize a result set as a JSON array with one object per row.

    Dates and times are rendered in ISO 8601 form; other values JSON cannot
    represent natively (decimals, timedeltas, GUIDs) are rendered with ``str``.

    Returns
    -------
    str
        JSON array text.
    """
    return json.dumps(result.records(), default=_json_value)


def _csv_cell(value: object) -> str:
    return "" if value is None else str(value)


def render_csv_text(result: QueryResult) -> str:
    """
    Render a result set as comma-delimited text.

    Every line, header included, ends with a trailing comma. Values are not
    quoted or escaped, so embedded commas or newlines do not round-trip.

    Returns
    -------
    str
        Header line followed by one line per row.
    """
    lines = ["".join(f"{column}," for column in result.columns)]
    lines.extend("".join(f"{_csv_cell(value)}," for value in row) for row in result.rows)
    return "".join(f"{line}\n" for line in lines)


class QueryExecutionService:
    """
    Resolve dataset bindings and run queries through the configured engine.

    Parameters
    ----------
    settings:
        Validated settings holding every dataset binding.
    runner:
        Blocking engine adapter; invoked in a worker thread.
    """

    def __init__(self, settings: Settings, runner: QueryRunner) -> None:
        self.settings = settings
        self.runner = runner

    def resolve(self, category: str, dataset: str) -> DatasetBinding:
        """
        Return the binding for a pair, ignoring case.

        Returns
        -------
        DatasetBinding
            Matching binding.

        Raises
        ------
        InvalidArgumentError
            When the pair is not configured; the message lists every supported pair.
        """
        binding = self.settings.find_binding(category, dataset)
        if binding is None:
            supported = self.settings.supported_keys()
            message = (
                f"No cluster information found for table {dataset} in category {category}. "
                f"Supported tables: {';'.join(supported)}"
            )
            raise InvalidArgumentError(message, extras={"supported": supported})
        return binding

    async def _run(self, category: str, dataset: str, query: str) -> QueryResult:
        binding = self.resolve(category, dataset)
        LOG.info('Running query against database "%s": \n%s', binding.database, query)
        try:
            return await to_thread.run_sync(partial(self.runner.run, binding, query))
        except Exception:
            LOG.exception("Error encountered while executing query")
            raise

    async def execute_query(self, category: str, dataset: str, query: str) -> list[dict[str, object]]:
        """
        Run ``query`` and return its rows as mappings.

        Returns
        -------
        list[dict[str, object]]
            One mapping per row keyed by column name.
        """
        result = await self._run(category, dataset, query)
        return result.records()

    async def execute_json(self, category: str, dataset: str, query: str) -> str:
        """
        Run ``query`` and serialize its rows as a JSON array.

        Returns
        -------
        str
            JSON array text.
        """
        result = await self._run(category, dataset, query)
        return rows_to_json(result)

    async def render_csv(self, category: str, dataset: str, query: str) -> str:
        """
        Run ``query`` and render the full result as delimited text.

        Returns
        -------
        str
            CSV text as produced by :func:`render_csv_text`.
        """
        result = await self._run(category, dataset, query)
        return render_csv_text(result)


__all__ = ["QueryExecutionService", "render_csv_text", "rows_to_json"]
