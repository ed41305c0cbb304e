"""Tool orchestration: generate, execute, and register query output."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from anyio import to_thread

from nl2kql.config.settings import Settings
from nl2kql.serving.mcp.models import (
    ListSupportedTablesResult,
    OutputType,
    QueryParameters,
    RunQueryParameters,
)
from nl2kql.serving.mcp.resources import ResourceRecord, ResourceRegistry
from nl2kql.services.errors import (
    InvalidArgumentError,
    QueryExecutionError,
    RegistryConflictError,
    log_problem,
)
from nl2kql.services.execution import QueryExecutionService
from nl2kql.services.generation import QueryGenerationService, SamplingSession, strip_code_fence

LOG = logging.getLogger("nl2kql.serving.mcp.dispatch")

CSV_MIME_TYPE = "text/csv"
CSV_DESCRIPTION = "A CSV file in a temporary location created using provided query"


class QueryToolService:
    """
    Orchestrates the tool pipeline for one server.

    Parameters
    ----------
    settings:
        Validated settings; source of the supported table list.
    generator:
        Natural-language to query text service.
    executor:
        Query execution service.
    registry:
        Registry receiving CSV resources.
    temp_dir:
        Directory for CSV files; defaults to the system temporary directory.
    """

    def __init__(  # noqa: PLR0913
        self,
        settings: Settings,
        generator: QueryGenerationService,
        executor: QueryExecutionService,
        registry: ResourceRegistry,
        *,
        temp_dir: Path | None = None,
    ) -> None:
        self.settings = settings
        self.generator = generator
        self.executor = executor
        self.registry = registry
        self.temp_dir = temp_dir

    def list_supported_tables(self) -> ListSupportedTablesResult:
        """List every configured (table, category) pair."""
        return ListSupportedTablesResult.from_settings(self.settings)

    async def generate(self, params: QueryParameters, *, session: SamplingSession | None = None) -> str:
        """
        Generate query text without executing it.

        Returns
        -------
        str
            Generated text exactly as the model returned it.
        """
        return await self.generator.generate_query(
            params.category,
            params.table,
            params.prompt,
            use_sampling=params.use_sampling,
            session=session,
        )

    async def execute(self, params: RunQueryParameters, *, session: SamplingSession | None = None) -> str:
        """
        Generate a query, run it, and return rows or a registered CSV resource.

        Returns
        -------
        str
            JSON row array for ``Json``; JSON ResourceRecord for ``Csv``.

        Raises
        ------
        InvalidArgumentError
            Unknown output type, empty arguments, or an unsupported table.
        RegistryConflictError
            When the CSV resource cannot be registered.
        QueryExecutionError
            Any failure after generation, carrying the query that was run.
        """
        output_type = OutputType.parse(params.output_type)
        generated = await self.generate(params, session=session)
        query = strip_code_fence(generated)

        try:
            return await self._execute(params, output_type, query)
        except (InvalidArgumentError, RegistryConflictError):
            raise
        except Exception as exc:
            error = QueryExecutionError(query, exc)
            log_problem(LOG, error.problem_detail)
            raise error from exc

    async def _execute(self, params: RunQueryParameters, output_type: OutputType, query: str) -> str:
        match output_type:
            case OutputType.JSON:
                return await self.executor.execute_json(params.category, params.table, query)
            case OutputType.CSV:
                csv = await self.executor.render_csv(params.category, params.table, query)
                record = await to_thread.run_sync(self._write_csv, csv, query)
                self.registry.add(record)
                return record.to_json()

    def _write_csv(self, csv: str, query: str) -> ResourceRecord:
        fd, raw_path = tempfile.mkstemp(suffix=".csv", dir=self.temp_dir)
        path = Path(raw_path).resolve()
        LOG.info("Writing CSV to temporary file: %s", path)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(csv)
        return ResourceRecord(
            name=path.name,
            uri=path.as_uri(),
            mime_type=CSV_MIME_TYPE,
            size=path.stat().st_size,
            description=CSV_DESCRIPTION,
            properties={"Query": query},
        )


__all__ = ["CSV_DESCRIPTION", "CSV_MIME_TYPE", "QueryToolService"]
