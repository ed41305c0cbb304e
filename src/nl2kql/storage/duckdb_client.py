"""DuckDB query runner for datasets backed by a local database file."""

from __future__ import annotations

import logging
from pathlib import Path

import duckdb

from nl2kql.config.settings import DatasetBinding
from nl2kql.storage.engines import QueryResult

log = logging.getLogger(__name__)


class DuckDBQueryRunner:
    """
    Run SQL against the DuckDB file named by a binding's ``endpoint``.

    A fresh read-only connection is opened per query so concurrent tool calls
    never share a connection.
    """

    def run(self, binding: DatasetBinding, query: str) -> QueryResult:
        """
        Execute ``query`` and fetch every row.

        Returns
        -------
        QueryResult
            Column names from the cursor description plus all rows.
        """
        db_path = Path(binding.endpoint).expanduser()
        log.info("Connecting to DuckDB at %s (read_only=True)", db_path)
        con = duckdb.connect(str(db_path), read_only=True)
        try:
            cursor = con.execute(query)
            columns = tuple(desc[0] for desc in cursor.description or ())
            rows = [tuple(row) for row in cursor.fetchall()]
        finally:
            con.close()
        return QueryResult(columns=columns, rows=rows)


__all__ = ["DuckDBQueryRunner"]
