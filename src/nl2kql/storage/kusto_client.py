"""Kusto (Azure Data Explorer) query runner."""

from __future__ import annotations

import logging
import threading

from azure.kusto.data import KustoClient, KustoConnectionStringBuilder

from nl2kql.config.settings import DatasetBinding
from nl2kql.storage.engines import QueryResult

log = logging.getLogger(__name__)


class KustoQueryRunner:
    """
    Run KQL against a cluster using interactive Entra ID user login.

    One ``KustoClient`` is kept per cluster endpoint so the user is prompted
    at most once per cluster for the life of the process.
    """

    def __init__(self) -> None:
        self._clients: dict[str, KustoClient] = {}
        self._lock = threading.Lock()

    def _client_for(self, endpoint: str) -> KustoClient:
        with self._lock:
            client = self._clients.get(endpoint)
            if client is None:
                log.info("Connecting to Kusto cluster %s", endpoint)
                kcsb = KustoConnectionStringBuilder.with_interactive_login(endpoint)
                client = KustoClient(kcsb)
                self._clients[endpoint] = client
            return client

    def run(self, binding: DatasetBinding, query: str) -> QueryResult:
        """
        Execute ``query`` in the binding's database.

        Returns
        -------
        QueryResult
            Columns and rows of the primary result table.
        """
        client = self._client_for(binding.endpoint)
        response = client.execute(binding.database, query)
        primary = response.primary_results[0]
        columns = tuple(column.column_name for column in primary.columns)
        rows = [tuple(row.to_list()) for row in primary.rows]
        log.debug("Kusto returned %d row(s) from %s", len(rows), binding.database)
        return QueryResult(columns=columns, rows=rows)

    def close(self) -> None:
        """Close every cached cluster client."""
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()


__all__ = ["KustoQueryRunner"]
