"""Engine routing and the DuckDB runner."""

from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from nl2kql.config.settings import DatasetBinding
from nl2kql.storage.duckdb_client import DuckDBQueryRunner
from nl2kql.storage.engines import EngineRouter, QueryResult, UnsupportedEngineError
from tests._helpers.fakes import FakeQueryRunner


@pytest.fixture
def duckdb_binding(tmp_path: Path) -> DatasetBinding:
    """
    Seed a DuckDB file with a small events table.

    Returns
    -------
    DatasetBinding
        Binding whose endpoint is the seeded database file.
    """
    db_path = tmp_path / "events.duckdb"
    con = duckdb.connect(str(db_path))
    try:
        con.execute("CREATE TABLE events (severity VARCHAR, hits INTEGER)")
        con.execute("INSERT INTO events VALUES ('Error', 3), ('Warning', 5), (NULL, 1)")
    finally:
        con.close()
    return DatasetBinding(
        name="events",
        category="local",
        database="main",
        endpoint=str(db_path),
        engine="duckdb",
    )


def test_duckdb_runner_returns_columns_and_rows(duckdb_binding: DatasetBinding) -> None:
    """Columns come from the cursor description; rows are fully fetched."""
    result = DuckDBQueryRunner().run(
        duckdb_binding, "SELECT severity, hits FROM events ORDER BY hits"
    )
    if result.columns != ("severity", "hits"):
        pytest.fail(f"Unexpected columns: {result.columns}")
    if result.rows != [(None, 1), ("Error", 3), ("Warning", 5)]:
        pytest.fail(f"Unexpected rows: {result.rows}")


def test_duckdb_runner_is_read_only(duckdb_binding: DatasetBinding) -> None:
    """Writes are rejected by the read-only connection."""
    with pytest.raises(duckdb.Error):
        DuckDBQueryRunner().run(duckdb_binding, "DELETE FROM events")


def test_query_result_records() -> None:
    """Records pair each row with the column names."""
    result = QueryResult(columns=("a", "b"), rows=[(1, 2)])
    if result.records() != [{"a": 1, "b": 2}]:
        pytest.fail(f"Unexpected records: {result.records()}")


def test_router_dispatches_on_engine(duckdb_binding: DatasetBinding) -> None:
    """Bindings are routed to the runner registered for their engine."""
    kusto = FakeQueryRunner()
    router = EngineRouter({"kusto": kusto, "duckdb": DuckDBQueryRunner()})
    result = router.run(duckdb_binding, "SELECT count(*) AS n FROM events")
    if result.rows != [(3,)]:
        pytest.fail(f"Unexpected DuckDB result: {result.rows}")
    if kusto.calls:
        pytest.fail("Kusto runner must not see DuckDB bindings")
    if tuple(router.engines) != ("kusto", "duckdb"):
        pytest.fail("Unexpected engine names")


def test_router_unknown_engine(duckdb_binding: DatasetBinding) -> None:
    """Engines without a runner are reported."""
    router = EngineRouter({"kusto": FakeQueryRunner()})
    with pytest.raises(UnsupportedEngineError, match="duckdb"):
        router.run(duckdb_binding, "SELECT 1")


def test_router_close_closes_runners() -> None:
    """Close releases runners that hold connections."""
    runner = FakeQueryRunner()
    EngineRouter({"kusto": runner, "duckdb": DuckDBQueryRunner()}).close()
    if not runner.closed:
        pytest.fail("Expected runner to be closed")
