"""CLI entrypoint behavior."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from nl2kql.cli import main as cli_main


def test_tables_prints_supported_tables(
    settings_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """The tables command prints every binding as JSON."""
    code = cli_main.main(["--settings", str(settings_path), "tables"])
    if code != 0:
        pytest.fail(f"Unexpected exit code {code}")
    payload = json.loads(capsys.readouterr().out)
    if payload != {
        "tables": [
            {"name": "Errors", "category": "ops"},
            {"name": "Deployments", "category": "release"},
        ]
    }:
        pytest.fail(f"Unexpected output: {payload}")


def test_missing_settings_exits_nonzero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings failures stop the process before serving."""
    served: list[bool] = []
    monkeypatch.setattr(cli_main, "create_mcp_server", lambda *a, **k: served.append(True))
    code = cli_main.main(["--settings", str(tmp_path / "missing.yaml"), "serve"])
    if code != 1:
        pytest.fail(f"Expected exit code 1, got {code}")
    if served:
        pytest.fail("Server must not be created when settings fail to load")


def test_missing_interpolated_variable_exits_nonzero(
    settings_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An unset variable referenced by the settings file is fatal."""
    monkeypatch.delenv("NL2KQL_TEST_MODEL_KEY")
    if cli_main.main(["--settings", str(settings_path), "tables"]) != 1:
        pytest.fail("Expected exit code 1")


def test_serve_runs_and_closes(settings_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Serve is the default command and always releases services."""
    events: list[str] = []
    server = SimpleNamespace(run=lambda: events.append("run"))
    services = SimpleNamespace(close=lambda: events.append("close"))
    monkeypatch.setattr(cli_main, "create_mcp_server", lambda *a, **k: (server, services))
    monkeypatch.setenv("NL2KQL_SETTINGS", str(settings_path))
    code = cli_main.main([])
    if code != 0 or events != ["run", "close"]:
        pytest.fail(f"Unexpected serve behavior: code={code} events={events}")


def test_invalid_log_level_exits_nonzero(
    settings_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Invalid server options are fatal, like settings failures."""
    monkeypatch.setenv("NL2KQL_LOG_LEVEL", "chatty")
    if cli_main.main(["--settings", str(settings_path), "tables"]) != 1:
        pytest.fail("Expected exit code 1")
