"""Pytest configuration for the nl2kql test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from nl2kql.config.settings import Settings
from nl2kql.serving.mcp.dispatch import QueryToolService
from nl2kql.serving.mcp.resources import ResourceRegistry, SessionNotifier
from nl2kql.services.execution import QueryExecutionService
from nl2kql.services.generation import QueryGenerationService
from nl2kql.services.prompt_table import PromptTable
from tests._helpers.fakes import FakeChatCompleter, FakeQueryRunner

SETTINGS_YAML = """\
model:
  endpoint: https://example.openai.azure.com/
  deployment: gpt-4o
  key: ${{ NL2KQL_TEST_MODEL_KEY }}
kusto:
  - name: Errors
    category: ops
    database: OpsDb
    endpoint: https://ops.kusto.windows.net
    prompts:
      - type: System
        content: schema is X
      - type: user
        content: show me recent
      - type: ASSISTANT
        content: X | take 10
  - name: Deployments
    category: release
    database: ReleaseDb
    endpoint: https://release.kusto.windows.net
    prompts: []
"""


def scenario_settings() -> Settings:
    """
    Build settings with the ops/Errors and release/Deployments bindings.

    Returns
    -------
    Settings
        Validated settings used across tests.
    """
    return Settings.model_validate(
        {
            "model": {"endpoint": "https://example.openai.azure.com/", "deployment": "gpt-4o"},
            "kusto": [
                {
                    "name": "Errors",
                    "category": "ops",
                    "database": "OpsDb",
                    "endpoint": "https://ops.kusto.windows.net",
                    "prompts": [
                        {"type": "System", "content": "schema is X"},
                        {"type": "User", "content": "show me recent"},
                        {"type": "Assistant", "content": "X | take 10"},
                    ],
                },
                {
                    "name": "Deployments",
                    "category": "release",
                    "database": "ReleaseDb",
                    "endpoint": "https://release.kusto.windows.net",
                    "prompts": [],
                },
            ],
        }
    )


@pytest.fixture
def settings() -> Settings:
    """Scenario settings."""
    return scenario_settings()


@pytest.fixture
def settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Write the scenario settings file and provide its interpolated variable.

    Returns
    -------
    Path
        Location of the YAML settings file.
    """
    monkeypatch.setenv("NL2KQL_TEST_MODEL_KEY", "secret-key")
    path = tmp_path / "settings.yaml"
    path.write_text(SETTINGS_YAML, encoding="utf-8")
    return path


@pytest.fixture
def fake_chat() -> FakeChatCompleter:
    """Chat stub answering with a fenced query."""
    return FakeChatCompleter("```X | summarize count() by Severity```")


@pytest.fixture
def fake_runner() -> FakeQueryRunner:
    """Query engine stub returning two rows."""
    return FakeQueryRunner()


@pytest.fixture
def registry() -> ResourceRegistry:
    """Empty resource registry with a detached notifier."""
    return ResourceRegistry(SessionNotifier())


@pytest.fixture
def tool_service(
    settings: Settings,
    fake_chat: FakeChatCompleter,
    fake_runner: FakeQueryRunner,
    registry: ResourceRegistry,
    tmp_path: Path,
) -> QueryToolService:
    """Tool service wired to the stubs, writing CSV files under ``tmp_path``.

    Returns
    -------
    QueryToolService
        Service under test.
    """
    generator = QueryGenerationService(PromptTable.from_settings(settings), fake_chat)
    executor = QueryExecutionService(settings, fake_runner)
    return QueryToolService(settings, generator, executor, registry, temp_dir=tmp_path)
