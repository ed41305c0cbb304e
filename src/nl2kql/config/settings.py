"""Settings models describing the chat model and the configured datasets."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from nl2kql.core.types import ChatRole

QueryEngine = Literal["kusto", "duckdb"]

DEFAULT_API_VERSION = "2024-10-21"
DEFAULT_MAX_TOKENS = 2048


def dataset_key(category: str, name: str) -> str:
    """
    Build the display key for a (category, dataset) pair.

    Returns
    -------
    str
        Key in ``Category: <category>, Table: <name>`` form.
    """
    return f"Category: {category}, Table: {name}"


class PromptEntry(BaseModel):
    """One seed prompt attached to a dataset binding."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ChatRole
    content: str

    @field_validator("type", mode="before")
    @classmethod
    def _parse_role(cls, value: object) -> ChatRole:
        return ChatRole.parse(value)


class ModelSettings(BaseModel):
    """Azure OpenAI deployment used for query generation."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    endpoint: str
    deployment: str
    key: str | None = None
    api_version: str = Field(default=DEFAULT_API_VERSION, alias="apiVersion")
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, alias="maxTokens", gt=0)


class DatasetBinding(BaseModel):
    """Connection details and seed prompts for one queryable dataset."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    database: str
    endpoint: str
    table: str | None = None
    engine: QueryEngine = "kusto"
    prompts: tuple[PromptEntry, ...] = ()

    @property
    def key(self) -> str:
        """Display key for this binding."""
        return dataset_key(self.category, self.name)

    def matches(self, category: str, name: str) -> bool:
        """
        Compare against a requested pair, ignoring case.

        Returns
        -------
        bool
            True when both category and name match.
        """
        return (
            self.category.casefold() == category.casefold()
            and self.name.casefold() == name.casefold()
        )


class Settings(BaseModel):
    """
    Root settings document.

    Immutable once validated; built once at startup and shared by every service.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    model: ModelSettings
    kusto: tuple[DatasetBinding, ...] = ()

    @model_validator(mode="after")
    def _validate_unique_pairs(self) -> Settings:
        seen: set[tuple[str, str]] = set()
        for binding in self.kusto:
            pair = (binding.category.casefold(), binding.name.casefold())
            if pair in seen:
                message = f"Duplicate dataset binding: {binding.key}"
                raise ValueError(message)
            seen.add(pair)
        return self

    def find_binding(self, category: str, name: str) -> DatasetBinding | None:
        """
        Look up a dataset binding case-insensitively.

        Returns
        -------
        DatasetBinding | None
            Matching binding or None when the pair is not configured.
        """
        for binding in self.kusto:
            if binding.matches(category, name):
                return binding
        return None

    def supported_keys(self) -> list[str]:
        """
        Enumerate every configured pair in configuration order.

        Returns
        -------
        list[str]
            Display keys, one per binding.
        """
        return [binding.key for binding in self.kusto]


__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_MAX_TOKENS",
    "DatasetBinding",
    "ModelSettings",
    "PromptEntry",
    "QueryEngine",
    "Settings",
    "dataset_key",
]
