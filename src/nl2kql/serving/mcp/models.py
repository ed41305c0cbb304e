"""Typed MCP tool parameter and result models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nl2kql.config.settings import Settings
from nl2kql.services.errors import InvalidArgumentError


class OutputType(StrEnum):
    """Output type for query results."""

    JSON = "Json"
    CSV = "Csv"

    @classmethod
    def parse(cls, value: str | OutputType) -> OutputType:
        """
        Resolve an output type, ignoring case.

        Returns
        -------
        OutputType
            Matching output type.

        Raises
        ------
        InvalidArgumentError
            When the value names no output type.
        """
        if isinstance(value, OutputType):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        allowed = ", ".join(member.value for member in cls)
        message = f"Invalid output type specified: {value!r}. Supported output types: {allowed}"
        raise InvalidArgumentError(message, extras={"supported": [m.value for m in cls]})


class ToolModel(BaseModel):
    """Base for tool payloads; accepts and emits camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class QueryParameters(ToolModel):
    """Parameters for generating a KQL query using natural language."""

    table: str = Field(description="Name of the table to run the query against.")
    category: str = Field(description="Category the table exists within.")
    prompt: str = Field(
        description=(
            "Prompt to generate the KQL query. The prompt should be a natural language "
            "description of the query you want to generate."
        ),
    )
    use_sampling: bool = Field(
        default=False,
        description="Generate the query with the client's own model when it supports sampling.",
    )


class RunQueryParameters(QueryParameters):
    """Parameters for running a KQL query using natural language."""

    output_type: str = Field(
        default=OutputType.JSON.value,
        description="Output type for the query results: 'Json' or 'Csv'.",
    )


class SupportedTable(ToolModel):
    """A (table, category) pair the server can query."""

    name: str = Field(description="Name of the table")
    category: str = Field(description="Category the table exists within")


class ListSupportedTablesResult(ToolModel):
    """Response to the list supported tables request."""

    tables: list[SupportedTable] = Field(description="List of supported tables")

    @classmethod
    def from_settings(cls, settings: Settings) -> ListSupportedTablesResult:
        """
        Enumerate every configured binding in configuration order.

        Returns
        -------
        ListSupportedTablesResult
            One entry per binding.
        """
        return cls(
            tables=[
                SupportedTable(name=binding.name, category=binding.category)
                for binding in settings.kusto
            ]
        )


__all__ = [
    "ListSupportedTablesResult",
    "OutputType",
    "QueryParameters",
    "RunQueryParameters",
    "SupportedTable",
    "ToolModel",
]
