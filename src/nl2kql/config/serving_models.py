"""Process-level options for the MCP server surface."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from nl2kql.services.errors import ConfigurationError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def level_from_verbosity(verbosity: int) -> str:
    """
    Map a -v/--verbose count to a logging level name.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.

    Returns
    -------
    str
        Logging level name.
    """
    if verbosity <= 0:
        return "WARNING"
    if verbosity == 1:
        return "INFO"
    return "DEBUG"


class ServerConfig(BaseModel):
    """
    Runtime options for the nl2kql server process.

    Distinct from :class:`nl2kql.config.settings.Settings`, which describes the
    model and datasets; this model only says where those settings live and how
    the process should log.
    """

    settings_path: Path | None = Field(
        default=None,
        description="Path to the YAML settings file describing the model and datasets.",
    )
    log_level: str = Field(
        default="WARNING",
        description="Root logging level.",
    )
    server_name: str = Field(
        default="nl2kql",
        description="Name advertised to MCP clients.",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            message = f"Unsupported log level: {value}"
            raise ValueError(message)
        return level

    @classmethod
    def from_env(
        cls,
        *,
        settings_path: str | None = None,
        verbosity: int | None = None,
    ) -> ServerConfig:
        """
        Construct a ServerConfig from CLI values with environment fallbacks.

        Parameters
        ----------
        settings_path:
            Value of ``--settings``; falls back to ``NL2KQL_SETTINGS``.
        verbosity:
            Count of ``-v`` flags; falls back to ``NL2KQL_LOG_LEVEL``.

        Returns
        -------
        ServerConfig
            Validated configuration.

        Raises
        ------
        ConfigurationError
            When an option taken from the environment is invalid.
        """
        path_value = settings_path or os.environ.get("NL2KQL_SETTINGS")
        if verbosity:
            log_level = level_from_verbosity(verbosity)
        else:
            log_level = os.environ.get("NL2KQL_LOG_LEVEL", "WARNING")
        try:
            return cls(
                settings_path=Path(path_value).expanduser() if path_value else None,
                log_level=log_level,
                server_name=os.environ.get("NL2KQL_SERVER_NAME", "nl2kql"),
            )
        except ValidationError as exc:
            message = f"Invalid server options: {exc}"
            raise ConfigurationError(message) from exc

    @property
    def logging_level(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level)


__all__ = ["LOG_LEVELS", "ServerConfig", "level_from_verbosity"]
