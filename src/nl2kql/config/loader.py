"""Load the YAML settings file, interpolating ``${{ NAME }}`` environment tokens first."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from nl2kql.config.settings import Settings
from nl2kql.services.errors import ConfigurationError

log = logging.getLogger(__name__)

ENV_TOKEN_PATTERN = re.compile(r"\$\{\{\s*(.*?)\s*\}\}")


def interpolate_env(text: str, environ: Mapping[str, str] | None = None) -> str:
    """
    Replace every ``${{ NAME }}`` token with the value of environment variable ``NAME``.

    Parameters
    ----------
    text:
        Raw settings text.
    environ:
        Variable source; defaults to ``os.environ``.

    Returns
    -------
    str
        Text with all tokens substituted.

    Raises
    ------
    ConfigurationError
        When a referenced variable is unset or empty.
    """
    if not text:
        return text
    source = os.environ if environ is None else environ

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = source.get(name)
        if not value:
            message = f"Environment variable '{name}' is not set."
            raise ConfigurationError(message)
        return value

    return ENV_TOKEN_PATTERN.sub(_substitute, text)


def parse_settings(
    text: str,
    *,
    source: str = "<settings>",
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Interpolate, parse, and validate settings text.

    Returns
    -------
    Settings
        Validated, immutable settings.

    Raises
    ------
    ConfigurationError
        When interpolation, YAML parsing, or validation fails.
    """
    contents = interpolate_env(text, environ)
    try:
        raw = yaml.safe_load(contents)
    except yaml.YAMLError as exc:
        message = f"Failed to deserialize settings file: {source}. Error: {exc}"
        raise ConfigurationError(message) from exc
    if not isinstance(raw, dict):
        message = f"Failed to deserialize settings file: {source}. Error: expected a mapping"
        raise ConfigurationError(message)
    try:
        return Settings.model_validate(raw)
    except ValidationError as exc:
        message = f"Failed to deserialize settings file: {source}. Error: {exc}"
        raise ConfigurationError(message) from exc


def load_settings(path: Path | str | None, *, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Read and validate the settings file at ``path``.

    Parameters
    ----------
    path:
        Location of the YAML settings file.
    environ:
        Variable source for interpolation; defaults to ``os.environ``.

    Returns
    -------
    Settings
        Validated settings.

    Raises
    ------
    ConfigurationError
        When the path is missing or the file cannot be loaded.
    """
    if path is None or not str(path):
        message = "Settings file path cannot be null or empty."
        raise ConfigurationError(message)
    settings_path = Path(path).expanduser()
    if not settings_path.is_file():
        message = f"Settings file not found: {settings_path}"
        raise ConfigurationError(message)

    log.info("Loading settings from %s", settings_path)
    settings = parse_settings(
        settings_path.read_text(encoding="utf-8"),
        source=str(settings_path),
        environ=environ,
    )
    log.info("Loaded %d dataset binding(s)", len(settings.kusto))
    return settings


__all__ = ["ENV_TOKEN_PATTERN", "interpolate_env", "load_settings", "parse_settings"]
