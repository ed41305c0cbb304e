"""Configuration models and loaders for nl2kql.

- **Settings** (`settings.py`): model deployment and dataset bindings with seed prompts
- **Loader** (`loader.py`): YAML settings file loading with ``${{ NAME }}`` interpolation
- **Serving** (`serving_models.py`): process options for the MCP server
"""

from nl2kql.config.loader import interpolate_env, load_settings, parse_settings
from nl2kql.config.serving_models import ServerConfig
from nl2kql.config.settings import DatasetBinding, ModelSettings, PromptEntry, Settings

__all__ = [
    "DatasetBinding",
    "ModelSettings",
    "PromptEntry",
    "ServerConfig",
    "Settings",
    "interpolate_env",
    "load_settings",
    "parse_settings",
]
