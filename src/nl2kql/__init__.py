"""Natural-language to KQL query tools exposed over MCP."""

__version__ = "0.1.0"
