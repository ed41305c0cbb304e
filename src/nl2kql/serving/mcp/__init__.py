"""MCP server, tools, and resources."""
