"""Water Linked DVL A50 protocol driver and MCP server."""

__version__ = "0.1.0"
