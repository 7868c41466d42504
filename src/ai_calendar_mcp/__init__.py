"""Natural-language calendar backend served over MCP."""

__version__ = "0.1.0"
