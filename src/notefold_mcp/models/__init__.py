"""Data models for the Notefold MCP server."""
