"""Service layer for the Notefold MCP server."""
