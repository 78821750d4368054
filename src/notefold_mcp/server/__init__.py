"""MCP server for Notefold."""
