"""
Notefold MCP - a personal organization backend exposed as an MCP server.
Users create notes, tag them and file them into a per-user folder tree.
The folder hierarchy manager keeps that tree free of cycles, with a single
parent per folder and a single location per item.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notefold-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
