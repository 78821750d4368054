"""Storage layer for the Notefold MCP server."""

from notefold_mcp.storage.base import Repository
from notefold_mcp.storage.folder_repository import FolderRepository
from notefold_mcp.storage.note_repository import NoteRepository
from notefold_mcp.storage.summary_repository import SummaryRepository
from notefold_mcp.storage.tag_repository import TagRepository

__all__ = [
    "Repository",
    "FolderRepository",
    "NoteRepository",
    "SummaryRepository",
    "TagRepository",
]
