"""Common test fixtures for the Notefold MCP server."""

import tempfile
from pathlib import Path

import pytest

from notefold_mcp.config import config
from notefold_mcp.models.db_models import init_db
from notefold_mcp.services.workspace_service import WorkspaceService
from notefold_mcp.storage.folder_repository import FolderRepository
from notefold_mcp.storage.note_repository import NoteRepository
from notefold_mcp.storage.summary_repository import SummaryRepository
from notefold_mcp.storage.tag_repository import TagRepository


@pytest.fixture
def temp_db_dir():
    """Create a temporary directory for the database."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_db_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", temp_db_dir / "test_notefold.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "root_folder_title", "Root")
    monkeypatch.setattr(config, "default_note_title", "Untitled")
    monkeypatch.setattr(config, "max_title_length", 500)
    yield config


@pytest.fixture
def engine(test_config):
    """Create a file-backed engine with all tables."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def folder_repository(engine):
    """Create a test folder repository."""
    return FolderRepository(engine=engine)


@pytest.fixture
def note_repository(engine):
    """Create a test note repository."""
    return NoteRepository(engine=engine)


@pytest.fixture
def tag_repository(engine):
    """Create a test tag repository."""
    return TagRepository(engine=engine)


@pytest.fixture
def summary_repository(engine):
    """Create a test summary repository."""
    return SummaryRepository(engine=engine)


@pytest.fixture
def workspace(folder_repository, note_repository, tag_repository, summary_repository):
    """Create a WorkspaceService over the test repositories."""
    return WorkspaceService(
        folders=folder_repository,
        notes=note_repository,
        tags=tag_repository,
        summaries=summary_repository,
    )


@pytest.fixture
def alice_root(folder_repository):
    """Initialize folders for user 'alice' and return her root."""
    return folder_repository.initialize("alice")
