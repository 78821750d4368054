"""Service layer tying the folder hierarchy to notes, tags and summaries.

The folder repository only knows opaque item IDs. This service is where
those IDs become notes: a new note is filed into a folder, a deleted note
is taken out of its folder and tags and loses its summary, and deleting a
folder deletes the user's notes that were filed inside it.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from notefold_mcp.exceptions import ItemNotFoundError, NotOwnerError
from notefold_mcp.models.schema import Folder, FolderDeletion, Note, Summary, Tag
from notefold_mcp.observability import traced
from notefold_mcp.storage.folder_repository import FolderRepository
from notefold_mcp.storage.note_repository import NoteRepository
from notefold_mcp.storage.summary_repository import SummaryRepository
from notefold_mcp.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class WorkspaceService:
    """Service for managing a user's folders, notes, tags and summaries."""

    def __init__(
        self,
        folders: Optional[FolderRepository] = None,
        notes: Optional[NoteRepository] = None,
        tags: Optional[TagRepository] = None,
        engine: Optional[Any] = None,
        summaries: Optional[SummaryRepository] = None,
    ):
        """Initialize the service.

        Args:
            folders: Folder hierarchy repository. Created with defaults if None.
            notes: Note repository. Created with defaults if None.
            tags: Tag repository. Created with defaults if None.
            engine: Shared SQLAlchemy engine for repositories created here.
            summaries: Summary repository. Created with defaults if None.
        """
        self.folders = folders or FolderRepository(engine=engine)
        engine = engine or self.folders.engine
        self.notes = notes or NoteRepository(engine=engine)
        self.tags = tags or TagRepository(engine=engine)
        self.summaries = summaries or SummaryRepository(engine=engine)

    def initialize(self) -> None:
        """Initialize the service."""
        logger.info("WorkspaceService initialized")

    def _check_folder_owner(self, folder_id: str, user: str) -> Folder:
        folder = self.folders.get_details(folder_id)
        if folder.owner != user:
            raise NotOwnerError(user, folder_id)
        return folder

    def _forget_item(self, item_id: str) -> None:
        self.tags.remove_item_everywhere(item_id)
        if self.summaries.remove_for_item(item_id):
            logger.debug(f"Dropped summary of deleted item {item_id}")

    # ========== Folders ==========

    @traced("workspace_register_user")
    def register_user(self, user: str) -> Folder:
        """Give a newly registered user their root folder."""
        return self.folders.initialize(user)

    def initialize_folders(self, user: str) -> Folder:
        """Create the user's root folder."""
        return self.folders.initialize(user)

    def get_root(self, user: str) -> Folder:
        """Get the user's root folder."""
        return self.folders.get_root(user)

    def create_folder(self, user: str, title: str, parent_id: str) -> Folder:
        """Create a folder under one of the user's folders."""
        return self.folders.create(user, title, parent_id)

    @traced("workspace_move_folder")
    def move_folder(self, folder_id: str, new_parent_id: str, user: Optional[str] = None) -> Folder:
        """Move a folder; when user is given it must own the folder."""
        if user is not None:
            self._check_folder_owner(folder_id, user)
        return self.folders.move(folder_id, new_parent_id)

    @traced("workspace_delete_folder")
    def delete_folder(self, folder_id: str, user: Optional[str] = None) -> FolderDeletion:
        """Delete a folder subtree along with the notes filed in it.

        Removed items that are notes of the folder owner are deleted, stripped
        from tags and lose their summary. Items that are not such notes are
        only released.

        Args:
            folder_id: Folder to delete.
            user: When given, must be the folder's owner.
        """
        if user is not None:
            self._check_folder_owner(folder_id, user)

        deletion = self.folders.delete(folder_id)

        deleted_notes = 0
        for item_id in sorted(deletion.removed_items):
            note = self.notes.get(item_id)
            if note is None or note.owner != deletion.owner:
                continue
            self.notes.delete(item_id, deletion.owner)
            self._forget_item(item_id)
            deleted_notes += 1

        logger.info(
            f"Folder {folder_id} deleted with {deleted_notes} of "
            f"{len(deletion.removed_items)} items removed as notes"
        )
        return deletion

    def insert_item(self, item_id: str, folder_id: str) -> None:
        """File an item into a folder, releasing it from any other."""
        self.folders.insert_item(item_id, folder_id)

    def delete_item(self, item_id: str) -> str:
        """Take an item out of its folder and return that folder's ID."""
        return self.folders.delete_item(item_id)

    def get_folder(self, folder_id: str) -> Folder:
        """Get a folder with its children and items."""
        return self.folders.get_details(folder_id)

    def get_children(self, folder_id: str) -> Set[str]:
        """Get the IDs of a folder's direct children."""
        return self.folders.get_children(folder_id)

    def get_items(self, folder_id: str) -> Set[str]:
        """Get the IDs of the items filed directly in a folder."""
        return self.folders.get_items(folder_id)

    def list_folders(self, user: str) -> List[Folder]:
        """List every folder the user owns."""
        return self.folders.list_folders(user)

    def get_tree(self, folder_id: str) -> Dict[str, Any]:
        """Get the nested subtree rooted at a folder."""
        return self.folders.get_tree(folder_id)

    def collect_descendants(self, folder_id: str) -> Set[str]:
        """Get a folder's ID and the IDs of all folders below it."""
        return self.folders.collect_descendants(folder_id)

    # ========== Notes ==========

    @traced("workspace_create_note")
    def create_note(
        self,
        user: str,
        folder_id: str,
        title: Optional[str] = None,
        content: str = "",
    ) -> Note:
        """Create a note and file it into one of the user's folders."""
        self._check_folder_owner(folder_id, user)
        note = self.notes.create(user, title=title, content=content)
        self.folders.insert_item(note.id, folder_id)
        return note

    def get_note(self, note_id: str, user: str) -> Note:
        """Get a note the user owns."""
        return self.notes.get_owned(note_id, user)

    def list_notes(self, user: str) -> List[Note]:
        """List the user's notes."""
        return self.notes.list_for_user(user)

    def search_notes(self, user: str, query: str) -> List[Note]:
        """Find the user's notes whose title contains the query."""
        return self.notes.search(user, query)

    def set_note_title(self, note_id: str, user: str, title: str) -> Note:
        """Rename a note the user owns."""
        return self.notes.set_title(note_id, user, title)

    def update_note_content(self, note_id: str, user: str, content: str) -> Note:
        """Replace the body of a note the user owns."""
        return self.notes.update_content(note_id, user, content)

    def move_note(self, note_id: str, user: str, folder_id: str) -> None:
        """Refile a note the user owns into another of their folders."""
        self.notes.get_owned(note_id, user)
        self._check_folder_owner(folder_id, user)
        self.folders.insert_item(note_id, folder_id)

    def note_folder(self, note_id: str) -> Optional[str]:
        """Get the folder a note is filed in, or None."""
        return self.folders.find_item_folder(note_id)

    @traced("workspace_delete_note")
    def delete_note(self, note_id: str, user: str) -> None:
        """Delete a note and drop it from its folder, its tags and its summary."""
        self.notes.delete(note_id, user)
        try:
            self.folders.delete_item(note_id)
        except ItemNotFoundError:
            logger.debug(f"Deleted note {note_id} was not filed in any folder")
        self._forget_item(note_id)

    # ========== Tags ==========

    def add_tag(self, user: str, label: str, item_id: str) -> Tag:
        """Flag an item with the user's tag, creating the tag on first use."""
        return self.tags.add_tag(user, label, item_id)

    def remove_tag(self, tag_id: str, item_id: str) -> None:
        """Take an item off a tag."""
        self.tags.remove_tag_from_item(tag_id, item_id)

    def get_tag_items(self, tag_id: str) -> Set[str]:
        """Get the IDs of the items carrying a tag."""
        return self.tags.get_items_by_tag(tag_id)

    def list_tags(self, user: str) -> List[Tag]:
        """List the user's tags."""
        return self.tags.list_for_user(user)

    def tags_for_item(self, user: str, item_id: str) -> List[Tag]:
        """List the user's tags that flag an item."""
        return self.tags.get_tags_for_item(user, item_id)

    # ========== Summaries ==========

    def set_summary(self, item_id: str, summary: str) -> Summary:
        """Set or replace an item's summary."""
        return self.summaries.set_summary(item_id, summary)

    def get_summary(self, item_id: str) -> Summary:
        """Get an item's summary."""
        return self.summaries.get_summary(item_id)

    def delete_summary(self, item_id: str) -> None:
        """Delete an item's summary."""
        self.summaries.delete_summary(item_id)
