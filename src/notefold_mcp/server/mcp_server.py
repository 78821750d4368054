"""MCP server implementation for Notefold.

Every tool returns a JSON object: the result fields on success, or
``{"error": <message>, "code": <code name>}`` on failure.
"""

import atexit
import json
import logging
import uuid
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from notefold_mcp.config import config
from notefold_mcp.exceptions import NotefoldError
from notefold_mcp.models.schema import Folder, Note, Summary, Tag, folder_tree_to_text
from notefold_mcp.observability import metrics, timed_operation
from notefold_mcp.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


def _validate_title_length(title: Optional[str]) -> None:
    """Validate title length at the MCP boundary."""
    if title and len(title) > config.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {config.max_title_length} characters"
        )


def _folder_dict(folder: Folder) -> Dict[str, Any]:
    return {
        "id": folder.id,
        "title": folder.title,
        "owner": folder.owner,
        "children": sorted(folder.children),
        "items": sorted(folder.items),
        "created_at": folder.created_at.isoformat(),
    }


def _note_dict(note: Note, include_content: bool = True) -> Dict[str, Any]:
    data = {
        "id": note.id,
        "title": note.title,
        "owner": note.owner,
        "created_at": note.created_at.isoformat(),
        "updated_at": note.updated_at.isoformat(),
    }
    if include_content:
        data["content"] = note.content
    return data


def _tag_dict(tag: Tag) -> Dict[str, Any]:
    return {
        "id": tag.id,
        "label": tag.label,
        "owner": tag.owner,
        "items": sorted(tag.items),
    }


def _summary_dict(summary: Summary) -> Dict[str, Any]:
    return {
        "item": summary.item_id,
        "summary": summary.summary,
        "updated_at": summary.updated_at.isoformat(),
    }


def _ok(**fields: Any) -> str:
    return json.dumps(fields)


class NotefoldMcpServer:
    """MCP server for Notefold."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by all
                    repositories. When None, one is created from config.
        """
        self.mcp = FastMCP(config.server_name)
        self.workspace = WorkspaceService(engine=engine)
        self.initialize()
        atexit.register(self._shutdown)
        self._register_folder_tools()
        self._register_note_tools()
        self._register_tag_tools()
        self._register_summary_tools()
        self._register_status_tools()

    def initialize(self) -> None:
        """Initialize services."""
        self.workspace.initialize()
        logger.info("Notefold MCP server initialized")

    def _shutdown(self) -> None:
        """Persist metrics on server exit."""
        if metrics.save_metrics():
            logger.info("Metrics saved to disk on shutdown")

    def format_error_response(self, error: Exception) -> str:
        """Format an error as a JSON error object.

        Domain errors carry their message and code. Anything else is logged
        with a short reference ID and reported generically.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotefoldError):
            logger.warning(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return json.dumps({"error": error.message, "code": error.code.name})
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return json.dumps(
                {"error": f"Invalid input: {error}", "code": "VALIDATION_FAILED"}
            )
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return json.dumps(
                {"error": f"An unexpected error occurred (ref: {error_id})", "code": "INTERNAL"}
            )

    def _register_folder_tools(self) -> None:
        """Register folder hierarchy tools."""

        @self.mcp.tool(name="folder_initialize")
        def folder_initialize(user: str) -> str:
            """Create the root folder for a user who has no folders yet.
            Args:
                user: ID of the user
            """
            with timed_operation("folder_initialize", user=user) as op:
                try:
                    folder = self.workspace.initialize_folders(user)
                    op["folder_id"] = folder.id
                    return _ok(folder=folder.id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_get_root")
        def folder_get_root(user: str) -> str:
            """Get the user's root folder, creating it on first use.
            Args:
                user: ID of the user
            """
            with timed_operation("folder_get_root", user=user):
                try:
                    return _ok(rootFolder=self.workspace.get_root(user).id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_create")
        def folder_create(user: str, title: str, parent: str) -> str:
            """Create a folder inside one of the user's folders.
            Args:
                user: ID of the user creating the folder
                title: Display title of the new folder
                parent: ID of the parent folder (must be owned by user)
            """
            with timed_operation("folder_create", parent=parent) as op:
                try:
                    _validate_title_length(title)
                    folder = self.workspace.create_folder(user, title, parent)
                    op["folder_id"] = folder.id
                    return _ok(folder=folder.id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_move")
        def folder_move(folder: str, new_parent: str, user: Optional[str] = None) -> str:
            """Move a folder and everything inside it under another folder.
            Args:
                folder: ID of the folder to move
                new_parent: ID of the destination folder (same owner, not inside folder)
                user: Optional ID of the acting user; must own the folder when given
            """
            with timed_operation("folder_move", folder_id=folder) as op:
                try:
                    moved = self.workspace.move_folder(folder, new_parent, user=user)
                    op["moved"] = True
                    return _ok(folder=moved.id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_delete")
        def folder_delete(folder: str, user: Optional[str] = None, confirm: bool = False) -> str:
            """Delete a folder, all its sub-folders and the notes filed in them.
            Args:
                folder: ID of the folder to delete
                user: Optional ID of the acting user; must own the folder when given
                confirm: Must be True to proceed (safety check)
            """
            with timed_operation("folder_delete", folder_id=folder) as op:
                try:
                    if not confirm:
                        doomed = self.workspace.collect_descendants(folder)
                        return _ok(
                            confirm_required=True,
                            folder=folder,
                            folders_to_delete=len(doomed),
                        )
                    deletion = self.workspace.delete_folder(folder, user=user)
                    op["deleted"] = len(deletion.deleted_folders)
                    return _ok(
                        deletedFolders=sorted(deletion.deleted_folders),
                        deletedItems=sorted(deletion.removed_items),
                        owner=deletion.owner,
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_insert_item")
        def folder_insert_item(item: str, folder: str) -> str:
            """File an item into a folder, moving it out of any other folder.
            Args:
                item: ID of the item, used exactly as given
                folder: ID of the destination folder
            """
            with timed_operation("folder_insert_item", item_id=item, folder_id=folder):
                try:
                    self.workspace.insert_item(item, folder)
                    return _ok(folder=folder, item=item)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_delete_item")
        def folder_delete_item(item: str) -> str:
            """Remove an item from whichever folder holds it.
            Args:
                item: ID of the item
            """
            with timed_operation("folder_delete_item", item_id=item):
                try:
                    return _ok(folder=self.workspace.delete_item(item))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_get_children")
        def folder_get_children(folder: str) -> str:
            """List the IDs of a folder's direct sub-folders.
            Args:
                folder: ID of the folder
            """
            with timed_operation("folder_get_children", folder_id=folder):
                try:
                    return _ok(children=sorted(self.workspace.get_children(folder)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_get_items")
        def folder_get_items(folder: str) -> str:
            """List the IDs of the items filed directly in a folder.
            Args:
                folder: ID of the folder
            """
            with timed_operation("folder_get_items", folder_id=folder):
                try:
                    return _ok(items=sorted(self.workspace.get_items(folder)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_get_details")
        def folder_get_details(folder: str) -> str:
            """Get the full record of a folder.
            Args:
                folder: ID of the folder
            """
            with timed_operation("folder_get_details", folder_id=folder):
                try:
                    return _ok(folder=_folder_dict(self.workspace.get_folder(folder)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_list")
        def folder_list(user: str) -> str:
            """List every folder owned by a user, oldest first.
            Args:
                user: ID of the user
            """
            with timed_operation("folder_list", user=user) as op:
                try:
                    folders = self.workspace.list_folders(user)
                    op["count"] = len(folders)
                    return _ok(folders=[_folder_dict(f) for f in folders])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="folder_tree")
        def folder_tree(folder: str) -> str:
            """Show a folder and everything below it as an indented outline.
            Args:
                folder: ID of the top folder
            """
            with timed_operation("folder_tree", folder_id=folder):
                try:
                    lines = folder_tree_to_text(self.workspace.get_tree(folder))
                    return _ok(tree="\n".join(lines))
                except Exception as e:
                    return self.format_error_response(e)

    def _register_note_tools(self) -> None:
        """Register note tools."""

        @self.mcp.tool(name="note_create")
        def note_create(
            user: str,
            folder: str,
            title: Optional[str] = None,
            content: str = "",
        ) -> str:
            """Create a note and file it into one of the user's folders.
            Args:
                user: ID of the owner
                folder: ID of the folder to file the note in
                title: Title of the note (defaults to "Untitled")
                content: Body text of the note
            """
            with timed_operation("note_create", folder_id=folder) as op:
                try:
                    _validate_title_length(title)
                    note = self.workspace.create_note(user, folder, title=title, content=content)
                    op["note_id"] = note.id
                    return _ok(note=note.id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_get")
        def note_get(note: str, user: str) -> str:
            """Get a note owned by the user.
            Args:
                note: ID of the note
                user: ID of the requesting user
            """
            with timed_operation("note_get", note_id=note):
                try:
                    found = self.workspace.get_note(note, user)
                    data = _note_dict(found)
                    data["folder"] = self.workspace.note_folder(note)
                    return _ok(note=data)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_list")
        def note_list(user: str) -> str:
            """List a user's notes, newest first, without their content.
            Args:
                user: ID of the user
            """
            with timed_operation("note_list", user=user) as op:
                try:
                    notes = self.workspace.list_notes(user)
                    op["count"] = len(notes)
                    return _ok(notes=[_note_dict(n, include_content=False) for n in notes])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_search")
        def note_search(user: str, query: str) -> str:
            """Find a user's notes whose title contains the query.
            Args:
                user: ID of the user
                query: Case-insensitive text to look for in titles
            """
            with timed_operation("note_search", user=user) as op:
                try:
                    notes = self.workspace.search_notes(user, query)
                    op["count"] = len(notes)
                    return _ok(notes=[_note_dict(n, include_content=False) for n in notes])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_set_title")
        def note_set_title(note: str, user: str, title: str) -> str:
            """Rename a note.
            Args:
                note: ID of the note
                user: ID of the owner
                title: New title
            """
            with timed_operation("note_set_title", note_id=note):
                try:
                    _validate_title_length(title)
                    self.workspace.set_note_title(note, user, title)
                    return _ok(note=note)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_update_content")
        def note_update_content(note: str, user: str, content: str) -> str:
            """Replace the body text of a note.
            Args:
                note: ID of the note
                user: ID of the owner
                content: New body text
            """
            with timed_operation("note_update_content", note_id=note):
                try:
                    updated = self.workspace.update_note_content(note, user, content)
                    return _ok(note=note, updated_at=updated.updated_at.isoformat())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_move")
        def note_move(note: str, user: str, folder: str) -> str:
            """Refile a note into another of the user's folders.
            Args:
                note: ID of the note
                user: ID of the owner
                folder: ID of the destination folder
            """
            with timed_operation("note_move", note_id=note):
                try:
                    self.workspace.move_note(note, user, folder)
                    return _ok(note=note, folder=folder)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_delete")
        def note_delete(note: str, user: str) -> str:
            """Delete a note and remove it from its folder and tags.
            Args:
                note: ID of the note
                user: ID of the owner
            """
            with timed_operation("note_delete", note_id=note):
                try:
                    self.workspace.delete_note(note, user)
                    return _ok(deleted=note)
                except Exception as e:
                    return self.format_error_response(e)

    def _register_tag_tools(self) -> None:
        """Register tag tools."""

        @self.mcp.tool(name="tag_add")
        def tag_add(user: str, label: str, item: str) -> str:
            """Flag an item with one of the user's tags, creating the tag on first use.
            Args:
                user: ID of the tag owner
                label: Tag label
                item: ID of the item to flag
            """
            with timed_operation("tag_add", item_id=item):
                try:
                    return _ok(tag=self.workspace.add_tag(user, label, item).id)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tag_remove")
        def tag_remove(tag: str, item: str) -> str:
            """Remove a tag from an item.
            Args:
                tag: ID of the tag
                item: ID of the item
            """
            with timed_operation("tag_remove", tag_id=tag):
                try:
                    self.workspace.remove_tag(tag, item)
                    return _ok(tag=tag, item=item)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tag_get_items")
        def tag_get_items(tag: str) -> str:
            """List the IDs of the items carrying a tag.
            Args:
                tag: ID of the tag
            """
            with timed_operation("tag_get_items", tag_id=tag):
                try:
                    return _ok(items=sorted(self.workspace.get_tag_items(tag)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tag_list")
        def tag_list(user: str) -> str:
            """List all of a user's tags.
            Args:
                user: ID of the user
            """
            with timed_operation("tag_list", user=user):
                try:
                    return _ok(tags=[_tag_dict(t) for t in self.workspace.list_tags(user)])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="tag_for_item")
        def tag_for_item(user: str, item: str) -> str:
            """List the user's tags that flag an item.
            Args:
                user: ID of the user
                item: ID of the item
            """
            with timed_operation("tag_for_item", item_id=item):
                try:
                    tags = self.workspace.tags_for_item(user, item)
                    return _ok(tags=[{"id": t.id, "label": t.label} for t in tags])
                except Exception as e:
                    return self.format_error_response(e)

    def _register_summary_tools(self) -> None:
        """Register item summary tools."""

        @self.mcp.tool(name="summary_set")
        def summary_set(item: str, summary: str) -> str:
            """Set or replace the summary of an item.
            Args:
                item: ID of the item
                summary: Summary text; must not be blank
            """
            with timed_operation("summary_set", item_id=item):
                try:
                    return _ok(summary=_summary_dict(self.workspace.set_summary(item, summary)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="summary_get")
        def summary_get(item: str) -> str:
            """Get the summary of an item.
            Args:
                item: ID of the item
            """
            with timed_operation("summary_get", item_id=item):
                try:
                    return _ok(summary=_summary_dict(self.workspace.get_summary(item)))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="summary_delete")
        def summary_delete(item: str) -> str:
            """Delete the summary of an item.
            Args:
                item: ID of the item
            """
            with timed_operation("summary_delete", item_id=item):
                try:
                    self.workspace.delete_summary(item)
                    return _ok(item=item)
                except Exception as e:
                    return self.format_error_response(e)

    def _register_status_tools(self) -> None:
        """Register server status tools."""

        @self.mcp.tool(name="fold_status")
        def fold_status() -> str:
            """Report operation counts, error rates and timings since startup."""
            return _ok(summary=metrics.get_summary(), operations=metrics.get_metrics())

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
