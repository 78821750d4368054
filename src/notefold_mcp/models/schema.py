"""Data models for the Notefold MCP server."""

import datetime
import os
import threading
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops tzinfo on the way back out, so every datetime read from
    the database goes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a fresh, unique, timestamp-based identifier.

    Returns:
        A string in format "YYYYMMDDTHHMMSSsssssscccccc": UTC date and time
        down to the microsecond, followed by a 6-digit counter that keeps
        IDs unique within the same microsecond and across processes.
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        return f"{now.strftime('%Y%m%dT%H%M%S')}{now.microsecond:06d}{_counter:06d}"


def _require_text(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{what} cannot be empty")
    return value


class Folder(BaseModel):
    """A node of a user's folder tree.

    The parent of a folder is never stored on the folder itself; it is the
    folder whose ``children`` set contains this folder's id.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the folder")
    title: str = Field(..., description="Display title")
    owner: str = Field(..., description="Opaque ID of the owning user")
    children: Set[str] = Field(
        default_factory=set, description="IDs of direct child folders"
    )
    items: Set[str] = Field(
        default_factory=set, description="Opaque IDs of items filed in this folder"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the folder was created (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        return _require_text(v, "Folder title")

    @field_validator("owner")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        """Validate that the owner is not empty."""
        return _require_text(v, "Folder owner")


@dataclass(frozen=True)
class FolderDeletion:
    """Outcome of deleting a folder subtree.

    Attributes:
        folder_id: The folder that delete was called on.
        owner: Owner of the deleted subtree.
        deleted_folders: IDs of every folder removed (folder_id included).
        removed_items: IDs of items that were filed anywhere in the subtree.
    """

    folder_id: str
    owner: str
    deleted_folders: frozenset = field(default_factory=frozenset)
    removed_items: frozenset = field(default_factory=frozenset)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "folder_id": self.folder_id,
            "owner": self.owner,
            "deleted_folders": sorted(self.deleted_folders),
            "removed_items": sorted(self.removed_items),
        }


class Note(BaseModel):
    """A note owned by a single user."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Body text of the note")
    owner: str = Field(..., description="Opaque ID of the owning user")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the content last changed (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("owner")
    @classmethod
    def validate_owner(cls, v: str) -> str:
        """Validate that the owner is not empty."""
        return _require_text(v, "Note owner")


class Tag(BaseModel):
    """A per-user label flagging a set of items."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the tag")
    owner: str = Field(..., description="Opaque ID of the owning user")
    label: str = Field(..., description="Human-readable label")
    items: Set[str] = Field(default_factory=set, description="Flagged item IDs")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """Validate that the label is not blank."""
        return _require_text(v, "Tag label")

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.label


class Summary(BaseModel):
    """A short user-written text highlighting the key points of an item."""

    item_id: str = Field(..., description="Opaque ID of the summarized item")
    summary: str = Field(..., description="Summary text")
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the summary was last set (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        """Validate that the summary is not blank."""
        return _require_text(v, "Summary")

def folder_tree_to_text(tree: Dict[str, Any], indent: int = 0) -> List[str]:
    """Render a nested tree from FolderRepository.get_tree as indented lines."""
    folder = tree["folder"]
    item_count = len(folder.items)
    lines = [f"{'  ' * indent}* {folder.title} [{folder.id}] ({item_count} items)"]
    for child in tree["children"]:
        lines.extend(folder_tree_to_text(child, indent + 1))
    return lines
