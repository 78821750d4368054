"""Custom exceptions for the Notefold MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every precondition failure of the
folder hierarchy has its own code so callers can tell exactly which
check failed and which id triggered it.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Folder hierarchy errors (1xxx)
    ALREADY_INITIALIZED = 1001
    FOLDER_NOT_FOUND = 1002
    PARENT_NOT_FOUND = 1003
    NOT_OWNER = 1004
    OWNER_MISMATCH = 1005
    SELF_MOVE = 1006
    CYCLE_DETECTED = 1007
    ITEM_NOT_FOUND = 1008

    # Note errors (2xxx)
    NOTE_NOT_FOUND = 2001

    # Tag errors (3xxx)
    TAG_NOT_FOUND = 3001
    TAG_INVALID = 3002
    TAG_ALREADY_APPLIED = 3003
    TAG_NOT_APPLIED = 3004

    # Summary errors (5xxx)
    SUMMARY_NOT_FOUND = 5001
    SUMMARY_INVALID = 5002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_CONNECTION_FAILED = 4004

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class NotefoldError(Exception):
    """Base exception for all Notefold errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class FolderError(NotefoldError):
    """Base class for folder hierarchy precondition failures."""


class AlreadyInitializedError(FolderError):
    """Raised when initialize is called for a user who already owns folders."""

    def __init__(self, user: str):
        super().__init__(
            f"User '{user}' has already created folders",
            code=ErrorCode.ALREADY_INITIALIZED,
            details={"user": user}
        )
        self.user = user


class FolderNotFoundError(FolderError):
    """Raised when a referenced folder does not exist.

    ``role`` names which argument of the operation was missing
    (e.g. "folder" or "new_parent" for a move).
    """

    def __init__(
        self,
        folder_id: str,
        role: str = "folder",
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.FOLDER_NOT_FOUND
    ):
        super().__init__(
            message or f"Folder with ID '{folder_id}' not found",
            code=code,
            details={"folder_id": folder_id, "role": role}
        )
        self.folder_id = folder_id
        self.role = role


class ParentNotFoundError(FolderNotFoundError):
    """Raised when the parent given to create does not exist."""

    def __init__(self, folder_id: str):
        super().__init__(
            folder_id,
            role="parent",
            message=f"Parent folder with ID '{folder_id}' not found",
            code=ErrorCode.PARENT_NOT_FOUND
        )


class NotOwnerError(NotefoldError):
    """Raised when a user acts on a folder or note they do not own."""

    def __init__(self, user: str, resource_id: str, resource: str = "folder"):
        super().__init__(
            f"{resource.capitalize()} with ID '{resource_id}' is not owned by user '{user}'",
            code=ErrorCode.NOT_OWNER,
            details={"user": user, f"{resource}_id": resource_id}
        )
        self.user = user
        self.resource_id = resource_id


class OwnerMismatchError(FolderError):
    """Raised when a move would relate folders of different owners."""

    def __init__(self, folder_id: str, new_parent_id: str):
        super().__init__(
            f"Folders must have the same owner to be moved: "
            f"'{folder_id}' and '{new_parent_id}' differ",
            code=ErrorCode.OWNER_MISMATCH,
            details={"folder_id": folder_id, "new_parent_id": new_parent_id}
        )
        self.folder_id = folder_id
        self.new_parent_id = new_parent_id


class SelfMoveError(FolderError):
    """Raised when a folder is moved into itself."""

    def __init__(self, folder_id: str):
        super().__init__(
            f"Cannot move folder '{folder_id}' into itself",
            code=ErrorCode.SELF_MOVE,
            details={"folder_id": folder_id}
        )
        self.folder_id = folder_id


class CycleDetectedError(FolderError):
    """Raised when the destination of a move is a descendant of the moved folder."""

    def __init__(self, folder_id: str, new_parent_id: str):
        super().__init__(
            f"Cannot move folder '{folder_id}' into its own descendant '{new_parent_id}'",
            code=ErrorCode.CYCLE_DETECTED,
            details={"folder_id": folder_id, "new_parent_id": new_parent_id}
        )
        self.folder_id = folder_id
        self.new_parent_id = new_parent_id


class ItemNotFoundError(FolderError):
    """Raised when an item is not located in any folder."""

    def __init__(self, item_id: str):
        super().__init__(
            f"Item with ID '{item_id}' not found in any folder",
            code=ErrorCode.ITEM_NOT_FOUND,
            details={"item_id": item_id}
        )
        self.item_id = item_id


class NoteNotFoundError(NotefoldError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class TagError(NotefoldError):
    """Raised for tag-related errors."""

    def __init__(
        self,
        message: str,
        tag_id: Optional[str] = None,
        label: Optional[str] = None,
        item_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.TAG_INVALID
    ):
        details = {}
        if tag_id:
            details["tag_id"] = tag_id
        if label:
            details["label"] = label
        if item_id:
            details["item_id"] = item_id

        super().__init__(message, code=code, details=details)
        self.tag_id = tag_id
        self.label = label
        self.item_id = item_id


class TagNotFoundError(TagError):
    """Raised when a tag cannot be found."""

    def __init__(self, tag_id: str):
        super().__init__(
            f"Tag with ID '{tag_id}' not found",
            tag_id=tag_id,
            code=ErrorCode.TAG_NOT_FOUND
        )


class SummaryError(NotefoldError):
    """Raised for summary-related errors."""

    def __init__(
        self,
        message: str,
        item_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.SUMMARY_INVALID
    ):
        super().__init__(
            message,
            code=code,
            details={"item_id": item_id} if item_id else {}
        )
        self.item_id = item_id


class SummaryNotFoundError(SummaryError):
    """Raised when an item has no summary."""

    def __init__(self, item_id: str):
        super().__init__(
            f"No summary found for item '{item_id}'",
            item_id=item_id,
            code=ErrorCode.SUMMARY_NOT_FOUND
        )


class StorageError(NotefoldError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ValidationError(NotefoldError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
