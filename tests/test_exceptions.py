"""Tests for the exception hierarchy."""
from notefold_mcp.exceptions import (
    ErrorCode,
    FolderError,
    FolderNotFoundError,
    NotefoldError,
    NotOwnerError,
    ParentNotFoundError,
    SummaryError,
    SummaryNotFoundError,
    TagError,
    ValidationError,
)


class TestExceptions:
    """Tests for error codes and serialization."""

    def test_folder_not_found_details(self):
        """The missing ID and its role are kept in details."""
        error = FolderNotFoundError("f1", role="new_parent")

        assert isinstance(error, FolderError)
        assert error.code == ErrorCode.FOLDER_NOT_FOUND
        assert error.details == {"folder_id": "f1", "role": "new_parent"}
        assert str(error) == "[FOLDER_NOT_FOUND] Folder with ID 'f1' not found (folder_id=f1, role=new_parent)"

    def test_parent_not_found_is_folder_not_found(self):
        """Callers catching FolderNotFoundError also see missing parents."""
        error = ParentNotFoundError("p1")
        assert isinstance(error, FolderNotFoundError)
        assert error.code == ErrorCode.PARENT_NOT_FOUND
        assert error.role == "parent"

    def test_not_owner_names_resource(self):
        """NotOwnerError works for notes as well as folders."""
        error = NotOwnerError("bob", "n1", resource="note")
        assert error.details == {"user": "bob", "note_id": "n1"}
        assert error.message.startswith("Note with ID 'n1'")

    def test_to_dict(self):
        """to_dict carries the class, code and details."""
        data = TagError("bad", label="x", code=ErrorCode.TAG_INVALID).to_dict()
        assert data == {
            "error": "TagError",
            "code": 3002,
            "code_name": "TAG_INVALID",
            "message": "bad",
            "details": {"label": "x"},
        }

    def test_validation_error_truncates_value(self):
        """Long values are cut in details."""
        error = ValidationError("too long", field="title", value="x" * 500)
        assert len(error.details["value"]) == 100
        assert isinstance(error, NotefoldError)

    def test_summary_not_found(self):
        """A missing summary names its item."""
        error = SummaryNotFoundError("doc,v2")
        assert isinstance(error, SummaryError)
        assert error.code == ErrorCode.SUMMARY_NOT_FOUND
        assert error.details == {"item_id": "doc,v2"}
