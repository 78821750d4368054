# tests/test_summary_repository.py
"""Tests for the SummaryRepository class."""
import pytest

from notefold_mcp.exceptions import ErrorCode, SummaryError, SummaryNotFoundError


class TestSummaryRepository:
    """Tests for one summary per item."""

    def test_set_and_get(self, summary_repository):
        """A set summary can be read back by item ID."""
        summary = summary_repository.set_summary("note1", "Short version")

        assert summary.item_id == "note1"
        assert summary.summary == "Short version"
        assert summary_repository.get_summary("note1").summary == "Short version"
        assert summary_repository.exists("note1")

    def test_set_replaces(self, summary_repository):
        """Setting again overwrites the old text and moves updated_at."""
        first = summary_repository.set_summary("note1", "Old")
        second = summary_repository.set_summary("note1", "New")

        assert summary_repository.get_summary("note1").summary == "New"
        assert second.updated_at >= first.updated_at

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_summary_rejected(self, summary_repository, text):
        """Blank text is not a summary."""
        with pytest.raises(SummaryError) as exc_info:
            summary_repository.set_summary("note1", text)

        assert exc_info.value.code == ErrorCode.SUMMARY_INVALID
        assert summary_repository.get("note1") is None

    def test_blank_summary_keeps_existing(self, summary_repository):
        """A rejected update leaves the previous summary alone."""
        summary_repository.set_summary("note1", "Kept")
        with pytest.raises(SummaryError):
            summary_repository.set_summary("note1", " ")
        assert summary_repository.get_summary("note1").summary == "Kept"

    def test_get_missing(self, summary_repository):
        """An item without a summary raises SummaryNotFoundError."""
        with pytest.raises(SummaryNotFoundError) as exc_info:
            summary_repository.get_summary("ghost")

        assert exc_info.value.code == ErrorCode.SUMMARY_NOT_FOUND
        assert exc_info.value.details["item_id"] == "ghost"
        assert summary_repository.get("ghost") is None

    def test_delete(self, summary_repository):
        """Deleting a summary removes it; deleting again fails."""
        summary_repository.set_summary("note1", "Gone soon")

        summary_repository.delete_summary("note1")

        assert summary_repository.get("note1") is None
        with pytest.raises(SummaryNotFoundError):
            summary_repository.delete_summary("note1")

    def test_remove_for_item(self, summary_repository):
        """remove_for_item reports whether there was anything to remove."""
        summary_repository.set_summary("note1", "Text")

        assert summary_repository.remove_for_item("note1") is True
        assert summary_repository.remove_for_item("note1") is False

    def test_item_ids_are_independent(self, summary_repository):
        """Summaries are keyed by the exact item ID."""
        summary_repository.set_summary("doc,v2", "Comma")
        summary_repository.set_summary("doc", "Plain")

        assert summary_repository.get_summary("doc,v2").summary == "Comma"
        assert summary_repository.get_summary("doc").summary == "Plain"
