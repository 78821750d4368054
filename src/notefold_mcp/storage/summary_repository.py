"""Repository for item summaries."""
import logging
from typing import Optional

from sqlalchemy import delete

from notefold_mcp.exceptions import ErrorCode, SummaryError, SummaryNotFoundError
from notefold_mcp.models.db_models import DBSummary
from notefold_mcp.models.schema import Summary, ensure_timezone_aware, utc_now
from notefold_mcp.storage.base import Repository

logger = logging.getLogger(__name__)


class SummaryRepository(Repository[Summary]):
    """Repository for manually written summaries.

    Each item has at most one summary. Setting a summary again replaces it.
    """

    def __init__(self, engine=None):
        super().__init__(engine)
        logger.info("SummaryRepository initialized")

    def _db_to_model(self, db_summary: DBSummary) -> Summary:
        return Summary(
            item_id=db_summary.item_id,
            summary=db_summary.summary,
            updated_at=ensure_timezone_aware(db_summary.updated_at),
        )

    def set_summary(self, item_id: str, summary: str) -> Summary:
        """Set or replace the summary of an item.

        Raises:
            SummaryError: SUMMARY_INVALID for blank text.
        """
        if not summary or not summary.strip():
            raise SummaryError(
                "Summary cannot be empty", item_id=item_id, code=ErrorCode.SUMMARY_INVALID
            )

        with self.session_factory() as session:
            db_summary = session.get(DBSummary, item_id)
            if db_summary is None:
                db_summary = DBSummary(item_id=item_id, summary=summary, updated_at=utc_now())
                session.add(db_summary)
            else:
                db_summary.summary = summary
                db_summary.updated_at = utc_now()
            session.commit()
            session.refresh(db_summary)
            logger.debug(f"Set summary for item {item_id}")
            return self._db_to_model(db_summary)

    def get(self, id: str) -> Optional[Summary]:
        """Get the summary of an item, or None if it has none."""
        with self.session_factory() as session:
            db_summary = session.get(DBSummary, id)
            return self._db_to_model(db_summary) if db_summary else None

    def get_summary(self, item_id: str) -> Summary:
        """Get the summary of an item.

        Raises:
            SummaryNotFoundError: If the item has no summary.
        """
        summary = self.get(item_id)
        if summary is None:
            raise SummaryNotFoundError(item_id)
        return summary

    def delete_summary(self, item_id: str) -> None:
        """Delete the summary of an item.

        Raises:
            SummaryNotFoundError: If the item has no summary.
        """
        if not self.remove_for_item(item_id):
            raise SummaryNotFoundError(item_id)
        logger.info(f"Deleted summary for item {item_id}")

    def remove_for_item(self, item_id: str) -> bool:
        """Drop an item's summary if it has one. Returns whether one was removed."""
        with self.session_factory() as session:
            removed = session.execute(
                delete(DBSummary).where(DBSummary.item_id == item_id)
            ).rowcount
            session.commit()
            return bool(removed)
