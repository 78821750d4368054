"""Repository for tag storage and retrieval."""
import logging
from typing import List, Optional, Set

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notefold_mcp.exceptions import ErrorCode, TagError, TagNotFoundError
from notefold_mcp.models.db_models import DBTag, tag_items
from notefold_mcp.models.schema import Tag, generate_id
from notefold_mcp.storage.base import Repository

logger = logging.getLogger(__name__)


class TagRepository(Repository[Tag]):
    """Repository for managing tags.

    A tag is identified by (owner, label) and flags any number of items.
    Tags are created on first use and kept when their last item is removed.
    """

    def __init__(self, engine=None):
        super().__init__(engine)
        logger.info("TagRepository initialized")

    def _items_of(self, session: Session, tag_id: str) -> Set[str]:
        return set(
            session.scalars(
                select(tag_items.c.item_id).where(tag_items.c.tag_id == tag_id)
            ).all()
        )

    def _to_model(self, session: Session, db_tag: DBTag) -> Tag:
        return Tag(
            id=db_tag.id,
            owner=db_tag.owner,
            label=db_tag.label,
            items=self._items_of(session, db_tag.id),
        )

    def add_tag(self, user: str, label: str, item_id: str) -> Tag:
        """Flag an item with the user's tag of the given label.

        Args:
            user: Owner of the tag.
            label: Tag label; must not be blank.
            item_id: Opaque ID of the item to flag.

        Returns:
            The tag, created if this is the label's first use.

        Raises:
            TagError: TAG_INVALID for a blank label, TAG_ALREADY_APPLIED if
                the item already carries this tag.
        """
        if not label or not label.strip():
            raise TagError("Tag cannot be empty or whitespace", code=ErrorCode.TAG_INVALID)

        with self.session_factory() as session:
            db_tag = session.scalar(
                select(DBTag).where(DBTag.owner == user, DBTag.label == label)
            )
            if db_tag is None:
                db_tag = DBTag(id=generate_id(), owner=user, label=label)
                session.add(db_tag)
                session.flush()
                logger.info(f"Created tag '{label}' ({db_tag.id}) for user {user}")

            tag_id = db_tag.id
            try:
                session.execute(
                    insert(tag_items).values(tag_id=tag_id, item_id=item_id)
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                raise TagError(
                    f"Item '{item_id}' is already tagged '{label}'",
                    tag_id=tag_id,
                    label=label,
                    item_id=item_id,
                    code=ErrorCode.TAG_ALREADY_APPLIED,
                )

            logger.debug(f"Tagged item {item_id} with '{label}'")
            return self._to_model(session, db_tag)

    def remove_tag_from_item(self, tag_id: str, item_id: str) -> None:
        """Remove an item from a tag.

        Raises:
            TagNotFoundError: If the tag does not exist.
            TagError: TAG_NOT_APPLIED if the item does not carry the tag.
        """
        with self.session_factory() as session:
            if session.get(DBTag, tag_id) is None:
                raise TagNotFoundError(tag_id)
            removed = session.execute(
                delete(tag_items).where(
                    tag_items.c.tag_id == tag_id, tag_items.c.item_id == item_id
                )
            ).rowcount
            if not removed:
                raise TagError(
                    f"Item '{item_id}' is not tagged with '{tag_id}'",
                    tag_id=tag_id,
                    item_id=item_id,
                    code=ErrorCode.TAG_NOT_APPLIED,
                )
            session.commit()
            logger.debug(f"Removed item {item_id} from tag {tag_id}")

    def remove_item_everywhere(self, item_id: str) -> int:
        """Strip an item from every tag.

        Returns:
            Number of tags the item was removed from.
        """
        with self.session_factory() as session:
            removed = session.execute(
                delete(tag_items).where(tag_items.c.item_id == item_id)
            ).rowcount
            session.commit()
            return removed or 0

    def get(self, id: str) -> Optional[Tag]:
        """Get a tag by ID, or None if it does not exist."""
        with self.session_factory() as session:
            db_tag = session.get(DBTag, id)
            return self._to_model(session, db_tag) if db_tag else None

    def get_items_by_tag(self, tag_id: str) -> Set[str]:
        """Get the IDs of all items carrying a tag.

        Raises:
            TagNotFoundError: If the tag does not exist.
        """
        with self.session_factory() as session:
            if session.get(DBTag, tag_id) is None:
                raise TagNotFoundError(tag_id)
            return self._items_of(session, tag_id)

    def get_tags_for_item(self, user: str, item_id: str) -> List[Tag]:
        """Get the user's tags that flag an item, sorted by label."""
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .join(tag_items, tag_items.c.tag_id == DBTag.id)
                .where(DBTag.owner == user, tag_items.c.item_id == item_id)
                .order_by(DBTag.label)
            ).all()
            return [self._to_model(session, t) for t in db_tags]

    def list_for_user(self, user: str) -> List[Tag]:
        """Get all tags owned by a user, sorted by label."""
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag).where(DBTag.owner == user).order_by(DBTag.label)
            ).all()
            return [self._to_model(session, t) for t in db_tags]
