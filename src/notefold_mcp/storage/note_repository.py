"""Repository for note storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from notefold_mcp.config import config
from notefold_mcp.exceptions import NoteNotFoundError, NotOwnerError, ValidationError
from notefold_mcp.models.db_models import DBNote
from notefold_mcp.models.schema import Note, ensure_timezone_aware, generate_id, utc_now
from notefold_mcp.storage.base import Repository
from notefold_mcp.utils import escape_like_pattern

logger = logging.getLogger(__name__)


class NoteRepository(Repository[Note]):
    """Repository for notes.

    A note belongs to exactly one user and only that user may read,
    rename, edit or delete it.
    """

    def __init__(self, engine=None):
        super().__init__(engine)
        logger.info("NoteRepository initialized")

    def _owned(self, session: Session, note_id: str, user: str) -> DBNote:
        db_note = session.get(DBNote, note_id)
        if db_note is None:
            raise NoteNotFoundError(note_id)
        if db_note.owner != user:
            raise NotOwnerError(user, note_id, resource="note")
        return db_note

    def _check_title(self, title: str) -> str:
        if len(title) > config.max_title_length:
            raise ValidationError(
                f"Note title exceeds maximum length of {config.max_title_length} characters",
                field="title",
                value=title,
            )
        return title

    def create(self, user: str, title: Optional[str] = None, content: str = "") -> Note:
        """Create a note.

        Args:
            user: Owner of the note.
            title: Title; blank or None falls back to config.default_note_title.
            content: Initial body text.

        Returns:
            The created note.
        """
        if title is None or not title.strip():
            title = config.default_note_title
        self._check_title(title)

        now = utc_now()
        note = Note(
            id=generate_id(),
            title=title,
            content=content,
            owner=user,
            created_at=now,
            updated_at=now,
        )
        with self.session_factory() as session:
            session.add(
                DBNote(
                    id=note.id,
                    title=note.title,
                    content=note.content,
                    owner=note.owner,
                    created_at=note.created_at,
                    updated_at=note.updated_at,
                )
            )
            session.commit()

        logger.info(f"Created note {note.id} for user {user}")
        return note

    def get(self, id: str) -> Optional[Note]:
        """Get a note by ID without an ownership check."""
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            return self._db_to_model(db_note) if db_note else None

    def get_owned(self, note_id: str, user: str) -> Note:
        """Get a note, checking that the user owns it.

        Raises:
            NoteNotFoundError: If the note does not exist.
            NotOwnerError: If another user owns it.
        """
        with self.session_factory() as session:
            return self._db_to_model(self._owned(session, note_id, user))

    def list_for_user(self, user: str) -> List[Note]:
        """Get all notes owned by a user, most recently created first."""
        with self.session_factory() as session:
            result = session.scalars(
                select(DBNote)
                .where(DBNote.owner == user)
                .order_by(DBNote.created_at.desc(), DBNote.id.desc())
            )
            return [self._db_to_model(db) for db in result.all()]

    def search(self, user: str, query: str) -> List[Note]:
        """Find a user's notes whose title contains query (case-insensitive)."""
        escaped = escape_like_pattern(query)
        with self.session_factory() as session:
            result = session.scalars(
                select(DBNote)
                .where(DBNote.owner == user)
                .where(DBNote.title.ilike(f"%{escaped}%", escape="\\"))
                .order_by(DBNote.title, DBNote.id)
            )
            return [self._db_to_model(db) for db in result.all()]

    def set_title(self, note_id: str, user: str, title: str) -> Note:
        """Rename a note. Does not move updated_at."""
        if not title or not title.strip():
            raise ValidationError("Note title cannot be empty", field="title")
        self._check_title(title)
        with self.session_factory() as session:
            db_note = self._owned(session, note_id, user)
            if db_note.title != title:
                db_note.title = title
                session.commit()
                logger.info(f"Renamed note {note_id}")
            return self._db_to_model(db_note)

    def update_content(self, note_id: str, user: str, content: str) -> Note:
        """Replace a note's body text and bump updated_at."""
        with self.session_factory() as session:
            db_note = self._owned(session, note_id, user)
            if db_note.content != content:
                db_note.content = content
                db_note.updated_at = utc_now()
                session.commit()
                logger.info(f"Updated content of note {note_id}")
            return self._db_to_model(db_note)

    def delete(self, note_id: str, user: str) -> None:
        """Delete a note owned by the user."""
        with self.session_factory() as session:
            db_note = self._owned(session, note_id, user)
            session.delete(db_note)
            session.commit()
            logger.info(f"Deleted note {note_id}")

    def _db_to_model(self, db_note: DBNote) -> Note:
        """Convert DBNote to Note model."""
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content,
            owner=db_note.owner,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )
