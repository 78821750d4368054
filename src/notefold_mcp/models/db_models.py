"""SQLAlchemy database models for the Notefold MCP server."""
import datetime

from sqlalchemy import (Column, DateTime, ForeignKey, String, Table, Text,
                        UniqueConstraint, create_engine, event)
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notefold_mcp.config import config
from notefold_mcp.exceptions import ErrorCode, StorageError

# Create base class for SQLAlchemy models
Base = declarative_base()

# Parent -> child links. child_id is unique, so a folder can be listed by
# at most one parent.
folder_children = Table(
    "folder_children",
    Base.metadata,
    Column("parent_id", String(64), ForeignKey("folders.id"), nullable=False, index=True),
    Column("child_id", String(64), ForeignKey("folders.id"), primary_key=True),
)

# Folder -> item placements. item_id is unique, so an item lives in at most
# one folder.
folder_items = Table(
    "folder_items",
    Base.metadata,
    Column("folder_id", String(64), ForeignKey("folders.id"), nullable=False, index=True),
    Column("item_id", String(255), primary_key=True),
)

tag_items = Table(
    "tag_items",
    Base.metadata,
    Column("tag_id", String(64), ForeignKey("tags.id"), primary_key=True),
    Column("item_id", String(255), primary_key=True, index=True),
)


class DBFolder(Base):
    """Database model for a folder."""
    __tablename__ = "folders"
    id = Column(String(64), primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    owner = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.datetime.now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of folder."""
        return f"<Folder(id='{self.id}', title='{self.title}', owner='{self.owner}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(64), primary_key=True, index=True)
    title = Column(String(500), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    owner = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(String(64), primary_key=True)
    owner = Column(String(255), nullable=False, index=True)
    label = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner", "label", name="unique_owner_label"),
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id='{self.id}', label='{self.label}')>"


class DBSummary(Base):
    """Database model for a manual summary, keyed by the item it summarizes."""
    __tablename__ = "summaries"
    item_id = Column(String(255), primary_key=True)
    summary = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of summary."""
        return f"<Summary(item_id='{self.item_id}')>"

def init_db(db_url=None):
    """Create the engine and all tables.

    SQLite settings:
    - WAL journal for atomic, crash-safe writes on file databases
    - foreign_keys=ON so link rows can never point at a missing folder
    - StaticPool for in-memory databases so every session sees the same data
    """
    db_url = db_url or config.get_db_url()

    if db_url == "sqlite://" or ":memory:" in db_url:
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    try:
        Base.metadata.create_all(engine)
    except OperationalError as e:
        engine.dispose()
        raise StorageError(
            f"Cannot open database at {db_url}",
            operation="init_db",
            code=ErrorCode.STORAGE_CONNECTION_FAILED,
            original_error=e,
        ) from e
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine)
