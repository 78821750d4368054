"""Base repository shared by the storage layer."""
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from notefold_mcp.models.db_models import get_session_factory, init_db

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Common plumbing for SQLAlchemy-backed repositories.

    Every public method opens its own session and commits at most once, so
    each call is a single transaction against the store.
    """

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, one is created from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get an entity by ID, or None if it does not exist."""

    def exists(self, id: str) -> bool:
        """Check whether an entity exists."""
        return self.get(id) is not None
