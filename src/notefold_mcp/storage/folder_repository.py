"""Repository managing the per-user folder hierarchy.

Each user owns one tree of folders. A folder lists its child folders and
the opaque items filed in it; the parent of a folder is derived from the
``folder_children`` link table and never stored on the folder row.

Every public method runs in a single session and commits once, so the
multi-step effects of move (detach, then attach) and delete (collect,
then remove items, links and folders) are applied atomically.
"""
import logging
from collections import defaultdict, deque
from typing import Any, Dict, Iterator, List, Optional, Set

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.orm import Session

from notefold_mcp.config import config
from notefold_mcp.exceptions import (
    AlreadyInitializedError,
    CycleDetectedError,
    FolderNotFoundError,
    ItemNotFoundError,
    NotOwnerError,
    OwnerMismatchError,
    ParentNotFoundError,
    SelfMoveError,
    ValidationError,
)
from notefold_mcp.models.db_models import DBFolder, folder_children, folder_items
from notefold_mcp.models.schema import (
    Folder,
    FolderDeletion,
    ensure_timezone_aware,
    generate_id,
    utc_now,
)
from notefold_mcp.storage.base import Repository

logger = logging.getLogger(__name__)


class FolderRepository(Repository[Folder]):
    """Folder hierarchy manager.

    Invariants kept by every operation:
    - a folder's owner never changes, and only same-owner folders are linked
    - following children links never leads back to the starting folder
    - a folder has at most one parent (UNIQUE folder_children.child_id)
    - an item is filed in at most one folder (UNIQUE folder_items.item_id)
    - a user has at most one parentless folder, created by initialize
    """

    def __init__(self, engine=None, root_title: Optional[str] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
            root_title: Title of root folders. Defaults to config.root_folder_title.
        """
        super().__init__(engine)
        self.root_title = root_title or config.root_folder_title
        logger.info("FolderRepository initialized")

    # ========== Internal helpers ==========

    def _require(self, session: Session, folder_id: str, role: str = "folder") -> DBFolder:
        db_folder = session.get(DBFolder, folder_id)
        if db_folder is None:
            raise FolderNotFoundError(folder_id, role=role)
        return db_folder

    def _children_of(self, session: Session, folder_id: str) -> Set[str]:
        return set(
            session.scalars(
                select(folder_children.c.child_id).where(
                    folder_children.c.parent_id == folder_id
                )
            ).all()
        )

    def _items_of(self, session: Session, folder_id: str) -> Set[str]:
        return set(
            session.scalars(
                select(folder_items.c.item_id).where(
                    folder_items.c.folder_id == folder_id
                )
            ).all()
        )

    def _parent_of(self, session: Session, folder_id: str) -> Optional[str]:
        return session.scalar(
            select(folder_children.c.parent_id).where(
                folder_children.c.child_id == folder_id
            )
        )

    def _to_model(self, session: Session, db_folder: DBFolder) -> Folder:
        return Folder(
            id=db_folder.id,
            title=db_folder.title,
            owner=db_folder.owner,
            children=self._children_of(session, db_folder.id),
            items=self._items_of(session, db_folder.id),
            created_at=ensure_timezone_aware(db_folder.created_at),
        )

    def _validate_title(self, title: str) -> str:
        if not title or not title.strip():
            raise ValidationError("Folder title cannot be empty", field="title")
        if len(title) > config.max_title_length:
            raise ValidationError(
                f"Folder title exceeds maximum length of {config.max_title_length} characters",
                field="title",
                value=title,
            )
        return title

    def _iter_descendants(self, session: Session, folder_id: str) -> Iterator[str]:
        """Yield every folder reachable from folder_id by one or more links.

        Breadth-first over the link table with a visited set, so even a
        corrupted (cyclic) store cannot make the walk loop forever. Links
        to folder rows that no longer exist are logged and skipped.
        """
        visited = {folder_id}
        queue = deque([folder_id])
        while queue:
            current = queue.popleft()
            rows = session.execute(
                select(folder_children.c.child_id, DBFolder.id)
                .select_from(folder_children)
                .outerjoin(DBFolder, DBFolder.id == folder_children.c.child_id)
                .where(folder_children.c.parent_id == current)
                .order_by(folder_children.c.child_id)
            ).all()
            for child_id, existing_id in rows:
                if existing_id is None:
                    logger.warning(
                        f"Folder '{child_id}' is linked from '{current}' but its row is missing"
                    )
                    continue
                if child_id in visited:
                    logger.warning(
                        f"Folder '{child_id}' reached twice while walking '{folder_id}'; "
                        "the stored hierarchy contains a cycle"
                    )
                    continue
                visited.add(child_id)
                yield child_id
                queue.append(child_id)

    def _insert_folder(self, session: Session, user: str, title: str) -> DBFolder:
        db_folder = DBFolder(
            id=generate_id(),
            title=title,
            owner=user,
            created_at=utc_now(),
        )
        session.add(db_folder)
        # The row must exist before anything links to it
        session.flush()
        return db_folder

    # ========== Structural operations ==========

    def initialize(self, user: str) -> Folder:
        """Create the root folder for a user.

        Args:
            user: Opaque user ID.

        Returns:
            The new root folder.

        Raises:
            AlreadyInitializedError: If the user already owns any folder.
        """
        with self.session_factory() as session:
            existing = session.scalar(
                select(DBFolder.id).where(DBFolder.owner == user).limit(1)
            )
            if existing is not None:
                raise AlreadyInitializedError(user)

            db_folder = self._insert_folder(session, user, self.root_title)
            session.commit()

            logger.info(f"Initialized root folder {db_folder.id} for user {user}")
            return self._to_model(session, db_folder)

    def create(self, user: str, title: str, parent_id: str) -> Folder:
        """Create a folder as a child of an existing folder.

        Args:
            user: Opaque ID of the user creating the folder.
            title: Display title.
            parent_id: ID of the parent folder, which the user must own.

        Returns:
            The new folder.

        Raises:
            ParentNotFoundError: If the parent does not exist.
            NotOwnerError: If the parent belongs to another user.
            ValidationError: If the title is blank or too long.
        """
        with self.session_factory() as session:
            parent = session.get(DBFolder, parent_id)
            if parent is None:
                raise ParentNotFoundError(parent_id)
            if parent.owner != user:
                raise NotOwnerError(user, parent_id)
            self._validate_title(title)

            db_folder = self._insert_folder(session, user, title)
            session.execute(
                insert(folder_children).values(parent_id=parent_id, child_id=db_folder.id)
            )
            session.commit()

            logger.info(f"Created folder {db_folder.id} under {parent_id}")
            return self._to_model(session, db_folder)

    def move(self, folder_id: str, new_parent_id: str) -> Folder:
        """Re-parent a folder together with its whole subtree.

        Preconditions are checked in order and the first failure wins:
        both folders exist, they share an owner, they are different
        folders, and the destination is not a descendant of the folder.

        Args:
            folder_id: ID of the folder to move.
            new_parent_id: ID of the destination folder.

        Returns:
            The moved folder; its children and items are unchanged.

        Raises:
            FolderNotFoundError: If either folder is missing (role says which).
            OwnerMismatchError: If the owners differ.
            SelfMoveError: If folder_id == new_parent_id.
            CycleDetectedError: If new_parent_id lies inside folder_id's subtree.
        """
        with self.session_factory() as session:
            db_folder = self._require(session, folder_id, role="folder")
            new_parent = self._require(session, new_parent_id, role="new_parent")

            if db_folder.owner != new_parent.owner:
                raise OwnerMismatchError(folder_id, new_parent_id)
            if folder_id == new_parent_id:
                raise SelfMoveError(folder_id)
            if self._is_descendant(session, new_parent_id, folder_id):
                raise CycleDetectedError(folder_id, new_parent_id)

            # Detach from every current parent; nothing to do for a root
            detached = session.execute(
                delete(folder_children).where(folder_children.c.child_id == folder_id)
            ).rowcount
            session.execute(
                insert(folder_children).values(parent_id=new_parent_id, child_id=folder_id)
            )
            session.commit()

            if detached > 1:
                logger.warning(
                    f"Folder {folder_id} was linked from {detached} parents before the move"
                )
            logger.info(f"Moved folder {folder_id} into {new_parent_id}")
            return self._to_model(session, db_folder)

    def delete(self, folder_id: str) -> FolderDeletion:
        """Delete a folder, its whole subtree and every item placement in it.

        Items only stop being referenced; their content belongs to other
        collaborators, which can react to the returned FolderDeletion.

        Args:
            folder_id: ID of the folder to delete.

        Returns:
            FolderDeletion listing the removed folders and items.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            db_folder = self._require(session, folder_id)
            owner = db_folder.owner

            doomed = {folder_id}
            doomed.update(self._iter_descendants(session, folder_id))

            removed_items = set(
                session.scalars(
                    select(folder_items.c.item_id).where(
                        folder_items.c.folder_id.in_(doomed)
                    )
                ).all()
            )

            session.execute(
                delete(folder_items).where(folder_items.c.folder_id.in_(doomed))
            )
            # Links inside the subtree plus the link from folder_id's parent
            session.execute(
                delete(folder_children).where(
                    or_(
                        folder_children.c.parent_id.in_(doomed),
                        folder_children.c.child_id.in_(doomed),
                    )
                )
            )
            session.execute(
                delete(DBFolder)
                .where(DBFolder.id.in_(doomed))
                .execution_options(synchronize_session=False)
            )
            session.commit()

            logger.info(
                f"Deleted folder {folder_id}: {len(doomed)} folders, "
                f"{len(removed_items)} items released"
            )
            return FolderDeletion(
                folder_id=folder_id,
                owner=owner,
                deleted_folders=frozenset(doomed),
                removed_items=frozenset(removed_items),
            )

    def insert_item(self, item_id: str, folder_id: str) -> None:
        """File an item into a folder, taking it out of wherever it was.

        Inserting an item into the folder that already holds it is a no-op.

        Raises:
            FolderNotFoundError: If the destination folder does not exist.
        """
        with self.session_factory() as session:
            self._require(session, folder_id)

            current = session.scalar(
                select(folder_items.c.folder_id).where(folder_items.c.item_id == item_id)
            )
            if current == folder_id:
                logger.debug(f"Item {item_id} already in folder {folder_id}")
                return

            if current is not None:
                session.execute(
                    delete(folder_items).where(folder_items.c.item_id == item_id)
                )
            session.execute(
                insert(folder_items).values(folder_id=folder_id, item_id=item_id)
            )
            session.commit()

            if current is not None:
                logger.info(f"Moved item {item_id} from folder {current} to {folder_id}")
            else:
                logger.info(f"Inserted item {item_id} into folder {folder_id}")

    def delete_item(self, item_id: str) -> str:
        """Remove an item from the folder that holds it.

        Returns:
            ID of the folder the item was removed from.

        Raises:
            ItemNotFoundError: If the item is not filed in any folder.
        """
        with self.session_factory() as session:
            current = session.scalar(
                select(folder_items.c.folder_id).where(folder_items.c.item_id == item_id)
            )
            if current is None:
                raise ItemNotFoundError(item_id)

            session.execute(
                delete(folder_items).where(folder_items.c.item_id == item_id)
            )
            session.commit()

            logger.info(f"Removed item {item_id} from folder {current}")
            return current

    # ========== Queries ==========

    def get(self, id: str) -> Optional[Folder]:
        """Get a folder by ID, or None if it does not exist."""
        with self.session_factory() as session:
            db_folder = session.get(DBFolder, id)
            if db_folder is None:
                return None
            return self._to_model(session, db_folder)

    def get_details(self, folder_id: str) -> Folder:
        """Get the full folder record.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            return self._to_model(session, self._require(session, folder_id))

    def get_children(self, folder_id: str) -> Set[str]:
        """Get the IDs of a folder's direct children."""
        with self.session_factory() as session:
            self._require(session, folder_id)
            return self._children_of(session, folder_id)

    def get_items(self, folder_id: str) -> Set[str]:
        """Get the IDs of the items filed directly in a folder."""
        with self.session_factory() as session:
            self._require(session, folder_id)
            return self._items_of(session, folder_id)

    def get_parent(self, folder_id: str) -> Optional[str]:
        """Get the ID of a folder's parent, or None for a root."""
        with self.session_factory() as session:
            self._require(session, folder_id)
            return self._parent_of(session, folder_id)

    def find_item_folder(self, item_id: str) -> Optional[str]:
        """Get the ID of the folder holding an item, or None."""
        with self.session_factory() as session:
            return session.scalar(
                select(folder_items.c.folder_id).where(folder_items.c.item_id == item_id)
            )

    def _is_descendant(self, session: Session, target_id: str, ancestor_id: str) -> bool:
        return any(
            found == target_id for found in self._iter_descendants(session, ancestor_id)
        )

    def is_descendant(self, target_id: str, ancestor_id: str) -> bool:
        """Check whether target_id lies strictly below ancestor_id.

        A folder is not its own descendant.
        """
        with self.session_factory() as session:
            return self._is_descendant(session, target_id, ancestor_id)

    def collect_descendants(self, folder_id: str) -> Set[str]:
        """Get folder_id plus the IDs of every folder below it.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            self._require(session, folder_id)
            collected = {folder_id}
            collected.update(self._iter_descendants(session, folder_id))
            return collected

    def list_folders(self, user: str) -> List[Folder]:
        """Get every folder owned by a user, oldest first."""
        with self.session_factory() as session:
            db_folders = session.scalars(
                select(DBFolder)
                .where(DBFolder.owner == user)
                .order_by(DBFolder.created_at, DBFolder.id)
            ).all()
            return [self._to_model(session, f) for f in db_folders]

    def get_root(self, user: str) -> Folder:
        """Get the user's root folder, initializing it on first use.

        The root is the user's parentless folder. If none is found although
        the user owns folders (for instance after a partial import), the
        oldest folder carrying the root title is returned, else the oldest
        folder.
        """
        with self.session_factory() as session:
            db_folders = session.scalars(
                select(DBFolder)
                .where(DBFolder.owner == user)
                .order_by(DBFolder.created_at, DBFolder.id)
            ).all()
            if db_folders:
                ids = [f.id for f in db_folders]
                linked = set(
                    session.scalars(
                        select(folder_children.c.child_id).where(
                            folder_children.c.child_id.in_(ids)
                        )
                    ).all()
                )
                roots = [f for f in db_folders if f.id not in linked]
                if len(roots) > 1:
                    logger.warning(f"User {user} has {len(roots)} parentless folders")
                if roots:
                    return self._to_model(session, roots[0])
                titled = [f for f in db_folders if f.title == self.root_title]
                return self._to_model(session, (titled or db_folders)[0])

        logger.info(f"No folders for user {user}, creating root")
        return self.initialize(user)

    def get_tree(self, folder_id: str) -> Dict[str, Any]:
        """Get a folder and its subtree as nested dictionaries.

        Returns:
            {"folder": Folder, "children": [<same shape>, ...]} with children
            sorted by title.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self.session_factory() as session:
            self._require(session, folder_id)
            ids = {folder_id}
            ids.update(self._iter_descendants(session, folder_id))

            children_map: Dict[str, Set[str]] = defaultdict(set)
            for parent_id, child_id in session.execute(
                select(folder_children.c.parent_id, folder_children.c.child_id).where(
                    folder_children.c.parent_id.in_(ids)
                )
            ).all():
                children_map[parent_id].add(child_id)

            items_map: Dict[str, Set[str]] = defaultdict(set)
            for owner_folder, item_id in session.execute(
                select(folder_items.c.folder_id, folder_items.c.item_id).where(
                    folder_items.c.folder_id.in_(ids)
                )
            ).all():
                items_map[owner_folder].add(item_id)

            models = {
                f.id: Folder(
                    id=f.id,
                    title=f.title,
                    owner=f.owner,
                    children=children_map[f.id],
                    items=items_map[f.id],
                    created_at=ensure_timezone_aware(f.created_at),
                )
                for f in session.scalars(select(DBFolder).where(DBFolder.id.in_(ids)))
            }

        seen: Set[str] = set()

        def build(fid: str) -> Dict[str, Any]:
            seen.add(fid)
            kids = [
                models[c] for c in children_map[fid] if c in models and c not in seen
            ]
            kids.sort(key=lambda f: (f.title, f.id))
            return {
                "folder": models[fid],
                "children": [build(k.id) for k in kids if k.id not in seen],
            }

        return build(folder_id)
