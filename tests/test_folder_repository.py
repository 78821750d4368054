# tests/test_folder_repository.py
"""Tests for the FolderRepository class."""
import pytest
from sqlalchemy import insert

from notefold_mcp.exceptions import (
    AlreadyInitializedError,
    CycleDetectedError,
    ErrorCode,
    FolderNotFoundError,
    ItemNotFoundError,
    NotOwnerError,
    OwnerMismatchError,
    ParentNotFoundError,
    SelfMoveError,
    ValidationError,
)
from notefold_mcp.models.db_models import DBFolder, folder_children
from notefold_mcp.models.schema import folder_tree_to_text, utc_now
from notefold_mcp.storage.folder_repository import FolderRepository


class TestInitialize:
    """Tests for creating a user's root folder."""

    def test_initialize_creates_root(self, folder_repository):
        """A fresh user gets an empty, parentless root folder."""
        root = folder_repository.initialize("alice")

        assert root.title == "Root"
        assert root.owner == "alice"
        assert root.children == set()
        assert root.items == set()
        assert folder_repository.get_parent(root.id) is None

    def test_initialize_twice_fails(self, folder_repository, alice_root):
        """Second initialize for the same user is rejected."""
        with pytest.raises(AlreadyInitializedError) as exc_info:
            folder_repository.initialize("alice")

        assert exc_info.value.code == ErrorCode.ALREADY_INITIALIZED
        assert exc_info.value.details["user"] == "alice"

    def test_initialize_again_after_deleting_tree(self, folder_repository, alice_root):
        """Deleting the root lets the user start over."""
        child = folder_repository.create("alice", "Work", alice_root.id)
        folder_repository.delete(alice_root.id)
        assert folder_repository.get(child.id) is None

        # After the whole tree is gone the user may initialize again
        again = folder_repository.initialize("alice")
        assert again.id != alice_root.id

    def test_users_are_independent(self, folder_repository, alice_root):
        """Initializing one user does not affect another."""
        bob_root = folder_repository.initialize("bob")
        assert bob_root.owner == "bob"
        assert bob_root.id != alice_root.id

    def test_custom_root_title(self, engine):
        """The root title can be overridden per repository."""
        repo = FolderRepository(engine=engine, root_title="Home")
        assert repo.initialize("carol").title == "Home"


class TestCreate:
    """Tests for creating child folders."""

    def test_create_links_child_to_parent(self, folder_repository, alice_root):
        """A new folder is listed in its parent's children."""
        work = folder_repository.create("alice", "Work", alice_root.id)

        assert work.title == "Work"
        assert work.owner == "alice"
        assert folder_repository.get_children(alice_root.id) == {work.id}
        assert folder_repository.get_parent(work.id) == alice_root.id

    def test_create_with_missing_parent(self, folder_repository):
        """A missing parent is reported as PARENT_NOT_FOUND."""
        with pytest.raises(ParentNotFoundError) as exc_info:
            folder_repository.create("alice", "Work", "nonexistent")

        assert exc_info.value.code == ErrorCode.PARENT_NOT_FOUND
        assert exc_info.value.details["folder_id"] == "nonexistent"
        assert exc_info.value.details["role"] == "parent"

    def test_create_in_foreign_folder(self, folder_repository, alice_root):
        """A user may not create folders inside another user's tree."""
        folder_repository.initialize("bob")

        with pytest.raises(NotOwnerError) as exc_info:
            folder_repository.create("bob", "Sneaky", alice_root.id)

        assert exc_info.value.code == ErrorCode.NOT_OWNER
        assert folder_repository.get_children(alice_root.id) == set()

    def test_create_with_blank_title(self, folder_repository, alice_root):
        """Blank titles are rejected and nothing is linked."""
        with pytest.raises(ValidationError):
            folder_repository.create("alice", "   ", alice_root.id)
        assert folder_repository.get_children(alice_root.id) == set()

    def test_create_with_overlong_title(self, folder_repository, alice_root, test_config, monkeypatch):
        """Titles longer than the configured maximum are rejected."""
        monkeypatch.setattr(test_config, "max_title_length", 10)
        with pytest.raises(ValidationError) as exc_info:
            folder_repository.create("alice", "x" * 11, alice_root.id)
        assert exc_info.value.details["field"] == "title"

    def test_parent_checks_come_before_title_check(self, folder_repository):
        """A missing parent wins over a bad title."""
        with pytest.raises(ParentNotFoundError):
            folder_repository.create("alice", "", "nonexistent")

    def test_duplicate_titles_are_allowed(self, folder_repository, alice_root):
        """Sibling folders may share a title."""
        a = folder_repository.create("alice", "Same", alice_root.id)
        b = folder_repository.create("alice", "Same", alice_root.id)
        assert a.id != b.id
        assert folder_repository.get_children(alice_root.id) == {a.id, b.id}


class TestMove:
    """Tests for re-parenting folders."""

    def test_move_between_siblings(self, folder_repository, alice_root):
        """Moving X into Y leaves only Y under the root."""
        x = folder_repository.create("alice", "X", alice_root.id)
        y = folder_repository.create("alice", "Y", alice_root.id)

        folder_repository.move(x.id, y.id)

        assert folder_repository.get_children(alice_root.id) == {y.id}
        assert folder_repository.get_children(y.id) == {x.id}
        assert folder_repository.get_parent(x.id) == y.id

    def test_move_into_descendant_is_cycle(self, folder_repository, alice_root):
        """A folder cannot be moved below its own child."""
        work = folder_repository.create("alice", "Work", alice_root.id)
        proj = folder_repository.create("alice", "Proj", work.id)

        with pytest.raises(CycleDetectedError) as exc_info:
            folder_repository.move(work.id, proj.id)

        assert exc_info.value.code == ErrorCode.CYCLE_DETECTED
        assert exc_info.value.details == {"folder_id": work.id, "new_parent_id": proj.id}
        assert folder_repository.get_parent(work.id) == alice_root.id

    def test_move_into_deep_descendant_is_cycle(self, folder_repository, alice_root):
        """The descendant check follows links past the first level."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", a.id)
        c = folder_repository.create("alice", "C", b.id)
        d = folder_repository.create("alice", "D", c.id)

        with pytest.raises(CycleDetectedError):
            folder_repository.move(a.id, d.id)

    def test_move_into_self(self, folder_repository, alice_root):
        """Moving a folder into itself is its own error."""
        x = folder_repository.create("alice", "X", alice_root.id)

        with pytest.raises(SelfMoveError) as exc_info:
            folder_repository.move(x.id, x.id)
        assert exc_info.value.code == ErrorCode.SELF_MOVE

    def test_move_missing_folder(self, folder_repository, alice_root):
        """The missing folder is named along with its role."""
        with pytest.raises(FolderNotFoundError) as exc_info:
            folder_repository.move("ghost", alice_root.id)
        assert exc_info.value.details == {"folder_id": "ghost", "role": "folder"}

    def test_move_to_missing_parent(self, folder_repository, alice_root):
        """A missing destination reports role new_parent."""
        x = folder_repository.create("alice", "X", alice_root.id)
        with pytest.raises(FolderNotFoundError) as exc_info:
            folder_repository.move(x.id, "ghost")
        assert exc_info.value.details == {"folder_id": "ghost", "role": "new_parent"}

    def test_move_across_owners(self, folder_repository, alice_root):
        """Folders of different users cannot be related."""
        bob_root = folder_repository.initialize("bob")
        x = folder_repository.create("alice", "X", alice_root.id)

        with pytest.raises(OwnerMismatchError) as exc_info:
            folder_repository.move(x.id, bob_root.id)
        assert exc_info.value.code == ErrorCode.OWNER_MISMATCH

    def test_existence_checked_before_ownership(self, folder_repository, alice_root):
        """Precondition order: existence first."""
        with pytest.raises(FolderNotFoundError):
            folder_repository.move(alice_root.id, "ghost")

    def test_ownership_checked_before_self_move(self, folder_repository, alice_root):
        """Same folder always has the same owner, so self-move is reached."""
        with pytest.raises(SelfMoveError):
            folder_repository.move(alice_root.id, alice_root.id)

    def test_move_keeps_subtree_and_items(self, folder_repository, alice_root):
        """Only the parent link changes on a move."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", a.id)
        target = folder_repository.create("alice", "Target", alice_root.id)
        folder_repository.insert_item("item-a", a.id)
        folder_repository.insert_item("item-b", b.id)

        moved = folder_repository.move(a.id, target.id)

        assert moved.children == {b.id}
        assert moved.items == {"item-a"}
        assert folder_repository.get_items(b.id) == {"item-b"}
        assert folder_repository.get_parent(b.id) == a.id

    def test_move_detached_root(self, folder_repository, alice_root):
        """A parentless folder is attached without error."""
        x = folder_repository.create("alice", "X", alice_root.id)
        # A second parentless folder, as left over by a partial import
        with folder_repository.session_factory() as session:
            session.add(DBFolder(id="orphan", title="Orphan", owner="alice", created_at=utc_now()))
            session.commit()

        folder_repository.move("orphan", x.id)
        assert folder_repository.get_parent("orphan") == x.id


class TestDelete:
    """Tests for deleting folder subtrees."""

    def test_delete_removes_subtree(self, folder_repository, alice_root):
        """Deleting Y removes Y, X below it, and the root's link to Y."""
        x = folder_repository.create("alice", "X", alice_root.id)
        y = folder_repository.create("alice", "Y", alice_root.id)
        folder_repository.move(x.id, y.id)
        folder_repository.insert_item("item1", x.id)
        folder_repository.insert_item("item1", y.id)

        deletion = folder_repository.delete(y.id)

        assert deletion.deleted_folders == frozenset({x.id, y.id})
        assert deletion.removed_items == frozenset({"item1"})
        assert deletion.owner == "alice"
        for folder_id in (x.id, y.id):
            with pytest.raises(FolderNotFoundError):
                folder_repository.get_details(folder_id)
        assert folder_repository.get_children(alice_root.id) == set()
        assert folder_repository.find_item_folder("item1") is None

    def test_delete_missing_folder(self, folder_repository):
        """Deleting an unknown folder fails."""
        with pytest.raises(FolderNotFoundError) as exc_info:
            folder_repository.delete("ghost")
        assert exc_info.value.code == ErrorCode.FOLDER_NOT_FOUND

    def test_delete_leaves_siblings(self, folder_repository, alice_root):
        """Only the deleted subtree is affected."""
        keep = folder_repository.create("alice", "Keep", alice_root.id)
        drop = folder_repository.create("alice", "Drop", alice_root.id)
        folder_repository.insert_item("kept-item", keep.id)

        folder_repository.delete(drop.id)

        assert folder_repository.get_children(alice_root.id) == {keep.id}
        assert folder_repository.get_items(keep.id) == {"kept-item"}

    def test_delete_root_clears_user(self, folder_repository, alice_root):
        """Deleting the root removes every folder the user had."""
        work = folder_repository.create("alice", "Work", alice_root.id)
        folder_repository.create("alice", "Proj", work.id)

        deletion = folder_repository.delete(alice_root.id)

        assert len(deletion.deleted_folders) == 3
        assert folder_repository.list_folders("alice") == []

    def test_deletion_to_dict(self, folder_repository, alice_root):
        """The deletion summary serializes with sorted lists."""
        a = folder_repository.create("alice", "A", alice_root.id)
        folder_repository.insert_item("z", a.id)
        folder_repository.insert_item("b", a.id)

        data = folder_repository.delete(a.id).to_dict()

        assert data["folder_id"] == a.id
        assert data["deleted_folders"] == [a.id]
        assert data["removed_items"] == ["b", "z"]


class TestItems:
    """Tests for filing items into folders."""

    def test_insert_moves_item(self, folder_repository, alice_root):
        """Inserting into a second folder takes the item out of the first."""
        x = folder_repository.create("alice", "X", alice_root.id)
        y = folder_repository.create("alice", "Y", alice_root.id)

        folder_repository.insert_item("item1", x.id)
        folder_repository.insert_item("item1", y.id)

        assert folder_repository.get_items(x.id) == set()
        assert folder_repository.get_items(y.id) == {"item1"}
        assert folder_repository.find_item_folder("item1") == y.id

    def test_insert_is_idempotent(self, folder_repository, alice_root):
        """Inserting the same item twice changes nothing the second time."""
        folder_repository.insert_item("item1", alice_root.id)
        first = folder_repository.get_items(alice_root.id)
        folder_repository.insert_item("item1", alice_root.id)

        assert folder_repository.get_items(alice_root.id) == first == {"item1"}

    def test_insert_moves_across_owners(self, folder_repository, alice_root):
        """Item lookup is global, not per owner."""
        bob_root = folder_repository.initialize("bob")
        folder_repository.insert_item("shared", alice_root.id)
        folder_repository.insert_item("shared", bob_root.id)

        assert folder_repository.get_items(alice_root.id) == set()
        assert folder_repository.get_items(bob_root.id) == {"shared"}

    def test_item_ids_are_kept_verbatim(self, folder_repository, alice_root):
        """Item IDs with commas or surrounding spaces are stored unchanged."""
        folder_repository.insert_item("doc,v2", alice_root.id)
        folder_repository.insert_item(" padded ", alice_root.id)

        assert folder_repository.get_items(alice_root.id) == {"doc,v2", " padded "}
        assert folder_repository.find_item_folder("doc,v2") == alice_root.id
        assert folder_repository.find_item_folder("doc") is None

    def test_insert_into_missing_folder(self, folder_repository):
        """The destination must exist."""
        with pytest.raises(FolderNotFoundError):
            folder_repository.insert_item("item1", "ghost")
        assert folder_repository.find_item_folder("item1") is None

    def test_delete_item(self, folder_repository, alice_root):
        """Deleting an item reports the folder it came from."""
        folder_repository.insert_item("item1", alice_root.id)

        assert folder_repository.delete_item("item1") == alice_root.id
        assert folder_repository.get_items(alice_root.id) == set()

    def test_delete_item_not_filed(self, folder_repository):
        """An item in no folder cannot be deleted."""
        with pytest.raises(ItemNotFoundError) as exc_info:
            folder_repository.delete_item("item1")
        assert exc_info.value.code == ErrorCode.ITEM_NOT_FOUND
        assert exc_info.value.details["item_id"] == "item1"


class TestQueries:
    """Tests for read-only queries."""

    @pytest.mark.parametrize("method", ["get_children", "get_items", "get_details", "get_parent"])
    def test_queries_on_missing_folder(self, folder_repository, method):
        """Every query needs an existing folder."""
        with pytest.raises(FolderNotFoundError):
            getattr(folder_repository, method)("ghost")

    def test_get_returns_none_for_missing(self, folder_repository):
        """get is the non-raising lookup."""
        assert folder_repository.get("ghost") is None
        assert not folder_repository.exists("ghost")

    def test_get_details(self, folder_repository, alice_root):
        """Details include children and items."""
        child = folder_repository.create("alice", "Child", alice_root.id)
        folder_repository.insert_item("item1", alice_root.id)

        details = folder_repository.get_details(alice_root.id)

        assert details.children == {child.id}
        assert details.items == {"item1"}
        assert details.created_at.tzinfo is not None

    def test_is_descendant(self, folder_repository, alice_root):
        """A folder is below its ancestors but not below itself."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", a.id)

        assert folder_repository.is_descendant(b.id, alice_root.id)
        assert folder_repository.is_descendant(b.id, a.id)
        assert not folder_repository.is_descendant(a.id, b.id)
        assert not folder_repository.is_descendant(a.id, a.id)

    def test_collect_descendants(self, folder_repository, alice_root):
        """collect_descendants includes the starting folder."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", a.id)
        folder_repository.create("alice", "Other", alice_root.id)

        assert folder_repository.collect_descendants(a.id) == {a.id, b.id}

    def test_list_folders_oldest_first(self, folder_repository, alice_root):
        """Folders are listed in creation order."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", alice_root.id)
        folder_repository.initialize("bob")

        ids = [f.id for f in folder_repository.list_folders("alice")]
        assert ids == [alice_root.id, a.id, b.id]

    def test_get_root_initializes_on_first_use(self, folder_repository):
        """get_root creates the root for a new user."""
        root = folder_repository.get_root("dave")
        assert root.title == "Root"
        assert folder_repository.get_root("dave").id == root.id

    def test_get_root_finds_parentless_folder(self, folder_repository, alice_root):
        """The root is the folder without a parent."""
        folder_repository.create("alice", "Root", alice_root.id)
        assert folder_repository.get_root("alice").id == alice_root.id

    def test_get_tree(self, folder_repository, alice_root):
        """The tree nests children sorted by title."""
        b = folder_repository.create("alice", "Beta", alice_root.id)
        a = folder_repository.create("alice", "Alpha", alice_root.id)
        inner = folder_repository.create("alice", "Inner", b.id)
        folder_repository.insert_item("item1", inner.id)

        tree = folder_repository.get_tree(alice_root.id)

        assert tree["folder"].id == alice_root.id
        assert [c["folder"].id for c in tree["children"]] == [a.id, b.id]
        assert tree["children"][1]["children"][0]["folder"].items == {"item1"}

        lines = folder_tree_to_text(tree)
        assert lines[0].startswith("* Root [")
        assert lines[1].startswith("  * Alpha [")
        assert lines[3] == f"    * Inner [{inner.id}] (1 items)"


class TestCorruptedStore:
    """Traversal must terminate even on data that breaks the invariants."""

    def test_cycle_in_store_does_not_hang(self, folder_repository, alice_root, engine):
        """A stored cycle is walked once and reported via the visited set."""
        a = folder_repository.create("alice", "A", alice_root.id)
        b = folder_repository.create("alice", "B", a.id)
        # b -> root closes a loop root -> a -> b -> root
        with engine.begin() as conn:
            conn.execute(insert(folder_children).values(parent_id=b.id, child_id=alice_root.id))

        assert folder_repository.collect_descendants(alice_root.id) == {
            alice_root.id, a.id, b.id
        }
        assert folder_repository.is_descendant(alice_root.id, a.id)
