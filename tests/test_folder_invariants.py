"""Property checks for the folder hierarchy.

Drives the repository through seeded random sequences of create, move,
insert_item and delete calls (including ones expected to fail) and
checks the tree shape after every step.
"""
import random

import pytest
from sqlalchemy import select

from notefold_mcp.exceptions import FolderError, FolderNotFoundError
from notefold_mcp.models.db_models import DBFolder, folder_children, folder_items


def _snapshot(engine):
    """Read the raw link tables: (folder ids, child links, item placements)."""
    with engine.connect() as conn:
        folders = set(conn.scalars(select(DBFolder.id)).all())
        links = [tuple(r) for r in conn.execute(
            select(folder_children.c.parent_id, folder_children.c.child_id)
        ).all()]
        items = [tuple(r) for r in conn.execute(
            select(folder_items.c.folder_id, folder_items.c.item_id)
        ).all()]
    return folders, links, items


def _assert_tree_shape(engine):
    folders, links, items = _snapshot(engine)

    parents = {}
    for parent_id, child_id in links:
        assert child_id not in parents, f"{child_id} has two parents"
        parents[child_id] = parent_id
        assert parent_id in folders and child_id in folders

    # Walking up from any folder must reach a root without repeating
    for folder_id in folders:
        seen = {folder_id}
        current = folder_id
        while current in parents:
            current = parents[current]
            assert current not in seen, f"cycle through {folder_id}"
            seen.add(current)

    placed = [item_id for _, item_id in items]
    assert len(placed) == len(set(placed)), "item filed twice"
    assert all(folder_id in folders for folder_id, _ in items)


def _subtree_state(repo, folder_id):
    return {
        fid: (repo.get_children(fid), repo.get_items(fid))
        for fid in repo.collect_descendants(folder_id)
    }


@pytest.mark.parametrize("seed", [3, 17, 2024])
def test_random_operations_keep_tree_shape(folder_repository, engine, seed):
    """No cycles, one parent per folder, one folder per item, throughout."""
    rng = random.Random(seed)
    repo = folder_repository
    folders = {
        "alice": [repo.initialize("alice").id],
        "bob": [repo.initialize("bob").id],
    }

    for step in range(60):
        user = rng.choice(["alice", "bob"])
        mine = folders[user]
        action = rng.random()
        try:
            if action < 0.35 or len(mine) < 3:
                mine.append(repo.create(user, f"f{step}", rng.choice(mine)).id)
            elif action < 0.7:
                folder_id = rng.choice(mine)
                # Occasionally aim at the other user's tree
                target_pool = folders["bob" if user == "alice" else "alice"] if rng.random() < 0.1 else mine
                target = rng.choice(target_pool)
                before = _subtree_state(repo, folder_id)
                repo.move(folder_id, target)
                assert _subtree_state(repo, folder_id) == before
            elif action < 0.9:
                repo.insert_item(f"item{rng.randrange(10)}", rng.choice(mine))
            else:
                victim = rng.choice(mine[1:])
                deletion = repo.delete(victim)
                for gone in deletion.deleted_folders:
                    mine.remove(gone)
        except FolderError:
            pass
        _assert_tree_shape(engine)


def test_failed_move_changes_nothing(folder_repository, engine, alice_root):
    """A rejected move leaves every link where it was."""
    a = folder_repository.create("alice", "A", alice_root.id)
    b = folder_repository.create("alice", "B", a.id)
    before = _snapshot(engine)

    with pytest.raises(FolderError):
        folder_repository.move(a.id, b.id)

    after = _snapshot(engine)
    assert sorted(before[1]) == sorted(after[1])


def test_delete_is_total(folder_repository, engine, alice_root):
    """No surviving row references anything from the deleted subtree."""
    a = folder_repository.create("alice", "A", alice_root.id)
    b = folder_repository.create("alice", "B", a.id)
    c = folder_repository.create("alice", "C", b.id)
    folder_repository.insert_item("i1", b.id)
    folder_repository.insert_item("i2", c.id)
    doomed = folder_repository.collect_descendants(a.id)

    folder_repository.delete(a.id)

    for folder_id in doomed:
        with pytest.raises(FolderNotFoundError):
            folder_repository.get_details(folder_id)
    folders, links, items = _snapshot(engine)
    assert folders == {alice_root.id}
    assert links == []
    assert items == []


def test_insert_twice_is_stable(folder_repository, alice_root):
    """A repeated insert leaves the item set as the first insert did."""
    folder_repository.insert_item("i1", alice_root.id)
    once = folder_repository.get_items(alice_root.id)
    folder_repository.insert_item("i1", alice_root.id)
    assert folder_repository.get_items(alice_root.id) == once
