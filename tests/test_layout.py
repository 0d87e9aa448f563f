"""Tests for archive layout operations."""

import pytest

from arcstage.staging import (
    ArchiveLayout,
    ArchiveNode,
    LayoutIntegrityError,
    SourceManifest,
    SourceManifests,
    StagingError,
    UnknownCollectionError,
    add_to_collection,
    create_collection,
    create_initial_layout,
    delete_collection,
    merge_collections,
    move_collection,
    reconcile_layout,
    remove_from_collection,
    rename_collection,
)
from arcstage.staging.layout import (
    _map_root,
    collection_of,
    dangling_manifest_ids,
    find_collection,
    get_all_collections,
    remove_manifest_everywhere,
)


def _manifests(*ids: str) -> SourceManifests:
    return SourceManifests(
        by_id={mid: SourceManifest(id=mid, label=mid) for mid in ids},
        all_ids=ids,
        root_label="Box",
    )


def _layout() -> ArchiveLayout:
    return create_initial_layout(_manifests("m1", "m2", "m3"))


def test_initial_layout_puts_every_manifest_in_the_pool() -> None:
    layout = _layout()

    assert layout.root.name == "Box"
    assert layout.root.children == ()
    assert layout.unassigned == ("m1", "m2", "m3")


def test_create_and_rename_collection_keep_ids() -> None:
    layout, letters = create_collection(_layout(), "Letters")
    layout, drafts = create_collection(layout, "Drafts", letters, collection_id="drafts")

    renamed = rename_collection(layout, letters, "Correspondence")

    node = find_collection(renamed, letters)
    assert node is not None and node.name == "Correspondence"
    assert [child.id for child in node.children] == [drafts]
    assert drafts == "drafts"
    assert [c.id for c in get_all_collections(renamed)] == ["root", letters, "drafts"]


def test_create_collection_rejects_unknown_parent_and_reused_id() -> None:
    layout, _ = create_collection(_layout(), "A", collection_id="a")

    with pytest.raises(UnknownCollectionError):
        create_collection(layout, "B", "missing")
    with pytest.raises(StagingError):
        create_collection(layout, "B", collection_id="a")


def test_add_moves_manifests_between_collections() -> None:
    layout, first = create_collection(_layout(), "First")
    layout, second = create_collection(layout, "Second")

    layout = add_to_collection(layout, first, ["m1", "m2"])
    layout = add_to_collection(layout, second, ["m2"])

    assert find_collection(layout, first).manifest_ids == ("m1",)
    assert find_collection(layout, second).manifest_ids == ("m2",)
    assert layout.unassigned == ("m3",)
    assert collection_of(layout, "m2").id == second


def test_add_is_idempotent() -> None:
    layout, first = create_collection(_layout(), "First")

    once = add_to_collection(layout, first, ["m1"])
    twice = add_to_collection(once, first, ["m1"])

    assert once == twice


def test_add_validates_ids_against_manifests() -> None:
    layout, first = create_collection(_layout(), "First")

    with pytest.raises(LayoutIntegrityError) as excinfo:
        add_to_collection(layout, first, ["m1", "ghost"], manifests=_manifests("m1", "m2", "m3"))
    assert excinfo.value.manifest_ids == ["ghost"]


def test_remove_from_collection_returns_ids_to_pool() -> None:
    layout, first = create_collection(_layout(), "First")
    layout = add_to_collection(layout, first, ["m1", "m2"])

    layout = remove_from_collection(layout, first, ["m1", "m3"])

    assert find_collection(layout, first).manifest_ids == ("m2",)
    assert layout.unassigned == ("m3", "m1")


def test_delete_collection_frees_manifests_of_the_subtree() -> None:
    layout, parent = create_collection(_layout(), "Parent")
    layout, child = create_collection(layout, "Child", parent)
    layout = add_to_collection(layout, parent, ["m1"])
    layout = add_to_collection(layout, child, ["m2"])

    layout = delete_collection(layout, parent)

    assert find_collection(layout, parent) is None
    assert find_collection(layout, child) is None
    assert set(layout.unassigned) == {"m1", "m2", "m3"}


def test_root_cannot_be_deleted_or_moved() -> None:
    layout, first = create_collection(_layout(), "First")

    with pytest.raises(StagingError):
        delete_collection(layout, "root")
    with pytest.raises(StagingError):
        move_collection(layout, "root", first)


def test_layout_rebuild_never_drops_the_root() -> None:
    layout, _ = create_collection(_layout(), "First")

    with pytest.raises(StagingError, match="root collection"):
        _map_root(layout, lambda node: None if node.id == "root" else node)
    assert _map_root(layout, lambda node: node) == layout.root



def test_move_collection_rejects_cycles() -> None:
    layout, parent = create_collection(_layout(), "Parent")
    layout, child = create_collection(layout, "Child", parent)

    with pytest.raises(StagingError):
        move_collection(layout, parent, child)
    with pytest.raises(StagingError):
        move_collection(layout, parent, parent)

    moved = move_collection(layout, child, "root")
    assert [node.id for node in moved.root.children] == [parent, child]
    assert find_collection(moved, parent).children == ()


def test_merge_collections_folds_sources_into_target() -> None:
    layout, target = create_collection(_layout(), "Target")
    layout, source = create_collection(layout, "Source")
    layout, nested = create_collection(layout, "Nested", source)
    layout = add_to_collection(layout, target, ["m1"])
    layout = add_to_collection(layout, source, ["m2"])
    layout = add_to_collection(layout, nested, ["m3"])

    merged = merge_collections(layout, [source], target)

    node = find_collection(merged, target)
    assert node.manifest_ids == ("m1", "m2")
    assert [child.id for child in node.children] == [nested]
    assert find_collection(merged, source) is None
    assert find_collection(merged, nested).manifest_ids == ("m3",)


def test_merge_collections_is_atomic() -> None:
    layout, target = create_collection(_layout(), "Target")
    layout, source = create_collection(layout, "Source")

    with pytest.raises(UnknownCollectionError):
        merge_collections(layout, [source, "missing"], target)
    assert find_collection(layout, source) is not None

    with pytest.raises(StagingError):
        merge_collections(layout, ["root"], target)


def test_merge_with_nested_sources_keeps_every_manifest() -> None:
    layout, target = create_collection(_layout(), "Target")
    layout, outer = create_collection(layout, "Outer")
    layout, inner = create_collection(layout, "Inner", outer)
    layout = add_to_collection(layout, outer, ["m1"])
    layout = add_to_collection(layout, inner, ["m2"])

    merged = merge_collections(layout, [outer, inner], target)

    node = find_collection(merged, target)
    assert set(node.manifest_ids) == {"m1", "m2"}
    assert node.children == ()


def test_unknown_collection_error_is_a_key_error() -> None:
    with pytest.raises(KeyError):
        rename_collection(_layout(), "missing", "Name")


def test_layout_rejects_double_membership() -> None:
    root = ArchiveNode(id="root", name="Root", manifest_ids=("m1",))

    with pytest.raises(ValueError):
        ArchiveLayout(root=root, unassigned=("m1",))


def test_reconcile_removes_dangling_and_adds_missing() -> None:
    layout, first = create_collection(_layout(), "First")
    layout = add_to_collection(layout, first, ["m1", "m2"])
    manifests = _manifests("m2", "m3", "m4")

    assert dangling_manifest_ids(layout, manifests) == ["m1"]
    reconciled, removed = reconcile_layout(layout, manifests)

    assert removed == ["m1"]
    assert find_collection(reconciled, first).manifest_ids == ("m2",)
    assert reconciled.unassigned == ("m3", "m4")


def test_remove_manifest_everywhere_strips_pool_and_collections() -> None:
    layout, first = create_collection(_layout(), "First")
    layout = add_to_collection(layout, first, ["m1"])

    stripped = remove_manifest_everywhere(layout, ["m1", "m2"])

    assert find_collection(stripped, first).manifest_ids == ()
    assert stripped.unassigned == ("m3",)
