"""Tests for tree flattening and filtering."""

from arcstage.tree import (
    AnnotationOverlay,
    FileCountCache,
    FileHandle,
    all_directory_paths,
    filter_flat_nodes,
    flatten_file_tree,
)
from arcstage.tree.snapshot import build_tree


def _tree():
    paths = [
        "zeta.jpg",
        "Alpha.jpg",
        "photos/b.png",
        "photos/a.png",
        "photos/trip/img_1.jpg",
        "archive/old/scan.tif",
    ]
    return build_tree([FileHandle.from_bytes(path, b"data") for path in paths])


def test_collapsed_tree_lists_directories_before_files() -> None:
    rows = flatten_file_tree(_tree())

    assert [row.name for row in rows] == ["archive", "photos", "Alpha.jpg", "zeta.jpg"]
    assert all(row.depth == 0 for row in rows)
    photos = rows[1]
    assert photos.is_directory
    assert not photos.is_expanded
    assert photos.child_count == 3
    assert photos.total_file_count == 3
    assert rows[2].file is not None and rows[2].child_count == 0
    assert rows[2].size == 4
    assert photos.size == 0


def test_expanded_directories_emit_children_in_order() -> None:
    rows = flatten_file_tree(_tree(), {"photos", "photos/trip"})

    assert [(row.path, row.depth) for row in rows] == [
        ("archive", 0),
        ("photos", 0),
        ("photos/trip", 1),
        ("photos/trip/img_1.jpg", 2),
        ("photos/a.png", 1),
        ("photos/b.png", 1),
        ("Alpha.jpg", 0),
        ("zeta.jpg", 0),
    ]


def test_flatten_is_pure_and_repeatable() -> None:
    tree = _tree()
    expanded = all_directory_paths(tree)

    first = flatten_file_tree(tree, expanded)
    second = flatten_file_tree(tree, expanded)

    assert first == second
    assert tree == _tree()


def test_all_directory_paths_excludes_root() -> None:
    assert all_directory_paths(_tree()) == {"archive", "archive/old", "photos", "photos/trip"}


def test_rows_carry_overlay_entries() -> None:
    tree = _tree()
    overlay = AnnotationOverlay(tree)
    overlay.update("photos", label="Photographs")

    rows = flatten_file_tree(tree, overlay=overlay)

    by_path = {row.path: row for row in rows}
    assert by_path["photos"].annotations.label == "Photographs"
    assert by_path["archive"].annotations.label is None


def test_file_count_cache_memoizes_and_invalidates() -> None:
    tree = _tree()
    cache = FileCountCache(version=1)

    flatten_file_tree(tree, all_directory_paths(tree), counts=cache)
    assert len(cache) == 4
    assert cache.total_file_count(tree.directories["photos"]) == 3

    cache.invalidate(1)
    assert len(cache) == 4
    cache.invalidate(2)
    assert len(cache) == 0
    assert cache.version == 2


def test_filter_keeps_matches_and_their_ancestors() -> None:
    tree = _tree()
    rows = flatten_file_tree(tree, all_directory_paths(tree))

    filtered = filter_flat_nodes(rows, "IMG")

    assert [row.path for row in filtered] == ["photos", "photos/trip", "photos/trip/img_1.jpg"]
    assert filter_flat_nodes(rows, "  ") == rows
