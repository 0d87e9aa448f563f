"""Tests for committing a staging session."""

import pytest

from arcstage.config.models import StagingOptions
from arcstage.session import build_file_plan, commit_session
from arcstage.staging import (
    LayoutIntegrityError,
    add_to_collection,
    build_source_manifests,
    create_collection,
    create_initial_layout,
)
from arcstage.staging.builder import manifest_id_for
from arcstage.tree import AnnotationOverlay, FileHandle, StartMarkerConflictError
from arcstage.tree.snapshot import build_tree


def _tree():
    paths = [
        "book/page_1.jpg",
        "book/page_2.jpg",
        "book/page_3.jpg",
        "photos/a.png",
        "photos/b.png",
        "cover.jpg",
    ]
    return build_tree([FileHandle.from_bytes(path, b"x") for path in paths], root_name="box")


def _stores(tree):
    manifests = build_source_manifests(tree)
    return AnnotationOverlay(tree), manifests, create_initial_layout(manifests)


def test_file_plan_follows_flattened_order() -> None:
    plan = build_file_plan(_tree())

    assert [handle.path for handle in plan] == [
        "book/page_1.jpg",
        "book/page_2.jpg",
        "book/page_3.jpg",
        "photos/a.png",
        "photos/b.png",
        "cover.jpg",
    ]


def test_commit_restricts_manifests_to_kept_files() -> None:
    tree = _tree()
    overlay, manifests, layout = _stores(tree)
    overlay.update("book/page_2.jpg", excluded=True)
    overlay.update("book", label="The Book")

    result = commit_session(tree, overlay, manifests, layout)

    book = result.manifests.by_id[manifest_id_for("book")]
    assert [canvas.label for canvas in book.canvases] == ["page_1.jpg", "page_3.jpg"]
    assert book.is_partial
    assert book.label == "The Book"
    assert "book/page_2.jpg" not in [handle.path for handle in result.file_plan]
    assert result.canvas_count == 5
    assert result.tree.directories["book"].label == "The Book"


def test_commit_drops_manifests_without_canvases() -> None:
    tree = _tree()
    overlay, manifests, layout = _stores(tree)
    photos_id = manifest_id_for("photos")
    layout, collection = create_collection(layout, "Pictures")
    layout = add_to_collection(layout, collection, [photos_id])
    overlay.update("photos", excluded=True)

    result = commit_session(tree, overlay, manifests, layout)

    assert photos_id not in result.manifests.by_id
    assert photos_id not in result.layout.referenced_manifest_ids()
    assert any("no remaining canvases" in warning for warning in result.warnings)
    assert any(photos_id in warning for warning in result.warnings)
    assert result.collection_count == 2


def test_commit_rejects_dangling_layout_references() -> None:
    tree = _tree()
    overlay, manifests, layout = _stores(tree)
    layout = layout.model_copy(update={"unassigned": layout.unassigned + ("ghost",)})

    with pytest.raises(LayoutIntegrityError):
        commit_session(tree, overlay, manifests, layout)


def test_commit_honors_strict_start_policy() -> None:
    tree = _tree()
    overlay, manifests, layout = _stores(tree)
    entries = overlay.snapshot()
    entries["book/page_1.jpg"] = overlay.set_start("book/page_1.jpg")
    entries["book/page_3.jpg"] = overlay.set_start("book/page_3.jpg")

    result = commit_session(tree, entries, manifests, layout)
    assert result.tree.directories["book"].start_file == "page_3.jpg"

    with pytest.raises(StartMarkerConflictError):
        commit_session(
            tree,
            entries,
            manifests,
            layout,
            options=StagingOptions(start_marker_policy="reject"),
        )


def test_commit_carries_staging_warnings() -> None:
    tree = _tree()
    overlay, manifests, layout = _stores(tree)

    result = commit_session(tree, overlay, manifests, layout, warnings=["earlier warning"])

    assert result.warnings[0] == "earlier warning"
    assert tree.directories["book"].label is None
