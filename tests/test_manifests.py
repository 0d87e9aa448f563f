"""Tests for building and editing source manifests."""

import logging

import pytest

from arcstage.config.models import StagingOptions
from arcstage.staging import (
    SourceCanvas,
    SourceManifest,
    SourceManifests,
    add_source_manifest,
    build_source_manifests,
    merge_source_manifests,
    remove_source_manifest,
    reorder_canvases,
)
from arcstage.staging.builder import ROOT_MANIFEST_LABEL, canvas_id_for, manifest_id_for
from arcstage.staging.manifests import manifest_stats
from arcstage.tree import FileHandle
from arcstage.tree.snapshot import build_tree


def _canvas(canvas_id: str) -> SourceCanvas:
    return SourceCanvas(id=canvas_id, label=canvas_id)


def _manifest(manifest_id: str, *canvas_ids: str) -> SourceManifest:
    return SourceManifest(
        id=manifest_id, label=manifest_id, canvases=tuple(_canvas(cid) for cid in canvas_ids)
    )


def _collection(*manifests: SourceManifest) -> SourceManifests:
    return SourceManifests(
        by_id={manifest.id: manifest for manifest in manifests},
        all_ids=tuple(manifest.id for manifest in manifests),
    )


def test_builder_creates_one_manifest_per_media_directory() -> None:
    paths = [
        "cover.jpg",
        "readme.txt",
        "book/page_10.jpg",
        "book/page_2.jpg",
        "book/page_1.jpg",
        "book/notes.txt",
        "empty/notes.txt",
        "letters/1920/a.png",
    ]
    tree = build_tree([FileHandle.from_bytes(path, b"x") for path in paths], root_name="box")

    manifests = build_source_manifests(tree)

    labels = [manifest.label for manifest in manifests.ordered()]
    assert labels == [ROOT_MANIFEST_LABEL, "book", "letters / 1920"]
    assert manifests.root_label == "box"

    book = manifests.by_id[manifest_id_for("book")]
    assert [canvas.label for canvas in book.canvases] == ["page_1.jpg", "page_2.jpg", "page_10.jpg"]
    assert book.detected_pattern == "Simple numerical sequence"
    assert book.breadcrumbs == ("book",)
    assert book.source_path == "book"
    first = book.canvases[0]
    assert first.id == canvas_id_for("book/page_1.jpg")
    assert first.file_path == "book/page_1.jpg"


def test_builder_ids_are_stable_across_runs() -> None:
    paths = ["a/1.jpg", "a/2.jpg"]
    first = build_source_manifests(build_tree([FileHandle.from_bytes(p, b"") for p in paths]))
    second = build_source_manifests(build_tree([FileHandle.from_bytes(p, b"") for p in paths]))

    assert first == second


def test_builder_can_include_supplementing_files() -> None:
    tree = build_tree([FileHandle.from_bytes("docs/readme.txt", b"")])

    assert build_source_manifests(tree).all_ids == ()
    options = StagingOptions(media_only_manifests=False)
    assert len(build_source_manifests(tree, options).all_ids) == 1


def test_add_is_idempotent_and_dedupes_canvases() -> None:
    collection = _collection(_manifest("m1", "c1", "c2"))

    merged = add_source_manifest(collection, _manifest("m1", "c2", "c3"))
    again = add_source_manifest(merged, _manifest("m1", "c2", "c3"))

    assert merged.by_id["m1"].canvas_ids == ["c1", "c2", "c3"]
    assert again is merged

    added = add_source_manifest(collection, _manifest("m2", "c9", "c9"))
    assert added.all_ids == ("m1", "m2")
    assert added.by_id["m2"].canvas_ids == ["c9"]
    assert collection.all_ids == ("m1",)


def test_remove_drops_manifest_and_ignores_unknown_ids() -> None:
    collection = _collection(_manifest("m1", "c1"), _manifest("m2", "c2"))

    removed = remove_source_manifest(collection, "m1")

    assert removed.all_ids == ("m2",)
    assert "m1" not in removed.by_id
    assert remove_source_manifest(removed, "missing") is removed


def test_reorder_applies_permutation() -> None:
    collection = _collection(_manifest("m1", "c1", "c2", "c3"))

    reordered = reorder_canvases(collection, "m1", ["c3", "c1", "c2"])

    assert reordered.by_id["m1"].canvas_ids == ["c3", "c1", "c2"]


def test_reorder_drops_unknown_and_omitted_ids(caplog: pytest.LogCaptureFixture) -> None:
    collection = _collection(_manifest("m1", "c1", "c2", "c3"))

    with caplog.at_level(logging.WARNING, logger="arcstage.staging.manifests"):
        reordered = reorder_canvases(collection, "m1", ["c2", "ghost", "c1"])

    assert reordered.by_id["m1"].canvas_ids == ["c2", "c1"]
    assert "dropped 1 unknown and 1 omitted" in caplog.text


def test_reorder_strict_mode_rejects_non_permutations() -> None:
    collection = _collection(_manifest("m1", "c1", "c2"))

    with pytest.raises(ValueError):
        reorder_canvases(collection, "m1", ["c1"], strict=True)


def test_merge_concatenates_and_removes_sources() -> None:
    collection = _collection(
        _manifest("m1", "c1"),
        _manifest("m2", "c2", "c1"),
        _manifest("m3", "c3"),
    )

    merged = merge_source_manifests(collection, ["m3", "m2", "m1", "missing"], "m1")

    assert merged.all_ids == ("m1",)
    assert merged.by_id["m1"].canvas_ids == ["c1", "c3", "c2"]


def test_merge_into_missing_target_is_a_no_op() -> None:
    collection = _collection(_manifest("m1", "c1"))

    assert merge_source_manifests(collection, ["m1"], "missing") is collection


def test_collection_rejects_mismatched_keys() -> None:
    with pytest.raises(ValueError):
        SourceManifests(by_id={"m1": _manifest("m2")}, all_ids=("m1",))
    with pytest.raises(ValueError):
        SourceManifests(by_id={"m1": _manifest("m1")}, all_ids=("m1", "m1"))


def test_manifest_stats_counts_patterns() -> None:
    paths = ["book/p1.jpg", "book/p2.jpg", "book/p3.jpg", "single/only.jpg"]
    manifests = build_source_manifests(build_tree([FileHandle.from_bytes(p, b"") for p in paths]))

    stats = manifest_stats(manifests)

    assert stats["manifests"] == 2
    assert stats["canvases"] == 4
    assert stats["patterns"] == {"Simple numerical sequence": 1}
