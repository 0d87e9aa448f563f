"""Fold overlay, manifests, and layout into one canonical result."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from arcstage.config.models import StagingOptions
from arcstage.staging.errors import LayoutIntegrityError
from arcstage.staging.layout import dangling_manifest_ids, get_all_collections, reconcile_layout
from arcstage.staging.models import ArchiveLayout, SourceManifest, SourceManifests
from arcstage.tree.flatten import all_directory_paths, flatten_file_tree
from arcstage.tree.models import FileHandle, FileTreeNode, NodeAnnotations
from arcstage.tree.overlay import apply_annotations_to_tree

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CommitResult:
    """Canonical output handed to ingestion and export.

    Attributes:
        tree: Tree with overlay entries resolved and exclusions dropped.
        manifests: Manifests restricted to kept files, with empty ones removed.
        layout: Layout reconciled against ``manifests``.
        file_plan: Kept files in flattened display order.
        warnings: Non-blocking conflicts encountered while committing.
    """

    tree: FileTreeNode
    manifests: SourceManifests
    layout: ArchiveLayout
    file_plan: list[FileHandle] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def canvas_count(self) -> int:
        return sum(len(manifest.canvases) for manifest in self.manifests.ordered())

    @property
    def collection_count(self) -> int:
        return len(get_all_collections(self.layout))


def build_file_plan(tree: FileTreeNode) -> list[FileHandle]:
    """Return every file of ``tree`` in the order of the fully expanded flattened view."""
    rows = flatten_file_tree(tree, all_directory_paths(tree))
    return [row.file for row in rows if row.file is not None]


def _restrict_manifest(
    manifest: SourceManifest,
    kept_paths: set[str],
    overlay: Mapping[str, NodeAnnotations],
) -> SourceManifest:
    canvases = tuple(
        canvas
        for canvas in manifest.canvases
        if canvas.file_path is None or canvas.file_path in kept_paths
    )
    updates: dict[str, object] = {}
    if canvases != manifest.canvases:
        updates["canvases"] = canvases
        updates["is_partial"] = True
    if manifest.source_path is not None:
        entry = overlay.get(manifest.source_path)
        if entry is not None and entry.label:
            updates["label"] = entry.label
    return manifest.model_copy(update=updates) if updates else manifest


def commit_session(
    tree: FileTreeNode,
    overlay: Mapping[str, NodeAnnotations],
    manifests: SourceManifests,
    layout: ArchiveLayout,
    *,
    options: StagingOptions | None = None,
    warnings: list[str] | None = None,
) -> CommitResult:
    """Produce the canonical tree, manifests, layout, and file plan.

    Args:
        tree: Snapshot taken when the session started.
        overlay: User edits keyed by tree path.
        manifests: Source manifests as edited during staging.
        layout: Archive layout as edited during staging.
        options: Staging options (start-marker policy).
        warnings: Warnings accumulated during staging, carried into the result.

    Returns:
        CommitResult: The folded result.

    Raises:
        LayoutIntegrityError: If the layout references manifests that do not exist.
        StartMarkerConflictError: If the strict start-marker policy is violated.
    """
    options = options or StagingOptions()
    collected = list(warnings or [])

    dangling = dangling_manifest_ids(layout, manifests)
    if dangling:
        raise LayoutIntegrityError(dangling)

    committed_tree = apply_annotations_to_tree(
        tree, overlay, start_policy=options.start_marker_policy
    )
    file_plan = build_file_plan(committed_tree)
    kept_paths = {handle.path for handle in file_plan}

    by_id: dict[str, SourceManifest] = {}
    all_ids: list[str] = []
    for manifest in manifests.ordered():
        restricted = _restrict_manifest(manifest, kept_paths, overlay)
        if not restricted.canvases:
            message = f"Manifest '{manifest.label}' has no remaining canvases and was dropped."
            LOGGER.warning(message)
            collected.append(message)
            continue
        by_id[restricted.id] = restricted
        all_ids.append(restricted.id)
    committed_manifests = SourceManifests(
        by_id=by_id, all_ids=tuple(all_ids), root_label=manifests.root_label
    )

    committed_layout, removed = reconcile_layout(layout, committed_manifests)
    for manifest_id in removed:
        collected.append(f"Layout reference to dropped manifest {manifest_id} was removed.")

    LOGGER.info(
        "Committed %d files into %d manifests.", len(file_plan), len(committed_manifests.all_ids)
    )
    return CommitResult(
        tree=committed_tree,
        manifests=committed_manifests,
        layout=committed_layout,
        file_plan=file_plan,
        warnings=collected,
    )


__all__ = ["CommitResult", "build_file_plan", "commit_session"]
