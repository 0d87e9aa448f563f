"""Derive provisional source manifests from a file tree snapshot."""

from __future__ import annotations

import logging
import uuid

from arcstage.config.models import StagingOptions
from arcstage.tree.models import FileTreeNode

from .media import is_canvas_media
from .models import SourceCanvas, SourceManifest, SourceManifests
from .patterns import detect_and_order_sequence, natural_sort_key

LOGGER = logging.getLogger(__name__)

_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "arcstage:staging")

ROOT_MANIFEST_LABEL = "Root Files"


def manifest_id_for(directory_path: str) -> str:
    """Return the stable manifest id for the directory at ``directory_path``."""
    return f"manifest-{uuid.uuid5(_ID_NAMESPACE, 'manifest:' + directory_path)}"


def canvas_id_for(file_path: str) -> str:
    """Return the stable canvas id for the file at ``file_path``."""
    return f"canvas-{uuid.uuid5(_ID_NAMESPACE, 'canvas:' + file_path)}"


def build_source_manifests(
    tree: FileTreeNode,
    options: StagingOptions | None = None,
) -> SourceManifests:
    """Create one manifest per directory that directly holds canvas media.

    Directories are visited depth first with subdirectories in natural order.
    Each manifest is labeled with its ancestor names joined by ``" / "``
    (``"Root Files"`` for the root) and its canvases follow the detected
    filename sequence, falling back to natural order.

    Args:
        tree: Snapshot to derive manifests from.
        options: Staging options; defaults are used when omitted.

    Returns:
        SourceManifests: Manifests in traversal order.
    """
    options = options or StagingOptions()
    by_id: dict[str, SourceManifest] = {}
    all_ids: list[str] = []

    def visit(node: FileTreeNode, breadcrumbs: tuple[str, ...]) -> None:
        names = [
            name
            for name in node.files
            if not options.media_only_manifests or is_canvas_media(name)
        ]
        if names:
            detection = detect_and_order_sequence(names, match_ratio=options.sequence_match_ratio)
            canvases = tuple(
                SourceCanvas(
                    id=canvas_id_for(node.child_path(name)),
                    label=name,
                    file_path=node.child_path(name),
                    blob_ref=node.child_path(name),
                )
                for name in detection.ordered
            )
            manifest = SourceManifest(
                id=manifest_id_for(node.path),
                label=" / ".join(breadcrumbs) if breadcrumbs else ROOT_MANIFEST_LABEL,
                canvases=canvases,
                breadcrumbs=breadcrumbs,
                source_path=node.path,
                detected_pattern=detection.pattern_name,
            )
            by_id[manifest.id] = manifest
            all_ids.append(manifest.id)

        for name in sorted(node.directories, key=natural_sort_key):
            visit(node.directories[name], breadcrumbs + (name,))

    visit(tree, ())
    LOGGER.info("Built %d source manifests from %s.", len(all_ids), tree.name)
    return SourceManifests(by_id=by_id, all_ids=tuple(all_ids), root_label=tree.name)


__all__ = [
    "build_source_manifests",
    "manifest_id_for",
    "canvas_id_for",
    "ROOT_MANIFEST_LABEL",
]
