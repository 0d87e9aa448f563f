"""Scan pass proposing a container/item structure for a file tree.

Every folder receives a proposed type (``Collection``, ``Manifest`` or
``Excluded``) with the detection rule that produced it. Users review the
proposal, override individual folders, and convert the result into overlay
entries before staging continues.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from arcstage.tree.models import FileTreeNode
from arcstage.tree.overlay import AnnotationOverlay

from .layout import DEFAULT_ROOT_NAME
from .media import is_canvas_media, is_media_of
from .patterns import detect_and_order_sequence

LOGGER = logging.getLogger(__name__)

ProposedType = Literal["Collection", "Manifest", "Excluded"]

EXCLUDE_MARKERS = (".iiif-exclude", ".noiiif")
MANIFEST_MARKERS = (".iiif-manifest", "manifest.json", "manifest.yml")
COLLECTION_MARKERS = (".iiif-collection", "collection.json", "collection.yml")
METADATA_FILES = ("info.yml", "info.yaml", "metadata.yml", "metadata.yaml", "metadata.json")
CONFIG_FILES = (".iiif-ingest.json", ".iiif-ingest.yml", "iiif-config.json")
MARKER_FILES = EXCLUDE_MARKERS + MANIFEST_MARKERS + COLLECTION_MARKERS + CONFIG_FILES
SKIPPED_PREFIXES = (".", "+", "!")
_TEXT_SUFFIXES = (".txt", ".srt", ".vtt")


class DetectionReason(BaseModel):
    """Rule that contributed to a folder's proposed type."""

    model_config = ConfigDict(frozen=True)

    rule: str
    confidence: float
    details: str


class FolderStats(BaseModel):
    """Statistics gathered for one folder."""

    model_config = ConfigDict(frozen=True)

    image_count: int = 0
    video_count: int = 0
    audio_count: int = 0
    text_count: int = 0
    subdir_count: int = 0
    total_size: int = 0
    is_leaf: bool = False
    has_sequence_pattern: bool = False
    sequence_pattern: Optional[str] = None
    depth: int = 0

    @property
    def media_count(self) -> int:
        return self.image_count + self.video_count + self.audio_count


class IngestPreviewNode(BaseModel):
    """Proposed type for one folder and its analyzed subfolders."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    proposed_type: ProposedType
    detection_reasons: tuple[DetectionReason, ...] = ()
    confidence: float = 0.0
    user_override: bool = False
    stats: FolderStats = Field(default_factory=FolderStats)
    children: tuple["IngestPreviewNode", ...] = ()
    label: str = ""
    metadata_label: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    skipped_children: tuple[str, ...] = ()

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


class AnalysisSummary(BaseModel):
    """Totals across the analyzed tree."""

    total_folders: int = 0
    proposed_manifests: int = 0
    proposed_collections: int = 0
    total_images: int = 0
    total_videos: int = 0
    total_audios: int = 0
    has_marker_files: bool = False
    max_depth: int = 0


class IngestAnalysisResult(BaseModel):
    """Preview tree, summary, and any ingest configuration found at the root."""

    root: IngestPreviewNode
    summary: AnalysisSummary
    config: Optional[dict[str, Any]] = None


def _compute_stats(node: FileTreeNode, depth: int) -> FolderStats:
    names = list(node.files)
    media = [name for name in names if is_canvas_media(name) and not name.startswith(".")]
    detection = detect_and_order_sequence(media) if len(media) >= 2 else None
    return FolderStats(
        image_count=sum(1 for name in names if is_media_of(name, "Image")),
        video_count=sum(1 for name in names if is_media_of(name, "Video")),
        audio_count=sum(1 for name in names if is_media_of(name, "Sound")),
        text_count=sum(1 for name in names if name.lower().endswith(_TEXT_SUFFIXES)),
        subdir_count=len(node.directories),
        total_size=sum(handle.size for handle in node.files.values()),
        is_leaf=not node.directories and bool(media),
        has_sequence_pattern=bool(detection and detection.pattern),
        sequence_pattern=detection.pattern_name if detection else None,
        depth=depth,
    )


def _detect_type(node: FileTreeNode, stats: FolderStats) -> tuple[ProposedType, DetectionReason]:
    names = set(node.files)
    if names.intersection(EXCLUDE_MARKERS):
        return "Excluded", DetectionReason(
            rule="exclude-marker", confidence=1.0, details="Folder has an exclude marker"
        )
    if names.intersection(MANIFEST_MARKERS):
        return "Manifest", DetectionReason(
            rule="manifest-marker", confidence=1.0, details="Folder has a manifest marker file"
        )
    if names.intersection(COLLECTION_MARKERS):
        return "Collection", DetectionReason(
            rule="collection-marker", confidence=1.0, details="Folder has a collection marker file"
        )
    if stats.is_leaf:
        return "Manifest", DetectionReason(
            rule="leaf-detection",
            confidence=0.9,
            details=f"Leaf folder with {stats.media_count} media files",
        )
    if stats.has_sequence_pattern and stats.image_count >= 2:
        reason = DetectionReason(
            rule="sequence-pattern",
            confidence=0.85,
            details=f"Detected sequence pattern: {stats.sequence_pattern}",
        )
        return ("Collection" if stats.subdir_count else "Manifest"), reason
    if stats.subdir_count:
        return "Collection", DetectionReason(
            rule="has-subdirs",
            confidence=0.8,
            details=f"Contains {stats.subdir_count} subdirectories",
        )
    if not node.path or node.name.startswith("_"):
        return "Collection", DetectionReason(
            rule="naming-convention",
            confidence=0.7,
            details="Root folder or underscore prefix indicates a collection",
        )
    if stats.media_count:
        return "Manifest", DetectionReason(
            rule="has-media",
            confidence=0.6,
            details="Contains media files without a clear collection structure",
        )
    return "Collection", DetectionReason(
        rule="default", confidence=0.3, details="No clear indicators, defaulting to Collection"
    )


def _load_document(node: FileTreeNode, name: str) -> Optional[dict[str, Any]]:
    handle = node.files[name]
    try:
        text = handle.read_bytes().decode("utf-8")
        data = json.loads(text) if name.endswith(".json") else yaml.safe_load(text)
    except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as exc:
        LOGGER.warning("Failed to parse %s: %s", node.child_path(name), exc)
        return None
    if not isinstance(data, dict):
        LOGGER.warning("Ignoring %s: expected a mapping.", node.child_path(name))
        return None
    return data


def _read_metadata(node: FileTreeNode) -> tuple[Optional[str], Optional[dict[str, Any]]]:
    for name in METADATA_FILES:
        if name not in node.files:
            continue
        data = _load_document(node, name)
        if data is None:
            continue
        label = data.get("label") or data.get("title") or data.get("name")
        return (str(label) if label else None), data
    return None, None


def _analyze(node: FileTreeNode, depth: int) -> IngestPreviewNode:
    stats = _compute_stats(node, depth)
    proposed, reason = _detect_type(node, stats)
    label, metadata = _read_metadata(node)

    display = node.name
    if not node.path:
        display = node.name or DEFAULT_ROOT_NAME
    elif display.startswith("_"):
        display = display[1:]

    children = []
    skipped = []
    for name, child in node.directories.items():
        if name.startswith(SKIPPED_PREFIXES):
            skipped.append(child.path)
            continue
        children.append(_analyze(child, depth + 1))

    return IngestPreviewNode(
        path=node.path,
        name=node.name,
        proposed_type=proposed,
        detection_reasons=(reason,),
        confidence=reason.confidence,
        stats=stats,
        children=tuple(children),
        label=label or display,
        metadata_label=label,
        metadata=metadata,
        skipped_children=tuple(skipped),
    )


def summarize(root: IngestPreviewNode) -> AnalysisSummary:
    """Compute summary totals for a preview tree."""
    summary = AnalysisSummary()
    values = summary.model_dump()
    for node in root.walk():
        values["total_folders"] += 1
        if node.proposed_type == "Manifest":
            values["proposed_manifests"] += 1
        elif node.proposed_type == "Collection":
            values["proposed_collections"] += 1
        values["total_images"] += node.stats.image_count
        values["total_videos"] += node.stats.video_count
        values["total_audios"] += node.stats.audio_count
        if any("marker" in reason.rule for reason in node.detection_reasons):
            values["has_marker_files"] = True
        values["max_depth"] = max(values["max_depth"], node.stats.depth)
    return AnalysisSummary(**values)


def analyze_for_ingest(tree: FileTreeNode) -> IngestAnalysisResult:
    """Propose a type for every folder of ``tree`` without changing anything.

    Args:
        tree: Snapshot to analyze.

    Returns:
        IngestAnalysisResult: Preview tree, summary totals, and the ingest
        configuration document found at the root, if any.
    """
    root = _analyze(tree, 0)
    config = None
    for name in CONFIG_FILES:
        if name in tree.files:
            config = _load_document(tree, name)
            if config is not None:
                break
    result = IngestAnalysisResult(root=root, summary=summarize(root), config=config)
    LOGGER.info(
        "Analyzed %d folders: %d manifests, %d collections proposed.",
        result.summary.total_folders,
        result.summary.proposed_manifests,
        result.summary.proposed_collections,
    )
    return result


def override_node_type(
    root: IngestPreviewNode, path: str, proposed_type: ProposedType
) -> IngestPreviewNode:
    """Return a copy of ``root`` where the folder at ``path`` takes ``proposed_type``.

    Raises:
        KeyError: If no analyzed folder has ``path``.
    """
    found = False

    def rebuild(node: IngestPreviewNode) -> IngestPreviewNode:
        nonlocal found
        if node.path == path:
            found = True
            return node.model_copy(
                update={
                    "proposed_type": proposed_type,
                    "user_override": True,
                    "confidence": 1.0,
                    "detection_reasons": (
                        DetectionReason(
                            rule="user-override",
                            confidence=1.0,
                            details=f"User set type to {proposed_type}",
                        ),
                    ),
                }
            )
        children = tuple(rebuild(child) for child in node.children)
        return node.model_copy(update={"children": children}) if children != node.children else node

    updated = rebuild(root)
    if not found:
        raise KeyError(path)
    return updated


def analysis_to_overlay(
    preview: IngestPreviewNode, overlay: AnnotationOverlay | None = None
) -> AnnotationOverlay:
    """Record the preview's decisions as overlay entries.

    Excluded and skipped folders are marked excluded, other folders receive
    their proposed structural intent, and labels read from metadata files
    become label overrides.
    """
    overlay = overlay if overlay is not None else AnnotationOverlay()
    for node in preview.walk():
        if node.proposed_type == "Excluded":
            overlay.update(node.path, excluded=True)
            continue
        changes: dict[str, Any] = {"intent": node.proposed_type}
        if node.metadata_label:
            changes["label"] = node.metadata_label
        overlay.update(node.path, **changes)
        for skipped in node.skipped_children:
            overlay.update(skipped, excluded=True)
    return overlay


__all__ = [
    "ProposedType",
    "DetectionReason",
    "FolderStats",
    "IngestPreviewNode",
    "AnalysisSummary",
    "IngestAnalysisResult",
    "MARKER_FILES",
    "analyze_for_ingest",
    "override_node_type",
    "analysis_to_overlay",
    "summarize",
]
