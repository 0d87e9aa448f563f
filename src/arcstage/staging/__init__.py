"""Source manifests, archive layout, and filename pattern detection."""

from .analysis import analysis_to_overlay, analyze_for_ingest, override_node_type
from .builder import build_source_manifests
from .errors import LayoutIntegrityError, StagingError, UnknownCollectionError
from .layout import (
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
from .manifests import (
    add_source_manifest,
    merge_source_manifests,
    remove_source_manifest,
    reorder_canvases,
)
from .models import ArchiveLayout, ArchiveNode, SourceCanvas, SourceManifest, SourceManifests
from .patterns import compile_pattern, extract_metadata
from .similarity import find_similar_filenames, find_similar_files

__all__ = [
    "ArchiveLayout",
    "ArchiveNode",
    "LayoutIntegrityError",
    "SourceCanvas",
    "SourceManifest",
    "SourceManifests",
    "StagingError",
    "UnknownCollectionError",
    "add_source_manifest",
    "add_to_collection",
    "analysis_to_overlay",
    "analyze_for_ingest",
    "build_source_manifests",
    "compile_pattern",
    "create_collection",
    "create_initial_layout",
    "delete_collection",
    "extract_metadata",
    "find_similar_filenames",
    "find_similar_files",
    "merge_collections",
    "merge_source_manifests",
    "move_collection",
    "override_node_type",
    "reconcile_layout",
    "remove_from_collection",
    "remove_source_manifest",
    "rename_collection",
    "reorder_canvases",
]
