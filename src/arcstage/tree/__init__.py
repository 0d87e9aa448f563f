"""File tree snapshots, annotation overlays, and flattening."""

from .errors import EmptyFileSetError, StartMarkerConflictError, TreeError
from .flatten import (
    FileCountCache,
    FlatFileTreeNode,
    all_directory_paths,
    filter_flat_nodes,
    flatten_file_tree,
)
from .models import FileHandle, FileTreeNode, NodeAnnotations
from .overlay import AnnotationOverlay, apply_annotations_to_tree
from .snapshot import DirectoryScanner, build_tree

__all__ = [
    "AnnotationOverlay",
    "DirectoryScanner",
    "EmptyFileSetError",
    "FileCountCache",
    "FileHandle",
    "FileTreeNode",
    "FlatFileTreeNode",
    "NodeAnnotations",
    "StartMarkerConflictError",
    "TreeError",
    "all_directory_paths",
    "apply_annotations_to_tree",
    "build_tree",
    "filter_flat_nodes",
    "flatten_file_tree",
]
