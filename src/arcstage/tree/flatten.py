"""Projection of a tree snapshot into an ordered, lazily expanded list."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Hashable, Optional, Sequence

from .models import EMPTY_ANNOTATIONS, FileHandle, FileTreeNode, NodeAnnotations, name_sort_key


@dataclass(frozen=True, slots=True)
class FlatFileTreeNode:
    """Row of the flattened tree.

    Attributes:
        path: Tree path of the node.
        name: Display name.
        depth: Nesting level relative to the flattened directory.
        is_directory: Whether the row is a directory.
        file: File payload for file rows.
        size: File size in bytes (0 for directories).
        child_count: Direct subdirectories plus files (0 for files).
        total_file_count: Recursive file count (0 for files).
        is_expanded: Whether the directory's children follow in the list.
        annotations: Overlay entry resolved for the row.
    """

    path: str
    name: str
    depth: int
    is_directory: bool
    file: Optional[FileHandle] = None
    size: int = 0
    child_count: int = 0
    total_file_count: int = 0
    is_expanded: bool = False
    annotations: NodeAnnotations = EMPTY_ANNOTATIONS


class FileCountCache:
    """Memoize recursive file counts per directory path for one tree version."""

    def __init__(self, version: Hashable = 0) -> None:
        self._version = version
        self._counts: dict[str, int] = {}

    @property
    def version(self) -> Hashable:
        return self._version

    def invalidate(self, version: Hashable) -> None:
        """Discard cached counts when the tree version changes."""
        if version != self._version:
            self._version = version
            self._counts.clear()

    def total_file_count(self, node: FileTreeNode) -> int:
        cached = self._counts.get(node.path)
        if cached is None:
            cached = len(node.files) + sum(
                self.total_file_count(child) for child in node.directories.values()
            )
            self._counts[node.path] = cached
        return cached

    def __len__(self) -> int:
        return len(self._counts)


def flatten_file_tree(
    tree: FileTreeNode,
    expanded_paths: Collection[str] = frozenset(),
    overlay: Mapping[str, NodeAnnotations] | None = None,
    depth: int = 0,
    *,
    counts: FileCountCache | None = None,
) -> list[FlatFileTreeNode]:
    """Flatten the children of ``tree`` into display rows.

    Within a directory, subdirectories precede files and both are sorted by
    name. A directory's children are emitted only when its path is in
    ``expanded_paths``.

    Args:
        tree: Directory whose children are flattened.
        expanded_paths: Paths of expanded directories.
        overlay: Annotations attached to each row.
        depth: Depth assigned to the direct children of ``tree``.
        counts: Optional cache for recursive file counts.

    Returns:
        list[FlatFileTreeNode]: Rows in display order.
    """
    overlay = overlay or {}
    cache = counts if counts is not None else FileCountCache()
    rows: list[FlatFileTreeNode] = []

    for name in sorted(tree.directories, key=name_sort_key):
        child = tree.directories[name]
        expanded = child.path in expanded_paths
        rows.append(
            FlatFileTreeNode(
                path=child.path,
                name=name,
                depth=depth,
                is_directory=True,
                child_count=len(child.directories) + len(child.files),
                total_file_count=cache.total_file_count(child),
                is_expanded=expanded,
                annotations=overlay.get(child.path, EMPTY_ANNOTATIONS),
            )
        )
        if expanded:
            rows.extend(flatten_file_tree(child, expanded_paths, overlay, depth + 1, counts=cache))

    for name in sorted(tree.files, key=name_sort_key):
        path = tree.child_path(name)
        rows.append(
            FlatFileTreeNode(
                path=path,
                name=name,
                depth=depth,
                is_directory=False,
                file=tree.files[name],
                size=tree.files[name].size,
                annotations=overlay.get(path, EMPTY_ANNOTATIONS),
            )
        )
    return rows


def all_directory_paths(tree: FileTreeNode) -> frozenset[str]:
    """Return every directory path below ``tree`` (the "expand all" state)."""
    return frozenset(node.path for node in tree.iter_directories() if node is not tree)


def filter_flat_nodes(nodes: Sequence[FlatFileTreeNode], query: str) -> list[FlatFileTreeNode]:
    """Keep rows whose name contains ``query`` (case-insensitive) and their ancestors."""
    needle = query.strip().casefold()
    if not needle:
        return list(nodes)

    keep: set[str] = set()
    for node in nodes:
        if needle in node.name.casefold():
            keep.add(node.path)
            parts = node.path.split("/")
            keep.update("/".join(parts[:index]) for index in range(1, len(parts)))
    return [node for node in nodes if node.path in keep]


__all__ = [
    "FlatFileTreeNode",
    "FileCountCache",
    "flatten_file_tree",
    "all_directory_paths",
    "filter_flat_nodes",
]
