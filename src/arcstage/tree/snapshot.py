"""Build file tree snapshots from picked file handles or a directory on disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from .errors import EmptyFileSetError, TreeError
from .models import FileHandle, FileTreeNode

LOGGER = logging.getLogger(__name__)

DEFAULT_ROOT_NAME = "root"


def normalize_tree_path(path: str) -> str:
    """Return ``path`` with forward slashes and no leading, trailing, or empty segments."""
    return "/".join(part for part in path.replace("\\", "/").split("/") if part and part != ".")


def build_tree(handles: Iterable[FileHandle], *, root_name: str = DEFAULT_ROOT_NAME) -> FileTreeNode:
    """Build a snapshot from file handles whose paths are relative to a common root.

    Handles are placed in sorted path order so the snapshot does not depend on
    the order in which the picker enumerated the files.

    Args:
        handles: File handles to arrange into a tree.
        root_name: Name given to the root directory.

    Returns:
        FileTreeNode: The root directory of the snapshot.

    Raises:
        EmptyFileSetError: If no handles were supplied.
    """
    normalized: dict[str, FileHandle] = {}
    for handle in handles:
        path = normalize_tree_path(handle.path or handle.name)
        if not path:
            continue
        if path in normalized:
            LOGGER.warning("Duplicate file path %s ignored.", path)
            continue
        if path != handle.path:
            handle = FileHandle(
                name=path.rsplit("/", 1)[-1],
                path=path,
                size=handle.size,
                reader=handle.reader,
            )
        normalized[path] = handle

    if not normalized:
        raise EmptyFileSetError("No files were selected for staging.")

    root = FileTreeNode(name=root_name, path="")
    for path in sorted(normalized):
        handle = normalized[path]
        node = root
        for part in path.split("/")[:-1]:
            child = node.directories.get(part)
            if child is None:
                if part in node.files:
                    raise TreeError(f"Path {path} collides with file {node.child_path(part)}")
                child = FileTreeNode(name=part, path=node.child_path(part))
                node.directories[part] = child
            node = child
        if handle.name in node.directories:
            raise TreeError(f"File {path} collides with a directory of the same name")
        node.files[handle.name] = handle

    LOGGER.debug(
        "Built tree %s with %d files in %d directories.",
        root_name,
        len(normalized),
        sum(1 for _ in root.iter_directories()),
    )
    return root


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


class DirectoryScanner:
    """Discover files within a directory tree subject to visibility filters."""

    def __init__(
        self,
        *,
        include_hidden: bool = False,
        follow_symlinks: bool = False,
        always_include: Iterable[str] = (),
    ) -> None:
        self.include_hidden = include_hidden
        self.follow_symlinks = follow_symlinks
        self.always_include = frozenset(always_include)

    def iter_handles(self, root: Path) -> Iterator[FileHandle]:
        """Yield a handle for every file under ``root`` respecting configured filters."""
        root = root.expanduser().resolve()
        if not root.exists():
            return

        for path in sorted(root.rglob("*")):
            if path.is_symlink() and not self.follow_symlinks:
                continue
            if not path.is_file():
                continue
            relative = path.relative_to(root)
            if (
                not self.include_hidden
                and path.name not in self.always_include
                and _is_hidden(relative)
            ):
                continue
            try:
                yield FileHandle.from_path(path, relative.as_posix())
            except OSError as exc:
                LOGGER.warning("Skipping unreadable file %s: %s", path, exc)

    def scan(self, root: Path) -> FileTreeNode:
        """Return a snapshot of ``root``.

        Raises:
            EmptyFileSetError: If the directory holds no eligible files.
        """
        resolved = root.expanduser().resolve()
        return build_tree(self.iter_handles(resolved), root_name=resolved.name or str(resolved))


__all__ = ["DirectoryScanner", "build_tree", "normalize_tree_path", "DEFAULT_ROOT_NAME"]
