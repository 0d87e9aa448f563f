"""Data models for file tree snapshots and their annotations."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator

from .behaviors import KNOWN_BEHAVIORS

StructuralIntent = Literal["Collection", "Manifest", "Range", "Canvas"]
ViewingDirection = Literal["left-to-right", "right-to-left", "top-to-bottom", "bottom-to-top"]


def join_path(parent: str, name: str) -> str:
    """Return the tree path of ``name`` inside the directory at ``parent``."""
    return f"{parent}/{name}" if parent else name


def parent_path(path: str) -> str:
    """Return the path of the directory containing ``path`` (``""`` for the root)."""
    return path.rsplit("/", 1)[0] if "/" in path else ""


def name_sort_key(name: str) -> tuple[str, str]:
    """Sort key approximating locale-aware ordering independently of the host locale."""
    return unicodedata.normalize("NFKD", name).casefold(), name


@dataclass(frozen=True, slots=True)
class FileHandle:
    """Picked file: its name, tree path, size, and a binary content accessor."""

    name: str
    path: str
    size: int
    reader: Optional[Callable[[], bytes]] = field(default=None, compare=False, repr=False)

    @property
    def extension(self) -> str:
        """Return the lowercase extension without the leading dot."""
        _, dot, ext = self.name.rpartition(".")
        return ext.lower() if dot else ""

    def read_bytes(self) -> bytes:
        """Return the file contents.

        Raises:
            OSError: If the handle has no content accessor or reading fails.
        """
        if self.reader is None:
            raise OSError(f"No content accessor for {self.path}")
        return self.reader()

    @classmethod
    def from_path(cls, source: Path, relative: str) -> "FileHandle":
        """Create a handle backed by a file on disk."""
        return cls(
            name=source.name,
            path=relative,
            size=source.stat().st_size,
            reader=source.read_bytes,
        )

    @classmethod
    def from_bytes(cls, path: str, data: bytes) -> "FileHandle":
        """Create a handle backed by in-memory content."""
        return cls(
            name=path.rsplit("/", 1)[-1],
            path=path,
            size=len(data),
            reader=lambda: data,
        )


class NodeAnnotations(BaseModel):
    """Sparse per-node overrides stored in the annotation overlay.

    Attributes:
        intent: Structural intent (directories only).
        behaviors: Ordered behavior tags; ``None`` means "inherit".
        viewing_direction: Viewing direction override.
        label: Display label override.
        excluded: Whether the node (and for directories its subtree) is dropped.
        rights: Rights statement URI.
        nav_date: Navigation date in ISO-8601 form.
        start: Whether the file is the start canvas of its directory.
        provider: Provider string.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    intent: Optional[StructuralIntent] = None
    behaviors: Optional[tuple[str, ...]] = None
    viewing_direction: Optional[ViewingDirection] = None
    label: Optional[str] = None
    excluded: bool = False
    rights: Optional[str] = None
    nav_date: Optional[str] = None
    start: bool = False
    provider: Optional[str] = None

    @field_validator("behaviors")
    @classmethod
    def _known_behaviors(cls, value: Optional[tuple[str, ...]]) -> Optional[tuple[str, ...]]:
        if value is None:
            return None
        unknown = [tag for tag in value if tag not in KNOWN_BEHAVIORS]
        if unknown:
            raise ValueError(f"Unknown behavior tags: {', '.join(unknown)}")
        return tuple(dict.fromkeys(value))

    @field_validator("rights")
    @classmethod
    def _rights_uri(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        parsed = urlparse(value)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Rights must be a URI, got {value!r}")
        return value

    @field_validator("nav_date")
    @classmethod
    def _iso_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        candidate = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError(f"navDate must be ISO-8601, got {value!r}") from exc
        return value

    def is_empty(self) -> bool:
        """Return True when no field carries an override."""
        return all(
            getattr(self, name) == getattr(EMPTY_ANNOTATIONS, name)
            for name in type(self).model_fields
        )

    def merged_with(self, override: "NodeAnnotations") -> "NodeAnnotations":
        """Return annotations where every field set on ``override`` wins."""
        updates = {
            name: getattr(override, name)
            for name in type(self).model_fields
            if getattr(override, name) not in (None, False)
        }
        return self.model_copy(update=updates) if updates else self


EMPTY_ANNOTATIONS = NodeAnnotations()


@dataclass(slots=True)
class FileTreeNode:
    """Directory in a file tree snapshot.

    ``directories`` and ``files`` preserve insertion order. The scalar fields
    are defaults that overlay entries override at apply time.
    ``file_annotations`` carries the resolved overlay entries of kept files on
    trees produced by the apply step.
    """

    name: str
    path: str
    directories: dict[str, "FileTreeNode"] = field(default_factory=dict)
    files: dict[str, FileHandle] = field(default_factory=dict)
    intent: Optional[StructuralIntent] = None
    behaviors: Optional[tuple[str, ...]] = None
    viewing_direction: Optional[ViewingDirection] = None
    rights: Optional[str] = None
    nav_date: Optional[str] = None
    label: Optional[str] = None
    provider: Optional[str] = None
    start_file: Optional[str] = None
    file_annotations: dict[str, NodeAnnotations] = field(default_factory=dict)

    def child_path(self, name: str) -> str:
        """Return the tree path of a direct child called ``name``."""
        return join_path(self.path, name)

    def iter_directories(self) -> Iterator["FileTreeNode"]:
        """Yield this directory and every descendant directory, depth first."""
        yield self
        for child in self.directories.values():
            yield from child.iter_directories()

    def iter_files(self) -> Iterator[FileHandle]:
        """Yield every file in this subtree, depth first."""
        for directory in self.iter_directories():
            yield from directory.files.values()

    def count_files(self) -> int:
        """Return the recursive number of files beneath this directory."""
        return len(self.files) + sum(child.count_files() for child in self.directories.values())

    def find(self, path: str) -> "FileTreeNode | FileHandle | None":
        """Resolve a tree path to a directory or file."""
        if path == self.path:
            return self
        node: FileTreeNode = self
        relative = path[len(self.path) + 1 :] if self.path else path
        parts = relative.split("/")
        for part in parts[:-1]:
            child = node.directories.get(part)
            if child is None:
                return None
            node = child
        last = parts[-1]
        if last in node.directories:
            return node.directories[last]
        return node.files.get(last)


__all__ = [
    "StructuralIntent",
    "ViewingDirection",
    "FileHandle",
    "NodeAnnotations",
    "EMPTY_ANNOTATIONS",
    "FileTreeNode",
    "join_path",
    "parent_path",
    "name_sort_key",
]
