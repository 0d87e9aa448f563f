"""Annotation overlay store and the pure apply step."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Iterator, Literal

import yaml
from pydantic import ValidationError

from .behaviors import normalize_behaviors
from .errors import StartMarkerConflictError, TreeError
from .models import (
    EMPTY_ANNOTATIONS,
    FileTreeNode,
    NodeAnnotations,
    name_sort_key,
    parent_path,
)

LOGGER = logging.getLogger(__name__)

StartMarkerPolicy = Literal["last_wins", "reject"]

_YAML_ALIASES = {"navDate": "nav_date", "viewingDirection": "viewing_direction"}


class AnnotationOverlay(Mapping[str, NodeAnnotations]):
    """Sparse, path-keyed store of user edits layered over a tree snapshot.

    The overlay never touches the snapshot. When constructed with a tree it
    validates that paths exist and that directory-only and file-only fields
    land on the right kind of node.

    Every edit bumps :attr:`version`, which callers use to invalidate cached
    projections. Structural conflicts resolved during edits are appended to
    :attr:`warnings` rather than raised.
    """

    def __init__(
        self,
        tree: FileTreeNode | None = None,
        entries: Mapping[str, NodeAnnotations] | None = None,
    ) -> None:
        self._entries: dict[str, NodeAnnotations] = {}
        self._directories: frozenset[str] | None = None
        self._files: frozenset[str] | None = None
        if tree is not None:
            self._directories = frozenset(node.path for node in tree.iter_directories())
            self._files = frozenset(handle.path for handle in tree.iter_files())
        self.version = 0
        self.warnings: list[str] = []
        for path, annotations in (entries or {}).items():
            self.set(path, annotations)

    # Mapping protocol ---------------------------------------------------

    def __getitem__(self, path: str) -> NodeAnnotations:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # Queries ------------------------------------------------------------

    def annotations_for(self, path: str) -> NodeAnnotations:
        """Return the entry for ``path`` or empty annotations."""
        return self._entries.get(path, EMPTY_ANNOTATIONS)

    def is_excluded(self, path: str) -> bool:
        """Return True when ``path`` or any ancestor directory is excluded."""
        current = path
        while True:
            if self.annotations_for(current).excluded:
                return True
            if not current:
                return False
            current = parent_path(current)

    def effective(self, path: str) -> NodeAnnotations:
        """Return the entry for ``path`` with inherited exclusion resolved."""
        annotations = self.annotations_for(path)
        if not annotations.excluded and self.is_excluded(path):
            return annotations.model_copy(update={"excluded": True})
        return annotations

    def snapshot(self) -> dict[str, NodeAnnotations]:
        """Return a detached copy of the current entries."""
        return dict(self._entries)

    # Edits --------------------------------------------------------------

    def set(self, path: str, annotations: NodeAnnotations) -> NodeAnnotations:
        """Replace the entry for ``path``.

        Raises:
            KeyError: If the overlay is bound to a tree that lacks ``path``.
            ValueError: If a directory-only or file-only field targets the wrong node kind.
        """
        self._check_target(path, annotations)
        if annotations.behaviors:
            resolved, conflicts = normalize_behaviors(annotations.behaviors)
            if conflicts:
                self._warn(path, conflicts)
                annotations = annotations.model_copy(update={"behaviors": resolved})
        if annotations.start:
            self._clear_sibling_starts(path)
        if annotations.is_empty():
            self._entries.pop(path, None)
        else:
            self._entries[path] = annotations
        self.version += 1
        return annotations

    def update(self, path: str, **changes: Any) -> NodeAnnotations:
        """Merge field changes into the entry for ``path``.

        Raises:
            ValueError: If a value fails validation.
        """
        current = self.annotations_for(path)
        if "behaviors" in changes and changes["behaviors"] is not None:
            existing = current.behaviors or ()
            requested = tuple(changes["behaviors"])
            changes["behaviors"] = existing + tuple(tag for tag in requested if tag not in existing)
        data = current.model_dump()
        data.update(changes)
        try:
            annotations = NodeAnnotations.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid annotations for {path or '<root>'}: {exc}") from exc
        return self.set(path, annotations)

    def clear(self, path: str) -> None:
        """Drop every override for ``path``."""
        if self._entries.pop(path, None) is not None:
            self.version += 1

    def toggle_behavior(self, path: str, behavior: str) -> NodeAnnotations:
        """Add ``behavior`` to ``path`` or remove it when already present."""
        current = self.annotations_for(path)
        tags = current.behaviors or ()
        if behavior in tags:
            remaining = tuple(tag for tag in tags if tag != behavior)
            return self.set(
                path, current.model_copy(update={"behaviors": remaining or None})
            )
        return self.update(path, behaviors=(behavior,))

    def toggle_excluded(self, path: str) -> NodeAnnotations:
        """Flip the exclusion flag for ``path``."""
        current = self.annotations_for(path)
        return self.set(path, current.model_copy(update={"excluded": not current.excluded}))

    def set_start(self, path: str, start: bool = True) -> NodeAnnotations:
        """Mark ``path`` as the start file of its directory, clearing any previous marker."""
        current = self.annotations_for(path)
        return self.set(path, current.model_copy(update={"start": start}))

    # Serialization ------------------------------------------------------

    def to_yaml(self) -> str:
        """Serialize entries as a YAML mapping of path to overrides."""
        data: dict[str, dict[str, Any]] = {}
        for path, annotations in self._entries.items():
            fields = annotations.model_dump(exclude_defaults=True)
            if "behaviors" in fields:
                fields["behaviors"] = list(fields["behaviors"])
            data[path] = fields
        return yaml.safe_dump(data, sort_keys=True)

    @classmethod
    def from_yaml(cls, text: str, tree: FileTreeNode | None = None) -> "AnnotationOverlay":
        """Load an overlay from the YAML produced by :meth:`to_yaml`.

        Raises:
            TreeError: If the document is not a mapping of paths to mappings.
            ValueError: If an entry fails validation.
        """
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise TreeError(f"Failed to parse annotations: {exc}") from exc
        if not isinstance(raw, dict):
            raise TreeError("Annotations must be a mapping of paths to overrides.")

        overlay = cls(tree)
        for path, fields in raw.items():
            if not isinstance(fields, dict):
                raise TreeError(f"Annotations for {path!r} must be a mapping.")
            normalized = {_YAML_ALIASES.get(key, key): value for key, value in fields.items()}
            overlay.update(str(path).strip("/"), **normalized)
        return overlay

    # Internal helpers ---------------------------------------------------

    def _check_target(self, path: str, annotations: NodeAnnotations) -> None:
        if self._directories is None or self._files is None:
            return
        is_directory = path in self._directories
        if not is_directory and path not in self._files:
            raise KeyError(path)
        if annotations.intent is not None and not is_directory:
            raise ValueError(f"Structural intent applies to directories only: {path}")
        if annotations.start and is_directory:
            raise ValueError(f"Only files can be marked as start: {path or '<root>'}")

    def _clear_sibling_starts(self, path: str) -> None:
        directory = parent_path(path)
        for other, annotations in list(self._entries.items()):
            if other != path and annotations.start and parent_path(other) == directory:
                cleared = annotations.model_copy(update={"start": False})
                if cleared.is_empty():
                    del self._entries[other]
                else:
                    self._entries[other] = cleared
                LOGGER.debug("Start marker moved from %s to %s.", other, path)

    def _warn(self, path: str, messages: list[str]) -> None:
        for message in messages:
            entry = f"{path or '<root>'}: {message}"
            LOGGER.warning(entry)
            self.warnings.append(entry)


def apply_annotations_to_tree(
    tree: FileTreeNode,
    overlay: Mapping[str, NodeAnnotations],
    *,
    start_policy: StartMarkerPolicy = "last_wins",
) -> FileTreeNode:
    """Fold overlay entries into a new tree without mutating either input.

    Excluded files are dropped, excluded directories are dropped with their
    whole subtree, and scalar fields take the overlay value when one is set.
    Several start markers in one directory are resolved by ``start_policy``:
    the last marked file in name order wins, or the conflict is rejected.

    Args:
        tree: Directory to fold annotations into.
        overlay: Path-keyed overrides.
        start_policy: Either ``"last_wins"`` or ``"reject"``.

    Returns:
        FileTreeNode: A new directory with overrides resolved.

    Raises:
        StartMarkerConflictError: If several files are marked as start under
            the ``"reject"`` policy.
    """
    annotations = overlay.get(tree.path) or EMPTY_ANNOTATIONS
    if annotations.excluded:
        # Children are checked before descending, so only the root lands here.
        return FileTreeNode(name=tree.name, path=tree.path)

    files = {}
    file_annotations: dict[str, NodeAnnotations] = {}
    for name, handle in tree.files.items():
        entry = overlay.get(tree.child_path(name))
        if entry is not None and entry.excluded:
            continue
        files[name] = handle
        resolved = tree.file_annotations.get(name, EMPTY_ANNOTATIONS)
        if entry is not None:
            resolved = resolved.merged_with(entry.model_copy(update={"start": False}))
        if not resolved.is_empty():
            file_annotations[name] = resolved

    marked = [
        name
        for name in sorted(files, key=name_sort_key)
        if (entry := overlay.get(tree.child_path(name))) is not None and entry.start
    ]
    if len(marked) > 1:
        if start_policy == "reject":
            raise StartMarkerConflictError(tree.path, marked)
        LOGGER.warning(
            "Multiple start files in %s (%s); using %s.",
            tree.path or "<root>",
            ", ".join(marked),
            marked[-1],
        )
    if marked:
        start_file = marked[-1]
    elif tree.start_file in files:
        start_file = tree.start_file
    else:
        start_file = None

    directories = {}
    for name, child in tree.directories.items():
        entry = overlay.get(child.path)
        if entry is not None and entry.excluded:
            continue
        directories[name] = apply_annotations_to_tree(child, overlay, start_policy=start_policy)

    def pick(field_name: str) -> Any:
        value = getattr(annotations, field_name)
        return value if value is not None else getattr(tree, field_name)

    return FileTreeNode(
        name=tree.name,
        path=tree.path,
        directories=directories,
        files=files,
        intent=pick("intent"),
        behaviors=pick("behaviors"),
        viewing_direction=pick("viewing_direction"),
        rights=pick("rights"),
        nav_date=pick("nav_date"),
        label=pick("label"),
        provider=pick("provider"),
        start_file=start_file,
        file_annotations=file_annotations,
    )


__all__ = ["AnnotationOverlay", "StartMarkerPolicy", "apply_annotations_to_tree"]
