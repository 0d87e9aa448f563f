"""Pydantic models for source manifests and the archive layout."""

from __future__ import annotations

from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StagingModel(BaseModel):
    """Shared configuration for immutable staging records."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class SourceCanvas(StagingModel):
    """Provisional canvas derived from one file.

    Attributes:
        id: Stable canvas identifier.
        label: Display label.
        file_path: Tree path of the file backing the canvas.
        thumbnail: Reference to a generated thumbnail.
        blob_ref: Reference to the file content.
        width: Pixel width when known.
        height: Pixel height when known.
    """

    id: str
    label: str
    file_path: Optional[str] = None
    thumbnail: Optional[str] = None
    blob_ref: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class SourceManifest(StagingModel):
    """Provisional item grouping canvases in display order.

    Attributes:
        id: Stable manifest identifier.
        label: Display label.
        canvases: Canvases in display order.
        breadcrumbs: Ancestor directory names.
        source_path: Tree path of the directory the manifest was built from.
        is_partial: Whether the manifest holds only part of its source directory.
        detected_pattern: Name of the filename sequence pattern used for ordering.
    """

    id: str
    label: str
    canvases: tuple[SourceCanvas, ...] = ()
    breadcrumbs: tuple[str, ...] = ()
    source_path: Optional[str] = None
    is_partial: bool = False
    detected_pattern: Optional[str] = None

    @property
    def canvas_ids(self) -> list[str]:
        return [canvas.id for canvas in self.canvases]


class SourceManifests(StagingModel):
    """Collection of source manifests; ``all_ids`` is authoritative for ordering."""

    by_id: dict[str, SourceManifest] = Field(default_factory=dict)
    all_ids: tuple[str, ...] = ()
    root_label: Optional[str] = None

    @model_validator(mode="after")
    def _keys_match_order(self) -> "SourceManifests":
        if len(set(self.all_ids)) != len(self.all_ids):
            raise ValueError("all_ids contains duplicates")
        if set(self.by_id) != set(self.all_ids):
            raise ValueError("by_id keys and all_ids must contain the same manifest ids")
        for key, manifest in self.by_id.items():
            if manifest.id != key:
                raise ValueError(f"Manifest stored under {key!r} has id {manifest.id!r}")
        return self

    def ordered(self) -> list[SourceManifest]:
        """Return manifests in ``all_ids`` order."""
        return [self.by_id[manifest_id] for manifest_id in self.all_ids]

    def get(self, manifest_id: str) -> Optional[SourceManifest]:
        return self.by_id.get(manifest_id)


class ArchiveNode(StagingModel):
    """Container in the archive layout.

    Attributes:
        id: Stable container identifier.
        name: Display name; renames never change ``id``.
        children: Sub-containers in display order.
        manifest_ids: Assigned manifest references in display order.
    """

    id: str
    name: str
    children: tuple["ArchiveNode", ...] = ()
    manifest_ids: tuple[str, ...] = ()

    def walk(self) -> Iterator["ArchiveNode"]:
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


class ArchiveLayout(StagingModel):
    """User-editable container tree plus the pool of unassigned manifest ids."""

    root: ArchiveNode
    unassigned: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _single_membership(self) -> "ArchiveLayout":
        seen: set[str] = set()
        collection_ids: set[str] = set()
        for node in self.root.walk():
            if node.id in collection_ids:
                raise ValueError(f"Duplicate collection id {node.id!r}")
            collection_ids.add(node.id)
            for manifest_id in node.manifest_ids:
                if manifest_id in seen:
                    raise ValueError(f"Manifest {manifest_id!r} is assigned more than once")
                seen.add(manifest_id)
        for manifest_id in self.unassigned:
            if manifest_id in seen:
                raise ValueError(f"Manifest {manifest_id!r} is both assigned and unassigned")
            seen.add(manifest_id)
        return self

    def referenced_manifest_ids(self) -> list[str]:
        """Return every manifest id referenced by a container, in traversal order."""
        return [manifest_id for node in self.root.walk() for manifest_id in node.manifest_ids]


__all__ = [
    "StagingModel",
    "SourceCanvas",
    "SourceManifest",
    "SourceManifests",
    "ArchiveNode",
    "ArchiveLayout",
]
