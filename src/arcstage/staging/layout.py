"""Pure operations over the archive layout.

Every function returns a new :class:`ArchiveLayout`; inputs are never
modified. A manifest id lives in at most one container or in the unassigned
pool, so ids detached from a container always return to the pool.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Iterable, Optional, Sequence

from .errors import LayoutIntegrityError, StagingError, UnknownCollectionError
from .models import ArchiveLayout, ArchiveNode, SourceManifests

LOGGER = logging.getLogger(__name__)

DEFAULT_ROOT_NAME = "My Archive"
ROOT_COLLECTION_ID = "root"


def _new_id() -> str:
    return f"collection-{uuid.uuid4().hex}"


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def _map_nodes(node: ArchiveNode, fn: Callable[[ArchiveNode], Optional[ArchiveNode]]) -> Optional[ArchiveNode]:
    """Rebuild ``node`` bottom-up; ``fn`` may replace or drop (return None) each node."""
    children = tuple(
        mapped
        for child in node.children
        if (mapped := _map_nodes(child, fn)) is not None
    )
    if children != node.children:
        node = node.model_copy(update={"children": children})
    return fn(node)


def _map_root(
    layout: ArchiveLayout, fn: Callable[[ArchiveNode], Optional[ArchiveNode]]
) -> ArchiveNode:
    root = _map_nodes(layout.root, fn)
    if root is None:
        raise StagingError("The root collection cannot be removed.")
    return root


def _replace_root(layout: ArchiveLayout, root: ArchiveNode, unassigned: Sequence[str]) -> ArchiveLayout:
    return ArchiveLayout(root=root, unassigned=_unique(unassigned))


def create_initial_layout(manifests: SourceManifests, name: Optional[str] = None) -> ArchiveLayout:
    """Return a layout with an empty root container and every manifest unassigned."""
    root = ArchiveNode(id=ROOT_COLLECTION_ID, name=name or manifests.root_label or DEFAULT_ROOT_NAME)
    return ArchiveLayout(root=root, unassigned=manifests.all_ids)


def get_all_collections(layout: ArchiveLayout) -> list[ArchiveNode]:
    """Return every container, root first, depth first."""
    return list(layout.root.walk())


def find_collection(layout: ArchiveLayout, collection_id: str) -> Optional[ArchiveNode]:
    return next((node for node in layout.root.walk() if node.id == collection_id), None)


def _require(layout: ArchiveLayout, collection_id: str) -> ArchiveNode:
    node = find_collection(layout, collection_id)
    if node is None:
        raise UnknownCollectionError(collection_id)
    return node


def unassigned_manifest_ids(layout: ArchiveLayout) -> tuple[str, ...]:
    return layout.unassigned


def collection_of(layout: ArchiveLayout, manifest_id: str) -> Optional[ArchiveNode]:
    """Return the container holding ``manifest_id``, if any."""
    return next((node for node in layout.root.walk() if manifest_id in node.manifest_ids), None)


def create_collection(
    layout: ArchiveLayout,
    name: str,
    parent_id: Optional[str] = None,
    *,
    collection_id: Optional[str] = None,
) -> tuple[ArchiveLayout, str]:
    """Add an empty container under ``parent_id`` (the root by default).

    Returns:
        tuple[ArchiveLayout, str]: The new layout and the new container id.

    Raises:
        UnknownCollectionError: If ``parent_id`` does not exist.
        StagingError: If ``collection_id`` is already used.
    """
    parent_id = parent_id or layout.root.id
    _require(layout, parent_id)
    new_id = collection_id or _new_id()
    if find_collection(layout, new_id) is not None:
        raise StagingError(f"Collection id already in use: {new_id}")
    created = ArchiveNode(id=new_id, name=name)

    def attach(node: ArchiveNode) -> ArchiveNode:
        if node.id == parent_id:
            return node.model_copy(update={"children": node.children + (created,)})
        return node

    root = _map_root(layout, attach)
    return _replace_root(layout, root, layout.unassigned), new_id


def rename_collection(layout: ArchiveLayout, collection_id: str, name: str) -> ArchiveLayout:
    """Change a container's display name; its id is unchanged."""
    _require(layout, collection_id)

    def rename(node: ArchiveNode) -> ArchiveNode:
        return node.model_copy(update={"name": name}) if node.id == collection_id else node

    root = _map_root(layout, rename)
    return _replace_root(layout, root, layout.unassigned)


def delete_collection(layout: ArchiveLayout, collection_id: str) -> ArchiveLayout:
    """Remove a container and its sub-containers.

    Manifest references held anywhere in the removed subtree return to the
    unassigned pool.

    Raises:
        StagingError: If ``collection_id`` is the root.
        UnknownCollectionError: If ``collection_id`` does not exist.
    """
    if collection_id == layout.root.id:
        raise StagingError("The root collection cannot be deleted.")
    doomed = _require(layout, collection_id)
    freed = [manifest_id for node in doomed.walk() for manifest_id in node.manifest_ids]

    root = _map_root(layout, lambda node: None if node.id == collection_id else node)
    return _replace_root(layout, root, layout.unassigned + tuple(freed))


def add_to_collection(
    layout: ArchiveLayout,
    collection_id: str,
    manifest_ids: Sequence[str],
    *,
    manifests: Optional[SourceManifests] = None,
) -> ArchiveLayout:
    """Assign manifests to a container, moving them from wherever they were.

    Ids already in the container keep their position.

    Raises:
        UnknownCollectionError: If ``collection_id`` does not exist.
        LayoutIntegrityError: If ``manifests`` is given and an id is not in it.
    """
    _require(layout, collection_id)
    requested = _unique(manifest_ids)
    if manifests is not None:
        unknown = [manifest_id for manifest_id in requested if manifest_id not in manifests.by_id]
        if unknown:
            raise LayoutIntegrityError(unknown)
    moving = set(requested)

    def assign(node: ArchiveNode) -> ArchiveNode:
        if node.id == collection_id:
            additions = tuple(mid for mid in requested if mid not in node.manifest_ids)
            if not additions:
                return node
            return node.model_copy(update={"manifest_ids": node.manifest_ids + additions})
        kept = tuple(mid for mid in node.manifest_ids if mid not in moving)
        if kept == node.manifest_ids:
            return node
        return node.model_copy(update={"manifest_ids": kept})

    root = _map_root(layout, assign)
    unassigned = [mid for mid in layout.unassigned if mid not in moving]
    return _replace_root(layout, root, unassigned)


def remove_from_collection(
    layout: ArchiveLayout, collection_id: str, manifest_ids: Sequence[str]
) -> ArchiveLayout:
    """Detach manifests from a container; they return to the unassigned pool."""
    target = _require(layout, collection_id)
    removing = [mid for mid in _unique(manifest_ids) if mid in target.manifest_ids]
    if not removing:
        return layout

    def detach(node: ArchiveNode) -> ArchiveNode:
        if node.id != collection_id:
            return node
        kept = tuple(mid for mid in node.manifest_ids if mid not in removing)
        return node.model_copy(update={"manifest_ids": kept})

    root = _map_root(layout, detach)
    return _replace_root(layout, root, layout.unassigned + tuple(removing))


def move_collection(layout: ArchiveLayout, collection_id: str, new_parent_id: str) -> ArchiveLayout:
    """Move a container (with its subtree) under another container.

    Raises:
        StagingError: If moving the root, or into the container itself or one
            of its descendants.
        UnknownCollectionError: If either id does not exist.
    """
    if collection_id == layout.root.id:
        raise StagingError("The root collection cannot be moved.")
    moving = _require(layout, collection_id)
    _require(layout, new_parent_id)
    if any(node.id == new_parent_id for node in moving.walk()):
        raise StagingError("A collection cannot be moved into itself or its descendants.")

    def relocate(node: ArchiveNode) -> Optional[ArchiveNode]:
        if node.id == collection_id:
            return None
        if node.id == new_parent_id:
            return node.model_copy(update={"children": node.children + (moving,)})
        return node

    root = _map_root(layout, relocate)
    return _replace_root(layout, root, layout.unassigned)


def merge_collections(
    layout: ArchiveLayout, source_ids: Sequence[str], target_id: str
) -> ArchiveLayout:
    """Fold containers into ``target_id`` in one step.

    Sub-containers and manifest references of every source are appended to
    the target and the sources are removed. Either every source is merged or,
    on error, nothing changes.

    Raises:
        UnknownCollectionError: If the target or any source does not exist.
        StagingError: If a source is the root or contains the target.
    """
    target = _require(layout, target_id)
    sources = [
        _require(layout, source_id)
        for source_id in _unique(source_ids)
        if source_id != target_id
    ]
    for source in sources:
        if source.id == layout.root.id:
            raise StagingError("The root collection cannot be merged into another collection.")
        if any(node.id == target.id for node in source.walk()):
            raise StagingError(f"Collection {source.id} contains the merge target.")
    source_id_set = {source.id for source in sources}

    def strip_sources(node: ArchiveNode) -> Optional[ArchiveNode]:
        return None if node.id in source_id_set else node

    adopted_children: list[ArchiveNode] = []
    adopted_manifests: list[str] = []
    for source in sources:
        adopted_manifests.extend(source.manifest_ids)
        for child in source.children:
            if child.id in source_id_set:
                continue
            cleaned = _map_nodes(child, strip_sources)
            if cleaned is not None:
                adopted_children.append(cleaned)

    def fold(node: ArchiveNode) -> Optional[ArchiveNode]:
        if node.id in source_id_set:
            return None
        if node.id == target_id:
            return node.model_copy(
                update={
                    "children": node.children + tuple(adopted_children),
                    "manifest_ids": _unique(node.manifest_ids + tuple(adopted_manifests)),
                }
            )
        return node

    root = _map_root(layout, fold)
    return _replace_root(layout, root, layout.unassigned)


def remove_manifest_everywhere(layout: ArchiveLayout, manifest_ids: Iterable[str]) -> ArchiveLayout:
    """Drop every reference to ``manifest_ids`` from containers and the pool."""
    removing = set(manifest_ids)
    if not removing:
        return layout

    def strip(node: ArchiveNode) -> ArchiveNode:
        kept = tuple(mid for mid in node.manifest_ids if mid not in removing)
        return node if kept == node.manifest_ids else node.model_copy(update={"manifest_ids": kept})

    root = _map_root(layout, strip)
    return _replace_root(layout, root, [mid for mid in layout.unassigned if mid not in removing])


def dangling_manifest_ids(layout: ArchiveLayout, manifests: SourceManifests) -> list[str]:
    """Return layout references that do not resolve against ``manifests``."""
    referenced = layout.referenced_manifest_ids() + list(layout.unassigned)
    return [manifest_id for manifest_id in referenced if manifest_id not in manifests.by_id]


def reconcile_layout(
    layout: ArchiveLayout, manifests: SourceManifests
) -> tuple[ArchiveLayout, list[str]]:
    """Bring the layout in line with the manifest collection.

    Dangling references are removed and manifests the layout does not
    mention are appended to the unassigned pool.

    Returns:
        tuple[ArchiveLayout, list[str]]: The reconciled layout and the removed ids.
    """
    dangling = dangling_manifest_ids(layout, manifests)
    if dangling:
        LOGGER.info("Removing %d dangling manifest references from the layout.", len(dangling))
    reconciled = remove_manifest_everywhere(layout, dangling)
    known = set(reconciled.referenced_manifest_ids()) | set(reconciled.unassigned)
    missing = [manifest_id for manifest_id in manifests.all_ids if manifest_id not in known]
    if missing:
        reconciled = _replace_root(reconciled, reconciled.root, reconciled.unassigned + tuple(missing))
    return reconciled, dangling


__all__ = [
    "DEFAULT_ROOT_NAME",
    "ROOT_COLLECTION_ID",
    "create_initial_layout",
    "get_all_collections",
    "find_collection",
    "collection_of",
    "unassigned_manifest_ids",
    "create_collection",
    "rename_collection",
    "delete_collection",
    "add_to_collection",
    "remove_from_collection",
    "move_collection",
    "merge_collections",
    "remove_manifest_everywhere",
    "dangling_manifest_ids",
    "reconcile_layout",
]
