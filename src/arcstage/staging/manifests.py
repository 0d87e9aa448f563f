"""Pure operations over the source manifest collection."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .models import SourceCanvas, SourceManifest, SourceManifests

LOGGER = logging.getLogger(__name__)


def _dedupe_canvases(canvases: Iterable[SourceCanvas]) -> tuple[SourceCanvas, ...]:
    seen: dict[str, SourceCanvas] = {}
    for canvas in canvases:
        seen.setdefault(canvas.id, canvas)
    return tuple(seen.values())


def _with_manifest(collection: SourceManifests, manifest: SourceManifest) -> SourceManifests:
    by_id = dict(collection.by_id)
    by_id[manifest.id] = manifest
    return collection.model_copy(update={"by_id": by_id})


def add_source_manifest(collection: SourceManifests, manifest: SourceManifest) -> SourceManifests:
    """Insert ``manifest`` or merge it into an existing manifest with the same id.

    When the id already exists, new canvases are appended after the existing
    ones and canvases whose id is already present are skipped. Repeating the
    call with the same input leaves the collection unchanged.
    """
    existing = collection.by_id.get(manifest.id)
    if existing is None:
        by_id = dict(collection.by_id)
        by_id[manifest.id] = manifest.model_copy(
            update={"canvases": _dedupe_canvases(manifest.canvases)}
        )
        return collection.model_copy(
            update={"by_id": by_id, "all_ids": collection.all_ids + (manifest.id,)}
        )

    canvases = _dedupe_canvases(existing.canvases + manifest.canvases)
    if canvases == existing.canvases:
        return collection
    return _with_manifest(collection, existing.model_copy(update={"canvases": canvases}))


def remove_source_manifest(collection: SourceManifests, manifest_id: str) -> SourceManifests:
    """Remove ``manifest_id`` from the collection.

    Layout references to the removed id are left for the caller to reconcile.
    """
    if manifest_id not in collection.by_id:
        return collection
    by_id = {key: value for key, value in collection.by_id.items() if key != manifest_id}
    all_ids = tuple(key for key in collection.all_ids if key != manifest_id)
    return collection.model_copy(update={"by_id": by_id, "all_ids": all_ids})


def reorder_canvases(
    collection: SourceManifests,
    manifest_id: str,
    new_order: Sequence[str],
    *,
    strict: bool = False,
) -> SourceManifests:
    """Reorder a manifest's canvases to follow ``new_order``.

    Unknown canvas ids are dropped and canvases missing from ``new_order``
    are removed, so callers are expected to pass a full permutation. With
    ``strict`` anything other than a permutation is rejected instead.

    Raises:
        ValueError: If ``strict`` is set and ``new_order`` is not a permutation
            of the manifest's canvas ids.
    """
    manifest = collection.by_id.get(manifest_id)
    if manifest is None:
        return collection

    by_canvas_id = {canvas.id: canvas for canvas in manifest.canvases}
    unknown = [canvas_id for canvas_id in new_order if canvas_id not in by_canvas_id]
    requested = set(new_order)
    omitted = [canvas_id for canvas_id in by_canvas_id if canvas_id not in requested]
    if unknown or omitted:
        if strict:
            raise ValueError(
                f"Reorder of {manifest_id} must be a permutation "
                f"(unknown: {unknown or 'none'}, omitted: {omitted or 'none'})"
            )
        LOGGER.warning(
            "Reorder of %s dropped %d unknown and %d omitted canvases.",
            manifest_id,
            len(unknown),
            len(omitted),
        )

    canvases = _dedupe_canvases(
        by_canvas_id[canvas_id] for canvas_id in new_order if canvas_id in by_canvas_id
    )
    return _with_manifest(collection, manifest.model_copy(update={"canvases": canvases}))


def merge_source_manifests(
    collection: SourceManifests,
    source_ids: Sequence[str],
    target_id: str,
) -> SourceManifests:
    """Append the canvases of ``source_ids`` to ``target_id`` and drop the sources.

    The target keeps its own canvases first; the others follow in the order of
    ``source_ids``. Source ids equal to the target or absent from the
    collection contribute nothing. When the target is absent the collection
    is returned unchanged.
    """
    target = collection.by_id.get(target_id)
    if target is None:
        return collection

    merged_ids: list[str] = []
    canvases = list(target.canvases)
    for source_id in source_ids:
        if source_id == target_id or source_id in merged_ids:
            continue
        source = collection.by_id.get(source_id)
        if source is None:
            continue
        canvases.extend(source.canvases)
        merged_ids.append(source_id)

    if not merged_ids:
        return collection

    merged = target.model_copy(update={"canvases": _dedupe_canvases(canvases)})
    by_id = {
        key: (merged if key == target_id else value)
        for key, value in collection.by_id.items()
        if key not in merged_ids
    }
    all_ids = tuple(key for key in collection.all_ids if key not in merged_ids)
    return collection.model_copy(update={"by_id": by_id, "all_ids": all_ids})


def manifest_stats(collection: SourceManifests) -> dict[str, object]:
    """Return manifest and canvas totals plus how often each sequence pattern was detected."""
    patterns: dict[str, int] = {}
    canvases = 0
    for manifest in collection.ordered():
        canvases += len(manifest.canvases)
        if manifest.detected_pattern:
            patterns[manifest.detected_pattern] = patterns.get(manifest.detected_pattern, 0) + 1
    return {
        "manifests": len(collection.all_ids),
        "canvases": canvases,
        "patterns": patterns,
    }


__all__ = [
    "add_source_manifest",
    "remove_source_manifest",
    "reorder_canvases",
    "merge_source_manifests",
    "manifest_stats",
]
