"""Behavior tag vocabulary and conflict resolution.

Behavior tags are grouped into disjoint sets; a node may carry at most one
tag from each set. When a request adds a tag whose set already holds another
tag, the older tag is dropped and a warning is produced instead of an error.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple


class DisjointSet(NamedTuple):
    """Mutually exclusive behavior tags."""

    name: str
    values: tuple[str, ...]


DISJOINT_SETS: tuple[DisjointSet, ...] = (
    DisjointSet("temporal_advance", ("auto-advance", "no-auto-advance")),
    DisjointSet("temporal_repeat", ("repeat", "no-repeat")),
    DisjointSet("layout", ("unordered", "individuals", "continuous", "paged")),
    DisjointSet("canvas_paging", ("facing-pages", "non-paged")),
    DisjointSet("collection_presentation", ("multi-part", "together")),
    DisjointSet("range_navigation", ("sequence", "thumbnail-nav", "no-nav")),
)

KNOWN_BEHAVIORS: frozenset[str] = frozenset(
    value for disjoint in DISJOINT_SETS for value in disjoint.values
) | {"hidden"}

_SET_BY_BEHAVIOR = {value: disjoint for disjoint in DISJOINT_SETS for value in disjoint.values}


def disjoint_set_for(behavior: str) -> DisjointSet | None:
    """Return the disjoint set containing ``behavior`` if it belongs to one."""
    return _SET_BY_BEHAVIOR.get(behavior)


def normalize_behaviors(tags: Iterable[str]) -> tuple[tuple[str, ...], list[str]]:
    """Deduplicate tags and resolve conflicts in favor of the most recent tag.

    Args:
        tags: Behavior tags in the order they were requested.

    Returns:
        tuple[tuple[str, ...], list[str]]: Resolved tags and a warning for
        every tag that was cleared because a conflicting tag came later.
    """
    resolved: list[str] = []
    warnings: list[str] = []
    for tag in tags:
        if tag in resolved:
            continue
        disjoint = disjoint_set_for(tag)
        if disjoint is not None:
            for existing in [value for value in resolved if value in disjoint.values]:
                resolved.remove(existing)
                warnings.append(
                    f"Behavior '{existing}' cleared: conflicts with '{tag}' ({disjoint.name})."
                )
        resolved.append(tag)
    return tuple(resolved), warnings


__all__ = [
    "DisjointSet",
    "DISJOINT_SETS",
    "KNOWN_BEHAVIORS",
    "disjoint_set_for",
    "normalize_behaviors",
]
