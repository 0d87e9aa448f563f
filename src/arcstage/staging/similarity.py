"""Heuristic grouping of related filenames."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from .patterns import first_matching_pattern, pattern_base

LOGGER = logging.getLogger(__name__)

DEFAULT_CANDIDATE_CAP = 500
DEFAULT_THRESHOLD = 0.6

_NUMERIC_SUFFIX = re.compile(r"[\s._\-]?\d+\.[^.]+$")
_EXTENSION = re.compile(r"\.[^.]+$")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def base_key(name: str) -> str:
    """Strip a trailing numeric suffix and extension ("page_001.jpg" -> "page")."""
    stripped = _NUMERIC_SUFFIX.sub("", name)
    return _EXTENSION.sub("", stripped).casefold()


def find_similar_filenames(
    names: Iterable[str],
    *,
    candidate_cap: int = DEFAULT_CANDIDATE_CAP,
) -> list[list[str]]:
    """Group filenames that share a base key.

    Grouping is a single hashing pass. Each group keeps at most
    ``candidate_cap`` members; later members are left ungrouped. Names without
    a partner are not returned.

    Args:
        names: Filenames to group.
        candidate_cap: Maximum members considered per group.

    Returns:
        list[list[str]]: Groups of two or more names in first-seen order.
    """
    groups: dict[str, list[str]] = {}
    seen: set[str] = set()
    capped: set[str] = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        key = base_key(name)
        if not key:
            continue
        members = groups.setdefault(key, [])
        if len(members) >= candidate_cap:
            capped.add(key)
            continue
        members.append(name)

    for key in capped:
        LOGGER.info("Similarity group %r reached the cap of %d candidates.", key, candidate_cap)
    return [members for members in groups.values() if len(members) > 1]


@dataclass(frozen=True, slots=True)
class SimilarityMatch:
    """Candidate related to a target filename."""

    filename: str
    reason: str
    score: float


def _bigrams(value: str) -> frozenset[str]:
    normalized = _NON_ALNUM.sub("", value.lower())
    return frozenset(normalized[index : index + 2] for index in range(len(normalized) - 1))


def jaccard_similarity(left: frozenset[str], right: frozenset[str]) -> float:
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    intersection = len(left & right)
    return intersection / (len(left) + len(right) - intersection)


def find_similar_files(
    target: str,
    candidates: Sequence[str],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    candidate_cap: int = DEFAULT_CANDIDATE_CAP,
) -> list[SimilarityMatch]:
    """Score candidates against ``target``.

    Candidates sharing the target's sequence pattern base score 1.0; others
    are scored by bigram Jaccard similarity and kept when at or above
    ``threshold``. Only the first ``candidate_cap`` candidates are compared.

    Returns:
        list[SimilarityMatch]: Matches sorted by descending score.
    """
    pattern = first_matching_pattern(target)
    target_base = pattern_base(pattern, target) if pattern else None
    target_grams = _bigrams(target)

    if len(candidates) > candidate_cap:
        LOGGER.info("Comparing the first %d of %d candidates.", candidate_cap, len(candidates))

    matches: list[SimilarityMatch] = []
    for candidate in candidates[:candidate_cap]:
        if candidate == target:
            continue
        if pattern is not None and target_base:
            if pattern_base(pattern, candidate) == target_base:
                matches.append(
                    SimilarityMatch(candidate, f"Part of same {pattern.name.lower()}", 1.0)
                )
                continue
        score = jaccard_similarity(target_grams, _bigrams(candidate))
        if score >= threshold:
            matches.append(SimilarityMatch(candidate, "Similar naming pattern", score))

    matches.sort(key=lambda match: match.score, reverse=True)
    return matches


__all__ = [
    "SimilarityMatch",
    "base_key",
    "find_similar_filenames",
    "find_similar_files",
    "jaccard_similarity",
    "DEFAULT_CANDIDATE_CAP",
]
