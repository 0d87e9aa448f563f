"""Filename relationship patterns, sequence ordering, and regex metadata extraction."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FilenamePattern:
    """Named regular expression describing how related filenames are formed.

    Attributes:
        name: Human readable pattern name.
        regex: Compiled, case-insensitive expression.
        description: What the pattern recognizes.
        groups: Names of the capture groups in order.
        tags: Classification tags such as ``sequence`` or ``similarity``.
    """

    name: str
    regex: re.Pattern[str]
    description: str
    groups: tuple[str, ...]
    tags: frozenset[str]

    @property
    def is_sequence(self) -> bool:
        return "sequence" in self.tags

    @property
    def has_base(self) -> bool:
        return bool(self.groups) and self.groups[0] == "base"


def _pattern(name: str, expression: str, description: str, groups: str, tags: str) -> FilenamePattern:
    return FilenamePattern(
        name=name,
        regex=re.compile(expression, re.IGNORECASE),
        description=description,
        groups=tuple(groups.split(",")),
        tags=frozenset(tags.split(",")),
    )


RELATIONSHIP_PATTERNS: tuple[FilenamePattern, ...] = (
    _pattern(
        "Simple numerical sequence",
        r"^(.+?)[\s._\-]?(\d{1,5})(?:\.\w+)?$",
        "Base name and number, e.g. 'file1.txt' or 'document_001.pdf'.",
        "base,sequence",
        "sequence,numerical,incremental",
    ),
    _pattern(
        "Padded numerical sequence",
        r"^(.+?)[\s._\-]?(\d{2,8})(?:\.\w+)?$",
        "Zero-padded numbers, e.g. 'img_001.jpg' or 'scan_000045.tif'.",
        "base,padded_sequence",
        "sequence,padded,incremental",
    ),
    _pattern(
        "Alphabetical sequence",
        r"^(.+?)[\s._\-]?([a-zA-Z])(?:\.\w+)?$",
        "Single letters, e.g. 'chapter_a.pdf' or 'appendix_B.docx'.",
        "base,letter",
        "sequence,alphabetical",
    ),
    _pattern(
        "Roman numeral sequence",
        r"^(.+?)[\s._\-]?(i{1,3}|iv|v|vi{1,3}|ix|x{1,3}|x[cl]|l?x{0,3})(?:\.\w+)?$",
        "Roman numerals, e.g. 'volume_I.pdf' or 'act_iv.txt'.",
        "base,roman",
        "sequence,roman",
    ),
    _pattern(
        "Date-based sequence",
        r"^(.+?)[\s._\-]?(\d{4}[._\-]?\d{2}[._\-]?\d{2})(?:\.\w+)?$",
        "Dates, e.g. 'log_2023-01-15.txt' or 'report20231231.pdf'.",
        "base,date",
        "sequence,date,temporal",
    ),
    _pattern(
        "Versioned sequence",
        r"^(.+?)[\s._\-]?([vV]?\d+(?:\.\d+)*)(?:\.\w+)?$",
        "Version numbers, e.g. 'document_v1.2.pdf' or 'app_2.1.3.zip'.",
        "base,version",
        "sequence,version,semver",
    ),
    _pattern(
        "Common prefix groups",
        r"^([a-zA-Z0-9_-]{3,})[\s._\-].+\.\w+$",
        "Files sharing a common prefix.",
        "prefix",
        "similarity,prefix,grouping",
    ),
    _pattern(
        "Common suffix groups",
        r"^.+[\s._\-]([a-zA-Z0-9_-]+)(?:\.\w+)?$",
        "Files sharing a common suffix before the extension.",
        "suffix",
        "similarity,suffix,grouping",
    ),
    _pattern(
        "Similar patterns with variations",
        r"^(.+?)(?:_(?:copy|dup|backup|old|new|final|rev|draft))(?:\d*)(?:\.\w+)?$",
        "Variants such as copies, backups, or drafts.",
        "original_base",
        "similarity,variants,derivatives",
    ),
    _pattern(
        "Page range indicators",
        r"^(.+?)[\s._\-]?(\d+)[\s._\-]?to[\s._\-]?(\d+)(?:\.\w+)?$",
        "Page ranges, e.g. 'document_1to50.pdf'.",
        "base,start,end",
        "adjacency,range,pagination",
    ),
    _pattern(
        "Part/segment indicators",
        r"^(.+?)[\s._\-]?(?:part|pt|segment|sec|section)[\s._\-]?(\d+)(?:of\d+)?(?:\.\w+)?$",
        "Segments, e.g. 'book_part1.pdf' or 'archive_sec3of5.zip'.",
        "base,part_number,total_parts",
        "adjacency,segments,parts",
    ),
)

SEQUENCE_PATTERNS: tuple[FilenamePattern, ...] = tuple(
    pattern for pattern in RELATIONSHIP_PATTERNS if pattern.is_sequence
)

_NATURAL_CHUNK = re.compile(r"(\d+)")


def natural_sort_key(value: str) -> tuple:
    """Sort key ordering embedded numbers numerically ("page2" before "page10")."""
    return tuple(
        (0, int(chunk), chunk) if chunk.isdigit() else (1, chunk.casefold(), chunk)
        for chunk in _NATURAL_CHUNK.split(value)
        if chunk
    )


def first_matching_pattern(name: str) -> Optional[FilenamePattern]:
    """Return the first relationship pattern matching ``name``."""
    return next((pattern for pattern in RELATIONSHIP_PATTERNS if pattern.regex.match(name)), None)


def pattern_base(pattern: FilenamePattern, name: str) -> Optional[str]:
    """Return the lowercase base captured by ``pattern`` for ``name``."""
    if not pattern.has_base:
        return None
    match = pattern.regex.match(name)
    return match.group(1).lower() if match else None


@dataclass(frozen=True, slots=True)
class SequenceDetection:
    """Outcome of ordering a directory's filenames."""

    ordered: tuple[str, ...]
    pattern: Optional[FilenamePattern] = None

    @property
    def pattern_name(self) -> Optional[str]:
        return self.pattern.name if self.pattern else None


def detect_and_order_sequence(names: Sequence[str], *, match_ratio: float = 0.5) -> SequenceDetection:
    """Order filenames by the first sequence pattern most of them share.

    A pattern is accepted when more than ``match_ratio`` of the names match it
    and every match shares one base. Matching names are ordered by their
    sequence value; the rest follow in natural order. Without an accepted
    pattern every name is naturally sorted.

    Args:
        names: Filenames within one directory.
        match_ratio: Share of names that must match the pattern.

    Returns:
        SequenceDetection: Ordered names and the accepted pattern, if any.
    """
    natural = tuple(sorted(names, key=natural_sort_key))
    if len(names) < 2:
        return SequenceDetection(ordered=natural)

    for pattern in SEQUENCE_PATTERNS:
        matches = {name: pattern.regex.match(name) for name in names}
        matched = {name: match for name, match in matches.items() if match}
        if len(matched) <= len(names) * match_ratio:
            continue
        bases = {match.group(1).lower() for match in matched.values()}
        if len(bases) != 1:
            continue
        in_sequence = sorted(
            matched,
            key=lambda name: (natural_sort_key(matched[name].group(2)), natural_sort_key(name)),
        )
        rest = [name for name in natural if name not in matched]
        LOGGER.debug("Detected %s across %d files.", pattern.name, len(matched))
        return SequenceDetection(ordered=tuple(in_sequence + rest), pattern=pattern)

    return SequenceDetection(ordered=natural)


# Regex metadata extraction ------------------------------------------------


@dataclass(frozen=True, slots=True)
class GroupMapping:
    """Maps a capture group (index or name) to a metadata property."""

    group: int | str
    property: str

    @classmethod
    def parse(cls, text: str) -> "GroupMapping":
        """Parse ``GROUP=PROPERTY`` where GROUP is an index or a group name.

        Raises:
            ValueError: If the mapping is malformed.
        """
        group, sep, prop = text.partition("=")
        group, prop = group.strip(), prop.strip()
        if not sep or not group or not prop:
            raise ValueError(f"Expected GROUP=PROPERTY, got {text!r}")
        return cls(group=int(group) if group.isdigit() else group, property=prop)


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """Tagged result of compiling a user-supplied pattern.

    Exactly one of ``regex`` and ``error`` is set.
    """

    source: str
    regex: Optional[re.Pattern[str]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.regex is not None


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Properties extracted from one item."""

    source: str
    extracted: dict[str, str] = field(default_factory=dict)
    success: bool = False


def compile_pattern(pattern: str, *, ignore_case: bool = False) -> CompiledPattern:
    """Compile ``pattern`` without raising on malformed input."""
    if not pattern:
        return CompiledPattern(source=pattern, error="Pattern is empty")
    try:
        regex = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
    except re.error as exc:
        LOGGER.info("Invalid extraction pattern %r: %s", pattern, exc)
        return CompiledPattern(source=pattern, error=str(exc))
    return CompiledPattern(source=pattern, regex=regex)


def extract_metadata(
    pattern: str | CompiledPattern,
    mappings: Iterable[GroupMapping],
    items: Iterable[str],
) -> list[ExtractionResult]:
    """Apply a pattern to every item and collect mapped capture groups.

    An item succeeds when the pattern matches and at least one mapped group
    captured a value. Malformed patterns yield a failed result for every item.

    Args:
        pattern: Regular expression source or a compiled pattern.
        mappings: Capture group to property mappings.
        items: Strings (usually filenames) to extract from.

    Returns:
        list[ExtractionResult]: One result per item, in input order.
    """
    compiled = compile_pattern(pattern) if isinstance(pattern, str) else pattern
    mapping_list = list(mappings)
    results: list[ExtractionResult] = []
    for item in items:
        if not compiled.ok:
            results.append(ExtractionResult(source=item))
            continue
        match = compiled.regex.search(item)  # type: ignore[union-attr]
        if match is None:
            results.append(ExtractionResult(source=item))
            continue
        extracted: dict[str, str] = {}
        for mapping in mapping_list:
            try:
                value = match.group(mapping.group)
            except IndexError:
                continue
            if value is not None:
                extracted[mapping.property] = value
        results.append(ExtractionResult(source=item, extracted=extracted, success=bool(extracted)))
    return results


__all__ = [
    "FilenamePattern",
    "RELATIONSHIP_PATTERNS",
    "SEQUENCE_PATTERNS",
    "SequenceDetection",
    "GroupMapping",
    "CompiledPattern",
    "ExtractionResult",
    "natural_sort_key",
    "first_matching_pattern",
    "pattern_base",
    "detect_and_order_sequence",
    "compile_pattern",
    "extract_metadata",
]
