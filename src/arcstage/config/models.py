"""Configuration models describing arcstage settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MAX_POOL_WORKERS = 4


class ArcstageBaseModel(BaseModel):
    """Shared configuration for arcstage Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class IngestOptions(ArcstageBaseModel):
    """Options governing the worker-driven ingest phase.

    Attributes:
        max_workers: Size of the file-processing pool (capped at four).
        max_queue_size: Maximum number of tasks submitted but not yet finished.
        generate_thumbnails: Whether image thumbnails are rendered.
        thumbnail_size: Bounding box, in pixels, for generated thumbnails.
        extract_metadata: Whether image dimensions and orientation are read.
        calculate_hashes: Whether SHA-256 digests are computed.
        max_file_size_mb: Files above this size are skipped (0 disables the limit).
        include_hidden: Whether dot-files are picked up by the directory scanner.
        follow_symlinks: Whether the scanner follows symbolic links.
    """

    max_workers: int = Field(default=MAX_POOL_WORKERS, ge=1, le=MAX_POOL_WORKERS)
    max_queue_size: int = Field(default=100, ge=1)
    generate_thumbnails: bool = True
    thumbnail_size: int = Field(default=250, ge=16)
    extract_metadata: bool = True
    calculate_hashes: bool = False
    max_file_size_mb: int = Field(default=100, ge=0)
    include_hidden: bool = False
    follow_symlinks: bool = False


class StagingOptions(ArcstageBaseModel):
    """Options for manifest building, similarity detection, and apply.

    Attributes:
        similarity_candidate_cap: Maximum candidates compared per similarity query.
        similarity_threshold: Minimum bigram Jaccard score for fuzzy matches.
        sequence_match_ratio: Share of files that must match a sequence pattern.
        start_marker_policy: How multiple start markers in one directory are resolved.
        media_only_manifests: Only painting-media files become canvases.
    """

    similarity_candidate_cap: int = Field(default=500, ge=1)
    similarity_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    sequence_match_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    start_marker_policy: Literal["last_wins", "reject"] = "last_wins"
    media_only_manifests: bool = True


class LoggingSettings(ArcstageBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: str = "WARNING"


class CLIOptions(ArcstageBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class ArcstageConfig(ArcstageBaseModel):
    """Top-level configuration struct for arcstage.

    Attributes:
        ingest: Worker pool and per-file processing settings.
        staging: Manifest building and overlay settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    ingest: IngestOptions = Field(default_factory=IngestOptions)
    staging: StagingOptions = Field(default_factory=StagingOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "ArcstageBaseModel",
    "IngestOptions",
    "StagingOptions",
    "LoggingSettings",
    "CLIOptions",
    "ArcstageConfig",
    "MAX_POOL_WORKERS",
]
