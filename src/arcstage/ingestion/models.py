"""Models describing ingest progress, per-file results, and the final report."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from arcstage.staging.models import SourceManifests

if TYPE_CHECKING:
    from arcstage.session.commit import CommitResult


class IngestStage(str, Enum):
    """Stage of the ingest run."""

    SCANNING = "scanning"
    PROCESSING = "processing"
    SAVING = "saving"
    DERIVATIVES = "derivatives"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


class FileStatus(str, Enum):
    """Processing status of one file."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


ActivityLevel = Literal["info", "warning", "error", "success"]


class ProgressModel(BaseModel):
    """Immutable progress record."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)


class IngestFileInfo(ProgressModel):
    """Progress of one file."""

    id: str
    name: str
    path: str
    status: FileStatus = FileStatus.PENDING
    size: int = 0
    mime_type: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    progress: float = 0.0


class ActivityLogEntry(ProgressModel):
    """Human-readable event emitted during the run."""

    timestamp: datetime
    level: ActivityLevel
    message: str
    file_id: Optional[str] = None


class IngestProgress(ProgressModel):
    """Snapshot of the run, authoritative as of ``updated_at``."""

    operation_id: str
    stage: IngestStage
    stage_progress: float = 0.0
    files_total: int = 0
    files_completed: int = 0
    files_processing: int = 0
    files_error: int = 0
    files_skipped: int = 0
    current_file: Optional[str] = None
    files: tuple[IngestFileInfo, ...] = ()
    speed: float = 0.0
    eta_seconds: Optional[float] = None
    started_at: datetime
    updated_at: datetime
    is_paused: bool = False
    is_cancelled: bool = False
    activity_log: tuple[ActivityLogEntry, ...] = ()
    overall_progress: float = 0.0


class ProgressSummary(BaseModel):
    """Totals describing how the run went."""

    files_total: int = 0
    files_completed: int = 0
    files_error: int = 0
    files_skipped: int = 0
    duration_seconds: float = 0.0
    average_speed: float = 0.0
    was_cancelled: bool = False


class IngestReport(BaseModel):
    """Final aggregate of an ingest run."""

    manifests_created: int = 0
    collections_created: int = 0
    canvases_created: int = 0
    files_processed: int = 0
    warnings: list[str] = Field(default_factory=list)
    duplicates_skipped: int = 0
    progress_summary: ProgressSummary = Field(default_factory=ProgressSummary)


@dataclass(slots=True)
class FileTaskResult:
    """Output of processing one file, returned by a worker."""

    path: str
    status: FileStatus
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    sha256: Optional[str] = None
    thumbnail: Optional[bytes] = None
    metadata: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass(slots=True)
class IngestResult:
    """Everything an ingest run produced."""

    report: IngestReport
    commit: CommitResult
    manifests: SourceManifests
    results: dict[str, FileTaskResult] = field(default_factory=dict)
    thumbnails: dict[str, bytes] = field(default_factory=dict)
    final_progress: Optional[IngestProgress] = None


__all__ = [
    "IngestStage",
    "FileStatus",
    "ActivityLevel",
    "IngestFileInfo",
    "ActivityLogEntry",
    "IngestProgress",
    "ProgressSummary",
    "IngestReport",
    "FileTaskResult",
    "IngestResult",
]
