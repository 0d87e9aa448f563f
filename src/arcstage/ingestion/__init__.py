"""Worker-driven ingest of committed file plans."""

from .models import (
    ActivityLogEntry,
    FileStatus,
    FileTaskResult,
    IngestFileInfo,
    IngestProgress,
    IngestReport,
    IngestResult,
    IngestStage,
    ProgressSummary,
)
from .orchestrator import CancellationToken, IngestOrchestrator
from .processors import FileProcessor
from .progress import ProgressChannel, ProgressTracker, format_eta, format_speed

__all__ = [
    "ActivityLogEntry",
    "CancellationToken",
    "FileProcessor",
    "FileStatus",
    "FileTaskResult",
    "IngestFileInfo",
    "IngestOrchestrator",
    "IngestProgress",
    "IngestReport",
    "IngestResult",
    "IngestStage",
    "ProgressChannel",
    "ProgressSummary",
    "ProgressTracker",
    "format_eta",
    "format_speed",
]
