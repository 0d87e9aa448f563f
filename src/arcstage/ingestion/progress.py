"""Progress snapshots: tracking, publishing, and formatting."""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from arcstage.tree.models import FileHandle

from .models import (
    ActivityLevel,
    ActivityLogEntry,
    FileStatus,
    IngestFileInfo,
    IngestProgress,
    IngestStage,
)

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[IngestProgress], None]

ACTIVITY_LOG_LIMIT = 200


def format_eta(seconds: Optional[float]) -> str:
    """Render an ETA as ``"45s"``, ``"3 min"``, or ``"1h 5m"``."""
    if seconds is None or seconds < 0 or math.isinf(seconds) or math.isnan(seconds):
        return "--"
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    if seconds < 3600:
        return f"{math.ceil(seconds / 60)} min"
    hours = int(seconds // 3600)
    minutes = math.ceil((seconds % 3600) / 60)
    if minutes == 60:
        hours, minutes = hours + 1, 0
    return f"{hours}h {minutes}m"


def format_speed(files_per_second: float) -> str:
    """Render a processing speed."""
    if files_per_second <= 0:
        return "--"
    if files_per_second < 1:
        return f"{files_per_second * 60:.1f} files/min"
    return f"{files_per_second:.1f} files/s"


class ProgressChannel:
    """Single-writer, multi-reader sequence of immutable progress snapshots.

    The orchestrating thread publishes; readers may call :meth:`latest` or
    :meth:`snapshots` from any thread. Subscribers are invoked synchronously
    on the publishing thread.
    """

    def __init__(self) -> None:
        self._snapshots: list[IngestProgress] = []
        self._subscribers: list[ProgressCallback] = []
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, callback: ProgressCallback) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, snapshot: IngestProgress) -> None:
        """Append ``snapshot`` and notify subscribers.

        Raises:
            RuntimeError: If the channel has been closed.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Progress channel is closed.")
            self._snapshots.append(snapshot)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(snapshot)

    def close(self) -> None:
        """Stop accepting snapshots; the last published snapshot stays readable."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def latest(self) -> Optional[IngestProgress]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def snapshots(self) -> tuple[IngestProgress, ...]:
        with self._lock:
            return tuple(self._snapshots)


class ProgressTracker:
    """Mutable progress state owned by the orchestrating thread.

    Workers never touch the tracker; the orchestrator records their results
    and calls :meth:`snapshot` to produce immutable records.
    """

    def __init__(
        self,
        handles: Iterable[FileHandle],
        *,
        operation_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.operation_id = operation_id or uuid.uuid4().hex
        self._clock = clock
        self._started = clock()
        self.started_at = datetime.now(timezone.utc)
        self.stage = IngestStage.SCANNING
        self.current_file: Optional[str] = None
        self.is_paused = False
        self.is_cancelled = False
        self._files: dict[str, IngestFileInfo] = {}
        for handle in handles:
            self._files[handle.path] = IngestFileInfo(
                id=handle.path,
                name=handle.name,
                path=handle.path,
                size=handle.size,
            )
        self._counts: Counter[FileStatus] = Counter({FileStatus.PENDING: len(self._files)})
        self._log: deque[ActivityLogEntry] = deque(maxlen=ACTIVITY_LOG_LIMIT)

    @property
    def files_total(self) -> int:
        return len(self._files)

    def count(self, status: FileStatus) -> int:
        return self._counts[status]

    def file(self, path: str) -> IngestFileInfo:
        return self._files[path]

    def elapsed(self) -> float:
        return max(self._clock() - self._started, 0.0)

    def log(self, level: ActivityLevel, message: str, file_id: Optional[str] = None) -> None:
        self._log.append(
            ActivityLogEntry(
                timestamp=datetime.now(timezone.utc),
                level=level,
                message=message,
                file_id=file_id,
            )
        )

    def mark_processing(self, path: str, mime_type: Optional[str] = None) -> None:
        info = self._files[path]
        self._move(info.status, FileStatus.PROCESSING)
        self._files[path] = info.model_copy(
            update={
                "status": FileStatus.PROCESSING,
                "started_at": datetime.now(timezone.utc),
                "mime_type": mime_type or info.mime_type,
                "progress": 0.0,
            }
        )
        self.current_file = info.name

    def mark_finished(
        self,
        path: str,
        status: FileStatus,
        *,
        mime_type: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        info = self._files[path]
        self._move(info.status, status)
        self._files[path] = info.model_copy(
            update={
                "status": status,
                "completed_at": datetime.now(timezone.utc),
                "mime_type": mime_type or info.mime_type,
                "error": error,
                "progress": 100.0,
            }
        )
        if status == FileStatus.ERROR:
            self.log("error", f"Failed to process {info.name}: {error}", file_id=path)
        elif status == FileStatus.SKIPPED:
            self.log("warning", f"Skipped {info.name}: {error}", file_id=path)

    def mark_unscheduled(self, path: str) -> None:
        """Return a file whose task never started to the pending state."""
        info = self._files[path]
        self._move(info.status, FileStatus.PENDING)
        self._files[path] = info.model_copy(
            update={"status": FileStatus.PENDING, "started_at": None, "progress": 0.0}
        )

    def _move(self, previous: FileStatus, current: FileStatus) -> None:
        self._counts[previous] -= 1
        self._counts[current] += 1

    def speed(self) -> float:
        """Return finished files per second since the run started."""
        finished = self.count(FileStatus.COMPLETED) + self.count(FileStatus.ERROR)
        elapsed = self.elapsed()
        return finished / elapsed if elapsed > 0 else 0.0

    def snapshot(self) -> IngestProgress:
        """Return an immutable record of the current state."""
        completed = self.count(FileStatus.COMPLETED)
        errors = self.count(FileStatus.ERROR)
        skipped = self.count(FileStatus.SKIPPED)
        processing = self.count(FileStatus.PROCESSING)
        total = self.files_total
        finished = completed + errors + skipped
        speed = self.speed()
        remaining = total - finished
        eta = remaining / speed if speed > 0 else None
        stage_progress = (finished / total * 100.0) if total else 100.0

        if self.stage == IngestStage.SCANNING:
            overall = 0.0
        elif self.stage == IngestStage.COMPLETE:
            overall = 100.0
        else:
            overall = min(stage_progress * 0.9, 90.0)
            if self.stage in (IngestStage.SAVING, IngestStage.DERIVATIVES):
                overall = 95.0

        return IngestProgress(
            operation_id=self.operation_id,
            stage=self.stage,
            stage_progress=round(stage_progress, 2),
            files_total=total,
            files_completed=completed,
            files_processing=processing,
            files_error=errors,
            files_skipped=skipped,
            current_file=self.current_file,
            files=tuple(self._files.values()),
            speed=speed,
            eta_seconds=eta,
            started_at=self.started_at,
            updated_at=datetime.now(timezone.utc),
            is_paused=self.is_paused,
            is_cancelled=self.is_cancelled,
            activity_log=tuple(self._log),
            overall_progress=round(overall, 2),
        )


__all__ = [
    "ACTIVITY_LOG_LIMIT",
    "ProgressCallback",
    "ProgressChannel",
    "ProgressTracker",
    "format_eta",
    "format_speed",
]
