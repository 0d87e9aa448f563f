"""Worker orchestration for the ingest phase."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from arcstage.config.models import IngestOptions
from arcstage.staging.layout import get_all_collections
from arcstage.staging.media import mime_type_for
from arcstage.staging.models import SourceManifest, SourceManifests
from arcstage.tree.models import FileHandle

from .models import (
    FileStatus,
    FileTaskResult,
    IngestReport,
    IngestResult,
    IngestStage,
    ProgressSummary,
)
from .processors import FileProcessor
from .progress import ProgressCallback, ProgressChannel, ProgressTracker

if TYPE_CHECKING:
    from arcstage.session.commit import CommitResult

LOGGER = logging.getLogger(__name__)

THUMBNAIL_REF_PREFIX = "thumbnail:"


class Processor(Protocol):
    def process(self, handle: FileHandle) -> FileTaskResult: ...


class CancellationToken:
    """Cooperative cancellation flag shared with the orchestrator."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class IngestOrchestrator:
    """Run per-file processing on a bounded worker pool and aggregate the results.

    Files are submitted in file-plan order. Completion order is not
    guaranteed; the report is computed from results keyed by path, so it is
    the same whatever order workers finish in. Workers only return results;
    all bookkeeping happens on the thread that called :meth:`run`.
    """

    def __init__(
        self,
        options: IngestOptions | None = None,
        *,
        processor: Processor | None = None,
        token: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
        publish_interval: float = 0.1,
    ) -> None:
        self.options = options or IngestOptions()
        self.processor = processor or FileProcessor(self.options)
        self.token = token or CancellationToken()
        self._clock = clock
        self._publish_interval = publish_interval
        self._last_publish: Optional[float] = None
        self._resume = threading.Event()
        self._resume.set()

    # Control ------------------------------------------------------------

    def cancel(self) -> None:
        """Stop scheduling new files; running tasks finish normally."""
        self.token.cancel()
        self._resume.set()

    def pause(self) -> None:
        """Stop scheduling new files until :meth:`resume` is called."""
        self._resume.clear()

    def resume(self) -> None:
        self._resume.set()

    @property
    def is_paused(self) -> bool:
        return not self._resume.is_set()

    # Execution ----------------------------------------------------------

    def run(
        self,
        commit: "CommitResult",
        *,
        channel: ProgressChannel | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IngestResult:
        """Process every file of the commit's plan.

        Args:
            commit: Committed tree, manifests, layout, and file plan.
            channel: Channel receiving progress snapshots.
            on_progress: Callback subscribed to the channel.

        Returns:
            IngestResult: Report, per-file results, and manifests enriched with
            dimensions and thumbnail references. A cancelled run returns the
            results gathered so far.
        """
        channel = channel or ProgressChannel()
        if on_progress is not None:
            channel.subscribe(on_progress)
        plan = list(commit.file_plan)
        tracker = ProgressTracker(plan, clock=self._clock)
        self._last_publish = None
        results: dict[str, FileTaskResult] = {}

        try:
            tracker.log("info", f"Preparing {len(plan)} files")
            self._publish(channel, tracker, force=True)

            tracker.stage = IngestStage.PROCESSING
            self._schedule(plan, tracker, results, channel)

            cancelled = self.token.is_cancelled
            tracker.is_cancelled = cancelled
            tracker.stage = IngestStage.SAVING
            self._publish(channel, tracker, force=True)
            report, manifests, thumbnails = self._aggregate(commit, plan, results, tracker)

            tracker.stage = IngestStage.CANCELLED if cancelled else IngestStage.COMPLETE
            if cancelled:
                LOGGER.info("Ingest cancelled after %d files.", len(results))
                tracker.log("warning", f"Cancelled after {len(results)} of {len(plan)} files")
            else:
                tracker.log("success", f"Processed {report.files_processed} files")
            final = tracker.snapshot()
            channel.publish(final)
        except Exception as exc:
            tracker.stage = IngestStage.ERROR
            tracker.log("error", f"Ingest failed: {exc}")
            channel.publish(tracker.snapshot())
            raise
        finally:
            channel.close()

        return IngestResult(
            report=report,
            commit=commit,
            manifests=manifests,
            results=results,
            thumbnails=thumbnails,
            final_progress=final,
        )

    def _schedule(
        self,
        plan: list[FileHandle],
        tracker: ProgressTracker,
        results: dict[str, FileTaskResult],
        channel: ProgressChannel,
    ) -> None:
        in_flight: dict[Future[FileTaskResult], FileHandle] = {}
        with ThreadPoolExecutor(
            max_workers=self.options.max_workers, thread_name_prefix="arcstage-ingest"
        ) as executor:
            for handle in plan:
                while self.is_paused and not self.token.is_cancelled:
                    if not tracker.is_paused:
                        tracker.is_paused = True
                        tracker.log("info", "Paused")
                        self._publish(channel, tracker, force=True)
                    if in_flight:
                        self._collect(in_flight, tracker, results, channel, timeout=0.05)
                    else:
                        self._resume.wait(0.05)
                if tracker.is_paused:
                    tracker.is_paused = False
                    tracker.log("info", "Resumed")
                while (
                    len(in_flight) >= self.options.max_queue_size and not self.token.is_cancelled
                ):
                    self._collect(in_flight, tracker, results, channel, timeout=None)
                if self.token.is_cancelled:
                    break
                tracker.mark_processing(handle.path, mime_type_for(handle.name))
                in_flight[executor.submit(self._process, handle)] = handle
                self._collect(in_flight, tracker, results, channel, timeout=0)

            if self.token.is_cancelled:
                for future, handle in list(in_flight.items()):
                    if future.cancel():
                        del in_flight[future]
                        tracker.mark_unscheduled(handle.path)
            while in_flight:
                self._collect(in_flight, tracker, results, channel, timeout=None)

    def _process(self, handle: FileHandle) -> FileTaskResult:
        try:
            return self.processor.process(handle)
        except Exception as exc:
            LOGGER.warning("Failed to process %s: %s", handle.path, exc)
            return FileTaskResult(
                path=handle.path,
                status=FileStatus.ERROR,
                mime_type=mime_type_for(handle.name),
                error=str(exc) or exc.__class__.__name__,
            )

    def _collect(
        self,
        in_flight: dict[Future[FileTaskResult], FileHandle],
        tracker: ProgressTracker,
        results: dict[str, FileTaskResult],
        channel: ProgressChannel,
        *,
        timeout: Optional[float],
    ) -> None:
        if not in_flight:
            return
        done, _ = wait(list(in_flight), timeout=timeout, return_when=FIRST_COMPLETED)
        for future in done:
            handle = in_flight.pop(future)
            result = future.result()
            results[handle.path] = result
            tracker.mark_finished(
                handle.path, result.status, mime_type=result.mime_type, error=result.error
            )
        if done:
            self._publish(channel, tracker)

    def _publish(
        self, channel: ProgressChannel, tracker: ProgressTracker, *, force: bool = False
    ) -> None:
        now = self._clock()
        if (
            not force
            and self._last_publish is not None
            and now - self._last_publish < self._publish_interval
        ):
            return
        self._last_publish = now
        channel.publish(tracker.snapshot())

    def _aggregate(
        self,
        commit: "CommitResult",
        plan: list[FileHandle],
        results: dict[str, FileTaskResult],
        tracker: ProgressTracker,
    ) -> tuple[IngestReport, SourceManifests, dict[str, bytes]]:
        warnings = list(commit.warnings)
        duplicates: set[str] = set()
        first_by_digest: dict[str, str] = {}
        for handle in plan:
            result = results.get(handle.path)
            if result is None:
                continue
            if result.status == FileStatus.ERROR:
                warnings.append(f"{handle.path}: {result.error}")
            elif result.status == FileStatus.SKIPPED:
                warnings.append(f"{handle.path} skipped: {result.error}")
            elif result.sha256:
                original = first_by_digest.setdefault(result.sha256, handle.path)
                if original != handle.path:
                    duplicates.add(handle.path)
                    warnings.append(f"{handle.path} duplicates {original}")

        tracker.stage = IngestStage.DERIVATIVES
        thumbnails: dict[str, bytes] = {}
        created_manifests: set[str] = set()
        canvases_created = 0
        by_id: dict[str, SourceManifest] = {}
        for manifest in commit.manifests.ordered():
            canvases = []
            for canvas in manifest.canvases:
                if canvas.file_path is None:
                    canvases.append(canvas)
                    canvases_created += 1
                    created_manifests.add(manifest.id)
                    continue
                result = results.get(canvas.file_path)
                if (
                    result is None
                    or result.status != FileStatus.COMPLETED
                    or canvas.file_path in duplicates
                ):
                    canvases.append(canvas)
                    continue
                updates: dict[str, object] = {}
                if result.width is not None:
                    updates["width"] = result.width
                    updates["height"] = result.height
                if result.thumbnail is not None:
                    ref = THUMBNAIL_REF_PREFIX + canvas.id
                    thumbnails[ref] = result.thumbnail
                    updates["thumbnail"] = ref
                canvases.append(canvas.model_copy(update=updates) if updates else canvas)
                canvases_created += 1
                created_manifests.add(manifest.id)
            by_id[manifest.id] = manifest.model_copy(update={"canvases": tuple(canvases)})
        manifests = commit.manifests.model_copy(update={"by_id": by_id})

        collections_created = sum(
            1
            for collection in get_all_collections(commit.layout)
            if any(
                manifest_id in created_manifests
                for node in collection.walk()
                for manifest_id in node.manifest_ids
            )
        )

        completed = tracker.count(FileStatus.COMPLETED)
        duration = tracker.elapsed()
        summary = ProgressSummary(
            files_total=tracker.files_total,
            files_completed=completed,
            files_error=tracker.count(FileStatus.ERROR),
            files_skipped=tracker.count(FileStatus.SKIPPED),
            duration_seconds=round(duration, 3),
            average_speed=round(completed / duration, 3) if duration > 0 else 0.0,
            was_cancelled=self.token.is_cancelled,
        )
        report = IngestReport(
            manifests_created=len(created_manifests),
            collections_created=collections_created,
            canvases_created=canvases_created,
            files_processed=completed,
            warnings=warnings,
            duplicates_skipped=len(duplicates),
            progress_summary=summary,
        )
        return report, manifests, thumbnails


__all__ = ["CancellationToken", "IngestOrchestrator", "THUMBNAIL_REF_PREFIX"]
