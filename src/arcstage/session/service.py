"""Ingest session facade tying the snapshot, overlay, manifests, and layout together."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from arcstage.config.models import ArcstageConfig
from arcstage.ingestion.models import IngestResult
from arcstage.ingestion.orchestrator import CancellationToken, IngestOrchestrator
from arcstage.ingestion.progress import ProgressCallback, ProgressChannel
from arcstage.staging import layout as layout_ops
from arcstage.staging import manifests as manifest_ops
from arcstage.staging.analysis import (
    MARKER_FILES,
    IngestAnalysisResult,
    analysis_to_overlay,
    analyze_for_ingest,
)
from arcstage.staging.builder import build_source_manifests
from arcstage.staging.models import ArchiveLayout, SourceManifest, SourceManifests
from arcstage.staging.patterns import ExtractionResult, GroupMapping, extract_metadata
from arcstage.staging.similarity import (
    SimilarityMatch,
    find_similar_filenames,
    find_similar_files,
)
from arcstage.tree.flatten import FileCountCache, FlatFileTreeNode, flatten_file_tree
from arcstage.tree.models import FileHandle, FileTreeNode, NodeAnnotations
from arcstage.tree.overlay import AnnotationOverlay, apply_annotations_to_tree
from arcstage.tree.snapshot import DirectoryScanner, build_tree

from .commit import CommitResult, commit_session
from .errors import InvalidTransitionError

LOGGER = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    """Lifecycle phase of an ingest session."""

    BUILDING = "building"
    STAGING = "staging"
    COMMITTING = "committing"
    INGESTING = "ingesting"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


ALLOWED_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.BUILDING: frozenset({SessionPhase.STAGING, SessionPhase.ERROR}),
    SessionPhase.STAGING: frozenset({SessionPhase.COMMITTING}),
    SessionPhase.COMMITTING: frozenset({SessionPhase.INGESTING, SessionPhase.ERROR}),
    SessionPhase.INGESTING: frozenset(
        {SessionPhase.COMPLETE, SessionPhase.CANCELLED, SessionPhase.ERROR}
    ),
    SessionPhase.COMPLETE: frozenset(),
    SessionPhase.CANCELLED: frozenset(),
    SessionPhase.ERROR: frozenset({SessionPhase.STAGING}),
}


class IngestSession:
    """One staging and ingest session over an in-memory snapshot.

    The session owns the snapshot, the annotation overlay, the source
    manifests, and the archive layout. Edits are only accepted while staging.
    Removing or merging manifests cascades into the layout so layout
    references always resolve.
    """

    def __init__(self, tree: FileTreeNode, *, config: ArcstageConfig | None = None) -> None:
        self.config = config or ArcstageConfig()
        self._phase = SessionPhase.BUILDING
        self.tree = tree
        self.overlay = AnnotationOverlay(tree)
        self.manifests: SourceManifests = build_source_manifests(tree, self.config.staging)
        self.layout: ArchiveLayout = layout_ops.create_initial_layout(self.manifests)
        self.commit_result: Optional[CommitResult] = None
        self.ingest_result: Optional[IngestResult] = None
        self.last_error: Optional[Exception] = None
        self._orchestrator: Optional[IngestOrchestrator] = None
        self._cancel_token = CancellationToken()
        self._counts = FileCountCache()
        self._transition(SessionPhase.STAGING)

    @classmethod
    def from_handles(
        cls,
        handles: Iterable[FileHandle],
        *,
        root_name: str = "root",
        config: ArcstageConfig | None = None,
    ) -> "IngestSession":
        """Start a session from picked file handles.

        Raises:
            EmptyFileSetError: If ``handles`` is empty.
        """
        return cls(build_tree(handles, root_name=root_name), config=config)

    @classmethod
    def from_directory(cls, root: Path, *, config: ArcstageConfig | None = None) -> "IngestSession":
        """Start a session from a directory on disk.

        Raises:
            EmptyFileSetError: If the directory holds no eligible files.
        """
        config = config or ArcstageConfig()
        scanner = DirectoryScanner(
            include_hidden=config.ingest.include_hidden,
            follow_symlinks=config.ingest.follow_symlinks,
            always_include=MARKER_FILES,
        )
        return cls(scanner.scan(root), config=config)

    # Phase handling -----------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def _transition(self, target: SessionPhase) -> None:
        if target not in ALLOWED_TRANSITIONS[self._phase]:
            raise InvalidTransitionError(self._phase.value, target.value)
        LOGGER.debug("Session phase %s -> %s", self._phase.value, target.value)
        self._phase = target

    def _require_staging(self) -> None:
        if self._phase != SessionPhase.STAGING:
            raise InvalidTransitionError(self._phase.value, SessionPhase.STAGING.value)

    def retry(self) -> None:
        """Return to staging after a failed commit or ingest."""
        self._transition(SessionPhase.STAGING)
        self.last_error = None
        self._cancel_token = CancellationToken()

    @property
    def warnings(self) -> list[str]:
        return list(self.overlay.warnings)

    # Overlay ------------------------------------------------------------

    def load_annotations(self, text: str) -> None:
        """Replace the overlay with entries read from a YAML document.

        Raises:
            TreeError: If the document is malformed.
            KeyError: If an entry names a path outside the snapshot.
        """
        self._require_staging()
        self.overlay = AnnotationOverlay.from_yaml(text, self.tree)

    def annotate(self, path: str, **changes: Any) -> NodeAnnotations:
        self._require_staging()
        return self.overlay.update(path, **changes)

    def clear_annotations(self, path: str) -> None:
        self._require_staging()
        self.overlay.clear(path)

    def toggle_behavior(self, path: str, behavior: str) -> NodeAnnotations:
        self._require_staging()
        return self.overlay.toggle_behavior(path, behavior)

    def toggle_excluded(self, path: str) -> NodeAnnotations:
        self._require_staging()
        return self.overlay.toggle_excluded(path)

    def set_start(self, path: str) -> NodeAnnotations:
        self._require_staging()
        return self.overlay.set_start(path)

    def analyze(self) -> IngestAnalysisResult:
        """Run the scan pass over the snapshot."""
        return analyze_for_ingest(self.tree)

    def accept_analysis(self, analysis: IngestAnalysisResult) -> None:
        """Record an analysis preview (with any user overrides) in the overlay."""
        self._require_staging()
        analysis_to_overlay(analysis.root, self.overlay)

    def flatten(
        self, expanded_paths: Iterable[str] = (), *, preview: bool = False
    ) -> list[FlatFileTreeNode]:
        """Flatten the snapshot, or the speculative committed tree when ``preview`` is set."""
        tree = self.preview() if preview else self.tree
        if preview:
            return flatten_file_tree(tree, frozenset(expanded_paths), self.overlay)
        return flatten_file_tree(tree, frozenset(expanded_paths), self.overlay, counts=self._counts)

    def preview(self) -> FileTreeNode:
        """Apply the overlay without committing."""
        return apply_annotations_to_tree(
            self.tree, self.overlay, start_policy=self.config.staging.start_marker_policy
        )

    # Source manifests ---------------------------------------------------

    def add_source_manifest(self, manifest: SourceManifest) -> None:
        self._require_staging()
        is_new = manifest.id not in self.manifests.by_id
        self.manifests = manifest_ops.add_source_manifest(self.manifests, manifest)
        if is_new:
            self.layout, _ = layout_ops.reconcile_layout(self.layout, self.manifests)

    def remove_source_manifest(self, manifest_id: str) -> None:
        self._require_staging()
        self.manifests = manifest_ops.remove_source_manifest(self.manifests, manifest_id)
        self.layout = layout_ops.remove_manifest_everywhere(self.layout, [manifest_id])

    def reorder_canvases(self, manifest_id: str, new_order: Sequence[str], *, strict: bool = False) -> None:
        self._require_staging()
        self.manifests = manifest_ops.reorder_canvases(
            self.manifests, manifest_id, new_order, strict=strict
        )

    def merge_source_manifests(self, source_ids: Sequence[str], target_id: str) -> None:
        self._require_staging()
        before = set(self.manifests.all_ids)
        self.manifests = manifest_ops.merge_source_manifests(self.manifests, source_ids, target_id)
        removed = before - set(self.manifests.all_ids)
        self.layout = layout_ops.remove_manifest_everywhere(self.layout, removed)

    def similar_filenames(self) -> list[list[str]]:
        names = [handle.name for handle in self.tree.iter_files()]
        return find_similar_filenames(
            names, candidate_cap=self.config.staging.similarity_candidate_cap
        )

    def similar_files(self, target: str) -> list[SimilarityMatch]:
        """Score the other files of the snapshot against the file at ``target``.

        Uses the configured similarity threshold and candidate cap.

        Raises:
            KeyError: If ``target`` is not a file of the snapshot.
        """
        names = {handle.path: handle.name for handle in self.tree.iter_files()}
        if target not in names:
            raise KeyError(target)
        staging = self.config.staging
        return find_similar_files(
            names[target],
            [name for path, name in names.items() if path != target],
            threshold=staging.similarity_threshold,
            candidate_cap=staging.similarity_candidate_cap,
        )

    def extract_metadata(
        self, pattern: str, mappings: Sequence[GroupMapping]
    ) -> list[ExtractionResult]:
        names = [handle.name for handle in self.tree.iter_files()]
        return extract_metadata(pattern, mappings, names)

    # Archive layout -----------------------------------------------------

    def create_collection(self, name: str, parent_id: Optional[str] = None) -> str:
        self._require_staging()
        self.layout, collection_id = layout_ops.create_collection(self.layout, name, parent_id)
        return collection_id

    def rename_collection(self, collection_id: str, name: str) -> None:
        self._require_staging()
        self.layout = layout_ops.rename_collection(self.layout, collection_id, name)

    def delete_collection(self, collection_id: str) -> None:
        self._require_staging()
        self.layout = layout_ops.delete_collection(self.layout, collection_id)

    def add_to_collection(self, collection_id: str, manifest_ids: Sequence[str]) -> None:
        self._require_staging()
        self.layout = layout_ops.add_to_collection(
            self.layout, collection_id, manifest_ids, manifests=self.manifests
        )

    def remove_from_collection(self, collection_id: str, manifest_ids: Sequence[str]) -> None:
        self._require_staging()
        self.layout = layout_ops.remove_from_collection(self.layout, collection_id, manifest_ids)

    def move_collection(self, collection_id: str, new_parent_id: str) -> None:
        self._require_staging()
        self.layout = layout_ops.move_collection(self.layout, collection_id, new_parent_id)

    def merge_collections(self, source_ids: Sequence[str], target_id: str) -> None:
        self._require_staging()
        self.layout = layout_ops.merge_collections(self.layout, source_ids, target_id)

    # Commit and ingest --------------------------------------------------

    def commit(self) -> CommitResult:
        """Fold every store into the canonical result; staging ends here.

        Raises:
            LayoutIntegrityError: If the layout references unknown manifests.
            StartMarkerConflictError: Under the strict start-marker policy.
        """
        self._transition(SessionPhase.COMMITTING)
        try:
            self.commit_result = commit_session(
                self.tree,
                self.overlay.snapshot(),
                self.manifests,
                self.layout,
                options=self.config.staging,
                warnings=self.overlay.warnings,
            )
        except Exception as exc:
            self.last_error = exc
            self._transition(SessionPhase.ERROR)
            raise
        return self.commit_result

    def ingest(
        self,
        *,
        orchestrator: IngestOrchestrator | None = None,
        channel: ProgressChannel | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IngestResult:
        """Commit the staged session and process its file plan.

        A :meth:`cancel` issued before the orchestrator starts is carried over,
        so the run returns an empty cancelled report instead of processing files.

        Raises:
            InvalidTransitionError: If the session is not staging.
        """
        if self._phase != SessionPhase.STAGING:
            raise InvalidTransitionError(self._phase.value, SessionPhase.INGESTING.value)
        commit_result = self.commit()
        self._transition(SessionPhase.INGESTING)
        self._orchestrator = orchestrator or IngestOrchestrator(
            self.config.ingest, token=self._cancel_token
        )
        if self._cancel_token.is_cancelled:
            self._orchestrator.cancel()
        try:
            result = self._orchestrator.run(
                commit_result, channel=channel, on_progress=on_progress
            )
        except Exception as exc:
            self.last_error = exc
            self._transition(SessionPhase.ERROR)
            raise
        finally:
            self._orchestrator = None
        self.ingest_result = result
        if result.report.progress_summary.was_cancelled:
            self._transition(SessionPhase.CANCELLED)
        else:
            self._transition(SessionPhase.COMPLETE)
        return result

    def cancel(self) -> None:
        """Request cancellation of the ingest, whether or not it has started yet."""
        self._cancel_token.cancel()
        orchestrator = self._orchestrator
        if orchestrator is not None:
            orchestrator.cancel()


__all__ = ["ALLOWED_TRANSITIONS", "IngestSession", "SessionPhase"]
