"""Tests for the ingest session lifecycle."""

from pathlib import Path

import pytest

from arcstage.config.models import ArcstageConfig
from arcstage.ingestion import FileStatus, FileTaskResult
from arcstage.ingestion.orchestrator import IngestOrchestrator
from arcstage.session import IngestSession, InvalidTransitionError, SessionPhase
from arcstage.staging import LayoutIntegrityError
from arcstage.staging.builder import manifest_id_for
from arcstage.staging.layout import find_collection
from arcstage.tree import EmptyFileSetError, FileHandle


class _StubProcessor:
    def process(self, handle: FileHandle) -> FileTaskResult:
        return FileTaskResult(path=handle.path, status=FileStatus.COMPLETED)


def _session() -> IngestSession:
    paths = ["book/p1.jpg", "book/p2.jpg", "loose/a.png", "loose/b.png"]
    return IngestSession.from_handles(
        [FileHandle.from_bytes(path, b"x") for path in paths], root_name="box"
    )


def _orchestrator() -> IngestOrchestrator:
    return IngestOrchestrator(processor=_StubProcessor())


def test_new_session_is_staging_with_every_manifest_unassigned() -> None:
    session = _session()

    assert session.phase is SessionPhase.STAGING
    assert session.layout.root.name == "box"
    assert set(session.layout.unassigned) == set(session.manifests.all_ids)
    assert len(session.manifests.all_ids) == 2


def test_session_requires_files() -> None:
    with pytest.raises(EmptyFileSetError):
        IngestSession.from_handles([])


def test_from_directory_keeps_marker_files(tmp_path: Path) -> None:
    (tmp_path / "book").mkdir()
    (tmp_path / "book" / "p1.jpg").write_bytes(b"x")
    (tmp_path / "book" / ".iiif-exclude").write_text("", encoding="utf-8")

    session = IngestSession.from_directory(tmp_path)

    assert ".iiif-exclude" in session.tree.directories["book"].files
    analysis = session.analyze()
    assert analysis.root.children[0].proposed_type == "Excluded"


def test_removing_a_manifest_cascades_into_the_layout() -> None:
    session = _session()
    book = manifest_id_for("book")
    collection = session.create_collection("Books")
    session.add_to_collection(collection, [book])

    session.remove_source_manifest(book)

    assert book not in session.manifests.by_id
    assert find_collection(session.layout, collection).manifest_ids == ()
    result = session.commit()
    assert result.manifests.all_ids == (manifest_id_for("loose"),)


def test_merging_manifests_cascades_into_the_layout() -> None:
    session = _session()
    book, loose = manifest_id_for("book"), manifest_id_for("loose")
    collection = session.create_collection("Everything")
    session.add_to_collection(collection, [book, loose])

    session.merge_source_manifests([loose], book)

    assert find_collection(session.layout, collection).manifest_ids == (book,)
    assert len(session.manifests.by_id[book].canvases) == 4


def test_add_to_collection_validates_manifest_ids() -> None:
    session = _session()
    collection = session.create_collection("Books")

    with pytest.raises(LayoutIntegrityError):
        session.add_to_collection(collection, ["ghost"])


def test_preview_does_not_change_the_phase() -> None:
    session = _session()
    session.annotate("loose", excluded=True)

    preview = session.preview()

    assert "loose" not in preview.directories
    assert "loose" in session.tree.directories
    assert session.phase is SessionPhase.STAGING


def test_flatten_preview_hides_excluded_rows() -> None:
    session = _session()
    session.toggle_excluded("book/p2.jpg")

    rows = session.flatten({"book"}, preview=True)

    assert [row.path for row in rows] == ["book", "book/p1.jpg", "loose"]


def test_edits_are_rejected_after_commit() -> None:
    session = _session()
    session.commit()

    assert session.phase is SessionPhase.COMMITTING
    with pytest.raises(InvalidTransitionError):
        session.annotate("book", label="Late")
    with pytest.raises(InvalidTransitionError):
        session.create_collection("Late")
    with pytest.raises(InvalidTransitionError):
        session.retry()


def test_failed_commit_moves_to_error_and_can_retry() -> None:
    session = _session()
    session.layout = session.layout.model_copy(
        update={"unassigned": session.layout.unassigned + ("ghost",)}
    )

    with pytest.raises(LayoutIntegrityError):
        session.commit()

    assert session.phase is SessionPhase.ERROR
    assert isinstance(session.last_error, LayoutIntegrityError)
    session.retry()
    assert session.phase is SessionPhase.STAGING
    assert session.last_error is None


def test_session_config_applies_staging_options() -> None:
    config = ArcstageConfig.model_validate({"staging": {"similarity_candidate_cap": 2}})
    names = [f"scan_{index}.tif" for index in range(5)]
    session = IngestSession.from_handles(
        [FileHandle.from_bytes(name, b"x") for name in names], config=config
    )

    assert session.similar_filenames() == [names[:2]]


def test_ingest_runs_to_completion() -> None:
    session = _session()
    snapshots = []

    result = session.ingest(orchestrator=_orchestrator(), on_progress=snapshots.append)

    assert session.phase is SessionPhase.COMPLETE
    assert result.report.files_processed == 4
    assert session.ingest_result is result
    assert snapshots[-1].stage.value == "complete"
    with pytest.raises(InvalidTransitionError):
        session.ingest(orchestrator=_orchestrator())


def test_cancelled_ingest_ends_in_cancelled_phase() -> None:
    session = _session()
    orchestrator = _orchestrator()
    orchestrator.cancel()

    result = session.ingest(orchestrator=orchestrator)

    assert session.phase is SessionPhase.CANCELLED
    assert result.report.progress_summary.was_cancelled
    assert result.report.files_processed == 0


def test_cancel_before_ingest_is_not_lost() -> None:
    session = _session()

    session.cancel()
    result = session.ingest(orchestrator=_orchestrator())

    assert session.phase is SessionPhase.CANCELLED
    assert result.report.progress_summary.was_cancelled
    assert result.report.files_processed == 0
    assert [info.status for info in result.final_progress.files].count(FileStatus.PENDING) == 4


def test_cancel_reaches_the_default_orchestrator() -> None:
    session = _session()

    session.cancel()
    result = session.ingest()

    assert session.phase is SessionPhase.CANCELLED
    assert result.report.files_processed == 0


def test_excluding_the_root_leaves_nothing_to_ingest() -> None:
    session = _session()
    session.annotate("", excluded=True)

    result = session.commit()

    assert result.file_plan == []
    assert result.tree.count_files() == 0
    assert result.manifests.all_ids == ()


def test_similar_files_use_configured_threshold() -> None:
    paths = ["scans/cover.jpg", "scans/covers.jpg", "scans/index.jpg"]
    handles = [FileHandle.from_bytes(path, b"x") for path in paths]
    lenient = IngestSession.from_handles(
        handles, config=ArcstageConfig.model_validate({"staging": {"similarity_threshold": 0.0}})
    )
    strict = IngestSession.from_handles(
        handles, config=ArcstageConfig.model_validate({"staging": {"similarity_threshold": 1.0}})
    )

    assert [match.filename for match in lenient.similar_files("scans/cover.jpg")][0] == "covers.jpg"
    assert len(lenient.similar_files("scans/cover.jpg")) == 2
    assert strict.similar_files("scans/cover.jpg") == []
    with pytest.raises(KeyError):
        strict.similar_files("scans/missing.jpg")
