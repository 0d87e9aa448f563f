"""CLI tests for the staging and ingest commands."""

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner
from PIL import Image

from arcstage.cli import cli


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("ARCSTAGE__")}
    env["HOME"] = str(tmp_path / "home")
    return env


def _archive(tmp_path: Path) -> Path:
    root = tmp_path / "archive"
    (root / "book").mkdir(parents=True)
    Image.new("RGB", (30, 20), color="red").save(root / "book" / "page_1.png")
    Image.new("RGB", (30, 20), color="green").save(root / "book" / "page_2.png")
    Image.new("RGB", (10, 10), color="blue").save(root / "cover.jpg")
    return root


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Arcstage stages loose file trees" in result.output
    for command in ("scan", "manifests", "similar", "analyze", "extract", "ingest", "config"):
        assert command in result.output


def test_scan_json_lists_collapsed_and_expanded_rows(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    root = _archive(tmp_path)

    collapsed = runner.invoke(cli, ["scan", str(root), "--json"], env=env)
    expanded = runner.invoke(cli, ["scan", str(root), "--json", "--expand-all"], env=env)

    assert collapsed.exit_code == 0
    rows = json.loads(collapsed.stdout)["rows"]
    assert [row["path"] for row in rows] == ["book", "cover.jpg"]
    assert rows[0]["total_file_count"] == 2
    assert expanded.exit_code == 0
    assert [row["path"] for row in json.loads(expanded.stdout)["rows"]] == [
        "book",
        "book/page_1.png",
        "book/page_2.png",
        "cover.jpg",
    ]


def test_scan_filter_keeps_ancestors(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli, ["scan", str(root), "--json", "--filter", "PAGE_2"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 0
    assert [row["path"] for row in json.loads(result.stdout)["rows"]] == [
        "book",
        "book/page_2.png",
    ]


def test_scan_table_output(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["scan", str(root)], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "book/" in result.output
    assert "cover.jpg" in result.output


def test_scan_rejects_missing_directory(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["scan", str(tmp_path / "missing")], env=_env_with_home(tmp_path))

    assert result.exit_code != 0


def test_manifests_json(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["manifests", str(root), "--json"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    labels = [payload["by_id"][manifest_id]["label"] for manifest_id in payload["all_ids"]]
    assert labels == ["Root Files", "book"]
    assert payload["root_label"] == "archive"


def test_similar_json_groups_sequence_files(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["similar", str(root), "--json"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"groups": [["page_1.png", "page_2.png"]]}


def test_similar_like_applies_threshold_override(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    root = _archive(tmp_path)

    loose = runner.invoke(
        cli, ["similar", str(root), "--like", "cover.jpg", "--threshold", "0", "--json"], env=env
    )
    strict = runner.invoke(
        cli, ["similar", str(root), "--like", "cover.jpg", "--threshold", "1", "--json"], env=env
    )

    assert loose.exit_code == 0
    payload = json.loads(loose.stdout)
    assert payload["target"] == "cover.jpg"
    assert sorted(match["filename"] for match in payload["matches"]) == [
        "page_1.png",
        "page_2.png",
    ]
    assert json.loads(strict.stdout)["matches"] == []


def test_similar_like_unknown_file(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli, ["similar", str(root), "--like", "missing.jpg", "--json"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "invalid_input"


def test_analyze_json_and_summary(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["analyze", str(root), "--json"], env=env)
    text = runner.invoke(cli, ["analyze", str(root)], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["root"]["children"][0]["name"] == "book"
    assert payload["root"]["children"][0]["proposed_type"] == "Manifest"
    assert text.exit_code == 0
    assert "Analyze summary for" in text.output


def test_extract_json(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli,
        ["extract", str(root), "--pattern", r"page_(\d+)", "--map", "1=page", "--json"],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 0
    results = json.loads(result.stdout)["results"]
    assert results[0] == {"source": "cover.jpg", "extracted": {}, "success": False}
    assert results[1] == {"source": "page_1.png", "extracted": {"page": "1"}, "success": True}


def test_extract_rejects_malformed_mapping(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli,
        ["extract", str(root), "--pattern", "x", "--map", "nonsense", "--json"],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "invalid_mapping"


def test_ingest_json_reports_counts(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli, ["ingest", str(root), "--json", "--workers", "2"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["files_processed"] == 3
    assert report["manifests_created"] == 2
    assert report["canvases_created"] == 3
    assert report["progress_summary"]["was_cancelled"] is False


def test_ingest_applies_annotation_file(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)
    annotations = tmp_path / "annotations.yaml"
    annotations.write_text("book:\n  excluded: true\n", encoding="utf-8")

    result = runner.invoke(
        cli,
        ["ingest", str(root), "--json", "--annotations", str(annotations)],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["files_processed"] == 1
    assert report["manifests_created"] == 1


def test_ingest_rejects_annotations_for_unknown_paths(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)
    annotations = tmp_path / "annotations.yaml"
    annotations.write_text("ghost:\n  excluded: true\n", encoding="utf-8")

    result = runner.invoke(
        cli,
        ["ingest", str(root), "--json", "--annotations", str(annotations)],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "invalid_input"


def test_ingest_summary_mode(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["ingest", str(root), "--summary"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "Ingest summary for" in result.output
    assert "processed=3" in result.output


def test_ingest_json_conflicts_with_quiet(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(
        cli, ["ingest", str(root), "--json", "--quiet"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 1
    assert "--json cannot be combined with --quiet" in result.output


def test_ingest_quiet_suppresses_output(tmp_path: Path) -> None:
    runner = CliRunner()
    root = _archive(tmp_path)

    result = runner.invoke(cli, ["ingest", str(root), "--quiet"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "Ingest summary" not in result.output
