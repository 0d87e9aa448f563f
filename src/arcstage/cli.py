"""Command line interface for the arcstage project."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import Any

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from arcstage.config import ArcstageConfig, ConfigError, ConfigManager
from arcstage.ingestion import IngestProgress, format_eta, format_speed
from arcstage.session import IngestSession, SessionError
from arcstage.staging import StagingError
from arcstage.staging.analysis import IngestPreviewNode
from arcstage.staging.patterns import GroupMapping
from arcstage.tree import TreeError, all_directory_paths, filter_flat_nodes

console = Console()


def _configure_logging(level: str) -> None:
    """Route package logging through Rich at the configured level."""
    root = logging.getLogger()
    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logging.getLogger("arcstage").setLevel(level.upper())


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _load_config(cli_overrides: dict[str, Any] | None = None) -> ArcstageConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load(cli_overrides=cli_overrides)
    _configure_logging(config.logging.level)
    return config


def _open_session(path: str, config: ArcstageConfig) -> IngestSession:
    return IngestSession.from_directory(Path(path), config=config)


def _preview_branch(node: IngestPreviewNode, branch: Tree) -> None:
    for child in node.children:
        label = (
            f"{child.name} [cyan]{child.proposed_type}[/cyan] "
            f"[dim]({child.confidence:.0%}, {child.stats.media_count} media)[/dim]"
        )
        _preview_branch(child, branch.add(label))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="arcstage")
def cli() -> None:
    """Arcstage stages loose file trees into archive manifests and collections."""


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--expand-all", is_flag=True, help="Expand every directory in the listing.")
@click.option("--filter", "query", type=str, help="Only show rows whose name contains QUERY.")
@click.option("--json", "json_output", is_flag=True, help="Emit the flattened tree as JSON.")
def scan(path: str, expand_all: bool, query: str | None, json_output: bool) -> None:
    """Show the file tree snapshot of PATH."""

    try:
        config = _load_config()
        session = _open_session(path, config)
    except (ConfigError, TreeError) as exc:
        _handle_cli_error(str(exc), code="scan_error", json_output=json_output, original=exc)
        return

    expanded = all_directory_paths(session.tree) if expand_all or query else frozenset()
    rows = session.flatten(expanded)
    if query:
        rows = filter_flat_nodes(rows, query)

    if json_output:
        console.print_json(
            data={
                "root": session.tree.name,
                "rows": [
                    {
                        "path": row.path,
                        "name": row.name,
                        "depth": row.depth,
                        "is_directory": row.is_directory,
                        "child_count": row.child_count,
                        "total_file_count": row.total_file_count,
                        "size": None if row.is_directory else row.size,
                    }
                    for row in rows
                ],
            }
        )
        return

    table = Table(title=f"{session.tree.name} ({session.tree.count_files()} files)")
    table.add_column("Name")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    for row in rows:
        indent = "  " * row.depth
        if row.is_directory:
            marker = "v" if row.is_expanded else ">"
            table.add_row(f"{indent}{marker} {row.name}/", str(row.total_file_count), "")
        else:
            table.add_row(f"{indent}  {row.name}", "", str(row.size))
    console.print(table)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Emit source manifests as JSON.")
def manifests(path: str, json_output: bool) -> None:
    """List the source manifests built from PATH."""

    try:
        session = _open_session(path, _load_config())
    except (ConfigError, TreeError) as exc:
        _handle_cli_error(str(exc), code="manifest_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=session.manifests.model_dump(mode="json"))
        return

    table = Table(title=f"Source manifests for {session.manifests.root_label}")
    table.add_column("Label")
    table.add_column("Canvases", justify="right")
    table.add_column("Pattern")
    for manifest in session.manifests.ordered():
        table.add_row(manifest.label, str(len(manifest.canvases)), manifest.detected_pattern or "")
    console.print(table)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option(
    "--like",
    "target",
    type=str,
    help="Score files against this file (path relative to PATH) instead of grouping.",
)
@click.option(
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    help="Minimum name similarity for --like matches (overrides staging.similarity_threshold).",
)
@click.option("--json", "json_output", is_flag=True, help="Emit similarity results as JSON.")
def similar(path: str, target: str | None, threshold: float | None, json_output: bool) -> None:
    """Group files under PATH whose names differ only by a numeric suffix."""

    overrides = {"staging.similarity_threshold": threshold} if threshold is not None else None
    try:
        session = _open_session(path, _load_config(overrides))
    except (ConfigError, TreeError) as exc:
        _handle_cli_error(str(exc), code="similar_error", json_output=json_output, original=exc)
        return

    if target is not None:
        try:
            matches = session.similar_files(Path(target).as_posix())
        except KeyError:
            _handle_cli_error(
                f"No file named {target} under {path}.",
                code="invalid_input",
                json_output=json_output,
            )
            return
        if json_output:
            console.print_json(
                data={
                    "target": target,
                    "matches": [
                        {"filename": match.filename, "reason": match.reason, "score": match.score}
                        for match in matches
                    ],
                }
            )
            return
        if not matches:
            console.print(f"[yellow]No files similar to {target}.[/yellow]")
            return
        for match in matches:
            console.print(f"  - {match.filename} [dim]({match.reason}, {match.score:.2f})[/dim]")
        return

    groups = session.similar_filenames()
    if json_output:
        console.print_json(data={"groups": groups})
        return
    if not groups:
        console.print("[yellow]No similar filenames found.[/yellow]")
        return
    for index, group in enumerate(groups, start=1):
        console.print(f"[bold]Group {index}[/bold] ({len(group)} files)")
        for name in group:
            console.print(f"  - {name}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Emit the analysis as JSON.")
def analyze(path: str, json_output: bool) -> None:
    """Propose manifest and collection types for the folders under PATH."""

    try:
        session = _open_session(path, _load_config())
    except (ConfigError, TreeError) as exc:
        _handle_cli_error(str(exc), code="analyze_error", json_output=json_output, original=exc)
        return

    analysis = session.analyze()
    if json_output:
        console.print_json(data=analysis.model_dump(mode="json"))
        return

    root = analysis.root
    tree = Tree(f"[bold]{root.name}[/bold] [cyan]{root.proposed_type}[/cyan]")
    _preview_branch(root, tree)
    console.print(tree)
    summary = analysis.summary
    console.print(
        _format_summary_line(
            "Analyze",
            path,
            {
                "folders": summary.total_folders,
                "manifests": summary.proposed_manifests,
                "collections": summary.proposed_collections,
                "images": summary.total_images,
            },
        )
    )


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--pattern", required=True, help="Regular expression applied to each filename.")
@click.option(
    "--map",
    "mappings",
    multiple=True,
    required=True,
    help="Group-to-property mapping such as 1=date (repeatable).",
)
@click.option("--json", "json_output", is_flag=True, help="Emit extraction results as JSON.")
def extract(path: str, pattern: str, mappings: tuple[str, ...], json_output: bool) -> None:
    """Extract metadata from the filenames under PATH with a regex PATTERN."""

    try:
        parsed = [GroupMapping.parse(text) for text in mappings]
        session = _open_session(path, _load_config())
    except ValueError as exc:
        _handle_cli_error(str(exc), code="invalid_mapping", json_output=json_output, original=exc)
        return
    except (ConfigError, TreeError) as exc:
        _handle_cli_error(str(exc), code="extract_error", json_output=json_output, original=exc)
        return

    results = session.extract_metadata(pattern, parsed)
    if json_output:
        console.print_json(
            data={
                "results": [
                    {"source": item.source, "extracted": item.extracted, "success": item.success}
                    for item in results
                ]
            }
        )
        return

    properties = [mapping.property for mapping in parsed]
    table = Table(title=f"Pattern {pattern}")
    table.add_column("File")
    for name in properties:
        table.add_column(name)
    for item in results:
        values = [item.extracted.get(name, "") for name in properties]
        style = None if item.success else "dim"
        table.add_row(item.source, *values, style=style)
    console.print(table)
    matched = sum(1 for item in results if item.success)
    console.print(_format_summary_line("Extract", path, {"matched": matched, "files": len(results)}))


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option(
    "--annotations",
    type=click.Path(exists=True, dir_okay=False, path_type=str),
    help="YAML file of per-path annotation overrides.",
)
@click.option("--workers", type=click.IntRange(1, 4), help="Override the worker pool size.")
@click.option("--json", "json_output", is_flag=True, help="Emit the ingest report as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def ingest(
    ctx: click.Context,
    path: str,
    annotations: str | None,
    workers: int | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Commit the staged tree under PATH and process every kept file.

    Args:
        ctx: Click context used for parameter source inspection.
        path: Root directory to ingest.
        annotations: Optional YAML overlay applied before commit.
        workers: Worker pool size override.
        json_output: If True, emit the report as JSON.
        summary_mode: When True, limit output to summary lines and warnings.
        quiet: When True, suppress non-error CLI output entirely.

    Raises:
        click.ClickException: If configuration, staging, or ingest fails.
    """

    try:
        overrides = {"ingest": {"max_workers": workers}} if workers is not None else None
        config = _load_config(overrides)

        explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
        explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE
        quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
        summary_only = summary_mode if explicit_summary else config.cli.summary_default

        if json_output:
            if explicit_quiet and quiet_enabled:
                raise click.ClickException("--json cannot be combined with --quiet.")
            if explicit_summary and summary_only:
                raise click.ClickException("--json cannot be combined with --summary.")
            quiet_enabled = False
            summary_only = False

        if quiet_enabled and summary_only:
            raise click.ClickException(
                "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
            )

        session = _open_session(path, config)
        if annotations:
            session.load_annotations(Path(annotations).read_text(encoding="utf-8"))

        show_progress = not (json_output or quiet_enabled or summary_only)
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[eta]}"),
            console=console,
            disable=not show_progress,
            transient=True,
        ) as progress:
            task_id = progress.add_task("Ingesting", total=100, eta="--")

            def on_progress(snapshot: IngestProgress) -> None:
                progress.update(
                    task_id,
                    completed=snapshot.overall_progress,
                    description=f"{snapshot.stage.value} {format_speed(snapshot.speed)}",
                    eta=format_eta(snapshot.eta_seconds),
                )

            result = session.ingest(on_progress=on_progress)
    except (ConfigError, TreeError, StagingError, SessionError) as exc:
        _handle_cli_error(str(exc), code="ingest_error", json_output=json_output, original=exc)
        return
    except (KeyError, ValueError, OSError) as exc:
        _handle_cli_error(
            f"Invalid ingest input: {exc}",
            code="invalid_input",
            json_output=json_output,
            details={"exception": type(exc).__name__},
            original=exc,
        )
        return

    report = result.report
    if json_output:
        console.print_json(data=report.model_dump(mode="json"))
        return

    for warning in report.warnings:
        _emit_message(
            f"[yellow]{warning}[/yellow]",
            mode="warning",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    summary = report.progress_summary
    _emit_message(
        _format_summary_line(
            "Ingest",
            path,
            {
                "processed": report.files_processed,
                "errors": summary.files_error,
                "skipped": summary.files_skipped,
                "manifests": report.manifests_created,
                "collections": report.collections_created,
                "canvases": report.canvases_created,
                "cancelled": summary.was_cancelled,
            },
        ),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.group()
def config() -> None:
    """Manage arcstage configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        config = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(config.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        before = manager.read_text().splitlines()
        parsed_value = yaml.safe_load(value)
        changed = manager.set_value(key, parsed_value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if not changed:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    diff = difflib.unified_diff(
        before,
        manager.read_text().splitlines(),
        fromfile="config.yaml (before)",
        tofile="config.yaml (after)",
        lineterm="",
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {key}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
