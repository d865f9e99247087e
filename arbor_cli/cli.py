"""Typer-based CLI for Arbor call-graph indexing and sink audits."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from . import __version__, config_manager
from .audit import run_audit
from .errors import ParseError, ProjectNotLoadedError, SinkNotFoundError
from .indexer import ProjectIndexer
from .models import AuditConfig
from .parser import ArborParser
from .report import parse_result_to_dict, render_audit, render_symbols
from .storage import GraphStore, ProjectManager

app = typer.Typer(
    help="🌳 Arbor: call-graph extraction and security reachability audits.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"Arbor CLI v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
):
    """Arbor: trace sensitive sinks back to their public entry points."""
    _configure_logging(verbose)


def _project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


def _open_current_store(pm: ProjectManager) -> GraphStore:
    project = pm.get_current_project()
    if not project:
        raise ProjectNotLoadedError(
            "No project loaded. Use 'arbor load-project <name>' or run 'arbor index <path>'."
        )
    project_dir = pm.project_dir(project)
    if not project_dir.exists():
        raise ProjectNotLoadedError(f"Loaded project '{project}' does not exist in memory.")
    return GraphStore(project_dir)


@app.command("index")
def index_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit memory name for project."),
):
    """Parse a source tree into project memory and make it current."""
    pm = ProjectManager()
    resolved_path = project_path.resolve()
    name = project_name or _project_name_from_path(resolved_path)
    project_dir = pm.create_or_get_project(name)

    store = GraphStore(project_dir)
    try:
        indexer = ProjectIndexer(store)
        stats = indexer.index_project(resolved_path)
        store.set_metadata({**store.get_metadata(), "project_name": name})
    finally:
        store.close()
    pm.set_current_project(name)

    typer.echo(f"Indexed '{resolved_path}' as project '{name}'.")
    typer.echo(
        f"Files: {stats['files']} | Symbols: {stats['symbols']} | "
        f"Relations: {stats['relations']} | Errors: {stats['errors']}"
    )


@app.command("symbols")
def symbols(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to parse."),
    as_json: bool = typer.Option(False, "--json", help="Print the parse result as JSON."),
):
    """Parse one file and list its symbols and relations."""
    parser = ArborParser()
    try:
        result = parser.parse_file(file_path)
    except ParseError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(parse_result_to_dict(result), indent=2))
    else:
        render_symbols(result, console)


@app.command("audit")
def audit(
    sink: str = typer.Argument(..., help="Sink symbol name or qualified id (file.py:name)."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", "-d", min=1, help="Maximum trace length."),
    ignore_tests: Optional[bool] = typer.Option(
        None, "--ignore-tests/--include-tests", help="Drop callers located in test files.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the audit result as JSON."),
):
    """Find every path from an entry point to SINK in the current project."""
    defaults = config_manager.load_audit_config()
    audit_config = AuditConfig(
        max_depth=max_depth if max_depth is not None else defaults["max_depth"],
        ignore_tests=ignore_tests if ignore_tests is not None else defaults["ignore_tests"],
    )

    pm = ProjectManager()
    try:
        store = _open_current_store(pm)
    except ProjectNotLoadedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    try:
        graph = store.load_graph()
    finally:
        store.close()

    try:
        result = run_audit(graph, sink, audit_config)
    except SinkNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_audit(result, console)


@app.command("list-projects")
def list_projects():
    """List all persisted project memories."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects indexed yet.")
        raise typer.Exit(code=0)

    for p in projects:
        marker = "*" if p == current else " "
        summary = pm.project_summary(p)
        if summary:
            typer.echo(f"{marker} {p}  ({summary.get('files', 0)} files, {summary.get('symbols', 0)} symbols)")
        else:
            typer.echo(f"{marker} {p}  (not indexed)")


@app.command("load-project")
def load_project(project_name: str = typer.Argument(..., help="Name of project memory to load.")):
    """Switch active project memory."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Loaded project '{project_name}'.")


@app.command("delete-project")
def delete_project(project_name: str = typer.Argument(..., help="Project memory to delete.")):
    """Delete persisted project memory."""
    pm = ProjectManager()
    if not pm.delete_project(project_name):
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    typer.echo(f"Deleted project '{project_name}'.")


if __name__ == "__main__":
    app()
