"""Rendering of audit results for the terminal and for JSON output."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .models import AuditResult, NodeInfo, ParseResult, Severity

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "dark_orange",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "green",
}


def audit_to_dict(result: AuditResult) -> Dict[str, Any]:
    return result.to_dict()


def parse_result_to_dict(result: ParseResult) -> Dict[str, Any]:
    return {
        "file_path": result.file_path,
        "symbols": [
            {
                "id": s.id,
                "name": s.name,
                "kind": s.kind.value,
                "line_start": s.line_start,
                "line_end": s.line_end,
                "column": s.column,
                "byte_start": s.byte_start,
                "byte_end": s.byte_end,
                "signature": s.signature,
            }
            for s in result.symbols
        ],
        "relations": [
            {
                "from_id": r.from_id,
                "to_name": r.to_name,
                "kind": r.kind.value,
                "line": r.line,
            }
            for r in result.relations
        ],
    }


def format_trace(trace: List[NodeInfo]) -> str:
    return " → ".join(escape(node.name) for node in trace)


def severity_markup(severity: Severity) -> str:
    style = SEVERITY_STYLES[severity]
    return f"[{style}]{severity.label}[/{style}]"


def render_audit(result: AuditResult, console: Optional[Console] = None) -> None:
    """Print a summary panel, the path table and any uncertainty notes."""
    console = console or Console()
    summary = result.summary
    sink = result.sink

    header = (
        f"[bold]Sink:[/bold] {escape(sink.name)}  [dim]({escape(sink.id)}, {escape(sink.file)}:{sink.line_start})[/dim]\n"
        f"[bold]Paths:[/bold] {result.path_count}   "
        f"[bold]Entry points:[/bold] {summary.unique_entry_points}   "
        f"[bold]Files:[/bold] {summary.unique_files}\n"
        f"{severity_markup(Severity.CRITICAL)} {summary.critical_count}   "
        f"{severity_markup(Severity.HIGH)} {summary.high_count}   "
        f"{severity_markup(Severity.MEDIUM)} {summary.medium_count}   "
        f"{severity_markup(Severity.LOW)} {summary.low_count}"
    )
    console.print(Panel(header, title="Security audit", expand=False))

    if not result.paths:
        console.print("[green]No entry point reaches this sink.[/green]")
        return

    table = Table(show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Severity")
    table.add_column("Entry point", style="cyan")
    table.add_column("Len", justify="right")
    table.add_column("Trace")

    notes: List[str] = []
    for number, path in enumerate(result.paths, 1):
        entry = f"{escape(path.source.name)} [dim]{escape(path.source.file)}:{path.source.line_start}[/dim]"
        table.add_row(
            str(number),
            severity_markup(path.severity),
            entry,
            str(len(path.trace)),
            format_trace(path.trace),
        )
        for note in path.uncertainty:
            if note not in notes:
                notes.append(note)

    console.print(table)

    if notes:
        console.print("[yellow]Uncertain edges:[/yellow]")
        for note in notes:
            console.print(f"  • {escape(note)}")


def render_symbols(result: ParseResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title=escape(result.file_path))
    table.add_column("Kind", style="magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Lines", justify="right")
    table.add_column("Signature", overflow="fold")
    for symbol in result.symbols:
        table.add_row(
            symbol.kind.value,
            escape(symbol.name),
            f"{symbol.line_start}-{symbol.line_end}",
            escape(symbol.signature or ""),
        )
    console.print(table)

    calls = result.calls()
    imports = result.imports()
    console.print(f"[bold]Imports:[/bold] {len(imports)}   [bold]Calls:[/bold] {len(calls)}")
    for relation in imports:
        console.print(f"  import {escape(relation.to_name)} [dim](line {relation.line})[/dim]")
    for relation in calls:
        console.print(f"  {escape(relation.from_id)} → {escape(relation.to_name)} [dim](line {relation.line})[/dim]")
