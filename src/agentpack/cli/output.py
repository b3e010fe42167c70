"""Rich output formatting helpers for the agentpack CLI.

Provides consistent terminal output for install reports, uninstall
reports and dependency trees.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agentpack.core.dependency.graph import GraphResolution
from agentpack.core.install import InstallationContext, InstallReport, UninstallReport

console = Console()


def print_install_report(report: InstallReport) -> None:
    """Print a per-context summary of an install run.

    Args:
        report: The report returned by ``InstallOrchestrator.install``.
    """
    if not report.contexts:
        console.print("[dim]Nothing to install.[/dim]")
        return

    title = "agentpack Install (dry run)" if report.dry_run else "agentpack Install"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Package", style="bold")
    table.add_column("Platforms", style="dim")
    table.add_column("Packages", justify="right")
    table.add_column("Written", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Status", justify="center")

    for ctx in report.contexts:
        table.add_row(
            ctx.source.name,
            ", ".join(p.id for p in ctx.platforms) or "-",
            str(len(ctx.resolved_packages)),
            str(ctx.result.files_written if ctx.result else 0),
            str(len(ctx.result.unchanged_paths) if ctx.result else 0),
            _status(ctx),
        )
    console.print(table)

    for ctx in report.contexts:
        _print_details(ctx)

    parts = [f"[bold]{len(report.contexts)}[/bold] install units"]
    parts.append(f"{report.files_written} files written")
    if report.errors:
        parts.append(f"[red]{len(report.errors)} errors[/red]")
    if report.warnings:
        parts.append(f"[yellow]{len(report.warnings)} warnings[/yellow]")
    console.print(" | ".join(parts))


def _status(ctx: InstallationContext) -> Text:
    if ctx.hard_failure:
        return Text("FAILED", style="bold red")
    if ctx.errors:
        return Text("PARTIAL", style="yellow")
    return Text("OK", style="bold green")


def _print_details(ctx: InstallationContext) -> None:
    result = ctx.result
    if result and result.relocated_files:
        console.print(f"[cyan]{ctx.source.name}: relocated files[/cyan]")
        for r in result.relocated_files:
            console.print(f"  {r.from_path} -> {r.to_path} ({r.package})")
    if ctx.removed_files:
        console.print(f"[dim]{ctx.source.name}: removed stale files[/dim]")
        for path in ctx.removed_files:
            console.print(f"  [dim]- {path}[/dim]")
    for warning in ctx.warnings:
        console.print(f"  [yellow]! {warning}[/yellow]")
    for error in ctx.errors:
        console.print(f"  [red]- {error}[/red]")


def print_uninstall_report(report: UninstallReport) -> None:
    """Print the files an uninstall touched.

    Args:
        report: The report returned by ``InstallOrchestrator.uninstall``.
    """
    suffix = " (dry run)" if report.dry_run else ""
    console.print(Panel(f"[bold]{report.package}[/bold]", title=f"Uninstall{suffix}"))
    for path in report.deleted:
        console.print(f"  [red]deleted[/red]  {path}")
    for path in report.updated:
        console.print(f"  [yellow]updated[/yellow]  {path}")
    for path in report.kept:
        console.print(f"  [dim]kept[/dim]     {path} (modified or shared)")
    if not (report.deleted or report.updated or report.kept):
        console.print("[dim]No files were recorded for this package.[/dim]")


def print_tree(resolution: GraphResolution) -> None:
    """Print the dependency tree plus any resolution problems."""
    lines = resolution.graph().tree_lines()
    if not lines:
        console.print("[dim]No dependencies.[/dim]")
    for line in lines:
        console.print(line, markup=False, highlight=False)
    for warning in resolution.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")
    for name in resolution.missing_packages:
        console.print(f"[red]- missing: {name}[/red]")
