"""``agentpack platforms``: List known platforms.

Shows built-in platforms merged with ``platforms.yml`` overrides, and marks
the ones detected in the workspace.
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from agentpack.config import Settings
from agentpack.core.flows import detect_platforms, load_platforms


@click.command("platforms")
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Workspace directory.",
)
def platforms_command(cwd: str) -> None:
    """List platforms agentpack can install into."""
    from agentpack.cli.output import console

    workspace = Path(cwd).resolve()
    platforms = load_platforms(workspace, Settings.load(workspace).home)
    detected = {p.id for p in detect_platforms(workspace, platforms)}

    table = Table(title="agentpack Platforms", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Platform", style="bold")
    table.add_column("Id")
    table.add_column("Root Dir")
    table.add_column("Root File", style="dim")
    table.add_column("Flows", justify="right")
    table.add_column("Detected", justify="center")

    for i, p in enumerate(platforms.values(), 1):
        mark = "[green]yes[/green]" if p.id in detected else "[dim]-[/dim]"
        if not p.enabled:
            mark = "[dim]disabled[/dim]"
        table.add_row(
            str(i), p.name, p.id, p.root_dir, p.root_file or "-",
            str(len(p.export_flows)), mark,
        )

    console.print(table)
    console.print(f"\n[bold]{len(platforms)}[/bold] platforms, [bold]{len(detected)}[/bold] detected")
