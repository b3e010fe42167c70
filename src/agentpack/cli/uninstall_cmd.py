"""``agentpack uninstall <name>``: Remove one package from the workspace.

Deletes the package's own files, strips its keys from merged files and its
section from composite files, and drops it from the workspace index. Files
and keys owned by other packages are untouched.

Exit Codes:
    0 - Package removed.
    1 - Package is not installed, or the index is unreadable.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from agentpack.core.install import InstallOrchestrator
from agentpack.exceptions import AgentPackError


@click.command("uninstall")
@click.argument("name")
@click.option("--dry-run", is_flag=True, default=False, help="Show what would change, write nothing.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Workspace directory.",
)
def uninstall_command(name: str, dry_run: bool, as_json: bool, cwd: str) -> None:
    """Uninstall the package NAME."""
    try:
        report = InstallOrchestrator().uninstall(Path(cwd), name, dry_run=dry_run)
    except AgentPackError as exc:
        if as_json:
            click.echo(json.dumps({"success": False, "error": str(exc)}))
        else:
            click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        from agentpack.cli.output import print_uninstall_report
        print_uninstall_report(report)
    sys.exit(0)
