"""``agentpack tree``: Print the workspace's resolved dependency tree.

Exit Codes:
    0 - Every declaration resolved.
    1 - Some declarations could not be resolved (tree is partial).
    2 - No manifest found in the workspace.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from agentpack.core.install import InstallOrchestrator
from agentpack.exceptions import AgentPackError, NotFoundError


@click.command("tree")
@click.option("--dev", is_flag=True, default=False, help="Include dev-dependencies.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print nodes as JSON.")
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Workspace directory.",
)
def tree_command(dev: bool, as_json: bool, cwd: str) -> None:
    """Resolve agentpack.yml and print the dependency tree."""
    try:
        resolution = InstallOrchestrator().resolve_tree(Path(cwd), include_dev=dev)
    except NotFoundError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    except AgentPackError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        data = {
            "nodes": [
                {
                    "name": n.name,
                    "id": n.id.key,
                    "version": n.version,
                    "depth": n.depth,
                    "dev": n.is_dev,
                    "path": str(n.source.absolute_path),
                    "dependencies": list(n.dependencies),
                }
                for n in resolution.nodes
            ],
            "warnings": resolution.warnings,
            "missing": resolution.missing_packages,
        }
        click.echo(json.dumps(data, indent=2))
    else:
        from agentpack.cli.output import print_tree
        print_tree(resolution)
    sys.exit(0 if resolution.success else 1)
