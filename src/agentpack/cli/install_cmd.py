"""``agentpack install [package]``: Install packages into the workspace.

With a PACKAGE argument, installs that one package (and its dependencies).
Without one, installs every dependency declared in the workspace
``agentpack.yml``.

Exit Codes:
    0 - Every install unit wrote its files (warnings allowed).
    1 - An install unit failed outright, or the input was invalid.
    2 - No manifest found in the workspace.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from agentpack.config import CONFLICT_STRATEGIES
from agentpack.core.install import InstallOptions, InstallOrchestrator
from agentpack.exceptions import AgentPackError, NotFoundError


@click.command("install")
@click.argument("package", required=False)
@click.option(
    "--platform", "-p", "platforms",
    multiple=True,
    help="Target platform id or alias (repeatable). Default: detected platforms.",
)
@click.option("--dev", is_flag=True, default=False, help="Include dev-dependencies.")
@click.option("--dry-run", is_flag=True, default=False, help="Show what would change, write nothing.")
@click.option("--fail-fast", is_flag=True, default=False, help="Stop resolving at the first failure.")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Parallel resolutions.")
@click.option(
    "--conflict-strategy",
    type=click.Choice(sorted(CONFLICT_STRATEGIES)),
    default=None,
    help="How to settle two packages writing the same file.",
)
@click.option(
    "--only", "resource_filter",
    multiple=True,
    help="Install only the root package's files matching this glob (repeatable).",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Workspace directory.",
)
def install_command(
    package: str | None,
    platforms: tuple[str, ...],
    dev: bool,
    dry_run: bool,
    fail_fast: bool,
    concurrency: int | None,
    conflict_strategy: str | None,
    resource_filter: tuple[str, ...],
    as_json: bool,
    cwd: str,
) -> None:
    """Install PACKAGE, or every dependency in agentpack.yml.

    PACKAGE may be a registry name (``name@^1.0``), a local path
    (``./pkg``), a git URL or ``github:owner/repo[/subdir][#ref]``.

    Exit code 0 on success, 1 on failure, 2 if no manifest was found.
    """
    options = InstallOptions(
        platforms=list(platforms),
        include_dev=dev,
        dry_run=dry_run,
        fail_fast=fail_fast,
        concurrency=concurrency,
        conflict_strategy=conflict_strategy,
        resource_filter=list(resource_filter),
    )
    try:
        report = InstallOrchestrator().install(Path(cwd), package, options)
    except NotFoundError as exc:
        _fail(str(exc), as_json, code=2 if package is None else 1)
    except AgentPackError as exc:
        _fail(str(exc), as_json, code=1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        from agentpack.cli.output import print_install_report
        print_install_report(report)
    sys.exit(0 if report.success else 1)


def _fail(message: str, as_json: bool, code: int) -> None:
    if as_json:
        click.echo(json.dumps({"success": False, "error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(code)
