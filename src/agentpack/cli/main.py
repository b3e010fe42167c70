"""agentpack CLI: install AI coding-tool configuration packages.

Entry point for the ``agentpack`` command-line tool. Registers all
subcommands under a single Click group.

Commands:
    install    Install one package, or everything in agentpack.yml.
    uninstall  Remove one installed package's files and keys.
    tree       Print the resolved dependency tree.
    platforms  List known platforms and which are detected here.

Usage::

    agentpack install                           # Install the workspace manifest
    agentpack install github:acme/agent-kit     # Install one package
    agentpack install ./shared -p cursor        # Local package, one platform
    agentpack uninstall agent-kit
    agentpack tree --dev
    agentpack -v install --dry-run
"""

from __future__ import annotations

import click

from agentpack import __version__
from agentpack.cli.install_cmd import install_command
from agentpack.cli.platforms_cmd import platforms_command
from agentpack.cli.tree_cmd import tree_command
from agentpack.cli.uninstall_cmd import uninstall_command
from agentpack.logging_config import setup_logging, verbosity_to_level


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug).")
def cli(verbose: int) -> None:
    """agentpack: a package manager for AI coding-tool configuration.

    Installs rules, skills, agents, commands and MCP server definitions
    into every detected platform (Claude, Cursor, OpenCode, Codex,
    Windsurf), merging shared files without clobbering each other.
    """
    setup_logging(verbosity_to_level(verbose))


# Register all subcommands
cli.add_command(install_command)
cli.add_command(uninstall_command)
cli.add_command(tree_command)
cli.add_command(platforms_command)
