"""End-to-end tests for InstallOrchestrator against local path packages.

Tests install into a temporary workspace. Most select the ``claude``
platform explicitly; the ones relying on detection create marker
directories themselves.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentpack.config import Settings
from agentpack.core.index import WorkspaceIndex
from agentpack.core.install import BULK, SINGLE, InstallOptions, InstallOrchestrator
from agentpack.exceptions import NotFoundError
from tests.helpers import write_package, write_workspace_manifest

CLAUDE = InstallOptions(platforms=["claude"])


@pytest.fixture
def orchestrator(settings: Settings) -> InstallOrchestrator:
    return InstallOrchestrator(settings=settings)


@pytest.fixture
def team_with_base(packages_dir: Path, workspace: Path) -> Path:
    """``team`` (root) depends on ``base``; both contribute MCP servers."""
    write_package(packages_dir, "base", {
        "rules/base.md": "Base rule\n",
        "mcp.json": json.dumps({"servers": {
            "github": {"command": "base-gh"},
            "local": {"command": "local"},
        }}),
    })
    team = write_package(packages_dir, "team", {
        "rules/style.md": "Team style\n",
        "mcp.json": json.dumps({"servers": {"github": {"command": "team-gh"}}}),
        "AGENTS.md": "Team instructions\n",
    }, dependencies=["../base"])
    write_workspace_manifest(workspace, ["../packages/team"])
    return team


def _mcp(workspace: Path) -> dict:
    return json.loads((workspace / ".mcp.json").read_text(encoding="utf-8"))


class TestInstall:
    def test_installs_tree(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        report = orchestrator.install(workspace, options=CLAUDE)

        assert report.success
        assert report.index_written
        [ctx] = report.contexts
        assert ctx.mode == BULK
        assert [(p.name, p.depth, p.priority) for p in ctx.resolved_packages] == [
            ("team", 0, 100),
            ("base", 1, 90),
        ]
        assert (workspace / ".claude/rules/style.md").read_text() == "Team style\n"
        assert (workspace / ".claude/rules/base.md").read_text() == "Base rule\n"
        assert "Team instructions" in (workspace / "CLAUDE.md").read_text()

    def test_root_wins_contested_mcp_key(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)

        assert _mcp(workspace) == {"mcpServers": {
            "github": {"command": "team-gh"},
            "local": {"command": "local"},
        }}
        index = WorkspaceIndex.read(WorkspaceIndex.path_for(workspace))
        owners = index.get_file(".mcp.json").owners
        assert owners["team"].keys == ["/mcpServers/github/command"]
        assert owners["base"].keys == ["/mcpServers/local/command"]
        assert owners["base"].priority == 90

    def test_index_records_packages(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)

        index = WorkspaceIndex.read(WorkspaceIndex.path_for(workspace))
        assert index.package_names == ["base", "team"]
        team = index.get_package("team")
        assert (team.version, team.source_type, team.source) == ("1.0.0", "path", "../packages/team")
        assert team.dependencies == ["base"]
        assert index.validate() == []

    def test_second_install_is_a_no_op(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)
        index_path = WorkspaceIndex.path_for(workspace)
        before = index_path.read_text()

        again = orchestrator.install(workspace, options=CLAUDE)

        assert again.success
        assert again.files_written == 0
        assert not again.index_written
        assert index_path.read_text() == before

    def test_detected_rerun_writes_nothing(
        self, orchestrator: InstallOrchestrator, workspace: Path, packages_dir: Path
    ) -> None:
        (workspace / ".cursor").mkdir()
        write_package(packages_dir, "review", {
            "AGENTS.md": "Review first\n",
            "commands/review.md": "Review the diff\n",
        })
        write_workspace_manifest(workspace, ["../packages/review"])

        first = orchestrator.install(workspace)
        again = orchestrator.install(workspace)

        assert (workspace / "AGENTS.md").is_file()
        assert [p.id for p in first.contexts[0].platforms] == ["cursor"]
        assert [p.id for p in again.contexts[0].platforms] == ["cursor"]
        assert again.files_written == 0
        assert not (workspace / ".opencode").exists()
        assert not (workspace / ".codex").exists()

    def test_colliding_rule_is_namespaced(
        self, orchestrator: InstallOrchestrator, packages_dir: Path, workspace: Path
    ) -> None:
        write_package(packages_dir, "base", {"rules/style.md": "base style\n"})
        write_package(packages_dir, "team", {"rules/style.md": "team style\n"},
                      dependencies=["../base"])
        write_workspace_manifest(workspace, ["../packages/team"])

        report = orchestrator.install(workspace, options=CLAUDE)

        assert (workspace / ".claude/rules/style.md").read_text() == "team style\n"
        assert (workspace / ".claude/rules/base/style.md").read_text() == "base style\n"
        assert any("relocated base" in w for w in report.warnings)

    def test_stale_file_removed_on_reinstall(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)
        (team_with_base / "rules/style.md").unlink()
        (team_with_base / "rules/new.md").write_text("New\n")

        report = orchestrator.install(workspace, options=CLAUDE)

        assert report.contexts[0].removed_files == [".claude/rules/style.md"]
        assert not (workspace / ".claude/rules/style.md").exists()
        assert (workspace / ".claude/rules/new.md").is_file()

    def test_failed_package_keeps_old_files(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)
        (team_with_base / "rules/style.md").unlink()
        (team_with_base / "mcp.json").write_text("{broken")

        report = orchestrator.install(workspace, options=CLAUDE)

        ctx = report.contexts[0]
        assert ctx.errors
        assert not ctx.hard_failure
        assert (workspace / ".claude/rules/style.md").is_file()
        assert _mcp(workspace)["mcpServers"]["github"] == {"command": "team-gh"}

    def test_dry_run_touches_nothing(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        report = orchestrator.install(
            workspace, options=InstallOptions(platforms=["claude"], dry_run=True)
        )

        assert report.dry_run
        assert report.files_written > 0
        assert not report.index_written
        assert sorted(p.name for p in workspace.iterdir()) == ["agentpack.yml"]

    def test_resource_filter_applies_to_root_only(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        options = InstallOptions(platforms=["claude"], resource_filter=["rules/"])

        orchestrator.install(workspace, options=options)

        assert (workspace / ".claude/rules/style.md").is_file()
        assert (workspace / ".claude/rules/base.md").is_file()
        assert not (workspace / "CLAUDE.md").exists()
        assert _mcp(workspace) == {"mcpServers": {
            "github": {"command": "base-gh"},
            "local": {"command": "local"},
        }}

    def test_single_package_without_manifest(
        self, orchestrator: InstallOrchestrator, packages_dir: Path, workspace: Path
    ) -> None:
        write_package(packages_dir, "solo", {"commands/review.md": "Review\n"})

        report = orchestrator.install(workspace, "../packages/solo", CLAUDE)

        assert report.success
        assert report.contexts[0].mode == SINGLE
        assert (workspace / ".claude/commands/review.md").read_text() == "Review\n"

    def test_bulk_without_manifest_raises(
        self, orchestrator: InstallOrchestrator, workspace: Path
    ) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.install(workspace, options=CLAUDE)

    def test_unresolvable_root_is_hard_failure(
        self, orchestrator: InstallOrchestrator, workspace: Path
    ) -> None:
        write_workspace_manifest(workspace, ["../packages/missing"])

        report = orchestrator.install(workspace, options=CLAUDE)

        assert not report.success
        [ctx] = report.contexts
        assert ctx.hard_failure
        assert ctx.missing_packages
        assert "Could not resolve missing" in ctx.errors

    def test_one_failing_root_does_not_block_others(
        self, orchestrator: InstallOrchestrator, packages_dir: Path, workspace: Path
    ) -> None:
        write_package(packages_dir, "good", {"rules/good.md": "ok\n"})
        write_workspace_manifest(workspace, ["../packages/missing", "../packages/good"])

        report = orchestrator.install(workspace, options=CLAUDE)

        assert [c.hard_failure for c in report.contexts] == [True, False]
        assert (workspace / ".claude/rules/good.md").is_file()


class TestUninstall:
    def test_removes_exactly_one_package(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)

        report = orchestrator.uninstall(workspace, "base")

        assert report.deleted == [".claude/rules/base.md"]
        assert report.updated == [".mcp.json"]
        assert _mcp(workspace) == {"mcpServers": {"github": {"command": "team-gh"}}}
        assert (workspace / ".claude/rules/style.md").is_file()
        index = WorkspaceIndex.read(WorkspaceIndex.path_for(workspace))
        assert index.package_names == ["team"]
        assert index.owners_of(".mcp.json") == ["team"]

    def test_last_package_leaves_clean_workspace(
        self, orchestrator: InstallOrchestrator, packages_dir: Path, workspace: Path
    ) -> None:
        write_package(packages_dir, "solo", {
            "rules/a.md": "a\n",
            "mcp.json": '{"servers": {"x": {"command": "x"}}}',
            "AGENTS.md": "Solo\n",
        })
        write_workspace_manifest(workspace, ["../packages/solo"])
        orchestrator.install(workspace, options=CLAUDE)

        orchestrator.uninstall(workspace, "solo")

        assert sorted(p.name for p in workspace.iterdir()) == [".agentpack", "agentpack.yml"]

    def test_user_modified_file_is_kept(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)
        (workspace / ".claude/rules/style.md").write_text("my edits\n")

        report = orchestrator.uninstall(workspace, "team")

        assert ".claude/rules/style.md" in report.kept
        assert (workspace / ".claude/rules/style.md").read_text() == "my edits\n"

    def test_dry_run_changes_nothing(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        orchestrator.install(workspace, options=CLAUDE)
        index_text = WorkspaceIndex.path_for(workspace).read_text()

        report = orchestrator.uninstall(workspace, "base", dry_run=True)

        assert report.deleted == [".claude/rules/base.md"]
        assert (workspace / ".claude/rules/base.md").is_file()
        assert WorkspaceIndex.path_for(workspace).read_text() == index_text

    def test_unknown_package_raises(
        self, orchestrator: InstallOrchestrator, workspace: Path
    ) -> None:
        with pytest.raises(NotFoundError, match="not installed"):
            orchestrator.uninstall(workspace, "ghost")


class TestResolveTree:
    def test_tree(
        self, orchestrator: InstallOrchestrator, workspace: Path, team_with_base: Path
    ) -> None:
        resolution = orchestrator.resolve_tree(workspace)

        assert resolution.success
        assert [(n.name, n.depth) for n in resolution.nodes] == [("team", 0), ("base", 1)]

    def test_no_manifest(self, orchestrator: InstallOrchestrator, workspace: Path) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.resolve_tree(workspace)
