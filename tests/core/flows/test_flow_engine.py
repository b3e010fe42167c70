"""Tests for FlowEngine: collecting package files and composing targets.

Verifies:
    - replace, deep and composite targets are written for a package.
    - A repeated run with unchanged inputs writes nothing.
    - Contested replace paths are relocated under a package namespace.
    - Deep-merged keys go to the highest-priority package.
    - A failing flow is recorded per package; other flows still run.
    - Dry runs compute results without touching the workspace.
    - Two packages installed in separate runs end the same in either order.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentpack.core.conflicts import ConflictResolver
from agentpack.core.flows.engine import FlowEngine
from agentpack.core.flows.models import (
    FlowApplyResult,
    FlowPackage,
    MergePolicy,
    PlatformDefinition,
)
from agentpack.core.flows.platforms import builtin_platforms
from agentpack.core.index import FileRecord, OwnerRecord, WorkspaceIndex
from tests.helpers import write_package


@pytest.fixture
def claude() -> PlatformDefinition:
    return builtin_platforms()["claude"]


def _package(root: Path, name: str, files: dict[str, str], priority: int = 100, rank: int = 0,
             **kwargs) -> FlowPackage:
    path = write_package(root, name, files)
    return FlowPackage(name, path, version="1.0.0", priority=priority, rank=rank, **kwargs)


def _read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


class TestSinglePackage:
    def test_all_policies_written(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(packages_dir, "team", {
            "rules/python/style.md": "Use black.\n",
            "skills/pdf/SKILL.md": "# PDF\n",
            "mcp.json": json.dumps({"servers": {"github": {"command": "gh"}}}),
            "AGENTS.md": "Be concise.\n",
        })

        result = FlowEngine().apply_flows([pkg], [claude], workspace)

        assert result.success
        assert (workspace / ".claude/rules/python/style.md").read_text() == "Use black.\n"
        assert (workspace / ".claude/skills/pdf/SKILL.md").read_text() == "# PDF\n"
        assert _read_json(workspace / ".mcp.json") == {"mcpServers": {"github": {"command": "gh"}}}
        assert "<!-- agentpack:begin team -->\nBe concise.\n" in (workspace / "CLAUDE.md").read_text()
        assert sorted(result.written_paths) == [
            ".claude/rules/python/style.md",
            ".claude/skills/pdf/SKILL.md",
            ".mcp.json",
            "CLAUDE.md",
        ]
        assert result.files_processed == 4

    def test_file_mapping_records_ownership(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(packages_dir, "team", {
            "rules/style.md": "x\n",
            "mcp.json": '{"mcpServers": {"a": {"command": "a"}}}',
        })

        result = FlowEngine().apply_flows([pkg], [claude], workspace)

        rule = result.file_mapping[".claude/rules/style.md"]
        assert rule.merge is MergePolicy.REPLACE
        assert rule.owners["team"].integrity == WorkspaceIndex.compute_integrity(b"x\n")
        mcp = result.file_mapping[".mcp.json"]
        assert mcp.merge is MergePolicy.DEEP
        assert mcp.owners["team"].keys == ["/mcpServers/a/command"]
        assert result.paths_owned_by("team") == [".claude/rules/style.md", ".mcp.json"]

    def test_second_run_writes_nothing(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(packages_dir, "team", {
            "rules/style.md": "x\n",
            "mcp.json": '{"servers": {"a": {"command": "a"}}}',
            "AGENTS.md": "Hello\n",
        })
        engine = FlowEngine()
        engine.apply_flows([pkg], [claude], workspace)

        again = engine.apply_flows([pkg], [claude], workspace)

        assert again.files_written == 0
        assert sorted(again.unchanged_paths) == sorted(again.target_paths)

    def test_user_keys_in_deep_target_survive(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        (workspace / ".mcp.json").write_text('{"mcpServers": {"mine": {"command": "me"}}}')
        pkg = _package(packages_dir, "team", {"mcp.json": '{"servers": {"a": {"command": "a"}}}'})

        FlowEngine().apply_flows([pkg], [claude], workspace)

        assert _read_json(workspace / ".mcp.json") == {
            "mcpServers": {"mine": {"command": "me"}, "a": {"command": "a"}},
        }

    def test_file_filter_limits_sources(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(
            packages_dir, "team",
            {"rules/style.md": "x\n", "agents/reviewer.md": "y\n"},
            file_filter=("rules/",),
        )

        result = FlowEngine().apply_flows([pkg], [claude], workspace)

        assert result.target_paths == [".claude/rules/style.md"]
        assert not (workspace / ".claude/agents").exists()

    def test_dry_run_writes_nothing(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(packages_dir, "team", {"rules/style.md": "x\n", "AGENTS.md": "Hi\n"})

        result = FlowEngine(dry_run=True).apply_flows([pkg], [claude], workspace)

        assert result.files_written == 2
        assert list(workspace.iterdir()) == []


class TestMultiplePackages:
    def test_replace_collision_relocates_loser(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {"rules/style.md": "from a\n"}, priority=100, rank=0)
        b = _package(packages_dir, "b", {"rules/style.md": "from b\n"}, priority=90, rank=1)

        result = FlowEngine().apply_flows([a, b], [claude], workspace)

        assert (workspace / ".claude/rules/style.md").read_text() == "from a\n"
        assert (workspace / ".claude/rules/b/style.md").read_text() == "from b\n"
        assert [(r.from_path, r.to_path, r.package) for r in result.relocated_files] == [
            (".claude/rules/style.md", ".claude/rules/b/style.md", "b"),
        ]
        assert len(result.conflicts) == 1
        assert result.conflicts[0].winner == "a"

    def test_identical_content_is_not_a_conflict(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {"rules/style.md": "same\n"}, priority=100, rank=0)
        b = _package(packages_dir, "b", {"rules/style.md": "same\n"}, priority=90, rank=1)

        result = FlowEngine().apply_flows([a, b], [claude], workspace)

        assert result.conflicts == []
        assert result.relocated_files == []
        assert list(result.file_mapping[".claude/rules/style.md"].owners) == ["a"]

    def test_overwrite_strategy_skips_loser(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {"rules/style.md": "from a\n"}, priority=90, rank=1)
        b = _package(packages_dir, "b", {"rules/style.md": "from b\n"}, priority=100, rank=0)

        result = FlowEngine(ConflictResolver("overwrite")).apply_flows([a, b], [claude], workspace)

        assert (workspace / ".claude/rules/style.md").read_text() == "from b\n"
        assert not (workspace / ".claude/rules/a").exists()
        assert result.conflicts[0].losers == ["a"]

    def test_deep_merge_priority(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {
            "mcp.json": '{"servers": {"github": {"command": "a"}}}',
        }, priority=100, rank=0)
        b = _package(packages_dir, "b", {
            "mcp.json": '{"servers": {"github": {"command": "b"}, "local": {"command": "l"}}}',
        }, priority=90, rank=1)

        result = FlowEngine().apply_flows([b, a], [claude], workspace)

        assert _read_json(workspace / ".mcp.json") == {
            "mcpServers": {"github": {"command": "a"}, "local": {"command": "l"}},
        }
        owners = result.file_mapping[".mcp.json"].owners
        assert owners["a"].keys == ["/mcpServers/github/command"]
        assert owners["b"].keys == ["/mcpServers/local/command"]

    def test_composite_sections_by_priority(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {"AGENTS.md": "A rules\n"}, priority=100, rank=0)
        b = _package(packages_dir, "b", {"AGENTS.md": "B rules\n"}, priority=90, rank=1)

        FlowEngine().apply_flows([b, a], [claude], workspace)

        text = (workspace / "CLAUDE.md").read_text()
        assert text.index("agentpack:begin a") < text.index("agentpack:begin b")

    def test_composite_strips_stale_run_section(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        a = _package(packages_dir, "a", {"AGENTS.md": "A rules\n"})
        b = _package(packages_dir, "b", {"AGENTS.md": "B rules\n"}, priority=90, rank=1)
        engine = FlowEngine()
        engine.apply_flows([a, b], [claude], workspace)

        a_only = _package(packages_dir, "a2", {"AGENTS.md": "A rules\n"})
        engine.apply_flows([a_only], [claude], workspace, run_packages=["a2", "b"])

        text = (workspace / "CLAUDE.md").read_text()
        assert "B rules" not in text
        assert "<!-- agentpack:begin a -->" in text
        assert "<!-- agentpack:begin a2 -->" in text

    def test_foreign_index_owner_triggers_relocation(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        target = workspace / ".claude/rules/style.md"
        target.parent.mkdir(parents=True)
        target.write_text("other's\n")
        index = WorkspaceIndex()
        index.set_file(FileRecord(
            path=".claude/rules/style.md",
            owners={"other": OwnerRecord(priority=100)},
        ))
        pkg = _package(packages_dir, "team", {"rules/style.md": "mine\n"})

        result = FlowEngine().apply_flows([pkg], [claude], workspace, index=index)

        assert target.read_text() == "other's\n"
        assert (workspace / ".claude/rules/team/style.md").read_text() == "mine\n"
        assert result.conflicts[0].winner == "other"


class TestFailures:
    def test_bad_payload_fails_only_that_flow(
        self, packages_dir: Path, workspace: Path, claude: PlatformDefinition
    ) -> None:
        pkg = _package(packages_dir, "team", {"rules/style.md": "x\n", "mcp.json": "{broken"})

        result = FlowEngine().apply_flows([pkg], [claude], workspace)

        assert not result.success
        assert len(result.errors) == 1
        failure = result.errors[0]
        assert failure.package == "team"
        assert failure.source_path == "mcp.json"
        assert failure.error == "ValidationError"
        assert (workspace / ".claude/rules/style.md").is_file()
        assert not (workspace / ".mcp.json").exists()

    def test_mixed_policies_on_one_target_fail(self, packages_dir: Path, workspace: Path) -> None:
        platform = PlatformDefinition.from_dict("t", {
            "root_dir": ".t",
            "export": [
                {"from": "a.json", "to": "{rootDir}/out.json", "merge": "deep"},
                {"from": "b.json", "to": "{rootDir}/out.json"},
            ],
        })
        one = _package(packages_dir, "one", {"a.json": "{}"})
        two = _package(packages_dir, "two", {"b.json": "{}"}, priority=90, rank=1)

        result = FlowEngine().apply_flows([one, two], [platform], workspace)

        assert sorted(f.package for f in result.errors) == ["one", "two"]
        assert "Conflicting merge policies" in result.errors[0].message
        assert not (workspace / ".t/out.json").exists()

    def test_condition_excludes_package(self, packages_dir: Path, workspace: Path) -> None:
        platform = PlatformDefinition.from_dict("t", {
            "root_dir": ".t",
            "export": [{
                "from": "rules/*.md",
                "to": "{rootDir}/{file}",
                "when": {"packages": ["team-*"]},
            }],
        })
        team = _package(packages_dir, "team-rules", {"rules/a.md": "a\n"})
        other = _package(packages_dir, "other", {"rules/b.md": "b\n"}, priority=90, rank=1)

        result = FlowEngine().apply_flows([team, other], [platform], workspace)

        assert result.target_paths == [".t/a.md"]

    def test_disabled_platform_ignored(self, packages_dir: Path, workspace: Path) -> None:
        platform = PlatformDefinition.from_dict("t", {
            "root_dir": ".t",
            "enabled": False,
            "export": [{"from": "rules/*.md", "to": "{rootDir}/{file}"}],
        })
        pkg = _package(packages_dir, "team", {"rules/a.md": "a\n"})

        assert FlowEngine().apply_flows([pkg], [platform], workspace).target_paths == []


def _record(index: WorkspaceIndex, result: FlowApplyResult) -> None:
    """Persist a run's ownership the way an install does."""
    for path, mapping in result.file_mapping.items():
        index.set_file(FileRecord(
            path=path,
            merge=mapping.merge.value,
            owners={
                pkg: OwnerRecord(priority=o.priority, keys=list(o.keys), integrity=o.integrity)
                for pkg, o in mapping.owners.items()
            },
        ))


class TestInstallOrder:
    """Installing two packages in separate runs, in either order."""

    @pytest.fixture
    def pair(self, packages_dir: Path) -> tuple[FlowPackage, FlowPackage]:
        team = _package(packages_dir, "team", {"mcp.json": json.dumps({"servers": {
            "github": {"command": "team-gh"},
            "docs": {"command": "docs"},
        }})}, priority=100)
        base = _package(packages_dir, "base", {"mcp.json": json.dumps({"servers": {
            "github": {"command": "base-gh", "env": {"TOKEN": "x"}},
            "local": {"command": "local"},
        }})}, priority=90)
        return team, base

    def _install(
        self, workspace: Path, order: list[FlowPackage], claude: PlatformDefinition
    ) -> tuple[dict, dict[str, OwnerRecord]]:
        workspace.mkdir()
        index = WorkspaceIndex()
        for pkg in order:
            _record(index, FlowEngine().apply_flows([pkg], [claude], workspace, index=index))
        return _read_json(workspace / ".mcp.json"), index.get_file(".mcp.json").owners

    def test_same_result_either_way(
        self, tmp_path: Path, pair: tuple[FlowPackage, FlowPackage], claude: PlatformDefinition
    ) -> None:
        team, base = pair

        team_first = self._install(tmp_path / "tb", [team, base], claude)
        base_first = self._install(tmp_path / "bt", [base, team], claude)

        assert team_first[0] == base_first[0] == {"mcpServers": {
            "github": {"command": "team-gh", "env": {"TOKEN": "x"}},
            "docs": {"command": "docs"},
            "local": {"command": "local"},
        }}
        assert team_first[1] == base_first[1]
        assert team_first[1]["team"].keys == [
            "/mcpServers/docs/command", "/mcpServers/github/command",
        ]
        assert team_first[1]["base"].keys == [
            "/mcpServers/github/env/TOKEN", "/mcpServers/local/command",
        ]
