"""Tests for source globs, discovery and target templates."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentpack.core.flows.patterns import compile_pattern, discover_sources, resolve_target
from agentpack.exceptions import ValidationError


class TestCompilePattern:
    def test_recursive_glob_variables(self) -> None:
        compiled = compile_pattern("rules/**/*.md")
        assert compiled.prefix == "rules/"
        assert compiled.match("rules/python/style.md") == {
            "file": "style.md",
            "stem": "style",
            "ext": "md",
            "name": "style",
            "dir": "python/",
        }

    def test_top_level_match_has_empty_dir(self) -> None:
        assert compile_pattern("rules/**/*.md").match("rules/style.md")["dir"] == ""

    def test_single_star_stays_in_segment(self) -> None:
        compiled = compile_pattern("rules/*.md")
        assert compiled.match("rules/style.md") is not None
        assert compiled.match("rules/python/style.md") is None

    def test_question_mark(self) -> None:
        compiled = compile_pattern("a?.md")
        assert compiled.match("ab.md") is not None
        assert compiled.match("abc.md") is None

    def test_name_capture(self) -> None:
        compiled = compile_pattern("skills/{name}/SKILL.md")
        assert compiled.match("skills/pdf/SKILL.md")["name"] == "pdf"

    def test_literal_pattern(self) -> None:
        compiled = compile_pattern("./mcp.json")
        assert compiled.pattern == "mcp.json"
        assert compiled.prefix == ""
        assert compiled.match("mcp.json") is not None
        assert compiled.match("sub/mcp.json") is None

    def test_extension_must_match(self) -> None:
        assert compile_pattern("rules/**/*.md").match("rules/style.txt") is None

    @pytest.mark.parametrize("pattern", ["", "/etc/*"])
    def test_invalid(self, pattern: str) -> None:
        with pytest.raises(ValidationError):
            compile_pattern(pattern)


class TestDiscoverSources:
    def test_sorted_and_skips_metadata(self, tmp_path: Path) -> None:
        for rel in ["rules/b.md", "rules/a.md", "rules/deep/c.md", "rules/.git/x.md", "other/d.md"]:
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x")
        assert discover_sources(tmp_path, "rules/**/*.md") == [
            "rules/a.md",
            "rules/b.md",
            "rules/deep/c.md",
        ]

    def test_missing_prefix_dir(self, tmp_path: Path) -> None:
        assert discover_sources(tmp_path, "agents/**/*.md") == []


class TestResolveTarget:
    def test_substitution(self) -> None:
        target = resolve_target(
            "{rootDir}/rules/{dir}{name}.mdc",
            {"rootDir": ".cursor", "dir": "python/", "name": "style"},
        )
        assert target == ".cursor/rules/python/style.mdc"

    def test_normalizes_empty_segments(self) -> None:
        assert resolve_target("{rootDir}//x/./y.md", {"rootDir": ".claude"}) == ".claude/x/y.md"

    def test_unknown_variable(self) -> None:
        with pytest.raises(ValidationError, match="Unknown variable"):
            resolve_target("{bogus}.md", {})

    def test_unset_variable(self) -> None:
        with pytest.raises(ValidationError, match="has no value"):
            resolve_target("{rootFile}", {"rootFile": None})

    @pytest.mark.parametrize("template", ["/etc/passwd", "../outside.md", "a/../../b.md", "~/x"])
    def test_escaping_targets_rejected(self, template: str) -> None:
        with pytest.raises(ValidationError):
            resolve_target(template, {})
