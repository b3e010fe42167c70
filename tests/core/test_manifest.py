"""Tests for manifest reading and package spec parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentpack.core.dependency.models import SourceType
from agentpack.core.manifest import (
    extract_dependencies,
    manifest_path_at,
    parse_package_spec,
    read_manifest,
    read_manifest_at,
    to_declaration,
)
from agentpack.exceptions import ValidationError


class TestManifestLocation:
    def test_root_manifest_preferred(self, tmp_path: Path) -> None:
        (tmp_path / ".agentpack").mkdir()
        (tmp_path / ".agentpack" / "agentpack.yml").write_text("name: inner\n")
        (tmp_path / "agentpack.yml").write_text("name: outer\n")
        assert manifest_path_at(tmp_path) == tmp_path / "agentpack.yml"

    def test_workspace_manifest(self, tmp_path: Path) -> None:
        (tmp_path / ".agentpack").mkdir()
        (tmp_path / ".agentpack" / "agentpack.yml").write_text("name: inner\n")
        assert read_manifest_at(tmp_path).name == "inner"

    def test_absent(self, tmp_path: Path) -> None:
        assert manifest_path_at(tmp_path) is None
        assert read_manifest_at(tmp_path) is None


class TestReadManifest:
    def test_full_manifest(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text(
            "name: team-rules\n"
            "version: 1.2.0\n"
            "description: Shared rules\n"
            "dependencies:\n"
            "  - base-rules@^1.0.0\n"
            "  - name: shared\n"
            "    path: ../shared\n"
            "dev-dependencies:\n"
            "  - lint-rules\n"
        )
        manifest = read_manifest(path)
        assert manifest.name == "team-rules"
        assert manifest.version == "1.2.0"
        assert manifest.description == "Shared rules"
        assert len(manifest.dependencies) == 2
        assert manifest.dev_dependencies == ["lint-rules"]

    def test_legacy_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("packages:\n  - a\ndev-packages:\n  - b\n")
        manifest = read_manifest(path)
        assert manifest.dependencies == ["a"]
        assert manifest.dev_dependencies == ["b"]

    def test_mapping_form(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("dependencies:\n  base-rules: ^1.0.0\n")
        decls = extract_dependencies(read_manifest(path), path, 0)
        assert [(d.name, d.version) for d in decls] == [("base-rules", "^1.0.0")]

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("")
        manifest = read_manifest(path)
        assert manifest.dependencies == []

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("dependencies: [unclosed\n")
        with pytest.raises(ValidationError):
            read_manifest(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValidationError):
            read_manifest(path)


class TestExtractDependencies:
    def test_dev_only_at_root(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("dependencies:\n  - a\ndev-dependencies:\n  - b\n")
        manifest = read_manifest(path)
        assert [d.name for d in extract_dependencies(manifest, path, 0, include_dev=True)] == ["a", "b"]
        assert [d.name for d in extract_dependencies(manifest, path, 1, include_dev=True)] == ["a"]

    def test_unnamed_entries_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("dependencies:\n  - version: 1.0.0\n  - 42\n  - ok\n")
        decls = extract_dependencies(read_manifest(path), path, 0)
        assert [d.name for d in decls] == ["ok"]

    def test_depth_and_origin_recorded(self, tmp_path: Path) -> None:
        path = tmp_path / "agentpack.yml"
        path.write_text("dependencies:\n  - a\n")
        decl = extract_dependencies(read_manifest(path), path, 3)[0]
        assert decl.depth == 3
        assert decl.declared_in == path


class TestToDeclaration:
    def test_git_entry_with_fragment(self) -> None:
        decl = to_declaration(
            {"url": "https://github.com/acme/kit.git#v2&subdirectory=rules/python"},
            declared_in=None,
            depth=0,
        )
        assert decl.url == "https://github.com/acme/kit.git"
        assert decl.ref == "v2"
        assert decl.path == "rules/python"
        assert decl.name == "python"
        assert decl.source_type is SourceType.GIT

    def test_legacy_git_key(self) -> None:
        decl = to_declaration({"git": "git@github.com:acme/kit.git"}, declared_in=None, depth=0)
        assert decl.name == "kit"
        assert decl.url == "git@github.com:acme/kit.git"

    def test_path_entry_name_from_basename(self) -> None:
        decl = to_declaration({"path": "../shared-rules"}, declared_in=None, depth=0)
        assert decl.name == "shared-rules"
        assert decl.source_type is SourceType.PATH

    def test_numeric_version_stringified(self) -> None:
        decl = to_declaration({"name": "a", "version": 1.5}, declared_in=None, depth=0)
        assert decl.version == "1.5"


class TestParsePackageSpec:
    def test_github_shorthand(self) -> None:
        decl = parse_package_spec("github:acme/kit/skills/pdf#v1")
        assert decl.url == "https://github.com/acme/kit"
        assert decl.ref == "v1"
        assert decl.path == "skills/pdf"
        assert decl.name == "pdf"

    def test_gh_at_shorthand(self) -> None:
        decl = parse_package_spec("gh@acme/kit")
        assert decl.url == "https://github.com/acme/kit"
        assert decl.name == "kit"
        assert decl.path is None

    def test_github_requires_owner_and_repo(self) -> None:
        with pytest.raises(ValidationError):
            parse_package_spec("github:acme")

    def test_git_url(self) -> None:
        decl = parse_package_spec("git@github.com:acme/kit.git#main")
        assert decl.source_type is SourceType.GIT
        assert decl.ref == "main"
        assert decl.name == "kit"

    def test_git_prefix(self) -> None:
        decl = parse_package_spec("git:https://example.com/team/rules.git")
        assert decl.url == "https://example.com/team/rules.git"
        assert decl.name == "rules"

    @pytest.mark.parametrize("spec", ["./local-rules", "../local-rules", "file:local-rules"])
    def test_paths(self, spec: str) -> None:
        decl = parse_package_spec(spec)
        assert decl.source_type is SourceType.PATH
        assert decl.name == "local-rules"

    def test_registry_with_constraint(self) -> None:
        decl = parse_package_spec("team-rules@^2.0.0")
        assert (decl.name, decl.version) == ("team-rules", "^2.0.0")
        assert decl.source_type is SourceType.REGISTRY

    def test_scoped_registry_name(self) -> None:
        decl = parse_package_spec("@acme/rules@1.0.0")
        assert (decl.name, decl.version) == ("@acme/rules", "1.0.0")

    def test_bare_name(self) -> None:
        decl = parse_package_spec("team-rules")
        assert decl.version is None

    def test_empty(self) -> None:
        assert parse_package_spec("   ") is None
