"""Property-based tests for canonical identity and version selection.

Verifies that:
- Every spelling of a git remote normalizes to the same URL.
- URL normalization is idempotent.
- Namespaced paths stay under the original directory.
- ``select_best`` picks the highest satisfying version.
"""
from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from agentpack.core.conflicts import namespaced_path, package_slug
from agentpack.core.dependency.constraints import (
    VersionConstraint,
    parse_version_tuple,
    select_best,
)
from agentpack.core.dependency.identity import normalize_git_url


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

segments = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=12)

hosts = st.sampled_from(["github.com", "gitlab.com", "git.example.org"])

versions = st.from_regex(r"(0|[1-9][0-9]?)\.(0|[1-9][0-9]?)\.(0|[1-9][0-9]?)", fullmatch=True)

constraints = st.one_of(
    st.just("*"),
    versions.map(lambda v: "^" + v),
    versions.map(lambda v: "~" + v),
    versions.map(lambda v: ">=" + v),
    versions,
)

package_names = st.text(alphabet="abc@/-._ xyz", min_size=1, max_size=15)


def _spellings(host: str, owner: str, repo: str) -> list[str]:
    return [
        f"https://{host}/{owner}/{repo}",
        f"https://{host}/{owner}/{repo}.git",
        f"https://{host}/{owner}/{repo}/",
        f"git+https://{host}/{owner}/{repo}.git",
        f"git@{host}:{owner}/{repo}.git",
        f"ssh://git@{host}/{owner}/{repo}",
        f"HTTPS://{host.upper()}/{owner}/{repo}",
    ]


class TestGitUrlProperties:
    @given(hosts, segments, segments)
    def test_spellings_agree(self, host: str, owner: str, repo: str) -> None:
        normalized = {normalize_git_url(u) for u in _spellings(host, owner, repo)}
        assert normalized == {f"https://{host}/{owner}/{repo}".lower()}

    @given(hosts, segments, segments)
    def test_idempotent(self, host: str, owner: str, repo: str) -> None:
        for url in _spellings(host, owner, repo):
            once = normalize_git_url(url)
            assert normalize_git_url(once) == once


class TestNamespaceProperties:
    @given(st.lists(segments, min_size=1, max_size=4), package_names)
    def test_relocation_stays_in_directory(self, parts: list[str], package: str) -> None:
        target = "/".join(parts)
        moved = namespaced_path(target, package)
        parent = target.rpartition("/")[0]
        assert moved.endswith("/" + parts[-1])
        assert moved.startswith(parent + "/" if parent else "")
        assert "/" not in package_slug(package)
        assert ".." not in moved.split("/")


class TestVersionSelection:
    @given(st.lists(versions, max_size=8), constraints)
    def test_select_best_is_max_satisfying(self, available: list[str], raw: str) -> None:
        constraint = VersionConstraint(raw)
        satisfying = [v for v in available if constraint.satisfies(v)]
        best = select_best(available, constraint)
        if not satisfying:
            assert best is None
        else:
            assert best is not None
            assert parse_version_tuple(best) == max(parse_version_tuple(v) for v in satisfying)
