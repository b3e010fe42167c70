"""Resolved dependency graph and graph algorithms.

``GraphResolution`` is what the wave resolver returns: nodes in
breadth-first order plus warnings, missing packages and cancelled
declarations. ``DependencyGraph`` wraps the nodes with name-level cycle
detection and a printable tree.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from agentpack.core.dependency.models import DependencyGraphNode


@dataclass
class GraphResolution:
    """Outcome of resolving a dependency graph.

    Attributes:
        nodes: Resolved nodes, breadth-first, first occurrence wins.
        warnings: Human-readable problems that did not stop resolution.
        missing_packages: Display names of declarations that failed.
        cancelled: Display names of declarations stopped by fail-fast.
    """

    nodes: list[DependencyGraphNode] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_packages: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.missing_packages and not self.cancelled

    def graph(self) -> DependencyGraph:
        return DependencyGraph(self.nodes)


class DependencyGraph:
    """Name-indexed view over resolved nodes.

    Thread safety: This class is NOT thread-safe. External synchronization is
    required for concurrent access.
    """

    def __init__(self, nodes: list[DependencyGraphNode] | None = None) -> None:
        self._nodes: dict[str, DependencyGraphNode] = {}
        for node in nodes or []:
            self.add_node(node)

    @property
    def names(self) -> list[str]:
        """Return node names in insertion (breadth-first) order."""
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def add_node(self, node: DependencyGraphNode) -> None:
        """Add a node. The first node registered under a name is kept."""
        self._nodes.setdefault(node.name, node)

    def get_node(self, name: str) -> DependencyGraphNode | None:
        return self._nodes.get(name)

    def roots(self) -> list[DependencyGraphNode]:
        return [n for n in self._nodes.values() if n.depth == 0]

    def detect_cycles(self) -> list[list[str]]:
        """Detect circular dependencies using DFS coloring.

        Returns:
            A list of cycles, each a list of package names forming the cycle
            path (e.g., ["a", "b", "a"]). Empty if there are no cycles.
        """
        adj: dict[str, list[str]] = defaultdict(list)
        for name, node in self._nodes.items():
            for dep in node.dependencies:
                if dep in self._nodes and dep not in adj[name]:
                    adj[name].append(dep)

        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[str, int] = {name: WHITE for name in self._nodes}
        parent: dict[str, str | None] = {name: None for name in self._nodes}
        cycles: list[list[str]] = []

        def _dfs(u: str) -> None:
            color[u] = GRAY
            for v in adj.get(u, []):
                if color[v] == GRAY:
                    # Back edge: walk parents from u up to v.
                    cycle = [v, u]
                    cur = parent.get(u)
                    while cur is not None and cur != v and u != v:
                        cycle.append(cur)
                        cur = parent.get(cur)
                    if u != v:
                        cycle.append(v)
                    cycle.reverse()
                    cycles.append(cycle)
                elif color[v] == WHITE:
                    parent[v] = u
                    _dfs(v)
            color[u] = BLACK

        for name in self._nodes:
            if color[name] == WHITE:
                _dfs(name)
        return cycles

    def tree_lines(self) -> list[str]:
        """Render the graph as an indented tree, one line per edge.

        Repeated packages (diamonds, cycles) are printed once with their
        children and marked ``(*)`` afterwards.
        """
        lines: list[str] = []
        expanded: set[str] = set()

        def _label(node: DependencyGraphNode) -> str:
            version = f"@{node.version}" if node.version else ""
            dev = " [dev]" if node.is_dev else ""
            return f"{node.name}{version}{dev}"

        def _walk(name: str, prefix: str, last: bool, top: bool) -> None:
            node = self._nodes.get(name)
            if node is None:
                return
            branch = "" if top else ("└── " if last else "├── ")
            repeated = name in expanded
            lines.append(f"{prefix}{branch}{_label(node)}{' (*)' if repeated else ''}")
            if repeated:
                return
            expanded.add(name)
            children = [d for d in node.dependencies if d in self._nodes]
            child_prefix = prefix if top else prefix + ("    " if last else "│   ")
            for i, child in enumerate(children):
                _walk(child, child_prefix, i == len(children) - 1, False)

        for root in self.roots():
            _walk(root.name, "", True, True)
        return lines
