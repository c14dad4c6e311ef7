"""
ReferenceGraph: the flow dependency graph produced by the masterlist compiler.

Nodes are masterlist names, edges point from a flow to every flow it
references. Cycles are legal (a decision may route back to an earlier flow)
so they are reported, never rejected.
"""

from typing import Any, Dict, Iterable, List, Mapping, Set

import networkx as nx


class ReferenceGraph:
    """Directed graph of flow references with reachability queries."""

    def __init__(self):
        self.graph: nx.DiGraph = nx.DiGraph()
        self._entrypoints: Set[str] = set()

    # ─── Construction ────────────────────────────────────────────

    def add_flow(self, name: str, location: str = "") -> None:
        self.graph.add_node(name, location=location)

    def add_references(self, name: str, references: Iterable[str]) -> None:
        for ref in references:
            self.graph.add_edge(name, ref)

    def add_entrypoints(self, names: Iterable[str]) -> None:
        """Mark flows that are triggered from outside, e.g. by a route."""
        self._entrypoints.update(names)

    @classmethod
    def from_references(cls, references: Mapping[str, Iterable[str]]) -> "ReferenceGraph":
        g = cls()
        for name in references:
            g.add_flow(name)
        for name, refs in references.items():
            g.add_references(name, refs)
        return g

    # ─── Queries ─────────────────────────────────────────────────

    def dependencies(self, name: str) -> List[str]:
        """Flows `name` references directly."""
        if name not in self.graph.nodes:
            return []
        return sorted(self.graph.successors(name))

    def dependents(self, name: str) -> List[str]:
        """Every flow that can reach `name`, directly or transitively."""
        if name not in self.graph.nodes:
            return []
        return sorted(nx.ancestors(self.graph, name))

    def cycles(self) -> List[List[str]]:
        """Each cycle in edge order, rotated to start at its smallest name."""
        rotated = []
        for cycle in nx.simple_cycles(self.graph):
            start = cycle.index(min(cycle))
            rotated.append(cycle[start:] + cycle[:start])
        return sorted(rotated)

    def unreachable(self) -> List[str]:
        """Flows no entrypoint can reach. Empty when no entrypoints are known."""
        if not self._entrypoints:
            return []
        reachable: Set[str] = set()
        for entry in self._entrypoints:
            if entry in self.graph.nodes:
                reachable.add(entry)
                reachable.update(nx.descendants(self.graph, entry))
        return sorted(n for n in self.graph.nodes if n not in reachable)

    @property
    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.graph)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.graph.number_of_nodes(),
            "edge_count": self.graph.number_of_edges(),
            "is_dag": self.is_acyclic,
            "entrypoints": sorted(self._entrypoints),
            "nodes": [
                {
                    "id": n,
                    "location": self.graph.nodes[n].get("location", ""),
                    "references": self.dependencies(n),
                }
                for n in sorted(self.graph.nodes)
            ],
            "cycles": self.cycles(),
            "unreachable": self.unreachable(),
        }
