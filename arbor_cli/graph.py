"""In-memory call graph consumed by the audit engine.

Nodes are addressed by dense integer indices that stay valid for the
lifetime of one :class:`ArborGraph`.  Relations carry bare target names; the
disambiguation stage in :meth:`ArborGraph.add_relations` turns them into
edges:

1. candidates are all nodes whose name equals the relation's target;
2. prefer candidates in the caller's file, then in the caller's directory;
3. one survivor gives a certain edge, several give one edge per survivor,
   each flagged ambiguous so audits can report the uncertainty.

Calls to names that match nothing (library or builtin calls) and calls from
the per-file pseudo symbol are dropped.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import NodeInfo, ParseResult, Relation, RelationType, Symbol

logger = logging.getLogger(__name__)


@dataclass
class ResolutionStats:
    resolved: int = 0
    ambiguous: int = 0
    unresolved: int = 0
    external_callers: int = 0
    collisions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, int]:
        return {
            "resolved": self.resolved,
            "ambiguous": self.ambiguous,
            "unresolved": self.unresolved,
            "external_callers": self.external_callers,
            "id_collisions": len(self.collisions),
        }


class ArborGraph:
    """Dense call graph with name lookup and reverse (caller) adjacency."""

    def __init__(self) -> None:
        self._nodes: List[NodeInfo] = []
        self._index_by_id: Dict[str, int] = {}
        self._by_name: Dict[str, List[int]] = {}
        self._callers: Dict[int, List[int]] = {}
        self._notes: Dict[Tuple[int, int], str] = {}
        self.stats = ResolutionStats()

    @classmethod
    def from_parse_results(cls, results: Iterable[ParseResult]) -> "ArborGraph":
        """Build a graph, adding every symbol before resolving any relation."""
        results = list(results)
        graph = cls()
        for result in results:
            graph.add_symbols(result.symbols)
        for result in results:
            graph.add_relations(result.relations)
        logger.debug(
            "Built graph: %d nodes, %d edges (%s)",
            graph.node_count, graph.edge_count, graph.stats.to_dict(),
        )
        return graph

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_symbol(self, symbol: Symbol) -> int:
        """Add a symbol and return its index.

        Ids are ``<file base name>:<name>``, so two files with the same base
        name (or two same-named methods in one file) collide; the first
        symbol added keeps the id.
        """
        existing = self._index_by_id.get(symbol.id)
        if existing is not None:
            if self._nodes[existing].file != symbol.file_path or \
                    self._nodes[existing].line_start != symbol.line_start:
                self.stats.collisions.append(symbol.id)
                logger.debug(
                    "Symbol id collision for %s (%s:%d ignored)",
                    symbol.id, symbol.file_path, symbol.line_start,
                )
            return existing

        index = len(self._nodes)
        self._nodes.append(NodeInfo.from_symbol(symbol))
        self._index_by_id[symbol.id] = index
        self._by_name.setdefault(symbol.name, []).append(index)
        return index

    def add_symbols(self, symbols: Iterable[Symbol]) -> None:
        for symbol in symbols:
            self.add_symbol(symbol)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_relations(self, relations: Iterable[Relation]) -> None:
        """Resolve Calls relations into edges; other kinds are ignored."""
        for relation in relations:
            if relation.kind is not RelationType.CALLS:
                continue
            caller = self._index_by_id.get(relation.from_id)
            if caller is None:
                self.stats.external_callers += 1
                continue

            targets = self.resolve_target(caller, relation.to_name)
            if not targets:
                self.stats.unresolved += 1
                continue

            note: Optional[str] = None
            if len(targets) > 1:
                self.stats.ambiguous += 1
                note = (
                    f"ambiguous call '{relation.to_name}' from "
                    f"{self._nodes[caller].id} (line {relation.line}) "
                    f"matched {len(targets)} symbols"
                )
                logger.debug("%s", note)
            else:
                self.stats.resolved += 1

            for target in targets:
                self.add_edge(caller, target, note=note)

    def resolve_target(self, caller: int, name: str) -> List[int]:
        """Candidate callee indices for a bare *name* called from *caller*."""
        candidates = self._by_name.get(name, [])
        if len(candidates) <= 1:
            return list(candidates)

        caller_file = self._nodes[caller].file
        same_file = [c for c in candidates if self._nodes[c].file == caller_file]
        if same_file:
            return same_file

        caller_dir = posixpath.dirname(caller_file.replace("\\", "/"))
        same_dir = [
            c for c in candidates
            if posixpath.dirname(self._nodes[c].file.replace("\\", "/")) == caller_dir
        ]
        if same_dir:
            return same_dir
        return list(candidates)

    def add_edge(self, caller: int, callee: int, note: Optional[str] = None) -> bool:
        """Add a Calls edge; returns False when it already existed."""
        if note:
            self._notes[(caller, callee)] = note
        callers = self._callers.setdefault(callee, [])
        if caller in callers:
            return False
        callers.append(caller)
        return True

    # ------------------------------------------------------------------
    # Collaborator surface used by the audit engine
    # ------------------------------------------------------------------

    def find_by_name(self, name: str) -> List[NodeInfo]:
        return [self._nodes[i] for i in self._by_name.get(name, [])]

    def get_index(self, node_id: str) -> Optional[int]:
        return self._index_by_id.get(node_id)

    def get(self, index: int) -> Optional[NodeInfo]:
        if 0 <= index < len(self._nodes):
            return self._nodes[index]
        return None

    def get_callers(self, index: int) -> List[NodeInfo]:
        """Nodes with a Calls edge into *index*, in edge insertion order."""
        return [self._nodes[i] for i in self._callers.get(index, [])]

    def edge_note(self, caller: int, callee: int) -> Optional[str]:
        return self._notes.get((caller, callee))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(callers) for callers in self._callers.values())
