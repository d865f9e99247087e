"""Security audit: trace paths from public entry points to a sensitive sink.

Given a sink symbol (``db_query``, ``exec``, ...) the audit walks the call
graph backwards, caller by caller, until it reaches entry points: nodes with
no remaining callers.  Every entry point reached within ``max_depth`` nodes
yields one :class:`~arbor_cli.models.AuditPath`, classified by trace length.
This supports CVE blast-radius analysis and security review triage.

Behaviour worth knowing:

- The sink is never its own entry point.  A sink without (eligible) callers
  produces zero paths.
- ``max_depth`` bounds the number of nodes in a trace.  Partial paths that
  run out of depth are dropped, never reported truncated.
- A node may appear at most once per path, so caller cycles are broken.
- Results within one severity / length tier keep the order in which the
  graph returns callers.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

from .errors import SinkNotFoundError
from .models import (
    AuditConfig,
    AuditPath,
    AuditResult,
    AuditSummary,
    NodeInfo,
    Severity,
)

logger = logging.getLogger(__name__)

_TEST_MARKERS = ("test", "spec", "__tests__")
_TEST_SUFFIXES = (
    "_test.rs",
    "_test.go",
    "_test.py",
    ".test.ts",
    ".test.js",
    ".spec.ts",
    ".spec.js",
)


def is_test_file(file: str) -> bool:
    """Return True if the file path looks like a test file."""
    lower = file.lower()
    return any(marker in lower for marker in _TEST_MARKERS) or lower.endswith(_TEST_SUFFIXES)


def run_audit(graph: Any, sink_name: str, config: Optional[AuditConfig] = None) -> AuditResult:
    """Find all paths from entry points to *sink_name*.

    *graph* needs ``find_by_name``, ``get_index``, ``get``, ``get_callers``
    and ``edge_note`` (see :class:`arbor_cli.graph.ArborGraph`).

    Raises:
        SinkNotFoundError: no node has that id or name.
    """
    config = config or AuditConfig()

    sink, candidates = resolve_sink(graph, sink_name)
    sink_index = graph.get_index(sink.id)
    if sink_index is None:
        raise SinkNotFoundError(sink_name)

    sink_notes: List[str] = []
    if len(candidates) > 1:
        sink_notes.append(
            f"sink name '{sink_name}' matched {len(candidates)} symbols; audited {sink.id}"
        )

    raw_paths = find_paths_to_roots(graph, sink_index, config.max_depth, config.ignore_tests)

    result = AuditResult(sink=sink, sink_candidates=list(candidates))
    for path_ids in raw_paths:
        audit_path = _build_path(graph, path_ids, sink_notes)
        if audit_path is not None:
            result.paths.append(audit_path)

    # Stable: equal keys keep traversal order
    result.paths.sort(key=lambda p: (p.severity.rank, len(p.trace)))
    result.path_count = len(result.paths)
    result.summary = compute_summary(result.paths)

    logger.debug(
        "Audit of %s: %d paths from %d entry points",
        sink.id, result.path_count, result.summary.unique_entry_points,
    )
    return result


def resolve_sink(graph: Any, sink_name: str) -> Tuple[NodeInfo, List[NodeInfo]]:
    """Resolve *sink_name* to a node.

    An exact qualified id (``file.py:name``) wins.  Otherwise the first node
    returned by name lookup is used and all matches are returned as
    candidates.
    """
    index = graph.get_index(sink_name)
    if index is not None:
        node = graph.get(index)
        if node is not None:
            return node, [node]

    candidates = list(graph.find_by_name(sink_name))
    if not candidates:
        raise SinkNotFoundError(sink_name)
    if len(candidates) > 1:
        logger.info(
            "Sink '%s' matched %d symbols; using %s",
            sink_name, len(candidates), candidates[0].id,
        )
    return candidates[0], candidates


def find_paths_to_roots(
    graph: Any,
    sink_index: int,
    max_depth: int,
    ignore_tests: bool = False,
) -> List[Tuple[int, ...]]:
    """Depth-first search upstream from *sink_index*.

    Returns paths as index tuples in sink -> entry order, in the same order
    a recursive walk over ``get_callers`` would emit them.
    """
    results: List[Tuple[int, ...]] = []
    stack: List[Tuple[int, Tuple[int, ...], int]] = [(sink_index, (sink_index,), max_depth)]

    while stack:
        current, path, remaining = stack.pop()
        if remaining == 0:
            continue

        callers = graph.get_callers(current)
        if ignore_tests:
            callers = [c for c in callers if not is_test_file(c.file)]

        if not callers:
            if len(path) > 1:
                results.append(path)
            continue

        frames = []
        for caller in callers:
            caller_index = graph.get_index(caller.id)
            if caller_index is None or caller_index in path:
                continue
            frames.append((caller_index, path + (caller_index,), remaining - 1))
        stack.extend(reversed(frames))

    return results


def _build_path(graph: Any, path_ids: Sequence[int], sink_notes: List[str]) -> Optional[AuditPath]:
    trace: List[NodeInfo] = []
    for index in reversed(path_ids):
        node = graph.get(index)
        if node is not None:
            trace.append(node)
    if not trace:
        return None

    uncertainty = list(sink_notes)
    for callee, caller in zip(path_ids, path_ids[1:]):
        note = graph.edge_note(caller, callee)
        if note:
            uncertainty.append(note)

    return AuditPath(
        source=trace[0],
        trace=trace,
        severity=Severity.from_length(len(trace)),
        uncertainty=uncertainty,
    )


def compute_summary(paths: Sequence[AuditPath]) -> AuditSummary:
    """Per-severity counts, distinct entry-point names and distinct files."""
    summary = AuditSummary()
    entry_names = set()
    files = set()

    for path in paths:
        entry_names.add(path.source.name)
        for node in path.trace:
            files.add(node.file)
        if path.severity is Severity.CRITICAL:
            summary.critical_count += 1
        elif path.severity is Severity.HIGH:
            summary.high_count += 1
        elif path.severity is Severity.MEDIUM:
            summary.medium_count += 1
        else:
            summary.low_count += 1

    summary.unique_entry_points = len(entry_names)
    summary.unique_files = len(files)
    return summary
