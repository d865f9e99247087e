"""Tests for the reachability audit."""

import json
from pathlib import Path

import pytest

from arbor_cli.audit import find_paths_to_roots, is_test_file, run_audit
from arbor_cli.errors import SinkNotFoundError
from arbor_cli.graph import ArborGraph
from arbor_cli.indexer import iter_source_files
from arbor_cli.models import AuditConfig, Relation, RelationType, Severity

from conftest import make_symbol


def _names(path):
    return [node.name for node in path.trace]


def _call(caller_id: str, callee: str, line: int = 1) -> Relation:
    return Relation(from_id=caller_id, to_name=callee, kind=RelationType.CALLS, line=line)


class TestSeverity:
    """Severity is a pure function of trace length."""

    @pytest.mark.parametrize("length,expected", [
        (1, Severity.CRITICAL),
        (2, Severity.CRITICAL),
        (3, Severity.HIGH),
        (4, Severity.HIGH),
        (5, Severity.MEDIUM),
        (6, Severity.MEDIUM),
        (7, Severity.LOW),
        (25, Severity.LOW),
    ])
    def test_from_length(self, length, expected):
        assert Severity.from_length(length) is expected

    def test_rank_orders_most_severe_first(self):
        ranks = [s.rank for s in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)]
        assert ranks == sorted(ranks)
        assert str(Severity.HIGH) == "HIGH"


class TestAuditConfig:

    def test_defaults(self):
        config = AuditConfig()
        assert config.max_depth == 10
        assert config.ignore_tests is False

    @pytest.mark.parametrize("bad", [0, -3, True, "4", 2.5])
    def test_invalid_max_depth(self, bad):
        with pytest.raises(ValueError):
            AuditConfig(max_depth=bad)


class TestIsTestFile:

    @pytest.mark.parametrize("path", [
        "tests/test_db.py",
        "src/__tests__/db.js",
        "pkg/store_test.go",
        "src/store_test.rs",
        "web/app.spec.ts",
        "web/app.test.js",
        "spec/models/user_spec.rb",
    ])
    def test_detects_test_paths(self, path):
        assert is_test_file(path)

    @pytest.mark.parametrize("path", ["src/db.py", "lib/main.rs", "web/routes.ts"])
    def test_production_paths(self, path):
        assert not is_test_file(path)


class TestPaths:
    """Path discovery over small synthetic graphs."""

    def test_direct_caller_is_critical(self, graph_factory):
        graph = graph_factory([("handler", "db_query")])
        result = run_audit(graph, "db_query")

        assert result.path_count == 1
        path = result.paths[0]
        assert _names(path) == ["handler", "db_query"]
        assert path.source.name == "handler"
        assert path.severity is Severity.CRITICAL
        assert path.uncertainty == []

    def test_chain_runs_entry_to_sink(self, graph_factory):
        graph = graph_factory([
            ("main", "handler"),
            ("handler", "process"),
            ("process", "db_query"),
        ])
        result = run_audit(graph, "db_query")

        assert result.path_count == 1
        path = result.paths[0]
        assert _names(path) == ["main", "handler", "process", "db_query"]
        assert path.trace[0] == path.source
        assert path.trace[-1] == result.sink
        assert path.severity is Severity.HIGH

    def test_sink_without_callers_has_no_paths(self, graph_factory):
        graph = graph_factory([], extra_nodes=["db_query"])
        result = run_audit(graph, "db_query")

        assert result.sink.name == "db_query"
        assert result.paths == []
        assert result.path_count == 0
        assert result.summary.unique_entry_points == 0

    def test_every_entry_point_gets_a_path(self, graph_factory):
        graph = graph_factory([
            ("cli", "service"),
            ("api", "service"),
            ("service", "exec_cmd"),
            ("cron", "exec_cmd"),
        ])
        result = run_audit(graph, "exec_cmd")

        assert sorted(p.source.name for p in result.paths) == ["api", "cli", "cron"]
        for path in result.paths:
            assert len(path.trace) >= 2
            assert path.trace[-1].name == "exec_cmd"

    def test_unknown_sink_raises(self, graph_factory):
        graph = graph_factory([("a", "b")])
        with pytest.raises(SinkNotFoundError, match="Sink symbol 'nope' not found in graph"):
            run_audit(graph, "nope")

    def test_raw_paths_are_sink_first(self, graph_factory):
        graph = graph_factory([("entry", "mid"), ("mid", "sink")])
        sink_index = graph.get_index("sink.py:sink")

        paths = find_paths_to_roots(graph, sink_index, max_depth=10)

        assert len(paths) == 1
        assert [graph.get(i).name for i in paths[0]] == ["sink", "mid", "entry"]


class TestCycles:

    def test_cycle_above_sink_terminates(self, graph_factory):
        graph = graph_factory([
            ("entry", "a"),
            ("a", "b"),
            ("b", "a"),
            ("b", "sink"),
        ])
        result = run_audit(graph, "sink")

        assert result.path_count == 1
        assert _names(result.paths[0]) == ["entry", "a", "b", "sink"]

    def test_closed_cycle_has_no_entry_point(self, graph_factory):
        graph = graph_factory([("a", "b"), ("b", "a"), ("b", "sink")])
        result = run_audit(graph, "sink")
        assert result.path_count == 0

    def test_no_node_repeats_within_a_path(self, graph_factory):
        graph = graph_factory([
            ("main", "x"),
            ("x", "y"),
            ("y", "z"),
            ("z", "x"),
            ("z", "sink"),
            ("y", "sink"),
        ])
        result = run_audit(graph, "sink")

        assert result.path_count > 0
        for path in result.paths:
            ids = [node.id for node in path.trace]
            assert len(ids) == len(set(ids))


class TestDepth:

    def test_max_depth_counts_trace_nodes(self, graph_factory):
        graph = graph_factory([("entry", "a"), ("a", "b"), ("b", "sink")])

        assert run_audit(graph, "sink", AuditConfig(max_depth=3)).path_count == 0
        result = run_audit(graph, "sink", AuditConfig(max_depth=4))
        assert result.path_count == 1
        assert len(result.paths[0].trace) == 4

    def test_truncated_paths_are_dropped_not_shortened(self, graph_factory):
        graph = graph_factory([("entry", "a"), ("a", "b"), ("b", "sink")])
        result = run_audit(graph, "sink", AuditConfig(max_depth=2))

        assert result.paths == []

    def test_raising_depth_never_loses_paths(self, graph_factory):
        graph = graph_factory([
            ("root1", "a"),
            ("a", "b"),
            ("b", "sink"),
            ("root2", "b"),
            ("root3", "c"),
            ("c", "d"),
            ("d", "e"),
            ("e", "f"),
            ("f", "sink"),
            ("root4", "sink"),
        ])
        previous = set()
        for depth in range(1, 10):
            result = run_audit(graph, "sink", AuditConfig(max_depth=depth))
            current = {tuple(_names(p)) for p in result.paths}
            assert previous <= current
            assert all(len(trace) <= depth for trace in current)
            previous = current
        assert len(previous) == 4


class TestOrdering:

    def test_sorted_by_severity_then_length(self, graph_factory):
        graph = graph_factory([
            ("l1", "l2"),
            ("l2", "l3"),
            ("l3", "l4"),
            ("l4", "l5"),
            ("l5", "l6"),
            ("l6", "sink"),
            ("p3", "p2"),
            ("p2", "p1"),
            ("p1", "sink"),
            ("q2", "q1"),
            ("q1", "sink"),
            ("direct", "sink"),
        ])
        result = run_audit(graph, "sink")

        assert [p.source.name for p in result.paths] == ["direct", "q2", "p3", "l1"]
        assert [p.severity for p in result.paths] == [
            Severity.CRITICAL, Severity.HIGH, Severity.HIGH, Severity.LOW,
        ]

    def test_ties_keep_caller_order(self, graph_factory):
        graph = graph_factory([("zeta", "sink"), ("alpha", "sink"), ("mid", "sink")])
        result = run_audit(graph, "sink")
        assert [p.source.name for p in result.paths] == ["zeta", "alpha", "mid"]


class TestIgnoreTests:

    def test_test_only_caller_is_filtered(self, graph_factory):
        graph = graph_factory(
            [("test_query", "db_query")],
            files={"test_query": "tests/test_db.py"},
        )

        assert run_audit(graph, "db_query").path_count == 1
        result = run_audit(graph, "db_query", AuditConfig(ignore_tests=True))
        assert result.path_count == 0
        assert result.sink.name == "db_query"

    def test_filtering_promotes_production_caller_to_entry(self, graph_factory):
        graph = graph_factory(
            [("test_main", "handler"), ("handler", "sink")],
            files={"test_main": "tests/test_handler.py"},
        )

        with_tests = run_audit(graph, "sink")
        assert _names(with_tests.paths[0]) == ["test_main", "handler", "sink"]

        without_tests = run_audit(graph, "sink", AuditConfig(ignore_tests=True))
        assert without_tests.path_count == 1
        assert _names(without_tests.paths[0]) == ["handler", "sink"]


class TestSummary:

    def test_entry_points_counted_by_name(self):
        graph = ArborGraph()
        graph.add_symbol(make_symbol("main", "a/cli.py", 1))
        graph.add_symbol(make_symbol("main", "b/server.py", 1))
        graph.add_symbol(make_symbol("sink", "lib/db.py", 1))
        graph.add_relations([_call("cli.py:main", "sink"), _call("server.py:main", "sink")])

        result = run_audit(graph, "sink")

        assert result.path_count == 2
        assert result.summary.critical_count == 2
        assert result.summary.unique_entry_points == 1
        assert result.summary.unique_files == 3

    def test_counts_add_up(self, graph_factory):
        graph = graph_factory([
            ("a", "sink"),
            ("c", "b"),
            ("b", "sink"),
        ])
        result = run_audit(graph, "sink")
        summary = result.summary

        total = summary.critical_count + summary.high_count + summary.medium_count + summary.low_count
        assert total == result.path_count == len(result.paths)
        assert summary.critical_count == 1
        assert summary.high_count == 1

    def test_result_serializes_to_json(self, graph_factory):
        graph = graph_factory([("handler", "db_query")])
        payload = json.loads(json.dumps(run_audit(graph, "db_query").to_dict()))

        assert payload["path_count"] == 1
        assert payload["confidence"] == 1.0
        assert payload["sink"]["name"] == "db_query"
        assert payload["paths"][0]["severity"] == "CRITICAL"
        assert payload["summary"]["unique_entry_points"] == 1


class TestUncertainty:

    @pytest.fixture
    def twin_sinks(self) -> ArborGraph:
        graph = ArborGraph()
        graph.add_symbol(make_symbol("query", "orm/models.py", 1))
        graph.add_symbol(make_symbol("query", "raw/sql.py", 1))
        graph.add_symbol(make_symbol("handler", "api/views.py", 1))
        graph.add_relations([_call("views.py:handler", "query")])
        return graph

    def test_ambiguous_sink_name_is_reported(self, twin_sinks):
        result = run_audit(twin_sinks, "query")

        assert result.sink.file == "orm/models.py"
        assert len(result.sink_candidates) == 2
        assert result.path_count == 1
        notes = result.paths[0].uncertainty
        assert any("matched 2 symbols" in note and "models.py:query" in note for note in notes)

    def test_ambiguous_edge_is_reported(self, twin_sinks):
        result = run_audit(twin_sinks, "sql.py:query")

        assert result.sink.file == "raw/sql.py"
        assert len(result.sink_candidates) == 1
        notes = result.paths[0].uncertainty
        assert len(notes) == 1
        assert "ambiguous call 'query'" in notes[0]


class TestSampleProject:
    """Audit over the parsed sample project."""

    @pytest.fixture
    def sample_graph(self, arbor_parser, sample_project_path: Path) -> ArborGraph:
        results = [
            arbor_parser.parse_file(path, root=sample_project_path)
            for path in iter_source_files(sample_project_path, arbor_parser.cache.file_types())
        ]
        return ArborGraph.from_parse_results(results)

    def test_execute_sql_paths(self, sample_graph):
        result = run_audit(sample_graph, "execute_sql")

        assert result.sink.file == "db.py"
        assert [_names(p) for p in result.paths] == [
            ["check_execute_sql", "execute_sql"],
            ["handle_login", "authenticate", "lookup", "execute_sql"],
            ["handle_report", "build_report", "run_report_query", "execute_sql"],
        ]
        assert result.summary.critical_count == 1
        assert result.summary.high_count == 2
        assert result.summary.unique_entry_points == 3
        assert result.summary.unique_files == 4

    def test_ignore_tests_drops_checks(self, sample_graph):
        result = run_audit(sample_graph, "execute_sql", AuditConfig(ignore_tests=True))

        assert result.path_count == 2
        assert {p.source.name for p in result.paths} == {"handle_login", "handle_report"}
        assert all(p.severity is Severity.HIGH for p in result.paths)

    def test_rust_sink(self, sample_graph):
        result = run_audit(sample_graph, "spawn_shell")

        assert result.path_count == 1
        assert _names(result.paths[0]) == ["run", "spawn_shell"]
