"""Pytest configuration and fixtures for Arbor CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, Optional, Tuple

import pytest

from arbor_cli.graph import ArborGraph
from arbor_cli.models import Relation, RelationType, Symbol, SymbolKind
from arbor_cli.parser import ArborParser
from arbor_cli.queries import QueryCache
from arbor_cli.storage import GraphStore, ProjectManager


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample project (Python handlers, a TS router, a Rust crate)."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def temp_project_manager(temp_dir: Path, monkeypatch) -> ProjectManager:
    """Create a ProjectManager with temporary storage and config."""
    monkeypatch.setattr("arbor_cli.config.BASE_DIR", temp_dir)
    monkeypatch.setattr("arbor_cli.config.MEMORY_DIR", temp_dir / "memory")
    monkeypatch.setattr("arbor_cli.config.STATE_FILE", temp_dir / "state.json")
    monkeypatch.setattr("arbor_cli.config.CONFIG_FILE", temp_dir / "config.toml")
    return ProjectManager()


@pytest.fixture
def temp_graph_store(temp_dir: Path) -> Generator[GraphStore, None, None]:
    """Create a GraphStore with temporary storage."""
    project_dir = temp_dir / "graph_project"
    project_dir.mkdir(parents=True, exist_ok=True)
    store = GraphStore(project_dir)
    yield store
    store.close()


@pytest.fixture(scope="session")
def query_cache() -> QueryCache:
    """Compiling every grammar's patterns is the slow part; do it once."""
    return QueryCache()


@pytest.fixture
def arbor_parser(query_cache: QueryCache) -> ArborParser:
    return ArborParser(query_cache)


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python code for testing parser."""
    return '''"""Sample module for testing."""

def hello(name: str) -> str:
    """Say hello."""
    return f"Hello, {name}!"

class Calculator:
    """Simple calculator."""

    def add(self, a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    def multiply(self, a: int, b: int) -> int:
        """Multiply two numbers."""
        result = self.add(a, 0)  # Call to add
        for _ in range(b - 1):
            result = self.add(result, a)
        return result
'''


GraphFactory = Callable[..., ArborGraph]


@pytest.fixture
def graph_factory() -> GraphFactory:
    """Build an ArborGraph from ``(caller, callee)`` name pairs.

    Every name becomes a Function symbol.  Its file defaults to
    ``src/<name>.py`` and can be overridden through *files*.  Edges are
    added in the order given, which is the order callers are returned in.
    """

    def build(
        edges: Iterable[Tuple[str, str]],
        files: Optional[Dict[str, str]] = None,
        extra_nodes: Iterable[str] = (),
    ) -> ArborGraph:
        files = files or {}
        edges = list(edges)
        names = []
        for pair in edges:
            for name in pair:
                if name not in names:
                    names.append(name)
        for name in extra_nodes:
            if name not in names:
                names.append(name)

        graph = ArborGraph()
        for line, name in enumerate(names, 1):
            file_path = files.get(name, f"src/{name}.py")
            graph.add_symbol(make_symbol(name, file_path, line))
        for caller, callee in edges:
            file_path = files.get(caller, f"src/{caller}.py")
            graph.add_relations([
                Relation(
                    from_id=f"{file_path.rsplit('/', 1)[-1]}:{caller}",
                    to_name=callee,
                    kind=RelationType.CALLS,
                    line=1,
                )
            ])
        return graph

    return build


def make_symbol(
    name: str,
    file_path: str,
    line_start: int = 1,
    line_end: Optional[int] = None,
    kind: SymbolKind = SymbolKind.FUNCTION,
) -> Symbol:
    return Symbol(
        id=f"{file_path.rsplit('/', 1)[-1]}:{name}",
        name=name,
        kind=kind,
        file_path=file_path,
        line_start=line_start,
        line_end=line_end if line_end is not None else line_start,
    )
