"""Symbol and relation extraction from tree-sitter syntax trees.

Tree-sitter produces a concrete syntax tree even for broken source, so
malformed code never aborts extraction: whatever structure the grammar
recognised is turned into symbols and relations.

Symbols get a qualified id of ``<file base name>:<symbol name>``.  Calls are
attributed to the innermost enclosing symbol (smallest line span containing
the call), or to the per-file pseudo symbol ``<file path>:__file__`` when the
call sits at module level.  Call targets stay bare names; resolving them to
concrete symbols happens in :mod:`arbor_cli.graph`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from tree_sitter import Parser as TSParser

from .errors import (
    EmptySourceError,
    ParseError,
    ParserError,
    SourceReadError,
    UnsupportedLanguageError,
)
from .models import ParseResult, Relation, RelationType, Symbol, SymbolKind
from .queries import CaptureRole, CompiledQueries, QueryCache

logger = logging.getLogger(__name__)

FILE_PSEUDO_SUFFIX = "__file__"


def file_pseudo_id(file_path: str) -> str:
    """Id used as the caller / importer for module-level code."""
    return f"{file_path}:{FILE_PSEUDO_SUFFIX}"


def qualified_id(file_path: str, name: str) -> str:
    return f"{_base_name(file_path)}:{name}"


def _base_name(file_path: str) -> str:
    name = file_path.replace("\\", "/").rsplit("/", 1)[-1]
    return name or "unknown"


class ArborParser:
    """Extracts symbols and call/import relations using cached query sets.

    The parser holds no per-file state: every call builds its own
    tree-sitter parser and only reads the shared :class:`QueryCache`.
    """

    def __init__(self, cache: Optional[QueryCache] = None) -> None:
        self.cache = cache if cache is not None else QueryCache()

    def supports(self, file_type: str) -> bool:
        return self.cache.supports(file_type)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse_file(
        self,
        path: Union[str, Path],
        root: Optional[Path] = None,
    ) -> ParseResult:
        """Read and parse a file.

        When *root* is given the recorded file path is relative to it.

        Raises:
            SourceReadError: the file cannot be read or is not UTF-8.
            ParseError: the file is not under *root*.
            EmptySourceError: the file is empty.
            UnsupportedLanguageError: no compiled patterns for its extension.
            ParserError: tree-sitter produced no tree.
        """
        path = Path(path)
        try:
            # Raw decode keeps \r\n, so byte spans index the file on disk
            source = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceReadError(path, exc) from exc

        if root is None:
            file_path = str(path)
        else:
            try:
                file_path = str(path.relative_to(root))
            except ValueError as exc:
                raise ParseError(path, f"not inside project root {root}") from exc
        file_type = path.suffix.lstrip(".")
        if not source:
            raise EmptySourceError(file_path)
        if not file_type:
            raise UnsupportedLanguageError(file_path)
        return self.parse_source(source, file_path, file_type)

    def parse_source(self, source: str, file_path: str, file_type: str) -> ParseResult:
        """Parse in-memory source for the given file-type token (``"py"``, ``"ts"``...)."""
        if not source:
            raise EmptySourceError(file_path)

        compiled = self.cache.get(file_type)
        if compiled is None:
            raise UnsupportedLanguageError(file_path, file_type)

        source_bytes = source.encode("utf-8")
        tree = self._parse_tree(compiled, source_bytes, file_path)

        symbols = extract_symbols(tree.root_node, source, source_bytes, file_path, compiled)
        relations = extract_relations(tree.root_node, source_bytes, file_path, symbols, compiled)

        logger.debug(
            "Parsed %s: %d symbols, %d relations",
            file_path, len(symbols), len(relations),
        )
        return ParseResult(symbols=symbols, relations=relations, file_path=file_path)

    @staticmethod
    def _parse_tree(compiled: CompiledQueries, source_bytes: bytes, file_path: str) -> Any:
        try:
            parser = TSParser(compiled.language)
            tree = parser.parse(source_bytes)
        except (ValueError, TypeError, RuntimeError) as exc:
            raise ParserError(file_path, f"tree-sitter failed: {exc}") from exc
        if tree is None:
            raise ParserError(file_path, "tree-sitter returned no tree")
        if tree.root_node.has_error:
            logger.debug("Syntax errors in %s; extracting recognised structure", file_path)
        return tree


# ===================================================================
# Symbol extraction
# ===================================================================

def extract_symbols(
    root: Any,
    source: str,
    source_bytes: bytes,
    file_path: str,
    compiled: CompiledQueries,
) -> List[Symbol]:
    """Run the symbol patterns and build one :class:`Symbol` per definition."""
    lines = source.split("\n")
    found: Dict[Tuple[str, int], Symbol] = {}

    for captures in compiled.symbols.matches(root):
        name: Optional[str] = None
        kind: Optional[SymbolKind] = None
        def_node: Any = None

        for capture, ts_node in captures:
            if capture.role is CaptureRole.NAME:
                name = _node_text(ts_node, source_bytes)
            elif capture.role is CaptureRole.DEFINITION:
                kind = capture.kind
                def_node = ts_node

        if not name or kind is None or def_node is None:
            continue

        row = def_node.start_point[0]
        signature = lines[row].strip() if row < len(lines) else None
        symbol = Symbol(
            id=qualified_id(file_path, name),
            name=name,
            kind=kind,
            file_path=file_path,
            line_start=row + 1,
            line_end=def_node.end_point[0] + 1,
            column=def_node.start_point[1],
            byte_start=def_node.start_byte,
            byte_end=def_node.end_byte,
            signature=signature or None,
        )

        key = (symbol.name, symbol.line_start)
        existing = found.get(key)
        if existing is None or _prefer(symbol, existing):
            found[key] = symbol

    return sorted(found.values(), key=lambda s: (s.byte_start, s.byte_end, s.name))


def _prefer(candidate: Symbol, existing: Symbol) -> bool:
    """Pick between two matches of the same definition.

    Functions inside classes / impl blocks match both the plain function
    pattern and the method pattern; exported TS functions match with and
    without the export wrapper.
    """
    candidate_method = candidate.kind is SymbolKind.METHOD
    existing_method = existing.kind is SymbolKind.METHOD
    if candidate_method != existing_method:
        return candidate_method
    candidate_width = candidate.byte_end - candidate.byte_start
    existing_width = existing.byte_end - existing.byte_start
    return candidate_width < existing_width


# ===================================================================
# Relation extraction
# ===================================================================

def extract_relations(
    root: Any,
    source_bytes: bytes,
    file_path: str,
    symbols: Sequence[Symbol],
    compiled: CompiledQueries,
) -> List[Relation]:
    relations: List[Relation] = []
    relations.extend(extract_imports(root, source_bytes, file_path, compiled))
    relations.extend(extract_calls(root, source_bytes, file_path, symbols, compiled))
    return relations


def extract_imports(
    root: Any,
    source_bytes: bytes,
    file_path: str,
    compiled: CompiledQueries,
) -> List[Relation]:
    relations: List[Relation] = []
    file_id = file_pseudo_id(file_path)

    for captures in compiled.imports.matches(root):
        module_name: Optional[str] = None
        line = 0
        for capture, ts_node in captures:
            if capture.role is CaptureRole.SOURCE:
                module_name = _node_text(ts_node, source_bytes).strip("\"'")
                line = ts_node.start_point[0] + 1

        if module_name:
            relations.append(Relation(
                from_id=file_id,
                to_name=module_name,
                kind=RelationType.IMPORTS,
                line=line,
            ))

    return relations


def extract_calls(
    root: Any,
    source_bytes: bytes,
    file_path: str,
    symbols: Sequence[Symbol],
    compiled: CompiledQueries,
) -> List[Relation]:
    relations: List[Relation] = []
    file_id = file_pseudo_id(file_path)

    for captures in compiled.calls.matches(root):
        callee: Optional[str] = None
        line = 0
        call_byte = 0
        for capture, ts_node in captures:
            if capture.role is CaptureRole.CALLEE:
                # obj.method() -> method; no alias or namespace resolution
                callee = _node_text(ts_node, source_bytes).rsplit(".", 1)[-1]
                line = ts_node.start_point[0] + 1
                call_byte = ts_node.start_byte

        if not callee:
            continue

        enclosing = find_enclosing_symbol(line, symbols, call_byte)
        relations.append(Relation(
            from_id=enclosing.id if enclosing is not None else file_id,
            to_name=callee,
            kind=RelationType.CALLS,
            line=line,
        ))

    return relations


def find_enclosing_symbol(
    line: int,
    symbols: Sequence[Symbol],
    byte: Optional[int] = None,
) -> Optional[Symbol]:
    """Return the smallest-span symbol whose line range contains *line*.

    When *byte* is given, symbols sharing the smallest line span are
    narrowed to those whose byte range contains it, then to the narrowest
    byte range.
    Remaining ties keep the first symbol in source order.
    """
    best: Optional[Symbol] = None
    best_key: Optional[Tuple[int, int, int]] = None
    for symbol in symbols:
        if not symbol.line_start <= line <= symbol.line_end:
            continue
        if byte is None:
            key = (symbol.span, 0, 0)
        elif symbol.byte_start <= byte < symbol.byte_end:
            key = (symbol.span, 0, symbol.byte_end - symbol.byte_start)
        else:
            key = (symbol.span, 1, 0)
        if best_key is None or key < best_key:
            best, best_key = symbol, key
    return best


def _node_text(ts_node: Any, source_bytes: bytes) -> str:
    return source_bytes[ts_node.start_byte:ts_node.end_byte].decode("utf-8", errors="replace")
