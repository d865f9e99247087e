"""Per-language tree-sitter pattern sets, compiled once and cached by file type.

Each supported language carries three independent pattern sets:

- **symbols**: definition patterns (functions, classes, methods, ...)
- **imports**: import / use statements
- **calls**: bare and member call expressions

Capture names are resolved to a :class:`Capture` role when the pattern set is
compiled, so extraction dispatches on a dict lookup per capture instead of
comparing capture-name strings for every match.

A grammar that is not installed, or a pattern set that fails to compile,
only disables its own language; the cache is still constructed.
"""

from __future__ import annotations

import importlib
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tree_sitter import Language, Query, QueryCursor

from .errors import QueryCompileError
from .models import SymbolKind

logger = logging.getLogger(__name__)


# ===================================================================
# Capture roles
# ===================================================================

class CaptureRole(Enum):
    NAME = "name"
    DEFINITION = "definition"
    SOURCE = "source"
    CALLEE = "callee"


@dataclass(frozen=True)
class Capture:
    role: CaptureRole
    kind: Optional[SymbolKind] = None


def _definition(kind: SymbolKind) -> Capture:
    return Capture(CaptureRole.DEFINITION, kind)


_SYMBOL_CAPTURES: Dict[str, Capture] = {
    "name": Capture(CaptureRole.NAME),
    "function.name": Capture(CaptureRole.NAME),
    "class.name": Capture(CaptureRole.NAME),
    "interface.name": Capture(CaptureRole.NAME),
    "method.name": Capture(CaptureRole.NAME),
    "function": _definition(SymbolKind.FUNCTION),
    "function.def": _definition(SymbolKind.FUNCTION),
    "class": _definition(SymbolKind.CLASS),
    "class.def": _definition(SymbolKind.CLASS),
    "interface": _definition(SymbolKind.INTERFACE),
    "interface.def": _definition(SymbolKind.INTERFACE),
    "method": _definition(SymbolKind.METHOD),
    "method.def": _definition(SymbolKind.METHOD),
    "struct": _definition(SymbolKind.STRUCT),
    "struct.def": _definition(SymbolKind.STRUCT),
    "enum": _definition(SymbolKind.ENUM),
    "enum.def": _definition(SymbolKind.ENUM),
    "trait": _definition(SymbolKind.INTERFACE),
    "trait.def": _definition(SymbolKind.INTERFACE),
}

_IMPORT_CAPTURES: Dict[str, Capture] = {
    "source": Capture(CaptureRole.SOURCE),
    "module": Capture(CaptureRole.SOURCE),
    "import.source": Capture(CaptureRole.SOURCE),
}

_CALL_CAPTURES: Dict[str, Capture] = {
    "callee": Capture(CaptureRole.CALLEE),
    "function": Capture(CaptureRole.CALLEE),
    "call.function": Capture(CaptureRole.CALLEE),
}

_CAPTURE_RE = re.compile(r"@([A-Za-z_][\w.]*)")


# ===================================================================
# Pattern sources
# ===================================================================

@dataclass(frozen=True)
class PatternSet:
    symbols: str
    imports: str
    calls: str


_PYTHON = PatternSet(
    symbols="""
        ; Functions
        (function_definition
            name: (identifier) @name) @function.def

        ; Classes
        (class_definition
            name: (identifier) @name) @class.def

        ; Methods
        (class_definition
            body: (block
                (function_definition
                    name: (identifier) @name) @method.def))

        ; Decorated methods
        (class_definition
            body: (block
                (decorated_definition
                    definition: (function_definition
                        name: (identifier) @name) @method.def)))
    """,
    imports="""
        (import_statement
            name: (dotted_name) @source)

        (import_statement
            name: (aliased_import
                name: (dotted_name) @source))

        (import_from_statement
            module_name: (dotted_name) @source)

        (import_from_statement
            module_name: (relative_import) @source)
    """,
    calls="""
        (call
            function: (identifier) @callee)

        (call
            function: (attribute
                attribute: (identifier) @callee))
    """,
)

_JS_CALLS = """
    (call_expression
        function: (identifier) @callee)

    (call_expression
        function: (member_expression
            property: (property_identifier) @callee))
"""

_JS_IMPORTS = """
    (import_statement
        source: (string) @source)

    ; CommonJS require('module')
    (call_expression
        function: (identifier) @_require
        arguments: (arguments
            (string) @source)
        (#eq? @_require "require"))
"""

_JS_FUNCTIONS = """
    ; Functions
    (function_declaration
        name: (identifier) @name) @function.def

    (generator_function_declaration
        name: (identifier) @name) @function.def

    ; Arrow functions assigned to variables
    (lexical_declaration
        (variable_declarator
            name: (identifier) @name
            value: (arrow_function))) @function.def

    (variable_declaration
        (variable_declarator
            name: (identifier) @name
            value: (arrow_function))) @function.def

    ; Methods
    (method_definition
        name: (property_identifier) @name) @method.def
"""

_JAVASCRIPT = PatternSet(
    symbols=_JS_FUNCTIONS + """
        ; Classes
        (class_declaration
            name: (identifier) @name) @class.def
    """,
    imports=_JS_IMPORTS,
    calls=_JS_CALLS,
)

_TYPESCRIPT = PatternSet(
    symbols=_JS_FUNCTIONS + """
        ; Classes
        (class_declaration
            name: (_) @name) @class.def

        (abstract_class_declaration
            name: (_) @name) @class.def

        ; Interfaces
        (interface_declaration
            name: (type_identifier) @name) @interface.def

        ; Type aliases
        (type_alias_declaration
            name: (type_identifier) @name) @interface.def

        ; Enums
        (enum_declaration
            name: (identifier) @name) @enum.def
    """,
    imports=_JS_IMPORTS,
    calls=_JS_CALLS,
)

_RUST = PatternSet(
    symbols="""
        ; Functions
        (function_item
            name: (identifier) @name) @function.def

        ; Structs
        (struct_item
            name: (type_identifier) @name) @struct.def

        ; Enums
        (enum_item
            name: (type_identifier) @name) @enum.def

        ; Traits
        (trait_item
            name: (type_identifier) @name) @trait.def

        ; Impl methods
        (impl_item
            body: (declaration_list
                (function_item
                    name: (identifier) @name) @method.def))
    """,
    imports="""
        (use_declaration
            argument: (_) @source)
    """,
    calls="""
        (call_expression
            function: (identifier) @callee)

        (call_expression
            function: (field_expression
                field: (field_identifier) @callee))

        (call_expression
            function: (scoped_identifier
                name: (identifier) @callee))
    """,
)

PATTERNS: Dict[str, PatternSet] = {
    "python": _PYTHON,
    "javascript": _JAVASCRIPT,
    "typescript": _TYPESCRIPT,
    "tsx": _TYPESCRIPT,
    "rust": _RUST,
}

# Language name -> (grammar module, loader function)
GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "rust": ("tree_sitter_rust", "language"),
}

# File-type token (extension without the dot) -> language name
FILE_TYPES: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "tsx",
    "rs": "rust",
}


# ===================================================================
# Compiled queries
# ===================================================================

@dataclass
class CompiledPatterns:
    """One compiled query plus its capture-name -> role table."""

    query: Query
    roles: Dict[str, Capture]

    def matches(self, root: Any) -> Iterator[List[Tuple[Capture, Any]]]:
        """Yield each match as a list of ``(Capture, tree-sitter node)`` pairs.

        Captures without a role (helper captures such as ``@_require``)
        are left out.
        """
        cursor = QueryCursor(self.query)
        for _pattern_index, captures in cursor.matches(root):
            resolved: List[Tuple[Capture, Any]] = []
            for capture_name, nodes in captures.items():
                role = self.roles.get(capture_name)
                if role is None:
                    continue
                if not isinstance(nodes, list):
                    nodes = [nodes]
                for ts_node in nodes:
                    resolved.append((role, ts_node))
            yield resolved


@dataclass
class CompiledQueries:
    """Pre-compiled pattern sets for one language."""

    language_name: str
    language: Language
    symbols: CompiledPatterns
    imports: CompiledPatterns
    calls: CompiledPatterns


def resolve_roles(source: str, table: Dict[str, Capture]) -> Dict[str, Capture]:
    """Map every capture name used in *source* to its role in *table*."""
    roles: Dict[str, Capture] = {}
    for capture_name in _CAPTURE_RE.findall(source):
        role = table.get(capture_name)
        if role is not None:
            roles[capture_name] = role
    return roles


def _compile(language: Language, language_name: str, source: str, table: Dict[str, Capture]) -> CompiledPatterns:
    try:
        query = Query(language, source)
    except Exception as exc:
        raise QueryCompileError(language_name, str(exc)) from exc
    return CompiledPatterns(query=query, roles=resolve_roles(source, table))


def compile_queries(language_name: str, language: Language, patterns: PatternSet) -> CompiledQueries:
    """Compile the three pattern sets of one language.

    Raises:
        QueryCompileError: if any of the three sets fails to compile.
    """
    return CompiledQueries(
        language_name=language_name,
        language=language,
        symbols=_compile(language, language_name, patterns.symbols, _SYMBOL_CAPTURES),
        imports=_compile(language, language_name, patterns.imports, _IMPORT_CAPTURES),
        calls=_compile(language, language_name, patterns.calls, _CALL_CAPTURES),
    )


def load_language(language_name: str) -> Language:
    """Load the tree-sitter ``Language`` for *language_name*.

    Raises:
        ImportError: if the grammar package is not installed.
        KeyError: if no grammar module is mapped for the language.
    """
    mod_name, loader = GRAMMAR_MODULES[language_name]
    mod = importlib.import_module(mod_name)
    return Language(getattr(mod, loader)())


# ===================================================================
# Cache
# ===================================================================

class QueryCache:
    """Compiled pattern sets for every available language, keyed by file type."""

    def __init__(
        self,
        languages: Optional[List[str]] = None,
        patterns: Optional[Dict[str, PatternSet]] = None,
    ) -> None:
        self._patterns = patterns if patterns is not None else PATTERNS
        requested = languages if languages is not None else list(self._patterns)
        self._by_language: Dict[str, CompiledQueries] = {}
        self._by_file_type: Dict[str, CompiledQueries] = {}
        self.failures: Dict[str, str] = {}

        for language_name in requested:
            compiled = self._try_compile(language_name)
            if compiled is not None:
                self._by_language[language_name] = compiled

        for file_type, language_name in FILE_TYPES.items():
            compiled = self._by_language.get(language_name)
            if compiled is not None:
                self._by_file_type[file_type] = compiled

    def _try_compile(self, language_name: str) -> Optional[CompiledQueries]:
        pattern_set = self._patterns.get(language_name)
        if pattern_set is None:
            self._fail(language_name, "no pattern set defined")
            return None
        try:
            language = load_language(language_name)
        except KeyError:
            self._fail(language_name, "no grammar module mapped")
            return None
        except ImportError as exc:
            mod_name = GRAMMAR_MODULES[language_name][0]
            self._fail(
                language_name,
                f"grammar package '{mod_name}' not installed "
                f"(pip install {mod_name.replace('_', '-')}): {exc}",
            )
            return None
        except Exception as exc:
            self._fail(language_name, f"could not load grammar: {exc}")
            return None

        try:
            compiled = compile_queries(language_name, language, pattern_set)
        except QueryCompileError as exc:
            self._fail(language_name, f"pattern compilation failed: {exc}")
            return None

        logger.debug("Compiled tree-sitter patterns for %s", language_name)
        return compiled

    def _fail(self, language_name: str, reason: str) -> None:
        self.failures[language_name] = reason
        logger.warning("Language '%s' unavailable: %s", language_name, reason)

    def get(self, file_type: str) -> Optional[CompiledQueries]:
        """Return the compiled queries for a file-type token, or ``None``."""
        return self._by_file_type.get(file_type.lower().lstrip("."))

    def supports(self, file_type: str) -> bool:
        return self.get(file_type) is not None

    def file_types(self) -> List[str]:
        return sorted(self._by_file_type)

    def languages(self) -> List[str]:
        return sorted(self._by_language)
