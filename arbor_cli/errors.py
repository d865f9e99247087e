"""Shared exception classes for Arbor."""

from __future__ import annotations

from pathlib import Path
from typing import Union


class ArborError(Exception):
    """Base class for all Arbor errors."""


# ---------------------------------------------------------------------------
# Extraction (recoverable, reported per file)
# ---------------------------------------------------------------------------

class ParseError(ArborError):
    """Raised when a source unit cannot be turned into a parse result."""

    def __init__(self, path: Union[str, Path], message: str) -> None:
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


class SourceReadError(ParseError):
    """Raised when a source file cannot be read or decoded."""

    def __init__(self, path: Union[str, Path], cause: Exception) -> None:
        self.cause = cause
        super().__init__(path, f"cannot read source ({cause})")


class EmptySourceError(ParseError):
    """Raised when a source unit has no content."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(path, "source is empty")


class UnsupportedLanguageError(ParseError):
    """Raised when no compiled patterns exist for the file type."""

    def __init__(self, path: Union[str, Path], file_type: str = "") -> None:
        self.file_type = file_type
        label = f"'{file_type}'" if file_type else "(no extension)"
        super().__init__(path, f"unsupported file type {label}")


class ParserError(ParseError):
    """Raised when the grammar fails to produce a syntax tree."""


# ---------------------------------------------------------------------------
# Pattern compilation (isolated per language, never escapes the cache)
# ---------------------------------------------------------------------------

class QueryCompileError(ArborError):
    """Raised when a language's pattern set fails to compile."""

    def __init__(self, language: str, message: str) -> None:
        self.language = language
        super().__init__(f"{language}: {message}")


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class SinkNotFoundError(ArborError):
    """Raised when the audited sink symbol is absent from the graph."""

    def __init__(self, sink_name: str) -> None:
        self.sink_name = sink_name
        super().__init__(f"Sink symbol '{sink_name}' not found in graph")


class ProjectNotLoadedError(ArborError):
    """Raised when a command needs a current project and none is loaded."""
