"""Core data models shared by extraction, graph, storage, and audit layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SymbolKind(str, Enum):
    FUNCTION = "Function"
    CLASS = "Class"
    INTERFACE = "Interface"
    METHOD = "Method"
    STRUCT = "Struct"
    ENUM = "Enum"


class RelationType(str, Enum):
    CALLS = "Calls"
    IMPORTS = "Imports"
    # Reserved; the extractor never produces these.
    EXTENDS = "Extends"
    IMPLEMENTS = "Implements"


@dataclass
class Symbol:
    id: str
    name: str
    kind: SymbolKind
    file_path: str
    line_start: int
    line_end: int
    column: int = 0
    byte_start: int = 0
    byte_end: int = 0
    signature: Optional[str] = None

    @property
    def span(self) -> int:
        return self.line_end - self.line_start


@dataclass
class Relation:
    from_id: str
    to_name: str
    kind: RelationType
    line: int


@dataclass
class ParseResult:
    """Symbols and relations extracted from one source unit."""

    symbols: List[Symbol]
    relations: List[Relation]
    file_path: str

    def calls(self) -> List[Relation]:
        return [r for r in self.relations if r.kind is RelationType.CALLS]

    def imports(self) -> List[Relation]:
        return [r for r in self.relations if r.kind is RelationType.IMPORTS]


@dataclass(frozen=True)
class NodeInfo:
    """Owned snapshot of a graph node, independent of later graph changes."""

    id: str
    name: str
    kind: str
    file: str
    line_start: int
    line_end: int
    signature: Optional[str] = None

    @classmethod
    def from_symbol(cls, symbol: Symbol) -> "NodeInfo":
        return cls(
            id=symbol.id,
            name=symbol.name,
            kind=symbol.kind.value,
            file=symbol.file_path,
            line_start=symbol.line_start,
            line_end=symbol.line_end,
            signature=symbol.signature,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "file": self.file,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "signature": self.signature,
        }


class Severity(Enum):
    """Risk tier of an audit path, derived from its trace length."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def from_length(cls, length: int) -> "Severity":
        if length <= 2:
            return cls.CRITICAL
        if length <= 4:
            return cls.HIGH
        if length <= 6:
            return cls.MEDIUM
        return cls.LOW

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def label(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


@dataclass
class AuditConfig:
    max_depth: int = 10
    ignore_tests: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ValueError(f"max_depth must be an integer, got {self.max_depth!r}")
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")


@dataclass
class AuditPath:
    source: NodeInfo
    trace: List[NodeInfo]
    severity: Severity
    uncertainty: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "trace": [node.to_dict() for node in self.trace],
            "severity": self.severity.label,
            "uncertainty": list(self.uncertainty),
        }


@dataclass
class AuditSummary:
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    unique_entry_points: int = 0
    unique_files: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "critical_count": self.critical_count,
            "high_count": self.high_count,
            "medium_count": self.medium_count,
            "low_count": self.low_count,
            "unique_entry_points": self.unique_entry_points,
            "unique_files": self.unique_files,
        }


@dataclass
class AuditResult:
    sink: NodeInfo
    paths: List[AuditPath] = field(default_factory=list)
    path_count: int = 0
    # Placeholder until per-edge weighting exists.
    confidence: float = 1.0
    summary: AuditSummary = field(default_factory=AuditSummary)
    sink_candidates: List[NodeInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sink": self.sink.to_dict(),
            "paths": [path.to_dict() for path in self.paths],
            "path_count": self.path_count,
            "confidence": self.confidence,
            "summary": self.summary.to_dict(),
            "sink_candidates": [node.to_dict() for node in self.sink_candidates],
        }
