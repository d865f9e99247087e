"""Persistence layer for project-specific symbol and relation memory.

Parse results are stored per file in SQLite.  Re-indexing a file replaces
its rows, so repeated indexing of unchanged source never duplicates
symbols or relations.  The audit graph is rebuilt from these rows with
:meth:`GraphStore.load_graph`.
"""

from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .config import ensure_base_dirs
from .graph import ArborGraph
from .models import ParseResult, Relation, RelationType, Symbol, SymbolKind

logger = logging.getLogger(__name__)


# ===================================================================
# ProjectManager
# ===================================================================

class ProjectManager:
    """Manage per-project graph memory and the active project pointer.

    Each project lives in ``MEMORY_DIR/<name>`` holding ``graph.db`` and the
    ``project.json`` index summary written by the indexer.
    """

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not config.MEMORY_DIR.exists():
            return []
        return sorted(p.name for p in config.MEMORY_DIR.iterdir() if p.is_dir())

    def project_dir(self, project_name: str) -> Path:
        return config.MEMORY_DIR / project_name

    def create_or_get_project(self, project_name: str) -> Path:
        path = self.project_dir(project_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def project_summary(self, project_name: str) -> Dict[str, Any]:
        """Index summary of a project, or ``{}`` if it was never fully indexed."""
        meta_path = self.project_dir(project_name) / "project.json"
        if not meta_path.exists():
            return {}
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable project metadata %s", meta_path)
            return {}

    def _write_state(self, project_name: Optional[str]) -> None:
        ensure_base_dirs()
        config.STATE_FILE.write_text(
            json.dumps({"current_project": project_name}, indent=2),
            encoding="utf-8",
        )

    def set_current_project(self, project_name: str) -> None:
        self._write_state(project_name)

    def unload_project(self) -> None:
        self._write_state(None)

    def get_current_project(self) -> Optional[str]:
        if not config.STATE_FILE.exists():
            return None
        try:
            payload = json.loads(config.STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        return payload.get("current_project")

    def delete_project(self, project_name: str) -> bool:
        """Remove a project's memory; the active pointer is cleared if it named it."""
        path = self.project_dir(project_name)
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        if self.get_current_project() == project_name:
            self.unload_project()
        return True


# ===================================================================
# GraphStore
# ===================================================================

class GraphStore:
    """SQLite store of symbols and relations, one row set per source file."""

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        self.db_path = project_dir / "graph.db"
        self.meta_path = project_dir / "project.json"
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS symbols (
                seq        INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol_id  TEXT NOT NULL,
                name       TEXT NOT NULL,
                kind       TEXT NOT NULL,
                file_path  TEXT NOT NULL,
                line_start INTEGER NOT NULL,
                line_end   INTEGER NOT NULL,
                col        INTEGER NOT NULL,
                byte_start INTEGER NOT NULL,
                byte_end   INTEGER NOT NULL,
                signature  TEXT
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS relations (
                seq       INTEGER PRIMARY KEY AUTOINCREMENT,
                file_path TEXT NOT NULL,
                from_id   TEXT NOT NULL,
                to_name   TEXT NOT NULL,
                kind      TEXT NOT NULL,
                line      INTEGER NOT NULL
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_symbols_file ON symbols(file_path)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_relations_file ON relations(file_path)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_relations_to ON relations(to_name)")
        self.conn.commit()

    # ------------------------------------------------------------------
    # Clear / metadata
    # ------------------------------------------------------------------

    def clear(self) -> None:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM relations")
        cur.execute("DELETE FROM symbols")
        self.conn.commit()

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.meta_path.write_text(
            json.dumps(payload, indent=2), encoding="utf-8",
        )

    def get_metadata(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        try:
            return json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def replace_file(self, result: ParseResult) -> None:
        """Store a parse result, replacing any rows previously stored for its file."""
        cur = self.conn.cursor()
        self._delete_file_rows(cur, result.file_path)
        cur.executemany(
            """
            INSERT INTO symbols (
                symbol_id, name, kind, file_path, line_start, line_end,
                col, byte_start, byte_end, signature
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    s.id, s.name, s.kind.value, s.file_path, s.line_start,
                    s.line_end, s.column, s.byte_start, s.byte_end, s.signature,
                )
                for s in result.symbols
            ],
        )
        cur.executemany(
            "INSERT INTO relations (file_path, from_id, to_name, kind, line) VALUES (?, ?, ?, ?, ?)",
            [
                (result.file_path, r.from_id, r.to_name, r.kind.value, r.line)
                for r in result.relations
            ],
        )
        self.conn.commit()

    def remove_file(self, file_path: str) -> int:
        """Remove all symbols and relations for a file.

        Returns:
            Number of symbol rows deleted.
        """
        cur = self.conn.cursor()
        deleted = self._delete_file_rows(cur, file_path)
        self.conn.commit()
        return deleted

    @staticmethod
    def _delete_file_rows(cur: sqlite3.Cursor, file_path: str) -> int:
        cur.execute("DELETE FROM relations WHERE file_path = ?", (file_path,))
        cur.execute("DELETE FROM symbols WHERE file_path = ?", (file_path,))
        return cur.rowcount

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def files(self) -> List[str]:
        rows = self.conn.execute(
            "SELECT file_path FROM symbols UNION SELECT file_path FROM relations ORDER BY file_path"
        ).fetchall()
        return [r[0] for r in rows]

    def get_symbols(self, file_path: Optional[str] = None) -> List[Symbol]:
        if file_path is None:
            rows = self.conn.execute("SELECT * FROM symbols ORDER BY seq").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM symbols WHERE file_path = ? ORDER BY seq", (file_path,),
            ).fetchall()
        return [_row_to_symbol(row) for row in rows]

    def get_relations(self, file_path: Optional[str] = None) -> List[Relation]:
        if file_path is None:
            rows = self.conn.execute("SELECT * FROM relations ORDER BY seq").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM relations WHERE file_path = ? ORDER BY seq", (file_path,),
            ).fetchall()
        return [_row_to_relation(row) for row in rows]

    def load_parse_results(self) -> List[ParseResult]:
        """Rebuild one :class:`ParseResult` per stored file, in file order."""
        by_file: Dict[str, ParseResult] = {}
        for file_path in self.files():
            by_file[file_path] = ParseResult(symbols=[], relations=[], file_path=file_path)
        for symbol in self.get_symbols():
            by_file[symbol.file_path].symbols.append(symbol)
        for row in self.conn.execute("SELECT * FROM relations ORDER BY seq").fetchall():
            by_file[row["file_path"]].relations.append(_row_to_relation(row))
        return list(by_file.values())

    def load_graph(self) -> ArborGraph:
        return ArborGraph.from_parse_results(self.load_parse_results())

    def counts(self) -> Dict[str, int]:
        symbols = self.conn.execute("SELECT COUNT(*) FROM symbols").fetchone()[0]
        relations = self.conn.execute("SELECT COUNT(*) FROM relations").fetchone()[0]
        return {"files": len(self.files()), "symbols": symbols, "relations": relations}


# ===================================================================
# Helpers
# ===================================================================

def _row_to_symbol(row: sqlite3.Row) -> Symbol:
    return Symbol(
        id=row["symbol_id"],
        name=row["name"],
        kind=SymbolKind(row["kind"]),
        file_path=row["file_path"],
        line_start=row["line_start"],
        line_end=row["line_end"],
        column=row["col"],
        byte_start=row["byte_start"],
        byte_end=row["byte_end"],
        signature=row["signature"],
    )


def _row_to_relation(row: sqlite3.Row) -> Relation:
    return Relation(
        from_id=row["from_id"],
        to_name=row["to_name"],
        kind=RelationType(row["kind"]),
        line=row["line"],
    )
