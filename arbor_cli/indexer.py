"""Project indexing: crawl a source tree, parse each file, persist results."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .config import SKIP_DIRS
from .errors import ParseError
from .parser import ArborParser
from .storage import GraphStore

logger = logging.getLogger(__name__)


def iter_source_files(root: Path, file_types: Iterable[str]) -> Iterator[Path]:
    """Yield files under *root* whose extension is one of *file_types*, sorted.

    Directories in :data:`~arbor_cli.config.SKIP_DIRS` (and ``*.egg-info``)
    are skipped.
    """
    wanted = {f".{ft.lstrip('.')}" for ft in file_types}
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file() or file_path.suffix not in wanted:
            continue
        rel_parts = file_path.relative_to(root).parts[:-1]
        if any(part in SKIP_DIRS or part.endswith(".egg-info") for part in rel_parts):
            continue
        yield file_path


class ProjectIndexer:
    """Parses projects into a :class:`GraphStore`."""

    def __init__(self, store: GraphStore, parser: Optional[ArborParser] = None) -> None:
        self.store = store
        self.parser = parser if parser is not None else ArborParser()
        self.errors: List[str] = []

    def index_project(self, project_root: Path) -> Dict[str, int]:
        """Parse every supported file under *project_root*.

        A file that fails to parse is logged and counted; it never aborts
        the rest of the batch.
        """
        project_root = project_root.resolve()
        self.store.clear()
        self.errors = []

        files = symbols = relations = 0
        for file_path in iter_source_files(project_root, self.parser.cache.file_types()):
            try:
                result = self.parser.parse_file(file_path, root=project_root)
            except ParseError as exc:
                logger.warning("Failed to parse %s: %s", file_path, exc)
                self.errors.append(str(exc))
                continue
            self.store.replace_file(result)
            files += 1
            symbols += len(result.symbols)
            relations += len(result.relations)

        stats = {
            "files": files,
            "symbols": symbols,
            "relations": relations,
            "errors": len(self.errors),
        }
        self.store.set_metadata({
            **self.store.get_metadata(),
            "project_root": str(project_root),
            "languages": self.parser.cache.languages(),
            "indexed_at": datetime.now().isoformat(),
            **stats,
        })
        logger.info(
            "Indexed %s: %d files, %d symbols, %d relations, %d errors",
            project_root, files, symbols, relations, len(self.errors),
        )
        return stats

    def index_file(self, file_path: Path, project_root: Path) -> int:
        """Re-index one file incrementally.

        Stale rows for the file are replaced.  A file that no longer parses
        (deleted, emptied, unsupported) has its rows removed.

        Returns:
            Number of symbols indexed for this file.
        """
        project_root = project_root.resolve()
        file_path = file_path.resolve()
        try:
            rel_path = str(file_path.relative_to(project_root))
        except ValueError:
            logger.warning("Skipping %s: not inside %s", file_path, project_root)
            return 0
        try:
            result = self.parser.parse_file(file_path, root=project_root)
        except ParseError as exc:
            logger.warning("Failed to parse %s: %s", file_path, exc)
            self.store.remove_file(rel_path)
            return 0

        self.store.replace_file(result)
        logger.info(
            "Incremental index: %d symbols, %d relations for %s",
            len(result.symbols), len(result.relations), rel_path,
        )
        return len(result.symbols)
