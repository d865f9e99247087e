"""Configuration paths and defaults for local Arbor project memory."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("ARBOR_HOME", str(Path.home() / ".arbor"))).expanduser()
MEMORY_DIR = BASE_DIR / "memory"
STATE_FILE = BASE_DIR / "state.json"
CONFIG_FILE = BASE_DIR / "config.toml"

SKIP_DIRS = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs",
    "egg-info", ".arbor", "target", ".next", "coverage",
}

DEFAULT_MAX_DEPTH = 10
DEFAULT_IGNORE_TESTS = False


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    MEMORY_DIR.mkdir(parents=True, exist_ok=True)
