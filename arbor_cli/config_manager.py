"""Configuration manager for Arbor CLI using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config

logger = logging.getLogger(__name__)


DEFAULT_AUDIT_CONFIG: Dict[str, Any] = {
    "max_depth": config.DEFAULT_MAX_DEPTH,
    "ignore_tests": config.DEFAULT_IGNORE_TESTS,
}


def _config_file(path: Optional[Path] = None) -> Path:
    return path if path is not None else config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    config_file = _config_file(path)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
        return {}


def load_audit_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[audit]`` section merged over the defaults.

    Values with the wrong type are dropped with a warning so that a typo in
    the config file never changes audit semantics silently.
    """
    merged = dict(DEFAULT_AUDIT_CONFIG)
    section = load_full_config(path).get("audit", {})
    if not isinstance(section, dict):
        logger.warning("[audit] config section is not a table; using defaults")
        return merged

    max_depth = section.get("max_depth")
    if max_depth is not None:
        if isinstance(max_depth, int) and not isinstance(max_depth, bool) and max_depth > 0:
            merged["max_depth"] = max_depth
        else:
            logger.warning("Ignoring invalid audit.max_depth=%r", max_depth)

    ignore_tests = section.get("ignore_tests")
    if ignore_tests is not None:
        if isinstance(ignore_tests, bool):
            merged["ignore_tests"] = ignore_tests
        else:
            logger.warning("Ignoring invalid audit.ignore_tests=%r", ignore_tests)

    return merged


def save_audit_config(
    max_depth: Optional[int] = None,
    ignore_tests: Optional[bool] = None,
    path: Optional[Path] = None,
) -> bool:
    """Write the ``[audit]`` section, preserving other sections.

    Returns:
        True if saved successfully, False otherwise.
    """
    config_file = _config_file(path)
    full = load_full_config(config_file)
    section = dict(full.get("audit", {}))
    if max_depth is not None:
        section["max_depth"] = max_depth
    if ignore_tests is not None:
        section["ignore_tests"] = ignore_tests
    full["audit"] = section

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            toml.dump(full, f)
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", config_file, exc)
        return False
    return True
