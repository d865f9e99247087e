"""Tests for the TOML-backed audit defaults."""

from pathlib import Path

import toml

from arbor_cli import config_manager


def test_defaults_without_file(temp_dir: Path):
    assert config_manager.load_audit_config(temp_dir / "missing.toml") == {
        "max_depth": 10,
        "ignore_tests": False,
    }


def test_reads_audit_section(temp_dir: Path):
    path = temp_dir / "config.toml"
    path.write_text("[audit]\nmax_depth = 4\nignore_tests = true\n", encoding="utf-8")

    assert config_manager.load_audit_config(path) == {"max_depth": 4, "ignore_tests": True}


def test_invalid_values_fall_back_to_defaults(temp_dir: Path):
    path = temp_dir / "config.toml"
    path.write_text('[audit]\nmax_depth = 0\nignore_tests = "yes"\n', encoding="utf-8")

    assert config_manager.load_audit_config(path) == config_manager.DEFAULT_AUDIT_CONFIG


def test_unparseable_file_is_ignored(temp_dir: Path):
    path = temp_dir / "config.toml"
    path.write_text("[audit\nmax_depth = ", encoding="utf-8")

    assert config_manager.load_full_config(path) == {}
    assert config_manager.load_audit_config(path)["max_depth"] == 10


def test_save_preserves_other_sections(temp_dir: Path):
    path = temp_dir / "nested" / "config.toml"
    path.parent.mkdir()
    path.write_text('[ui]\ntheme = "dark"\n', encoding="utf-8")

    assert config_manager.save_audit_config(max_depth=6, path=path) is True

    saved = toml.loads(path.read_text(encoding="utf-8"))
    assert saved["ui"] == {"theme": "dark"}
    assert saved["audit"] == {"max_depth": 6}
    assert config_manager.load_audit_config(path) == {"max_depth": 6, "ignore_tests": False}


def test_default_location_follows_config_module(temp_project_manager, temp_dir: Path):
    config_manager.save_audit_config(ignore_tests=True)

    assert (temp_dir / "config.toml").exists()
    assert config_manager.load_audit_config()["ignore_tests"] is True
