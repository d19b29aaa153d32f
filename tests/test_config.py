"""Tests for tierloom.config: .tierloom/config.yml loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tierloom.config import WorkspaceConfig, config_path, db_path, load_config

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(project: Path, text: str) -> None:
    path = config_path(project)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_config(tmp_path) == WorkspaceConfig()

    def test_full_config(self, tmp_path: Path) -> None:
        _write_config(
            tmp_path,
            "roots: [src, lib]\n"
            "store: sqlite\n"
            "fingerprint: hash\n"
            "max_workers: 8\n"
            "cache:\n  capacity: 50\n"
            "watch:\n  debounce_ms: 250\n",
        )
        config = load_config(tmp_path)
        assert config == WorkspaceConfig(
            roots=("src", "lib"),
            store="sqlite",
            cache_capacity=50,
            max_workers=8,
            debounce_ms=250,
            fingerprint="hash",
        )

    def test_invalid_values_fall_back(self, tmp_path: Path) -> None:
        _write_config(
            tmp_path,
            "roots: src\nstore: redis\nfingerprint: crc\nmax_workers: 0\ncache:\n  capacity: -1\n",
        )
        assert load_config(tmp_path) == WorkspaceConfig()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "roots: [unclosed")
        assert load_config(tmp_path) == WorkspaceConfig()

    def test_non_mapping(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "- a\n- b\n")
        assert load_config(tmp_path) == WorkspaceConfig()


class TestPaths:
    def test_root_paths_default(self, tmp_path: Path) -> None:
        assert WorkspaceConfig().root_paths(tmp_path) == [tmp_path]

    def test_root_paths_configured(self, tmp_path: Path) -> None:
        config = WorkspaceConfig(roots=("a", "b/c"))
        assert config.root_paths(tmp_path) == [tmp_path / "a", tmp_path / "b" / "c"]

    def test_db_path(self, tmp_path: Path) -> None:
        assert db_path(tmp_path) == tmp_path / ".tierloom" / "tierloom.db"
