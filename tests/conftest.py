"""Shared test fixtures for Tierloom."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import yaml

from tierloom.settings.store import FRAGMENT_FILENAME, FileSettingsStore
from tierloom.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def write_fragment(directory: Path, data: object) -> Path:
    """Write a ``.tierloom.yml`` fragment into *directory*."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / FRAGMENT_FILENAME
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def write_lines(path: Path, count: int) -> Path:
    """Write a text file with *count* newline-terminated lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"line {i}\n" for i in range(count)), encoding="utf-8")
    return path


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create a project with one workspace root and a nested source tree."""
    project = tmp_path / "project"
    (project / "src" / "pkg").mkdir(parents=True)
    (project / "docs").mkdir()
    return project.resolve()


@pytest.fixture()
def workspace(tmp_project: Path) -> Iterator[Workspace]:
    ws = Workspace([tmp_project], FileSettingsStore([tmp_project]))
    yield ws
    ws.close()
