"""Locate the repository root of a Bazel workspace."""

from __future__ import annotations

from pathlib import Path

from .config import ConfigError

WORKSPACE_FILE_NAMES = ("WORKSPACE", "WORKSPACE.bazel")


def find_repo_root(start: Path) -> Path:
    """Return the nearest directory at or above ``start`` holding a WORKSPACE file."""
    current = Path(start).expanduser().resolve()
    if current.is_file():
        current = current.parent
    for directory in (current, *current.parents):
        for name in WORKSPACE_FILE_NAMES:
            if (directory / name).is_file():
                return directory
    raise ConfigError(f"WORKSPACE cannot be found in {current} or any parent directory")


__all__ = ["WORKSPACE_FILE_NAMES", "find_repo_root"]
