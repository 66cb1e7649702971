"""Sinks for merged build files: write in place, print, or diff."""

from __future__ import annotations

import difflib
import sys
from pathlib import Path
from typing import Callable, Dict, TextIO

from .buildfile import File, format_file
from .config import Config, ConfigError
from .logging import get_logger

logger = get_logger("emit")

Emitter = Callable[[Config, File], None]


def fix_emit(config: Config, file: File) -> None:
    """Write ``file`` to its path unless the content on disk is already identical."""
    data = format_file(file)
    path = Path(file.path)
    if path.is_file() and path.read_bytes() == data:
        logger.debug("%s: unchanged", _display_path(config, path))
        return
    path.write_bytes(data)
    logger.info("wrote %s", _display_path(config, path))


def print_emit(config: Config, file: File, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    stream.write(format_file(file).decode("utf-8"))


def diff_emit(config: Config, file: File, stream: TextIO | None = None) -> None:
    """Write a unified diff between the file on disk and ``file``."""
    stream = stream or sys.stdout
    path = Path(file.path)
    updated = format_file(file).decode("utf-8")
    original = path.read_text(encoding="utf-8") if path.is_file() else ""
    display = _display_path(config, path)
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=f"{display} (original)",
        tofile=f"{display} (updated)",
    )
    stream.write("".join(diff))


EMITTERS: Dict[str, Emitter] = {
    "fix": fix_emit,
    "print": print_emit,
    "diff": diff_emit,
}


def get_emitter(mode: str) -> Emitter:
    try:
        return EMITTERS[mode]
    except KeyError:
        raise ConfigError(f"unrecognized emit mode: {mode!r}") from None


def _display_path(config: Config, path: Path) -> str:
    try:
        return path.relative_to(config.repo_root).as_posix()
    except ValueError:
        return str(path)


__all__ = ["EMITTERS", "Emitter", "diff_emit", "fix_emit", "get_emitter", "print_emit"]
