"""Base class for source classifier plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Set

from ..config import Config
from ..models import FileInfo, FileKind
from ..platforms import filename_constraints

_KINDS_BY_EXTENSION = {
    ".go": FileKind.GO,
    ".c": FileKind.C,
    ".h": FileKind.H,
    ".hh": FileKind.H,
    ".hpp": FileKind.H,
    ".hxx": FileKind.H,
    ".cc": FileKind.CXX,
    ".cpp": FileKind.CXX,
    ".cxx": FileKind.CXX,
    ".s": FileKind.S,
    ".S": FileKind.CS,
    ".proto": FileKind.PROTO,
}


class SourceClassifier(ABC):
    """Contract for the language-specific part of a run.

    A classifier decides which directory entries are package sources and
    extracts from each source file the metadata rule generation needs:
    declared package name, imports, build constraints and cgo markers.
    """

    name: str = ""

    @abstractmethod
    def is_source(self, filename: str, config: Config) -> bool:
        """Return True when ``filename`` declares a package name."""

    @abstractmethod
    def file_info(self, config: Config, directory: Path, rel: str, filename: str) -> FileInfo:
        """Read and classify a source file."""

    def companion_exclusions(
        self, filenames: Iterable[str], excluded: Set[str], config: Config
    ) -> Set[str]:
        """Names of files generated from other sources in the same directory."""
        return set()

    def other_file_info(self, directory: Path, rel: str, filename: str) -> FileInfo:
        """Classify a file by name only, without reading it."""
        return file_name_info(directory, rel, filename)


def file_name_info(directory: Path, rel: str, filename: str) -> FileInfo:
    suffix = Path(filename).suffix
    goos, goarch = filename_constraints(filename)
    return FileInfo(
        path=Path(directory) / filename,
        rel=rel,
        name=filename,
        kind=_KINDS_BY_EXTENSION.get(suffix, FileKind.UNKNOWN),
        is_test=filename.endswith("_test.go"),
        goos=goos,
        goarch=goarch,
    )


__all__ = ["SourceClassifier", "file_name_info"]
