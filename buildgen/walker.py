"""Directory Walker: post-order traversal of the repository."""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .buildfile import BuildFileError, File, parse_file
from .config import Config, DependencyMode
from .directives import apply_directives, excluded_names, infer_proto_mode, parse_directives
from .languages import SourceClassifier, get_classifier
from .logging import get_logger
from .models import Package
from .packages import build_package, find_gen_files

logger = get_logger("walker")

TESTDATA_DIR = "testdata"
VENDOR_DIR = "vendor"

# rel, config, package or None, existing file or None, is_update_dir
WalkFunc = Callable[[str, Config, Optional[Package], Optional[File], bool], None]


@dataclass
class IgnoreRule:
    """An ``exclude_paths`` pattern from .buildgen.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str) -> Optional[IgnoreRule]:
    pattern = pattern.strip()
    negate = pattern.startswith("!")
    if negate:
        pattern = pattern[1:]
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def walk(
    config: Config,
    callback: WalkFunc,
    root: Path | None = None,
    classifier: SourceClassifier | None = None,
) -> None:
    """Traverse ``root`` (the repository root by default) depth-first, post-order.

    In every visited directory the existing build file is parsed and its
    directives are folded into the directory's Config. In directories under
    one of ``config.dirs`` source files are also read and a Package is
    built. ``callback`` is called once per directory, children first.
    """
    _Walker(config, callback, classifier or get_classifier(config.language)).run(root)


class _Walker:
    def __init__(self, config: Config, callback: WalkFunc, classifier: SourceClassifier) -> None:
        self._config = config
        self._callback = callback
        self._classifier = classifier
        self._update_rels = [_rel(config.repo_root, directory) for directory in config.dirs]
        rules = (build_ignore_rule(pattern) for pattern in config.exclude_paths)
        self._ignore_rules = [rule for rule in rules if rule is not None]

    def run(self, root: Path | None) -> None:
        root = Path(root).resolve() if root is not None else self._config.repo_root
        self._visit(self._config, root, _rel(self._config.repo_root, root), False)

    def _is_update_rel(self, rel: str) -> bool:
        for update_rel in self._update_rels:
            if update_rel == "" or rel == update_rel or rel.startswith(update_rel + "/"):
                return True
        return False

    def _visit(self, config: Config, directory: Path, rel: str, is_update_dir: bool) -> bool:
        """Visit one directory; return whether it or a descendant has a package or build file."""
        is_update_dir = is_update_dir or self._is_update_rel(rel)

        old_file, have_error = self._read_build_file(config, directory)

        directives = parse_directives(old_file)
        config = apply_directives(config, directives, rel)
        config = infer_proto_mode(config, old_file)
        excluded = excluded_names(directives)

        try:
            entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
        except OSError as exc:
            logger.error("%s: cannot list directory: %s", directory, exc)
            return False

        names = [entry.name for entry in entries]
        excluded |= self._classifier.companion_exclusions(names, excluded, config)

        pkg_files, other_files, subdirs = self._classify(config, rel, entries, excluded)

        has_testdata = False
        subdir_has_package = False
        for name in subdirs:
            has_package = self._visit(config, directory / name, posixpath.join(rel, name), is_update_dir)
            if name == TESTDATA_DIR and not has_package:
                has_testdata = True
            subdir_has_package = subdir_has_package or has_package

        has_package = subdir_has_package or old_file is not None
        if have_error or not is_update_dir:
            self._callback(rel, config, None, old_file, is_update_dir)
            return has_package

        gen_files = find_gen_files(old_file, excluded)
        package = build_package(
            config,
            self._classifier,
            directory,
            rel,
            pkg_files,
            other_files,
            gen_files,
            has_testdata,
        )
        self._callback(rel, config, package, old_file, is_update_dir)
        return has_package or package is not None

    def _read_build_file(self, config: Config, directory: Path) -> Tuple[Optional[File], bool]:
        old_file: Optional[File] = None
        have_error = False
        for base in config.valid_build_file_names:
            path = directory / base
            if not path.exists() or path.is_dir():
                continue
            try:
                data = path.read_bytes()
            except OSError as exc:
                logger.error("%s: %s", path, exc)
                have_error = True
                continue
            if old_file is not None:
                logger.error(
                    "in directory %s, multiple build files are present: %s, %s",
                    directory,
                    old_file.path.name,
                    base,
                )
                have_error = True
                continue
            try:
                old_file = parse_file(path, data)
            except BuildFileError as exc:
                logger.error("%s", exc)
                have_error = True
        return old_file, have_error

    def _classify(
        self,
        config: Config,
        rel: str,
        entries: Sequence[os.DirEntry],
        excluded: set,
    ) -> Tuple[List[str], List[str], List[str]]:
        pkg_files: List[str] = []
        other_files: List[str] = []
        subdirs: List[str] = []
        for entry in entries:
            name = entry.name
            is_dir = entry.is_dir()
            if not name or name[0] in "._" or name in excluded:
                continue
            if is_dir and name == VENDOR_DIR and config.dep_mode == DependencyMode.EXTERNAL:
                continue
            if self._ignore_rules and should_ignore(posixpath.join(rel, name), is_dir, self._ignore_rules):
                continue
            if is_dir:
                subdirs.append(name)
            elif self._classifier.is_source(name, config):
                pkg_files.append(name)
            else:
                other_files.append(name)
        return pkg_files, other_files, subdirs


def _rel(repo_root: Path, directory: Path) -> str:
    rel = Path(directory).relative_to(repo_root).as_posix()
    return "" if rel == "." else rel


__all__ = ["IgnoreRule", "WalkFunc", "build_ignore_rule", "should_ignore", "walk"]
