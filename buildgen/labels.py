"""Labels and the Labeler that names generated targets."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass

from .config import Config, StructureMode
from .constants import DEFAULT_LIB_NAME, DEFAULT_TEST_NAME, DEFAULT_XTEST_NAME

_LABEL_RE = re.compile(r"^(?:@(?P<repo>[\w.-]+))?(?://(?P<pkg>[^:]*))?(?::(?P<name>.+))?$")


class LabelError(ValueError):
    """Raised when a string is not a label."""


@dataclass(frozen=True)
class Label:
    """A build-graph address.

    ``relative`` labels point into the build file being written and render
    as ``:name``.
    """

    repo: str = ""
    pkg: str = ""
    name: str = ""
    relative: bool = False

    def __str__(self) -> str:
        if self.relative:
            return f":{self.name}"
        repo = f"@{self.repo}" if self.repo else ""
        if posixpath.basename(self.pkg) == self.name and self.pkg:
            return f"{repo}//{self.pkg}"
        return f"{repo}//{self.pkg}:{self.name}"

    @classmethod
    def parse(cls, text: str) -> "Label":
        """Parse the canonical string form produced by ``str(label)``."""
        if text.startswith(":"):
            if len(text) == 1:
                raise LabelError(f"invalid label: {text!r}")
            return cls(name=text[1:], relative=True)
        match = _LABEL_RE.match(text)
        if match is None or (match.group("pkg") is None and match.group("name") is None):
            raise LabelError(f"invalid label: {text!r}")
        if match.group("pkg") is None:
            raise LabelError(f"invalid label: {text!r}")
        repo = match.group("repo") or ""
        pkg = match.group("pkg").strip("/")
        name = match.group("name")
        if name is None:
            if not pkg:
                raise LabelError(f"invalid label: {text!r}")
            name = posixpath.basename(pkg)
        return cls(repo=repo, pkg=pkg, name=name)

    def with_relative(self, relative: bool) -> "Label":
        return Label(repo=self.repo, pkg=self.pkg, name=self.name, relative=relative)


class Labeler:
    """Maps package directories to the labels of the targets generated there.

    Labels are a pure function of the structure mode, the import prefix and
    the repository-relative directory.
    """

    def __init__(self, config: Config) -> None:
        self._flat = config.structure_mode == StructureMode.FLAT
        self._prefix = config.prefix

    def library_label(self, rel: str) -> Label:
        if self._flat:
            return Label(name=self._flat_name(rel))
        return Label(pkg=rel, name=DEFAULT_LIB_NAME)

    def binary_label(self, rel: str) -> Label:
        if self._flat:
            return Label(name=f"{self._flat_name(rel)}_cmd")
        return Label(pkg=rel, name=self._base_name(rel))

    def test_label(self, rel: str, xtest: bool = False) -> Label:
        if self._flat:
            suffix = "_xtest" if xtest else "_test"
            return Label(name=f"{self._flat_name(rel)}{suffix}")
        return Label(pkg=rel, name=DEFAULT_XTEST_NAME if xtest else DEFAULT_TEST_NAME)

    def proto_label(self, rel: str, name: str) -> Label:
        return self._proto_target(rel, f"{name}_proto")

    def go_proto_label(self, rel: str, name: str) -> Label:
        return self._proto_target(rel, f"{name}_go_proto")

    def _proto_target(self, rel: str, name: str) -> Label:
        if self._flat:
            return Label(name=posixpath.join(rel, name))
        return Label(pkg=rel, name=name)

    def _flat_name(self, rel: str) -> str:
        return rel or self._base_name(rel)

    def _base_name(self, rel: str) -> str:
        base = posixpath.basename(rel)
        if base:
            return base
        base = posixpath.basename(self._prefix.rstrip("/"))
        return base or "root"


__all__ = ["Label", "LabelError", "Labeler"]
