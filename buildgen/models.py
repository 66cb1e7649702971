"""Core data models shared across buildgen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .platforms import Constraint, Placement


class FileKind:
    """Source file categories recognized by the classifiers."""

    GO = "go"
    C = "c"
    H = "h"
    CXX = "cxx"
    S = "s"  # plain Go assembly, always compiled
    CS = "cs"  # preprocessed assembly (.S), cgo only
    PROTO = "proto"
    UNKNOWN = "unknown"

    CGO_ONLY = frozenset({C, H, CXX, CS})


@dataclass
class CgoOptions:
    """Options from one ``#cgo`` line: an optional condition plus flags."""

    condition: Optional[Constraint]
    opts: List[str]


@dataclass
class FileInfo:
    """Metadata extracted from one file by a source classifier."""

    path: Path
    rel: str
    name: str
    kind: str
    package_name: str = ""
    imports: List[str] = field(default_factory=list)
    is_test: bool = False
    is_xtest: bool = False
    is_cgo: bool = False
    copts: List[CgoOptions] = field(default_factory=list)
    clinkopts: List[CgoOptions] = field(default_factory=list)
    has_services: bool = False
    goos: str = ""
    goarch: str = ""
    constraints: List[Constraint] = field(default_factory=list)

    @property
    def has_constraints(self) -> bool:
        return bool(self.goos or self.goarch or self.constraints)

    @property
    def is_pbgo(self) -> bool:
        return self.name.endswith(".pb.go")


@dataclass
class PlatformStrings:
    """Strings that apply to every platform, or only to some of them."""

    generic: List[str] = field(default_factory=list)
    os: Dict[str, List[str]] = field(default_factory=dict)
    arch: Dict[str, List[str]] = field(default_factory=dict)
    platform: Dict[str, List[str]] = field(default_factory=dict)

    def add(self, placement: Placement, values: List[str]) -> None:
        if placement.kind == "none":
            return
        if placement.kind == "generic":
            _extend_unique(self.generic, values)
            return
        table = getattr(self, placement.kind)
        for key in placement.keys:
            _extend_unique(table.setdefault(key, []), values)

    def add_generic(self, *values: str) -> None:
        _extend_unique(self.generic, list(values))

    def is_empty(self) -> bool:
        return not (self.generic or self.os or self.arch or self.platform)

    def has_go(self) -> bool:
        return any(value.endswith(".go") for value in self.flat())

    def flat(self) -> List[str]:
        """Return every string once, sorted."""
        seen = set(self.generic)
        for table in (self.os, self.arch, self.platform):
            for values in table.values():
                seen.update(values)
        return sorted(seen)

    def tables(self) -> Iterator[Tuple[str, Dict[str, List[str]]]]:
        yield "os", self.os
        yield "arch", self.arch
        yield "platform", self.platform

    def map(self, fn: Callable[[str], str]) -> "PlatformStrings":
        return PlatformStrings(
            generic=[fn(v) for v in self.generic],
            os={k: [fn(v) for v in vs] for k, vs in self.os.items()},
            arch={k: [fn(v) for v in vs] for k, vs in self.arch.items()},
            platform={k: [fn(v) for v in vs] for k, vs in self.platform.items()},
        )


@dataclass
class GoTarget:
    sources: PlatformStrings = field(default_factory=PlatformStrings)
    imports: PlatformStrings = field(default_factory=PlatformStrings)
    copts: PlatformStrings = field(default_factory=PlatformStrings)
    clinkopts: PlatformStrings = field(default_factory=PlatformStrings)
    cgo: bool = False

    def has_go(self) -> bool:
        return self.sources.has_go()


@dataclass
class ProtoTarget:
    sources: PlatformStrings = field(default_factory=PlatformStrings)
    imports: PlatformStrings = field(default_factory=PlatformStrings)
    has_services: bool = False
    has_pbgo: bool = False

    def has_proto(self) -> bool:
        return not self.sources.is_empty()


@dataclass
class Package:
    """The single buildable unit selected for a directory."""

    name: str
    dir: Path
    rel: str
    library: GoTarget = field(default_factory=GoTarget)
    test: GoTarget = field(default_factory=GoTarget)
    xtest: GoTarget = field(default_factory=GoTarget)
    proto: ProtoTarget = field(default_factory=ProtoTarget)
    has_testdata: bool = False

    @property
    def is_command(self) -> bool:
        return self.name == "main"

    def first_go_file(self) -> str:
        for target in (self.library, self.test, self.xtest):
            for name in target.sources.flat():
                if name.endswith(".go"):
                    return name
        for name in self.proto.sources.flat():
            return name
        return ""


def _extend_unique(target: List[str], values: List[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


__all__ = [
    "CgoOptions",
    "FileInfo",
    "FileKind",
    "GoTarget",
    "Package",
    "PlatformStrings",
    "ProtoTarget",
]
