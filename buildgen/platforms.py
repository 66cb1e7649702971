"""Target platforms and build-constraint evaluation.

A source file may be restricted to some platforms by its name
(``foo_linux.go``, ``foo_linux_amd64.go``) and by ``//go:build`` or
``// +build`` lines. Every file is evaluated against the known platform
matrix and the resulting set of platforms decides where its strings end up:
the generic list, an OS-keyed map, an arch-keyed map, or a map keyed by
``os_arch``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

KNOWN_OS: Tuple[str, ...] = (
    "android",
    "darwin",
    "dragonfly",
    "freebsd",
    "linux",
    "nacl",
    "netbsd",
    "openbsd",
    "plan9",
    "solaris",
    "windows",
)

KNOWN_ARCH: Tuple[str, ...] = (
    "386",
    "amd64",
    "amd64p32",
    "arm",
    "arm64",
    "mips",
    "mips64",
    "mips64le",
    "mipsle",
    "ppc64",
    "ppc64le",
    "s390x",
)

_PLATFORMS_BY_OS: Dict[str, Tuple[str, ...]] = {
    "android": ("386", "amd64", "arm", "arm64"),
    "darwin": ("386", "amd64", "arm", "arm64"),
    "dragonfly": ("amd64",),
    "freebsd": ("386", "amd64", "arm"),
    "linux": (
        "386",
        "amd64",
        "arm",
        "arm64",
        "mips",
        "mips64",
        "mips64le",
        "mipsle",
        "ppc64",
        "ppc64le",
        "s390x",
    ),
    "nacl": ("386", "amd64p32", "arm"),
    "netbsd": ("386", "amd64", "arm"),
    "openbsd": ("386", "amd64", "arm"),
    "plan9": ("386", "amd64", "arm"),
    "solaris": ("amd64",),
    "windows": ("386", "amd64"),
}

UNIX_OS = frozenset(
    {"android", "darwin", "dragonfly", "freebsd", "linux", "netbsd", "openbsd", "solaris"}
)


@dataclass(frozen=True, order=True)
class Platform:
    os: str
    arch: str

    def __str__(self) -> str:
        return f"{self.os}_{self.arch}"


KNOWN_PLATFORMS: Tuple[Platform, ...] = tuple(
    Platform(os_name, arch) for os_name, arches in _PLATFORMS_BY_OS.items() for arch in arches
)
ALL_PLATFORMS: FrozenSet[Platform] = frozenset(KNOWN_PLATFORMS)


class ConstraintError(ValueError):
    """Raised for build constraint lines that cannot be parsed."""


# ---- Constraint expressions ------------------------------------------------

TagPredicate = Callable[[str], bool]


class Constraint:
    def evaluate(self, has_tag: TagPredicate) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True)
class Tag(Constraint):
    name: str

    def evaluate(self, has_tag: TagPredicate) -> bool:
        return has_tag(self.name)


@dataclass(frozen=True)
class Not(Constraint):
    operand: Constraint

    def evaluate(self, has_tag: TagPredicate) -> bool:
        return not self.operand.evaluate(has_tag)


@dataclass(frozen=True)
class And(Constraint):
    operands: Tuple[Constraint, ...]

    def evaluate(self, has_tag: TagPredicate) -> bool:
        return all(operand.evaluate(has_tag) for operand in self.operands)


@dataclass(frozen=True)
class Or(Constraint):
    operands: Tuple[Constraint, ...]

    def evaluate(self, has_tag: TagPredicate) -> bool:
        return any(operand.evaluate(has_tag) for operand in self.operands)


_TAG_RE = re.compile(r"^[A-Za-z0-9_.]+$")


def parse_plus_build(line: str) -> Constraint:
    """Parse the body of a ``// +build`` line (or a ``#cgo`` condition).

    Space-separated terms are alternatives; comma-separated atoms within a
    term must all hold.
    """
    terms: List[Constraint] = []
    for term in line.split():
        atoms: List[Constraint] = []
        for atom in term.split(","):
            negated = atom.startswith("!")
            name = atom[1:] if negated else atom
            if not name or not _TAG_RE.match(name):
                raise ConstraintError(f"invalid build constraint: {line!r}")
            tag: Constraint = Tag(name)
            atoms.append(Not(tag) if negated else tag)
        terms.append(atoms[0] if len(atoms) == 1 else And(tuple(atoms)))
    if not terms:
        raise ConstraintError("empty build constraint")
    return terms[0] if len(terms) == 1 else Or(tuple(terms))


_EXPR_TOKEN_RE = re.compile(r"\s*(\|\||&&|!|\(|\)|[A-Za-z0-9_.]+)")


def parse_go_build(expr: str) -> Constraint:
    """Parse the expression of a ``//go:build`` line."""
    tokens: List[str] = []
    pos = 0
    text = expr.strip()
    while pos < len(text):
        match = _EXPR_TOKEN_RE.match(text, pos)
        if match is None:
            raise ConstraintError(f"invalid //go:build expression: {expr!r}")
        tokens.append(match.group(1))
        pos = match.end()
    parser = _ExprParser(tokens, expr)
    result = parser.parse_or()
    if parser.peek() is not None:
        raise ConstraintError(f"unexpected {parser.peek()!r} in //go:build expression: {expr!r}")
    return result


class _ExprParser:
    def __init__(self, tokens: Sequence[str], source: str) -> None:
        self._tokens = list(tokens)
        self._pos = 0
        self._source = source

    def peek(self) -> Optional[str]:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> str:
        token = self.peek()
        if token is None:
            raise ConstraintError(f"unexpected end of //go:build expression: {self._source!r}")
        self._pos += 1
        return token

    def parse_or(self) -> Constraint:
        operands = [self.parse_and()]
        while self.peek() == "||":
            self._next()
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def parse_and(self) -> Constraint:
        operands = [self.parse_unary()]
        while self.peek() == "&&":
            self._next()
            operands.append(self.parse_unary())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def parse_unary(self) -> Constraint:
        token = self._next()
        if token == "!":
            return Not(self.parse_unary())
        if token == "(":
            inner = self.parse_or()
            if self._next() != ")":
                raise ConstraintError(f"missing ')' in //go:build expression: {self._source!r}")
            return inner
        if token in ("||", "&&", ")"):
            raise ConstraintError(f"unexpected {token!r} in //go:build expression: {self._source!r}")
        return Tag(token)


# ---- Evaluation ------------------------------------------------------------


def filename_constraints(name: str) -> Tuple[str, str]:
    """Return the ``(goos, goarch)`` implied by a source file name.

    Only the part after the first underscore is considered, so ``linux.go``
    is unconstrained while ``x_linux.go`` is Linux-only.
    """
    stem = name.rsplit(".", 1)[0] if "." in name else name
    if stem.endswith("_test"):
        stem = stem[: -len("_test")]
    index = stem.find("_")
    if index < 0:
        return "", ""
    parts = stem[index:].split("_")
    count = len(parts)
    if count >= 2 and parts[-2] in KNOWN_OS and parts[-1] in KNOWN_ARCH:
        return parts[-2], parts[-1]
    if count >= 1 and parts[-1] in KNOWN_OS:
        return parts[-1], ""
    if count >= 1 and parts[-1] in KNOWN_ARCH:
        return "", parts[-1]
    return "", ""


def tag_predicate(platform: Platform, build_tags: Iterable[str]) -> TagPredicate:
    """Return a predicate telling whether ``tag`` holds on ``platform``."""
    enabled = frozenset(build_tags)

    def has_tag(tag: str) -> bool:
        if tag == "ignore":
            return False
        if tag == platform.os or tag == platform.arch:
            return True
        if tag == "linux" and platform.os == "android":
            return True
        if tag == "unix":
            return platform.os in UNIX_OS
        if tag in KNOWN_OS or tag in KNOWN_ARCH:
            return False
        if tag.startswith("go1."):
            return True
        return tag in enabled

    return has_tag


def matching_platforms(
    goos: str,
    goarch: str,
    constraints: Sequence[Constraint],
    build_tags: Iterable[str],
) -> FrozenSet[Platform]:
    """Return the known platforms on which a file with these constraints builds."""
    tags = frozenset(build_tags)
    matched = set()
    for platform in KNOWN_PLATFORMS:
        if goos and platform.os != goos:
            continue
        if goarch and platform.arch != goarch:
            continue
        has_tag = tag_predicate(platform, tags)
        if all(constraint.evaluate(has_tag) for constraint in constraints):
            matched.add(platform)
    return frozenset(matched)


@dataclass(frozen=True)
class Placement:
    """Where strings matching a set of platforms are recorded.

    ``kind`` is one of ``generic``, ``os``, ``arch``, ``platform`` or
    ``none``; ``keys`` are the map keys for the non-generic kinds.
    """

    kind: str
    keys: Tuple[str, ...] = ()


def placement_for(matched: FrozenSet[Platform]) -> Placement:
    if not matched:
        return Placement("none")
    if matched == ALL_PLATFORMS:
        return Placement("generic")

    oses = sorted({p.os for p in matched})
    if all(Platform(os_name, arch) in matched for os_name in oses for arch in _PLATFORMS_BY_OS[os_name]):
        return Placement("os", tuple(oses))

    arches = sorted({p.arch for p in matched})
    whole_arches = all(
        p in matched for p in KNOWN_PLATFORMS if p.arch in arches
    )
    if whole_arches:
        return Placement("arch", tuple(arches))

    return Placement("platform", tuple(str(p) for p in sorted(matched)))


__all__ = [
    "ALL_PLATFORMS",
    "And",
    "Constraint",
    "ConstraintError",
    "KNOWN_ARCH",
    "KNOWN_OS",
    "KNOWN_PLATFORMS",
    "Not",
    "Or",
    "Placement",
    "Platform",
    "Tag",
    "UNIX_OS",
    "filename_constraints",
    "matching_platforms",
    "parse_go_build",
    "parse_plus_build",
    "placement_for",
    "tag_predicate",
]
