"""Directive comments embedded in build files.

A directive is a top-level comment of the form ``# buildgen:<key> <value>``.
Parsing yields a flat list of :class:`Directive` values; what each key means
is decided separately by :func:`apply_directives` and the walker.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Set

from .buildfile import File, StringExpr
from .config import Config, ConfigError, ProtoMode
from .constants import DIRECTIVE_PREFIX, LEGACY_PROTO_BZL
from .logging import get_logger

logger = get_logger("directives")

KNOWN_DIRECTIVES = frozenset(
    {"build_file_name", "build_tags", "exclude", "ignore", "prefix", "proto"}
)


@dataclass(frozen=True)
class Directive:
    key: str
    value: str


def parse_directives(file: Optional[File]) -> List[Directive]:
    """Return the directives found in the top-level comments of ``file``."""
    if file is None:
        return []
    directives: List[Directive] = []
    for line in file.comment_lines():
        directive = parse_directive_line(line)
        if directive is not None:
            directives.append(directive)
    return directives


def parse_directive_line(line: str) -> Optional[Directive]:
    text = line.strip()
    if not text.startswith(DIRECTIVE_PREFIX):
        return None
    body = text[len(DIRECTIVE_PREFIX) :].strip()
    if not body:
        return None
    key, _, value = body.partition(" ")
    return Directive(key=key, value=value.strip())


def apply_directives(config: Config, directives: Iterable[Directive], rel: str) -> Config:
    """Fold the inheritable directives into a new Config for directory ``rel``.

    ``exclude`` and ``ignore`` only concern the directory that declares them
    and are read by the walker directly.
    """
    derived = config
    for directive in directives:
        key, value = directive.key, directive.value
        if key == "build_file_name":
            names = tuple(name.strip() for name in value.split(",") if name.strip())
            if not names:
                logger.error("%s: build_file_name directive has no names", rel or ".")
                continue
            derived = replace(derived, valid_build_file_names=names)
        elif key == "build_tags":
            try:
                derived = derived.with_build_tags(value)
            except ConfigError as exc:
                logger.error("%s: %s", rel or ".", exc)
        elif key == "prefix":
            derived = replace(derived, prefix=value.strip().strip("/"), prefix_rel=rel)
        elif key == "proto":
            try:
                mode = ProtoMode.from_string(value)
            except ConfigError as exc:
                logger.error("%s: %s", rel or ".", exc)
                continue
            derived = replace(derived, proto_mode=mode, proto_mode_explicit=True)
        elif key not in KNOWN_DIRECTIVES:
            logger.warning("%s: unknown directive %r", rel or ".", key)
    return derived


def excluded_names(directives: Iterable[Directive]) -> Set[str]:
    return {d.value for d in directives if d.key == "exclude" and d.value}


def has_ignore(directives: Iterable[Directive]) -> bool:
    return any(d.key == "ignore" for d in directives)


def infer_proto_mode(config: Config, file: Optional[File]) -> Config:
    """Switch to legacy proto mode when ``file`` loads the legacy proto rules.

    An explicit ``proto`` directive, here or in a parent, always wins.
    """
    if config.proto_mode_explicit or file is None:
        return config
    for load in file.loads():
        if not load.args:
            continue
        source = load.args[0].value
        if isinstance(source, StringExpr) and source.value == LEGACY_PROTO_BZL:
            logger.debug("%s loads legacy proto rules; using legacy proto mode", file.path)
            return replace(config, proto_mode=ProtoMode.LEGACY)
    return config


__all__ = [
    "Directive",
    "KNOWN_DIRECTIVES",
    "apply_directives",
    "excluded_names",
    "has_ignore",
    "infer_proto_mode",
    "parse_directive_line",
    "parse_directives",
]
