"""Rewrite the raw imports of generated rules into dependency labels."""

from __future__ import annotations

import posixpath
from typing import Callable, Optional

from ..buildfile import Arg, BinaryExpr, CallExpr, DictExpr, Expr, KeyValue, ListExpr, Rule, StringExpr, is_select
from ..config import Config, DependencyMode
from ..constants import (
    CONDITIONS_DEFAULT,
    IMPORTS_ATTR,
    RULES_GO_REPO,
    WELL_KNOWN_GO_PROTO_PKG,
    WELL_KNOWN_PROTO_REPO,
)
from ..labels import Label, Labeler
from ..logging import get_logger
from .external import ExternalResolver, RemoteResolver, ResolveError, StandardImportError, VendoredResolver

logger = get_logger("resolve")

WELL_KNOWN_PROTO_PREFIX = "google/protobuf/"
WELL_KNOWN_PROTOS = frozenset(
    {
        "any",
        "api",
        "compiler/plugin",
        "descriptor",
        "duration",
        "empty",
        "field_mask",
        "source_context",
        "struct",
        "timestamp",
        "type",
        "wrappers",
    }
)

ResolveFunc = Callable[[str, str], Label]


def new_external_resolver(config: Config, labeler: Labeler) -> ExternalResolver:
    """Select the external resolver for the configured dependency mode."""
    if config.dep_mode == DependencyMode.VENDORED:
        return VendoredResolver(labeler)
    return RemoteResolver(config.known_imports)


class Resolver:
    """Maps import strings of generated rules to labels.

    One instance serves a whole run; it owns the external resolver and with
    it the caches of discovered repository roots.
    """

    def __init__(
        self,
        config: Config,
        labeler: Labeler,
        external: ExternalResolver | None = None,
    ) -> None:
        self._config = config
        self._labeler = labeler
        self._external = external or new_external_resolver(config, labeler)

    def resolve_rule(
        self,
        rule: Rule | CallExpr,
        pkg_rel: str,
        build_rel: str,
        config: Config | None = None,
    ) -> None:
        """Replace the raw imports attribute of ``rule`` with a ``deps`` attribute.

        Labels that live in the build file being written (``build_rel``) are
        made relative. Imports that fail to resolve are dropped; the
        attribute is removed entirely when nothing remains. Rules of kinds
        without import semantics are left alone.
        """
        if isinstance(rule, CallExpr):
            rule = Rule(rule)
        resolve = self._resolve_func(rule.kind, config or self._config)
        if resolve is None:
            return
        arg = rule.attr_arg(IMPORTS_ATTR)
        if arg is None:
            return

        def to_label(imp: str) -> str:
            try:
                label = resolve(imp, pkg_rel)
            except StandardImportError:
                return ""
            except ResolveError as exc:
                logger.error("%s: %s", pkg_rel or ".", exc)
                return ""
            relative = not label.repo and label.pkg == build_rel
            return str(label.with_relative(relative))

        deps = map_expr_strings(arg.value, to_label)
        if deps is None:
            rule.del_attr(IMPORTS_ATTR)
            return
        arg.name = "deps"
        arg.value = deps

    def _resolve_func(self, kind: str, config: Config) -> Optional[ResolveFunc]:
        if kind in ("go_library", "go_binary", "go_test"):
            return lambda imp, rel: self.resolve_go(imp, rel, config)
        if kind == "proto_library":
            return self.resolve_proto
        if kind in ("go_proto_library", "go_grpc_library"):
            return self.resolve_go_proto
        return None

    def resolve_go(self, imp: str, pkg_rel: str, config: Config | None = None) -> Label:
        """Resolve a Go import path; ``pkg_rel`` anchors relative imports."""
        config = config or self._config
        if _is_local_import(imp):
            clean = posixpath.normpath(posixpath.join(pkg_rel, imp))
            if clean == ".." or clean.startswith("../"):
                raise ResolveError(
                    f"relative import path {imp!r} from {pkg_rel!r} points outside of repository"
                )
            return self._labeler.library_label("" if clean == "." else clean)

        if is_standard(imp):
            raise StandardImportError(imp)

        prefix = config.prefix
        if prefix and (imp == prefix or imp.startswith(prefix + "/")):
            tail = imp[len(prefix) :].lstrip("/")
            rel = posixpath.join(config.prefix_rel, tail) if tail else config.prefix_rel
            return self._labeler.library_label(rel.strip("/"))

        return self._external.resolve(imp)

    def resolve_proto(self, imp: str, pkg_rel: str) -> Label:
        """Resolve an import from a .proto file to a proto_library label."""
        stem = _well_known_stem(imp)
        if stem is not None:
            return Label(repo=WELL_KNOWN_PROTO_REPO, name=f"{stem.replace('/', '_')}_proto")
        rel = _proto_import_dir(imp)
        return self._labeler.proto_label(rel, self._base_name(rel))

    def resolve_go_proto(self, imp: str, pkg_rel: str) -> Label:
        """Resolve an import from a .proto file to the Go library generated from it."""
        stem = _well_known_stem(imp)
        if stem is not None:
            name = posixpath.basename(stem)
            return Label(repo=RULES_GO_REPO, pkg=WELL_KNOWN_GO_PROTO_PKG, name=f"{name}_go_proto")
        return self._labeler.library_label(_proto_import_dir(imp))

    def _base_name(self, rel: str) -> str:
        base = posixpath.basename(rel)
        if base:
            return base
        return posixpath.basename(self._config.prefix.rstrip("/")) or "root"


def map_expr_strings(expr: Expr, fn: Callable[[str], str]) -> Optional[Expr]:
    """Apply ``fn`` to every string in ``expr``.

    Strings mapped to ``""`` are dropped; containers left empty by the
    mapping collapse to ``None`` so callers can drop them too. Lists,
    dicts, ``select`` calls and ``+`` concatenations are supported.
    """
    if isinstance(expr, StringExpr):
        value = fn(expr.value)
        return StringExpr(value=value) if value else None

    if isinstance(expr, ListExpr):
        items = [mapped for mapped in (map_expr_strings(item, fn) for item in expr.items) if mapped is not None]
        if not items and expr.items:
            return None
        return ListExpr(items=items)

    if isinstance(expr, DictExpr):
        entries = []
        is_empty = True
        for entry in expr.entries:
            value = map_expr_strings(entry.value, fn)
            if value is None:
                continue
            entries.append(KeyValue(key=entry.key, value=value))
            if not (isinstance(entry.key, StringExpr) and entry.key.value == CONDITIONS_DEFAULT):
                is_empty = False
        if is_empty:
            return None
        return DictExpr(entries=entries)

    if isinstance(expr, CallExpr) and is_select(expr):
        arg = map_expr_strings(expr.args[0].value, fn)
        if arg is None:
            return None
        return CallExpr(func=expr.func, args=[Arg(name=None, value=arg)])

    if isinstance(expr, BinaryExpr):
        left = map_expr_strings(expr.left, fn)
        right = map_expr_strings(expr.right, fn)
        if left is None:
            return right
        if right is None:
            return left
        return BinaryExpr(op=expr.op, left=left, right=right)

    raise ValueError(f"unexpected expression in generated imports: {type(expr).__name__}")


def is_standard(imp: str) -> bool:
    """Standard library import paths have no dot in their first segment."""
    return "." not in imp.split("/", 1)[0]


def _is_local_import(imp: str) -> bool:
    return imp in (".", "..") or imp.startswith("./") or imp.startswith("../")


def _well_known_stem(imp: str) -> Optional[str]:
    if not imp.startswith(WELL_KNOWN_PROTO_PREFIX) or not imp.endswith(".proto"):
        return None
    stem = imp[len(WELL_KNOWN_PROTO_PREFIX) : -len(".proto")]
    return stem if stem in WELL_KNOWN_PROTOS else None


def _proto_import_dir(imp: str) -> str:
    if not imp.endswith(".proto"):
        raise ResolveError(f"can't import non-proto: {imp!r}")
    rel = posixpath.dirname(imp)
    return "" if rel == "." else rel


__all__ = [
    "Resolver",
    "WELL_KNOWN_PROTOS",
    "is_standard",
    "map_expr_strings",
    "new_external_resolver",
]
