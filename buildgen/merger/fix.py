"""Rewrites of outdated rule shapes, load statements and label order."""

from __future__ import annotations

from typing import Dict, List, Optional, Set

from ..buildfile import (
    Arg,
    BinaryExpr,
    CallExpr,
    CommentBlock,
    DictExpr,
    Expr,
    File,
    ListExpr,
    Rule,
    StringExpr,
    call_expr,
    is_select,
)
from ..config import Config, ProtoMode
from ..constants import DEFAULT_LIB_NAME, DEFAULT_PROTOS_NAME, KNOWN_LOADS, LABEL_LIST_ATTRS
from ..logging import get_logger
from .keep import KeepTable

logger = get_logger("merger.fix")

# Rule kinds whose label lists are kept sorted.
GENERATED_KINDS = frozenset(
    {
        "cgo_library",
        "filegroup",
        "go_binary",
        "go_grpc_library",
        "go_library",
        "go_proto_library",
        "go_test",
        "proto_library",
    }
)

# Attributes absorbed from a cgo_library into the go_library embedding it.
_CGO_ATTRS = ("srcs", "deps", "copts", "clinkopts", "data")


def fix_file_minor(file: File, keep: KeepTable | None = None) -> bool:
    """Apply rewrites that are always safe. Returns whether ``file`` changed.

    The deprecated ``library`` attribute becomes ``embed``.
    """
    keep = keep or KeepTable(None)
    changed = False
    for rule in file.rules():
        library = rule.attr_arg("library")
        if library is None or keep.is_kept(library) or keep.is_kept(rule.call):
            continue
        embed = rule.attr_arg("embed")
        if embed is None:
            library.name = "embed"
            library.value = _as_list(library.value)
        else:
            embed.value = _union_lists(embed.value, library.value)
            rule.del_attr("library")
        changed = True
    return changed


def needs_fix(config: Config, file: File) -> bool:
    """Whether :func:`fix_file` would change ``file``."""
    keep = KeepTable(file)
    if any(not keep.is_kept(rule.call) for rule in file.rules("cgo_library")):
        return True
    return bool(_legacy_protos(config, file, keep))


def fix_file(config: Config, file: File, keep: KeepTable | None = None) -> bool:
    """Apply structural rewrites in place. Returns whether ``file`` changed.

    ``cgo_library`` rules are folded into the ``go_library`` that embeds
    them, and the legacy proto filegroup is dropped outside legacy proto
    mode. Pinned rules are left alone.
    """
    keep = keep or KeepTable(file)
    changed = _squash_cgo_libraries(file, keep)
    for rule in _legacy_protos(config, file, keep):
        logger.debug("%s: removing legacy proto filegroup", file.path)
        file.remove(rule.call)
        changed = True
    return changed


def fix_loads(file: File) -> None:
    """Keep ``load`` statements for the known .bzl files in line with used kinds.

    Symbols a known file provides are added when a rule uses them and
    removed when none does. Symbols loaded from other files and aliased
    loads are left untouched. A load left without symbols is deleted.
    """
    used = {rule.kind for rule in file.rules()}
    loads = file.loads()
    loaded_elsewhere: Set[str] = set()
    for load in loads:
        if _load_path(load) not in KNOWN_LOADS:
            loaded_elsewhere.update(_load_symbols(load))

    existing: Dict[str, CallExpr] = {}
    for load in loads:
        path = _load_path(load)
        if path in KNOWN_LOADS and path not in existing:
            existing[path] = load

    inserts: List[CallExpr] = []
    for path, provided in KNOWN_LOADS.items():
        wanted = sorted(kind for kind in provided if kind in used and kind not in loaded_elsewhere)
        load = existing.get(path)
        if load is None:
            if wanted:
                inserts.append(call_expr("load", path, *wanted))
            continue
        keep_args: List[Arg] = [load.args[0]]
        present: Set[str] = set()
        for arg in load.args[1:]:
            if arg.name is not None or not isinstance(arg.value, StringExpr):
                keep_args.append(arg)
                continue
            symbol = arg.value.value
            if symbol in provided and symbol not in used:
                continue
            if symbol in present:
                continue
            present.add(symbol)
            keep_args.append(arg)
        for symbol in wanted:
            if symbol not in present:
                keep_args.append(Arg(name=None, value=StringExpr(value=symbol)))
        positional = sorted(
            (arg for arg in keep_args[1:] if arg.name is None),
            key=lambda arg: arg.value.value if isinstance(arg.value, StringExpr) else "",
        )
        named = [arg for arg in keep_args[1:] if arg.name is not None]
        load.args = [keep_args[0]] + positional + named
        if len(load.args) == 1:
            file.remove(load)

    if inserts:
        index = _load_insert_index(file)
        file.stmts[index:index] = inserts


def sort_labels(file: File, keep: KeepTable | None = None) -> None:
    """Sort label lists of generated kinds: local, then ``//``, then ``@``.

    Pinned rules and attributes holding a pinned node keep their order.
    """
    keep = keep or KeepTable(None)
    for rule in file.rules():
        if rule.kind not in GENERATED_KINDS or keep.is_kept(rule.call):
            continue
        for key in LABEL_LIST_ATTRS:
            arg = rule.attr_arg(key)
            if arg is not None and not keep.has_kept(arg):
                _sort_expr(arg.value)


def label_sort_key(value: str) -> tuple:
    if value.startswith("@"):
        group = 2
    elif value.startswith("//"):
        group = 1
    else:
        group = 0
    return (group, value)


# ---- Internals -------------------------------------------------------------


def _squash_cgo_libraries(file: File, keep: KeepTable) -> bool:
    changed = False
    for cgo in file.rules("cgo_library"):
        if keep.is_kept(cgo.call):
            continue
        cgo_label = f":{cgo.name}"
        target: Optional[Rule] = None
        for lib in file.rules("go_library"):
            refs = lib.attr_strings("embed") + lib.attr_strings("library")
            if cgo_label in refs:
                target = lib
                break

        if target is None:
            if file.find_rule(DEFAULT_LIB_NAME) is not None and cgo.name != DEFAULT_LIB_NAME:
                logger.warning(
                    "%s: cgo_library %s is not embedded and %s already exists; leaving it",
                    file.path,
                    cgo.name,
                    DEFAULT_LIB_NAME,
                )
                continue
            cgo.kind = "go_library"
            cgo.set_attr("name", DEFAULT_LIB_NAME)
            cgo.set_attr("cgo", True)
            changed = True
            continue

        if keep.is_kept(target.call):
            continue
        for key in _CGO_ATTRS:
            value = cgo.attr(key)
            if value is None:
                continue
            current = target.attr(key)
            target.set_attr(key, value if current is None else _union_lists(current, value))
        for key in ("embed", "library"):
            _remove_string(target, key, cgo_label)
        target.set_attr("cgo", True)
        file.remove(cgo.call)
        changed = True
    return changed


def _legacy_protos(config: Config, file: File, keep: KeepTable) -> List[Rule]:
    if config.proto_mode == ProtoMode.LEGACY:
        return []
    return [
        rule
        for rule in file.rules("filegroup")
        if rule.name == DEFAULT_PROTOS_NAME and not keep.has_kept(rule.call)
    ]


def _remove_string(rule: Rule, key: str, value: str) -> None:
    expr = rule.attr(key)
    if isinstance(expr, StringExpr) and expr.value == value:
        rule.del_attr(key)
        return
    if isinstance(expr, ListExpr):
        expr.items = [item for item in expr.items if not (isinstance(item, StringExpr) and item.value == value)]
        if not expr.items:
            rule.del_attr(key)


def _as_list(expr: Expr) -> Expr:
    if isinstance(expr, StringExpr):
        return ListExpr(items=[expr])
    return expr


def _union_lists(current: Expr, extra: Expr) -> Expr:
    current = _as_list(current)
    extra = _as_list(extra)
    if isinstance(current, ListExpr) and isinstance(extra, ListExpr):
        seen = {item.value for item in current.items if isinstance(item, StringExpr)}
        for item in extra.items:
            if isinstance(item, StringExpr) and item.value in seen:
                continue
            current.items.append(item)
        return current
    return BinaryExpr(op="+", left=current, right=extra)


def _sort_expr(expr: Expr) -> None:
    if isinstance(expr, ListExpr):
        if all(isinstance(item, StringExpr) for item in expr.items):
            expr.items.sort(key=lambda item: label_sort_key(item.value))  # type: ignore[attr-defined]
    elif isinstance(expr, BinaryExpr):
        _sort_expr(expr.left)
        _sort_expr(expr.right)
    elif is_select(expr):
        assert isinstance(expr, CallExpr)
        select_dict = expr.args[0].value
        assert isinstance(select_dict, DictExpr)
        for entry in select_dict.entries:
            _sort_expr(entry.value)


def _load_path(load: CallExpr) -> str:
    if load.args and isinstance(load.args[0].value, StringExpr):
        return load.args[0].value.value
    return ""


def _load_symbols(load: CallExpr) -> List[str]:
    symbols = []
    for arg in load.args[1:]:
        if arg.name is not None:
            symbols.append(arg.name)
        elif isinstance(arg.value, StringExpr):
            symbols.append(arg.value.value)
    return symbols


def _load_insert_index(file: File) -> int:
    """Index after the existing loads, or after the leading comment blocks."""
    loads = [i for i, stmt in enumerate(file.stmts) if isinstance(stmt, CallExpr) and stmt.func == "load"]
    if loads:
        return loads[-1] + 1
    index = 0
    while index < len(file.stmts) and isinstance(file.stmts[index], CommentBlock):
        index += 1
    return index


__all__ = [
    "GENERATED_KINDS",
    "fix_file",
    "fix_file_minor",
    "fix_loads",
    "label_sort_key",
    "needs_fix",
    "sort_labels",
]
