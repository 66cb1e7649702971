"""Reconcile generated rules with an existing build file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterator, List, Optional, Sequence, Set, Tuple

from ..buildfile import (
    Arg,
    BinaryExpr,
    CallExpr,
    DictExpr,
    Expr,
    File,
    KeyValue,
    ListExpr,
    Rule,
    StringExpr,
    is_select,
)
from ..config import Config
from ..constants import CONDITIONS_DEFAULT, IMPORTS_ATTR, MERGEABLE_LIST_ATTRS, MERGEABLE_SCALAR_ATTRS
from ..directives import has_ignore, parse_directives
from ..logging import get_logger
from .fix import fix_file, fix_file_minor, fix_loads, needs_fix, sort_labels
from .keep import KeepTable

logger = get_logger("merger")


@dataclass
class MergeContext:
    """What the merger needs to know beyond the two files.

    ``directory`` is the directory of the build file; plain file entries in
    ``srcs`` are checked against it. ``excluded`` holds names excluded by
    directives in that directory.
    """

    config: Config
    directory: Optional[Path] = None
    excluded: FrozenSet[str] = frozenset()


def merge_file(
    gen_file: File,
    old_file: File | None,
    empty: Sequence[CallExpr],
    context: MergeContext,
) -> Optional[File]:
    """Merge ``gen_file`` into ``old_file``.

    Returns the file to emit, or ``None`` when the existing file carries
    ``# buildgen:ignore`` and must be left as it is. ``old_file`` is updated
    in place.
    """
    if old_file is None:
        sort_labels(gen_file)
        fix_loads(gen_file)
        return gen_file

    if has_ignore(parse_directives(old_file)):
        logger.debug("%s: ignored by directive", old_file.path)
        return None

    keep = KeepTable(old_file)
    fix_file_minor(old_file, keep)
    if context.config.should_fix:
        fix_file(context.config, old_file, keep)
    elif needs_fix(context.config, old_file):
        logger.warning(
            "%s: file contains rules whose structure is out of date. Consider running 'buildgen fix'.",
            old_file.path,
        )

    merger = _Merger(old_file, keep, context)
    merger.delete_empty(empty)
    for call in gen_file.stmts:
        if isinstance(call, CallExpr) and call.func != "load":
            merger.merge_rule(call)

    sort_labels(old_file, keep)
    fix_loads(old_file)
    return old_file


class _Merger:
    def __init__(self, file: File, keep: KeepTable, context: MergeContext) -> None:
        self._file = file
        self._keep = keep
        self._context = context

    def delete_empty(self, empty: Sequence[CallExpr]) -> None:
        for candidate in empty:
            gen = Rule(candidate)
            for old in self._file.rules(gen.kind):
                if old.name != gen.name:
                    continue
                if self._keep.has_kept(old.call):
                    continue
                logger.debug("%s: deleting empty rule %s", self._file.path, gen.name)
                self._file.remove(old.call)

    def merge_rule(self, call: CallExpr) -> None:
        gen = Rule(call)
        old = self._file.find_rule(gen.name)
        if old is None:
            self._file.stmts.append(call)
            return
        if old.kind != gen.kind:
            logger.warning(
                "%s: rule %s has kind %s, expected %s; leaving it alone",
                self._file.path,
                gen.name,
                old.kind,
                gen.kind,
            )
            return
        if self._keep.is_kept(old.call):
            return

        for key in MERGEABLE_LIST_ATTRS:
            self._merge_list_attr(old, gen, key)
        for key in MERGEABLE_SCALAR_ATTRS:
            self._merge_scalar_attr(old, gen, key)
        # data is only filled in when missing.
        data = gen.attr("data")
        if data is not None and old.attr_arg("data") is None:
            old.set_attr("data", data)

    def _merge_scalar_attr(self, old: Rule, gen: Rule, key: str) -> None:
        old_arg = old.attr_arg(key)
        if old_arg is not None and self._keep.has_kept(old_arg):
            return
        value = gen.attr(key)
        if value is None:
            if old_arg is not None:
                old.del_attr(key)
            return
        if old_arg is None:
            old.set_attr(key, value)
            return
        old_arg.value = value

    def _merge_list_attr(self, old: Rule, gen: Rule, key: str) -> None:
        if key == IMPORTS_ATTR:
            return
        old_arg = old.attr_arg(key)
        gen_value = gen.attr(key)
        if old_arg is None:
            if gen_value is not None:
                old.set_attr(key, gen_value)
            return
        if self._keep.is_kept(old_arg):
            return

        old_parts = _decompose(old_arg.value)
        if old_parts is None:
            # glob() and other expressions are left to their authors.
            return
        gen_parts = _decompose(gen_value) if gen_value is not None else ([], [])
        if gen_parts is None:
            return

        prune = key == "srcs"
        # Sources the generator placed in another branch have moved, not gone.
        placed = set(_all_strings(gen_value)) if prune and gen_value is not None else set()
        old_lists, old_selects = old_parts
        gen_lists, gen_selects = gen_parts

        generic = old_lists[0] if old_lists else ListExpr()
        for extra in old_lists[1:]:
            generic.items.extend(extra.items)
        gen_generic = [value for lst in gen_lists for value in _strings(lst)]
        self._union(generic, gen_generic, prune, placed)

        selects = list(old_selects)
        for gen_select in gen_selects:
            target = _matching_select(selects, gen_select)
            if target is None:
                selects.append(DictExpr(entries=[]))
                target = selects[-1]
            self._merge_select(target, gen_select, prune, placed)
        # Branches the generator no longer fills are pruned too.
        for select_dict in selects:
            gen_select = _matching_select(gen_selects, select_dict)
            for entry in select_dict.entries:
                key_text = _key_text(entry)
                if key_text == CONDITIONS_DEFAULT or self._keep.is_kept(entry):
                    continue
                if gen_select is None or _entry(gen_select, key_text) is None:
                    if isinstance(entry.value, ListExpr):
                        self._union(entry.value, [], prune, placed)

        value = _compose(generic, selects, self._keep)
        if value is None:
            if not self._keep.has_kept(old_arg):
                old.del_attr(key)
            return
        old_arg.value = value

    def _merge_select(self, target: DictExpr, gen_select: DictExpr, prune: bool, placed: Set[str]) -> None:
        for gen_entry in gen_select.entries:
            key_text = _key_text(gen_entry)
            values = _strings(gen_entry.value)
            entry = _entry(target, key_text)
            if entry is None:
                entry = KeyValue(key=StringExpr(value=key_text), value=ListExpr())
                _insert_entry(target, entry)
            if self._keep.is_kept(entry) or not isinstance(entry.value, ListExpr):
                continue
            self._union(entry.value, values, prune and key_text != CONDITIONS_DEFAULT, placed)

    def _union(self, target: ListExpr, values: List[str], prune: bool, placed: Set[str]) -> None:
        wanted = set(values)
        kept: List[Expr] = []
        seen = set()
        for item in target.items:
            if not isinstance(item, StringExpr):
                kept.append(item)
                continue
            if item.value in seen and not self._keep.is_kept(item):
                continue
            if (
                prune
                and item.value not in wanted
                and not self._keep.is_kept(item)
                and self._is_stale(item.value, placed)
            ):
                continue
            seen.add(item.value)
            kept.append(item)
        for value in values:
            if value not in seen:
                seen.add(value)
                kept.append(StringExpr(value=value))
        target.items = kept

    def _is_stale(self, value: str, placed: Set[str]) -> bool:
        if not _is_file_entry(value):
            return False
        if value in self._context.excluded or value in placed:
            return True
        directory = self._context.directory
        return directory is not None and not (directory / value).exists()


def _is_file_entry(value: str) -> bool:
    return bool(value) and not value.startswith((":", "//", "@", "$"))


def _decompose(expr: Expr) -> Optional[Tuple[List[ListExpr], List[DictExpr]]]:
    """Split ``[...] + select({...}) + ...`` into its lists and select dicts."""
    if isinstance(expr, ListExpr):
        return [expr], []
    if is_select(expr):
        assert isinstance(expr, CallExpr)
        select_dict = expr.args[0].value
        assert isinstance(select_dict, DictExpr)
        if not all(isinstance(entry.key, StringExpr) for entry in select_dict.entries):
            return None
        return [], [select_dict]
    if isinstance(expr, BinaryExpr) and expr.op == "+":
        left = _decompose(expr.left)
        right = _decompose(expr.right)
        if left is None or right is None:
            return None
        return left[0] + right[0], left[1] + right[1]
    return None


def _compose(generic: ListExpr, selects: List[DictExpr], keep: KeepTable) -> Optional[Expr]:
    parts: List[Expr] = []
    if generic.items or generic.comments or keep.has_kept(generic):
        parts.append(generic)
    for select_dict in selects:
        select_dict.entries = [
            entry
            for entry in select_dict.entries
            if _key_text(entry) == CONDITIONS_DEFAULT
            or keep.has_kept(entry)
            or not isinstance(entry.value, ListExpr)
            or entry.value.items
        ]
        if not any(_key_text(entry) != CONDITIONS_DEFAULT for entry in select_dict.entries):
            continue
        if _entry(select_dict, CONDITIONS_DEFAULT) is None:
            select_dict.entries.append(KeyValue(key=StringExpr(value=CONDITIONS_DEFAULT), value=ListExpr()))
        parts.append(CallExpr(func="select", args=[Arg(name=None, value=select_dict)]))
    if not parts:
        return None
    expr = parts[0]
    for part in parts[1:]:
        expr = BinaryExpr(op="+", left=expr, right=part)
    return expr


def _strings(expr: Expr) -> List[str]:
    if isinstance(expr, ListExpr):
        return [item.value for item in expr.items if isinstance(item, StringExpr)]
    return []


def _all_strings(expr: Expr) -> Iterator[str]:
    if isinstance(expr, ListExpr):
        yield from _strings(expr)
    elif isinstance(expr, BinaryExpr):
        yield from _all_strings(expr.left)
        yield from _all_strings(expr.right)
    elif is_select(expr):
        assert isinstance(expr, CallExpr)
        select_dict = expr.args[0].value
        if isinstance(select_dict, DictExpr):
            for entry in select_dict.entries:
                yield from _all_strings(entry.value)


def _key_text(entry: KeyValue) -> str:
    return entry.key.value if isinstance(entry.key, StringExpr) else ""


def _entry(select_dict: DictExpr, key: str) -> Optional[KeyValue]:
    for entry in select_dict.entries:
        if _key_text(entry) == key:
            return entry
    return None


def _matching_select(selects: Sequence[DictExpr], other: DictExpr) -> Optional[DictExpr]:
    """The select sharing a non-default key with ``other``."""
    keys = {_key_text(entry) for entry in other.entries} - {CONDITIONS_DEFAULT}
    for select_dict in selects:
        if keys & {_key_text(entry) for entry in select_dict.entries}:
            return select_dict
    return None


def _insert_entry(select_dict: DictExpr, entry: KeyValue) -> None:
    index = len(select_dict.entries)
    for position, existing in enumerate(select_dict.entries):
        if _key_text(existing) == CONDITIONS_DEFAULT:
            index = position
            break
    select_dict.entries.insert(index, entry)


__all__ = ["MergeContext", "merge_file"]
