"""Side table of nodes pinned with a ``# keep`` suffix comment."""

from __future__ import annotations

from typing import Iterator, Set

from ..buildfile import Arg, BinaryExpr, CallExpr, DictExpr, Expr, File, KeyValue, ListExpr
from ..constants import KEEP_MARKER


def is_keep_comment(text: str) -> bool:
    """``# keep`` or ``# keep: reason``."""
    text = text.strip()
    return text == KEEP_MARKER or text.startswith(KEEP_MARKER + ":")


class KeepTable:
    """Identities of pinned nodes in one parsed file.

    The table is computed once against the existing file. Nodes created
    later (generated rules, merged values) are never pinned.
    """

    def __init__(self, file: File | None) -> None:
        self._pinned: Set[Expr] = set()
        if file is None:
            return
        for stmt in file.stmts:
            for node in _walk(stmt):
                if any(is_keep_comment(comment) for comment in node.comments.suffix):
                    self._pinned.add(node)

    def __len__(self) -> int:
        return len(self._pinned)

    def is_kept(self, node: Expr | None) -> bool:
        return node is not None and node in self._pinned

    def has_kept(self, node: Expr | None) -> bool:
        """Whether ``node`` or anything nested in it is pinned."""
        if node is None or not self._pinned:
            return False
        return any(child in self._pinned for child in _walk(node))


def _walk(node: Expr) -> Iterator[Expr]:
    yield node
    if isinstance(node, CallExpr):
        for arg in node.args:
            yield from _walk(arg)
    elif isinstance(node, Arg):
        yield from _walk(node.value)
    elif isinstance(node, ListExpr):
        for item in node.items:
            yield from _walk(item)
    elif isinstance(node, DictExpr):
        for entry in node.entries:
            yield from _walk(entry)
    elif isinstance(node, KeyValue):
        yield from _walk(node.key)
        yield from _walk(node.value)
    elif isinstance(node, BinaryExpr):
        yield from _walk(node.left)
        yield from _walk(node.right)


__all__ = ["KeepTable", "is_keep_comment"]
