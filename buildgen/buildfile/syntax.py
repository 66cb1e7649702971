"""Structured model of a BUILD file.

The model is deliberately small: rule calls with keyword attributes, string
and literal values, lists, dicts, ``+`` concatenations and nested calls such
as ``select`` and ``glob``. Anything else is carried verbatim as raw text so
that formatting a parsed file never loses content.

Nodes compare by identity, which lets callers keep side tables keyed on the
node objects of one parsed tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union


@dataclass(eq=False)
class Comments:
    """Comments attached to a node."""

    before: List[str] = field(default_factory=list)
    suffix: List[str] = field(default_factory=list)
    after: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.before or self.suffix or self.after)


@dataclass(eq=False)
class Expr:
    comments: Comments = field(default_factory=Comments, kw_only=True)


@dataclass(eq=False)
class StringExpr(Expr):
    value: str


@dataclass(eq=False)
class LiteralExpr(Expr):
    """Identifiers, numbers and the constants True/False/None."""

    token: str


@dataclass(eq=False)
class RawExpr(Expr):
    """Source text for constructs the model does not represent."""

    text: str


@dataclass(eq=False)
class ListExpr(Expr):
    items: List[Expr] = field(default_factory=list)


@dataclass(eq=False)
class KeyValue(Expr):
    key: Expr
    value: Expr


@dataclass(eq=False)
class DictExpr(Expr):
    entries: List[KeyValue] = field(default_factory=list)


@dataclass(eq=False)
class BinaryExpr(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(eq=False)
class Arg(Expr):
    """A call argument; ``name`` is None for positional arguments."""

    name: Optional[str]
    value: Expr


@dataclass(eq=False)
class CallExpr(Expr):
    func: str
    args: List[Arg] = field(default_factory=list)


@dataclass(eq=False)
class CommentBlock(Expr):
    """A standalone group of comment lines at the top level of a file."""

    lines: List[str] = field(default_factory=list)


@dataclass(eq=False)
class RawStmt(Expr):
    text: str


Stmt = Union[CallExpr, CommentBlock, RawStmt]


class Rule:
    """Accessor and mutator view over a top-level rule call."""

    def __init__(self, call: CallExpr) -> None:
        self.call = call

    @property
    def kind(self) -> str:
        return self.call.func

    @kind.setter
    def kind(self, value: str) -> None:
        self.call.func = value

    @property
    def name(self) -> str:
        return self.attr_string("name") or ""

    def attr_arg(self, key: str) -> Optional[Arg]:
        for arg in self.call.args:
            if arg.name == key:
                return arg
        return None

    def attr(self, key: str) -> Optional[Expr]:
        arg = self.attr_arg(key)
        return arg.value if arg is not None else None

    def attr_keys(self) -> List[str]:
        return [arg.name for arg in self.call.args if arg.name is not None]

    def attr_string(self, key: str) -> Optional[str]:
        value = self.attr(key)
        if isinstance(value, StringExpr):
            return value.value
        return None

    def attr_strings(self, key: str) -> List[str]:
        value = self.attr(key)
        if isinstance(value, StringExpr):
            return [value.value]
        if isinstance(value, ListExpr):
            return [item.value for item in value.items if isinstance(item, StringExpr)]
        return []

    def set_attr(self, key: str, value: Any) -> None:
        expr = to_expr(value)
        arg = self.attr_arg(key)
        if arg is not None:
            arg.value = expr
            return
        self.call.args.append(Arg(name=key, value=expr))

    def del_attr(self, key: str) -> Optional[Arg]:
        for index, arg in enumerate(self.call.args):
            if arg.name == key:
                return self.call.args.pop(index)
        return None

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Rule({self.kind}, name={self.name!r})"


@dataclass(eq=False)
class File:
    """A parsed or generated build file."""

    path: Path
    stmts: List[Stmt] = field(default_factory=list)

    def rules(self, kind: str | None = None) -> List[Rule]:
        """Return rules (top-level calls other than ``load``) of an optional kind."""
        result = []
        for stmt in self.stmts:
            if not isinstance(stmt, CallExpr) or stmt.func == "load":
                continue
            if kind is None or stmt.func == kind:
                result.append(Rule(stmt))
        return result

    def find_rule(self, name: str) -> Optional[Rule]:
        for rule in self.rules():
            if rule.name == name:
                return rule
        return None

    def loads(self) -> List[CallExpr]:
        return [stmt for stmt in self.stmts if isinstance(stmt, CallExpr) and stmt.func == "load"]

    def remove(self, stmt: Stmt) -> None:
        self.stmts = [s for s in self.stmts if s is not stmt]

    def comment_lines(self) -> Iterator[str]:
        """Yield top-level comment lines: standalone blocks and leading comments."""
        for stmt in self.stmts:
            if isinstance(stmt, CommentBlock):
                yield from stmt.lines
            else:
                yield from stmt.comments.before


def to_expr(value: Any) -> Expr:
    """Convert plain Python values into expressions."""
    if isinstance(value, Expr):
        return value
    if isinstance(value, bool):
        return LiteralExpr(token="True" if value else "False")
    if isinstance(value, int):
        return LiteralExpr(token=str(value))
    if isinstance(value, str):
        return StringExpr(value=value)
    if isinstance(value, (list, tuple)):
        return ListExpr(items=[to_expr(item) for item in value])
    if isinstance(value, dict):
        return DictExpr(
            entries=[KeyValue(key=to_expr(k), value=to_expr(v)) for k, v in value.items()]
        )
    raise TypeError(f"cannot convert {type(value).__name__} to a build expression")


def make_rule(kind: str, **attrs: Any) -> CallExpr:
    """Build a rule call; attributes with ``None`` values are skipped."""
    args = [Arg(name=key, value=to_expr(value)) for key, value in attrs.items() if value is not None]
    return CallExpr(func=kind, args=args)


def call_expr(func: str, *args: Any) -> CallExpr:
    return CallExpr(func=func, args=[Arg(name=None, value=to_expr(arg)) for arg in args])


def is_select(expr: Expr) -> bool:
    return (
        isinstance(expr, CallExpr)
        and expr.func == "select"
        and len(expr.args) == 1
        and expr.args[0].name is None
        and isinstance(expr.args[0].value, DictExpr)
    )


def has_suffix(node: Expr, text: str) -> bool:
    return any(comment.strip() == text for comment in node.comments.suffix)


__all__ = [
    "Arg",
    "BinaryExpr",
    "CallExpr",
    "CommentBlock",
    "Comments",
    "DictExpr",
    "Expr",
    "File",
    "KeyValue",
    "ListExpr",
    "LiteralExpr",
    "RawExpr",
    "RawStmt",
    "Rule",
    "Stmt",
    "StringExpr",
    "call_expr",
    "has_suffix",
    "is_select",
    "make_rule",
    "to_expr",
]
