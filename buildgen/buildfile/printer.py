"""Pretty-print build files in a canonical, buildifier-like layout.

The output is stable: formatting a file, parsing the result and formatting
it again yields identical text.
"""

from __future__ import annotations

from typing import List

from .syntax import (
    Arg,
    BinaryExpr,
    CallExpr,
    CommentBlock,
    DictExpr,
    Expr,
    File,
    KeyValue,
    ListExpr,
    LiteralExpr,
    RawExpr,
    RawStmt,
    Stmt,
    StringExpr,
)

INDENT = " " * 4

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def format_text(file: File) -> str:
    """Render ``file`` as text."""
    chunks = [_statement(stmt) for stmt in file.stmts]
    if not chunks:
        return ""
    return "\n\n".join(chunks) + "\n"


def format_file(file: File) -> bytes:
    """Render ``file`` as UTF-8 bytes."""
    return format_text(file).encode("utf-8")


def format_expr(expr: Expr) -> str:
    return _expr(expr, "")


def quote(value: str) -> str:
    escaped = "".join(_ESCAPES.get(char, char) for char in value)
    return f'"{escaped}"'


# ---- Internals -------------------------------------------------------------


def _statement(stmt: Stmt) -> str:
    if isinstance(stmt, CommentBlock):
        return "\n".join(stmt.lines)
    lines = list(stmt.comments.before)
    if isinstance(stmt, RawStmt):
        body = stmt.text
    else:
        body = _call(stmt, "", top_level=True)
    lines.append(body)
    text = "\n".join(lines)
    if isinstance(stmt, RawStmt) and stmt.comments.suffix:
        text = _append_suffix(text, stmt.comments.suffix)
    return text


def _expr(expr: Expr, indent: str) -> str:
    if isinstance(expr, StringExpr):
        return quote(expr.value)
    if isinstance(expr, LiteralExpr):
        return expr.token
    if isinstance(expr, RawExpr):
        return expr.text
    if isinstance(expr, ListExpr):
        return _list(expr, indent)
    if isinstance(expr, DictExpr):
        return _dict(expr, indent)
    if isinstance(expr, BinaryExpr):
        return f"{_expr(expr.left, indent)} {expr.op} {_expr(expr.right, indent)}"
    if isinstance(expr, CallExpr):
        return _call(expr, indent, top_level=False)
    raise TypeError(f"cannot format {type(expr).__name__}")


def _list(expr: ListExpr, indent: str) -> str:
    if not expr.items and not expr.comments.after:
        return "[]"
    if _is_simple(expr):
        return f"[{_expr(expr.items[0], indent)}]"
    inner = indent + INDENT
    lines = ["["]
    for item in expr.items:
        lines.extend(inner + comment for comment in item.comments.before)
        lines.append(_append_suffix(f"{inner}{_expr(item, inner)},", item.comments.suffix))
    lines.extend(inner + comment for comment in expr.comments.after)
    lines.append(f"{indent}]")
    return "\n".join(lines)


def _dict(expr: DictExpr, indent: str) -> str:
    if not expr.entries and not expr.comments.after:
        return "{}"
    inner = indent + INDENT
    lines = ["{"]
    for entry in expr.entries:
        lines.extend(inner + comment for comment in entry.comments.before)
        text = f"{inner}{_expr(entry.key, inner)}: {_expr(entry.value, inner)},"
        lines.append(_append_suffix(text, entry.comments.suffix))
    lines.extend(inner + comment for comment in expr.comments.after)
    lines.append(f"{indent}}}")
    return "\n".join(lines)


def _call(expr: CallExpr, indent: str, *, top_level: bool) -> str:
    suffix = expr.comments.suffix if top_level else []
    if _fits_on_line(expr, top_level):
        args = ", ".join(_arg(arg, indent) for arg in expr.args)
        return _append_suffix(f"{expr.func}({args})", suffix)

    if (
        not top_level
        and len(expr.args) == 1
        and expr.args[0].name is None
        and not expr.args[0].comments
        and not expr.comments
    ):
        # select({...}), glob([...]): the single argument hugs the parens.
        return f"{expr.func}({_expr(expr.args[0].value, indent)})"

    inner = indent + INDENT
    lines = [_append_suffix(f"{expr.func}(", suffix)]
    for arg in expr.args:
        lines.extend(inner + comment for comment in arg.comments.before)
        lines.append(_append_suffix(f"{inner}{_arg(arg, inner)},", arg.comments.suffix))
    lines.extend(inner + comment for comment in expr.comments.after)
    lines.append(f"{indent})")
    return "\n".join(lines)


def _arg(arg: Arg, indent: str) -> str:
    value = _expr(arg.value, indent)
    if arg.name is None:
        return value
    return f"{arg.name} = {value}"


def _fits_on_line(expr: CallExpr, top_level: bool) -> bool:
    if expr.comments.after:
        return False
    if not top_level and (expr.comments.before or expr.comments.suffix):
        return False
    if any(arg.comments for arg in expr.args):
        return False
    if not all(_is_simple(arg.value) for arg in expr.args):
        return False
    if top_level and expr.func != "load":
        return len(expr.args) <= 1
    return True


def _is_simple(expr: Expr) -> bool:
    """Whether ``expr`` renders on a single line without losing comments."""
    if expr.comments:
        return False
    if isinstance(expr, (StringExpr, LiteralExpr)):
        return True
    if isinstance(expr, RawExpr):
        return "\n" not in expr.text
    if isinstance(expr, ListExpr):
        return len(expr.items) <= 1 and all(_is_simple(item) for item in expr.items)
    if isinstance(expr, DictExpr):
        return not expr.entries
    if isinstance(expr, BinaryExpr):
        return _is_simple(expr.left) and _is_simple(expr.right)
    if isinstance(expr, CallExpr):
        return all(not arg.comments and _is_simple(arg.value) for arg in expr.args)
    if isinstance(expr, KeyValue):
        return _is_simple(expr.key) and _is_simple(expr.value)
    return False


def _append_suffix(text: str, suffix: List[str]) -> str:
    if not suffix:
        return text
    head, sep, tail = text.partition("\n")
    return f"{head}  {' '.join(suffix)}{sep}{tail}"


__all__ = ["INDENT", "format_expr", "format_file", "format_text", "quote"]
