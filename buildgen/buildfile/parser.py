"""Parse BUILD files into the structured model.

BUILD files use a Python-compatible syntax, so the statement structure comes
from :mod:`ast` while comments are recovered separately with :mod:`tokenize`
and attached to the nearest node: whole-line comments to the node that
follows them, trailing comments to the node that ends on that line.
"""

from __future__ import annotations

import ast
import io
import tokenize
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

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


class BuildFileError(ValueError):
    """Raised when a build file cannot be parsed."""


@dataclass
class _Comment:
    line: int
    text: str
    whole_line: bool
    taken: bool = False


def parse_file(path: Path | str, data: bytes | str) -> File:
    """Parse ``data`` read from ``path`` into a :class:`File`."""
    path = Path(path)
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BuildFileError(f"{path}: not valid UTF-8: {exc}") from exc
    else:
        text = data

    try:
        module = ast.parse(text, filename=str(path))
    except SyntaxError as exc:
        raise BuildFileError(f"{path}:{exc.lineno}: {exc.msg}") from exc

    try:
        comments = _collect_comments(text)
    except (tokenize.TokenError, SyntaxError) as exc:  # pragma: no cover - ast rejects these first
        raise BuildFileError(f"{path}: {exc}") from exc

    return File(path=path, stmts=_Builder(text, comments).statements(module.body))


def _collect_comments(text: str) -> List[_Comment]:
    comments: List[_Comment] = []
    for token in tokenize.generate_tokens(io.StringIO(text).readline):
        if token.type != tokenize.COMMENT:
            continue
        line, col = token.start
        whole_line = token.line[:col].strip() == ""
        comments.append(_Comment(line=line, text=token.string.rstrip(), whole_line=whole_line))
    return comments


class _Builder:
    def __init__(self, text: str, comments: Sequence[_Comment]) -> None:
        self._text = text
        self._comments = list(comments)

    # ------------------------------------------------------------------
    # Comment pool

    def _whole_between(self, low: int, high: int) -> List[_Comment]:
        found = []
        for comment in self._comments:
            if not comment.taken and comment.whole_line and low < comment.line < high:
                comment.taken = True
                found.append(comment)
        return found

    def _suffix_on(self, line: int) -> List[str]:
        found = []
        for comment in self._comments:
            if not comment.taken and not comment.whole_line and comment.line == line:
                comment.taken = True
                found.append(comment.text)
        return found

    def _take_range(self, low: int, high: int) -> List[_Comment]:
        found = []
        for comment in self._comments:
            if not comment.taken and low <= comment.line <= high:
                comment.taken = True
                found.append(comment)
        return found

    # ------------------------------------------------------------------
    # Statements

    def statements(self, body: Sequence[ast.stmt]) -> List[Stmt]:
        stmts: List[Stmt] = []
        previous_end = 0
        for node in body:
            start = node.lineno
            leading = self._whole_between(previous_end, start)
            blocks = _group_blocks(leading)
            attached: List[str] = []
            if blocks and blocks[-1][-1].line == start - 1:
                attached = [comment.text for comment in blocks.pop()]
            for block in blocks:
                stmts.append(CommentBlock(lines=[comment.text for comment in block]))

            stmt = self._statement(node)
            stmt.comments.before = attached + stmt.comments.before
            end = node.end_lineno or start
            for leftover in self._take_range(start, end):
                stmt.comments.suffix.append(leftover.text)
            stmts.append(stmt)
            previous_end = end

        trailing = [c for c in self._comments if not c.taken]
        for comment in trailing:
            comment.taken = True
        for block in _group_blocks(trailing):
            stmts.append(CommentBlock(lines=[comment.text for comment in block]))
        return stmts

    def _statement(self, node: ast.stmt) -> Stmt:
        if isinstance(node, ast.Expr) and isinstance(node.value, ast.Call):
            expr = self._expr(node.value)
            if isinstance(expr, CallExpr):
                return expr
        # Comments inside the statement are part of its source text.
        self._take_range(node.lineno, (node.end_lineno or node.lineno) - 1)
        return RawStmt(text=self._segment(node))

    # ------------------------------------------------------------------
    # Expressions

    def _expr(self, node: ast.expr) -> Expr:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                return StringExpr(value=node.value)
            if isinstance(node.value, (bool, int)) or node.value is None:
                return LiteralExpr(token=repr(node.value))
        if isinstance(node, ast.Name):
            return LiteralExpr(token=node.id)
        if isinstance(node, ast.Attribute):
            dotted = _dotted_name(node)
            if dotted is not None:
                return LiteralExpr(token=dotted)
        if isinstance(node, ast.List):
            return self._list(node)
        if isinstance(node, ast.Dict) and all(key is not None for key in node.keys):
            return self._dict(node)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
            return BinaryExpr(op="+", left=self._expr(node.left), right=self._expr(node.right))
        if isinstance(node, ast.Call):
            func = _dotted_name(node.func)
            if func is not None and not any(isinstance(a, ast.Starred) for a in node.args):
                if all(keyword.arg is not None for keyword in node.keywords):
                    return self._call(node, func)
        text = self._segment(node)
        self._take_range(node.lineno, (node.end_lineno or node.lineno) - 1)
        return RawExpr(text=text)

    def _call(self, node: ast.Call, func: str) -> CallExpr:
        call = CallExpr(func=func)
        start = node.lineno
        end = node.end_lineno or start

        children: List[tuple[ast.AST, Optional[str], ast.expr]] = []
        for value in node.args:
            children.append((value, None, value))
        for keyword in node.keywords:
            children.append((keyword, keyword.arg, keyword.value))
        children.sort(key=lambda item: (item[0].lineno, item[0].col_offset))

        if children and children[0][0].lineno > start:
            call.comments.suffix.extend(self._suffix_on(start))

        previous = start
        for index, (anchor, name, value_node) in enumerate(children):
            arg_start = anchor.lineno
            arg_end = anchor.end_lineno or arg_start
            before = [c.text for c in self._whole_between(previous, arg_start)]
            value = self._expr(value_node)
            arg = Arg(name=name, value=value)
            arg.comments.before = before
            next_start = children[index + 1][0].lineno if index + 1 < len(children) else None
            if arg_end != end and next_start != arg_end:
                arg.comments.suffix.extend(self._suffix_on(arg_end))
            if arg_start != arg_end and arg_start != start:
                arg.comments.suffix.extend(self._suffix_on(arg_start))
            call.args.append(arg)
            previous = arg_end

        call.comments.after.extend(c.text for c in self._whole_between(previous, end))
        call.comments.suffix.extend(self._suffix_on(end))
        return call

    def _list(self, node: ast.List) -> ListExpr:
        result = ListExpr()
        start = node.lineno
        end = node.end_lineno or start
        previous = start
        for index, element in enumerate(node.elts):
            elt_start = element.lineno
            elt_end = element.end_lineno or elt_start
            before = [c.text for c in self._whole_between(previous, elt_start)]
            item = self._expr(element)
            item.comments.before = before + item.comments.before
            next_start = node.elts[index + 1].lineno if index + 1 < len(node.elts) else None
            if start != end and elt_end not in (start, end) and next_start != elt_end:
                item.comments.suffix.extend(self._suffix_on(elt_end))
            result.items.append(item)
            previous = elt_end
        result.comments.after.extend(c.text for c in self._whole_between(previous, end))
        return result

    def _dict(self, node: ast.Dict) -> DictExpr:
        result = DictExpr()
        start = node.lineno
        end = node.end_lineno or start
        previous = start
        pairs = list(zip(node.keys, node.values))
        for index, (key_node, value_node) in enumerate(pairs):
            assert key_node is not None
            entry_start = key_node.lineno
            entry_end = value_node.end_lineno or entry_start
            before = [c.text for c in self._whole_between(previous, entry_start)]
            entry = KeyValue(key=self._expr(key_node), value=self._expr(value_node))
            entry.comments.before = before
            next_start = pairs[index + 1][0].lineno if index + 1 < len(pairs) else None  # type: ignore[union-attr]
            if start != end and entry_end not in (start, end) and next_start != entry_end:
                entry.comments.suffix.extend(self._suffix_on(entry_end))
            result.entries.append(entry)
            previous = entry_end
        result.comments.after.extend(c.text for c in self._whole_between(previous, end))
        return result

    def _segment(self, node: ast.AST) -> str:
        segment = ast.get_source_segment(self._text, node)
        return segment if segment is not None else ""


def _group_blocks(comments: Sequence[_Comment]) -> List[List[_Comment]]:
    blocks: List[List[_Comment]] = []
    for comment in comments:
        if blocks and blocks[-1][-1].line == comment.line - 1:
            blocks[-1].append(comment)
        else:
            blocks.append([comment])
    return blocks


def _dotted_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = _dotted_name(node.value)
        if base is not None:
            return f"{base}.{node.attr}"
    return None


__all__ = ["BuildFileError", "parse_file"]
