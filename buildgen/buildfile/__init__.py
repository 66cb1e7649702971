"""Parse, inspect, edit and print Bazel build files."""

from .parser import BuildFileError, parse_file
from .printer import format_expr, format_file, format_text, quote
from .syntax import (
    Arg,
    BinaryExpr,
    CallExpr,
    CommentBlock,
    Comments,
    DictExpr,
    Expr,
    File,
    KeyValue,
    ListExpr,
    LiteralExpr,
    RawExpr,
    RawStmt,
    Rule,
    Stmt,
    StringExpr,
    call_expr,
    has_suffix,
    is_select,
    make_rule,
    to_expr,
)

__all__ = [
    "Arg",
    "BinaryExpr",
    "BuildFileError",
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
    "format_expr",
    "format_file",
    "format_text",
    "has_suffix",
    "is_select",
    "make_rule",
    "parse_file",
    "quote",
    "to_expr",
]
