"""Go source classifier.

Only the file header is read: build constraints, the package clause and the
import declarations (with the cgo preamble attached to ``import "C"``).
Everything after the last import declaration is ignored.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from ..config import Config, ProtoMode
from ..logging import get_logger
from ..models import CgoOptions, FileInfo, FileKind
from ..platforms import Constraint, ConstraintError, parse_go_build, parse_plus_build
from .base import SourceClassifier, file_name_info
from .proto import proto_file_info

logger = get_logger("languages.go")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\n]+)
    |(?P<line_comment>//[^\n]*)
    |(?P<block_comment>/\*.*?\*/)
    |(?P<string>"(?:[^"\\\n]|\\.)*")
    |(?P<raw>`[^`]*`)
    |(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<punct>.)
    """,
    re.S | re.X,
)

_CGO_LINE_RE = re.compile(r"^#cgo\s+(?P<cond>[^:]*?)\s*(?P<var>[A-Z]+)\s*:\s*(?P<opts>.*)$")
_COPTS_VARS = frozenset({"CFLAGS", "CPPFLAGS", "CXXFLAGS"})
_CLINKOPTS_VARS = frozenset({"LDFLAGS"})


class GoClassifier(SourceClassifier):
    """Classifies ``.go`` files, plus ``.proto`` files unless protos are disabled."""

    name = "go"

    def is_source(self, filename: str, config: Config) -> bool:
        if filename.endswith(".go"):
            return True
        return filename.endswith(".proto") and config.proto_mode != ProtoMode.DISABLE

    def file_info(self, config: Config, directory: Path, rel: str, filename: str) -> FileInfo:
        if filename.endswith(".proto"):
            return proto_file_info(config, directory, rel, filename)
        return go_file_info(config, directory, rel, filename)

    def companion_exclusions(
        self, filenames: Iterable[str], excluded: Set[str], config: Config
    ) -> Set[str]:
        if config.proto_mode != ProtoMode.DEFAULT:
            return set()
        generated = set()
        for name in filenames:
            if name in excluded or not name.endswith(".proto"):
                continue
            generated.add(name[: -len(".proto")] + ".pb.go")
        return generated


@dataclass
class _Token:
    kind: str
    value: str
    line: int
    end_line: int


def go_file_info(config: Config, directory: Path, rel: str, filename: str) -> FileInfo:
    """Extract package metadata from a Go source file.

    On read or parse errors the error is logged and the returned info has no
    package name; callers keep such files so the compiler reports the problem.
    """
    info = file_name_info(directory, rel, filename)
    info.kind = FileKind.GO
    try:
        text = info.path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.error("%s: error reading go file: %s", info.path, exc)
        return info

    tokens = _tokens(text)
    header: List[_Token] = []
    token = next(tokens, None)
    while token is not None and token.kind in ("line_comment", "block_comment"):
        header.append(token)
        token = next(tokens, None)

    if token is None or token.kind != "ident" or token.value != "package":
        logger.error("%s: error reading go file: expected 'package'", info.path)
        return info
    package_line = token.line
    name_token = next(tokens, None)
    if name_token is None or name_token.kind != "ident":
        logger.error("%s: error reading go file: expected package name", info.path)
        return info

    info.package_name = name_token.value
    if info.is_test and info.package_name.endswith("_test"):
        info.is_xtest = True
        info.package_name = info.package_name[: -len("_test")]

    try:
        info.constraints = _header_constraints(header, package_line)
    except ConstraintError as exc:
        logger.warning("%s: %s; ignoring build constraints", info.path, exc)
        info.constraints = []

    _read_imports(info, tokens)
    return info


# ---- Internals -------------------------------------------------------------


def _tokens(text: str) -> Iterator[_Token]:
    line = 1
    for match in _TOKEN_RE.finditer(text):
        kind = match.lastgroup or "punct"
        value = match.group()
        end_line = line + value.count("\n")
        if kind != "ws":
            yield _Token(kind=kind, value=value, line=line, end_line=end_line)
        line = end_line


def _comment_lines(token: _Token) -> List[str]:
    if token.kind == "line_comment":
        return [token.value[2:]]
    return token.value[2:-2].splitlines()


def _header_constraints(header: List[_Token], package_line: int) -> List[Constraint]:
    go_build: Optional[Constraint] = None
    plus_build: List[Constraint] = []
    groups = _comment_groups(header)
    for index, group in enumerate(groups):
        next_line = groups[index + 1][0].line if index + 1 < len(groups) else package_line
        # +build lines only count in a comment group followed by a blank line.
        separated = next_line > group[-1].end_line + 1
        for token in group:
            if token.kind != "line_comment":
                continue
            body = token.value[2:]
            stripped = body.strip()
            if body.startswith("go:build") and go_build is None:
                go_build = parse_go_build(body[len("go:build") :])
            elif stripped.startswith("+build") and separated:
                rest = stripped[len("+build") :]
                if rest.strip():
                    plus_build.append(parse_plus_build(rest))
    if go_build is not None:
        return [go_build]
    return plus_build


def _comment_groups(comments: List[_Token]) -> List[List[_Token]]:
    groups: List[List[_Token]] = []
    for token in comments:
        if groups and token.line <= groups[-1][-1].end_line + 1:
            groups[-1].append(token)
        else:
            groups.append([token])
    return groups


def _read_imports(info: FileInfo, tokens: Iterator[_Token]) -> None:
    doc: List[_Token] = []
    token = next(tokens, None)
    while token is not None:
        if token.kind in ("line_comment", "block_comment"):
            if doc and token.line > doc[-1].end_line + 1:
                doc = []
            doc.append(token)
            token = next(tokens, None)
            continue
        if token.kind == "punct" and token.value == ";":
            token = next(tokens, None)
            continue
        if token.kind != "ident" or token.value != "import":
            return
        preamble = doc if doc and token.line <= doc[-1].end_line + 1 else []
        doc = []
        token = next(tokens, None)
        if token is not None and token.kind == "punct" and token.value == "(":
            token = _read_import_group(info, tokens)
        else:
            token = _read_import_spec(info, tokens, token, preamble)


def _read_import_group(info: FileInfo, tokens: Iterator[_Token]) -> Optional[_Token]:
    doc: List[_Token] = []
    token = next(tokens, None)
    while token is not None:
        if token.kind == "punct" and token.value == ")":
            return next(tokens, None)
        if token.kind in ("line_comment", "block_comment"):
            if doc and token.line > doc[-1].end_line + 1:
                doc = []
            doc.append(token)
            token = next(tokens, None)
            continue
        if token.kind == "punct" and token.value == ";":
            token = next(tokens, None)
            continue
        preamble = doc if doc and token.line <= doc[-1].end_line + 1 else []
        doc = []
        token = _read_import_spec(info, tokens, token, preamble)
    return None


def _read_import_spec(
    info: FileInfo,
    tokens: Iterator[_Token],
    token: Optional[_Token],
    preamble: List[_Token],
) -> Optional[_Token]:
    if token is not None and (
        token.kind == "ident" or (token.kind == "punct" and token.value == ".")
    ):
        token = next(tokens, None)
    if token is None:
        return None
    if token.kind not in ("string", "raw"):
        return next(tokens, None)
    path = _unquote(token)
    if path == "C":
        info.is_cgo = True
        _read_cgo_preamble(info, preamble)
    elif path:
        info.imports.append(path)
    return next(tokens, None)


def _read_cgo_preamble(info: FileInfo, preamble: List[_Token]) -> None:
    for token in preamble:
        for line in _comment_lines(token):
            match = _CGO_LINE_RE.match(line.strip())
            if match is None:
                continue
            variable = match.group("var")
            try:
                opts = shlex.split(match.group("opts"))
            except ValueError as exc:
                logger.warning("%s: malformed #cgo line %r: %s", info.path, line.strip(), exc)
                continue
            condition = None
            if match.group("cond").strip():
                try:
                    condition = parse_plus_build(match.group("cond"))
                except ConstraintError as exc:
                    logger.warning("%s: %s", info.path, exc)
                    continue
            if variable in _COPTS_VARS:
                info.copts.append(CgoOptions(condition=condition, opts=opts))
            elif variable in _CLINKOPTS_VARS:
                info.clinkopts.append(CgoOptions(condition=condition, opts=opts))


def _unquote(token: _Token) -> str:
    body = token.value[1:-1]
    if token.kind == "raw":
        return body
    return re.sub(r"\\(.)", r"\1", body)


__all__ = ["GoClassifier", "go_file_info"]
