"""Tests for buildgen.buildfile."""

from __future__ import annotations

import textwrap

import pytest

from buildgen.buildfile import (
    BuildFileError,
    CallExpr,
    CommentBlock,
    ListExpr,
    RawStmt,
    Rule,
    StringExpr,
    format_expr,
    format_text,
    make_rule,
    parse_file,
)


def _parse(text: str):
    return parse_file("BUILD.bazel", textwrap.dedent(text).lstrip("\n"))


def test_parse_file_reads_rules_and_loads() -> None:
    file = _parse(
        """
        load("@io_bazel_rules_go//go:def.bzl", "go_library")

        go_library(
            name = "go_default_library",
            srcs = ["a.go", "b.go"],
            cgo = True,
        )
        """
    )

    assert len(file.loads()) == 1
    rule = file.find_rule("go_default_library")
    assert rule is not None
    assert rule.kind == "go_library"
    assert rule.attr_strings("srcs") == ["a.go", "b.go"]
    assert rule.attr_keys() == ["name", "srcs", "cgo"]


def test_parse_file_rejects_invalid_syntax() -> None:
    with pytest.raises(BuildFileError) as excinfo:
        parse_file("pkg/BUILD", b"go_library(name = \n")

    assert "pkg/BUILD" in str(excinfo.value)


def test_comments_attach_to_nodes() -> None:
    file = _parse(
        """
        # buildgen:exclude gen.go

        # library comment
        go_library(
            name = "go_default_library",
            srcs = [
                "a.go",  # keep
                "b.go",
            ],
            importpath = "example.com/x",  # keep
        )
        """
    )

    assert isinstance(file.stmts[0], CommentBlock)
    assert file.stmts[0].lines == ["# buildgen:exclude gen.go"]
    call = file.stmts[1]
    assert isinstance(call, CallExpr)
    assert call.comments.before == ["# library comment"]
    rule = Rule(call)
    srcs = rule.attr("srcs")
    assert isinstance(srcs, ListExpr)
    assert srcs.items[0].comments.suffix == ["# keep"]
    assert srcs.items[1].comments.suffix == []
    assert rule.attr_arg("importpath").comments.suffix == ["# keep"]


def test_format_round_trip_is_stable() -> None:
    text = textwrap.dedent(
        """
        load("@io_bazel_rules_go//go:def.bzl", "go_library", "go_test")

        # A comment block.

        go_library(
            name = "go_default_library",
            srcs = [
                "a.go",
                "b.go",  # keep
            ] + select({
                "@io_bazel_rules_go//go/platform:linux": ["a_linux.go"],
                "//conditions:default": [],
            }),
            visibility = ["//visibility:public"],
        )

        go_test(
            name = "go_default_test",
            srcs = ["a_test.go"],
            data = glob(["testdata/**"]),
            embed = [":go_default_library"],
        )
        """
    ).lstrip("\n")

    first = format_text(parse_file("BUILD", text))
    second = format_text(parse_file("BUILD", first))

    assert first == text
    assert second == first


def test_unsupported_statements_are_kept_verbatim() -> None:
    text = 'NAMES = ["a", "b"]\n\nexports_files(NAMES)\n'

    file = parse_file("BUILD", text)

    assert isinstance(file.stmts[0], RawStmt)
    assert format_text(file) == text


def test_make_rule_skips_none_and_formats() -> None:
    call = make_rule("go_binary", name="cmd", embed=[":go_default_library"], visibility=None)

    assert Rule(call).attr_keys() == ["name", "embed"]
    assert format_text(parse_file("BUILD", format_expr(call))) == (
        'go_binary(\n    name = "cmd",\n    embed = [":go_default_library"],\n)\n'
    )


def test_single_argument_call_stays_on_one_line() -> None:
    file = parse_file("BUILD", 'package(default_visibility = ["//visibility:public"])\n')

    assert format_text(file) == 'package(default_visibility = ["//visibility:public"])\n'


def test_set_and_delete_attributes() -> None:
    rule = Rule(make_rule("go_library", name="lib"))

    rule.set_attr("srcs", ["a.go"])
    rule.set_attr("srcs", ["b.go"])
    assert rule.attr_strings("srcs") == ["b.go"]

    removed = rule.del_attr("srcs")
    assert removed is not None
    assert isinstance(removed.value, ListExpr)
    assert rule.attr("srcs") is None
    assert rule.del_attr("srcs") is None


def test_string_escapes_round_trip() -> None:
    call = make_rule("genrule", name="x", cmd='echo "hi"\n')

    text = format_expr(call)
    parsed = Rule(parse_file("BUILD", text).stmts[0])  # type: ignore[arg-type]

    assert isinstance(parsed.attr("cmd"), StringExpr)
    assert parsed.attr_string("cmd") == 'echo "hi"\n'
