"""Tests for buildgen.rules."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import pytest

from buildgen.buildfile import CallExpr, DictExpr, ListExpr, Rule, StringExpr, format_expr, parse_file
from buildgen.labels import Labeler
from buildgen.models import PlatformStrings
from buildgen.rules import Generator, platform_strings_expr


def _generate(repo_builder, rel: str, build_rel: Optional[str] = None, **config_overrides):
    config_overrides.setdefault("prefix", "example.com/repo")
    config = repo_builder.config(**config_overrides)
    visits = {visit.rel: visit for visit in repo_builder.walk(config)}
    visit = visits[rel]
    build_rel = rel if build_rel is None else build_rel
    old_file = visits[build_rel].old_file
    generator = Generator(visit.config, Labeler(visit.config), build_rel, old_file)
    rules, empty = generator.generate_rules(visit.package)
    return {Rule(call).name: Rule(call) for call in rules}, [(call.func, Rule(call).name) for call in empty]


def _select_entries(expr) -> Dict[str, List[str]]:
    assert isinstance(expr, CallExpr) and expr.func == "select"
    table = expr.args[0].value
    assert isinstance(table, DictExpr)
    return {
        entry.key.value: [item.value for item in entry.value.items]
        for entry in table.entries
        if isinstance(entry.key, StringExpr) and isinstance(entry.value, ListExpr)
    }


def test_platform_strings_expr_combines_list_and_select() -> None:
    strings = PlatformStrings(generic=["b.go", "a.go"], os={"linux": ["l.go", "a.go"]})

    text = format_expr(platform_strings_expr(strings))

    assert text == (
        "[\n"
        '    "a.go",\n'
        '    "b.go",\n'
        "] + select({\n"
        '    "@io_bazel_rules_go//go/platform:linux": ["l.go"],\n'
        '    "//conditions:default": [],\n'
        "})"
    )


def test_platform_strings_expr_folds_mixed_tables() -> None:
    strings = PlatformStrings(os={"linux": ["x.go"]}, arch={"amd64": ["y.go"]})

    entries = _select_entries(platform_strings_expr(strings))

    assert entries["@io_bazel_rules_go//go/platform:linux_amd64"] == ["x.go", "y.go"]
    assert entries["@io_bazel_rules_go//go/platform:linux_arm64"] == ["x.go"]
    assert entries["@io_bazel_rules_go//go/platform:darwin_amd64"] == ["y.go"]
    assert "@io_bazel_rules_go//go/platform:linux" not in entries
    assert entries["//conditions:default"] == []


def test_platform_strings_expr_empty() -> None:
    assert platform_strings_expr(PlatformStrings()) is None


def test_platform_strings_expr_keeps_option_order() -> None:
    strings = PlatformStrings(generic=["-lz", "-lfoo", "-lz"])

    expr = platform_strings_expr(strings, sort=False)

    assert [item.value for item in expr.items] == ["-lz", "-lfoo"]


def test_library_and_tests(repo_builder) -> None:
    repo_builder.write(
        {
            "lib/lib.go": 'package lib\n\nimport (\n\t"fmt"\n\t"github.com/acme/widget"\n)\n',
            "lib/lib_test.go": 'package lib\n\nimport "testing"\n',
            "lib/ext_test.go": 'package lib_test\n\nimport "example.com/repo/lib"\n',
            "lib/testdata/input.txt": "data\n",
        }
    )

    rules, empty = _generate(repo_builder, "lib")

    assert list(rules) == ["go_default_library", "go_default_test", "go_default_xtest"]
    assert format_expr(rules["go_default_library"].call) == (
        "go_library(\n"
        '    name = "go_default_library",\n'
        '    srcs = ["lib.go"],\n'
        '    importpath = "example.com/repo/lib",\n'
        '    visibility = ["//visibility:public"],\n'
        "    _buildgen_imports = [\n"
        '        "fmt",\n'
        '        "github.com/acme/widget",\n'
        "    ],\n"
        ")"
    )

    test = rules["go_default_test"]
    assert test.attr_strings("srcs") == ["lib_test.go"]
    assert test.attr_strings("embed") == [":go_default_library"]
    assert format_expr(test.attr("data")) == 'glob(["testdata/**"])'
    assert test.attr_strings("_buildgen_imports") == ["testing"]

    xtest = rules["go_default_xtest"]
    assert xtest.attr("embed") is None
    assert xtest.attr_strings("_buildgen_imports") == ["example.com/repo/lib"]

    assert ("go_binary", "lib") in empty
    assert ("filegroup", "go_default_library_protos") in empty
    assert ("proto_library", "lib_proto") in empty


def test_command_package(repo_builder) -> None:
    repo_builder.write({"cmd/tool/main.go": "package main\n"})

    rules, empty = _generate(repo_builder, "cmd/tool")

    assert rules["go_default_library"].attr_strings("visibility") == ["//visibility:private"]
    binary = rules["tool"]
    assert binary.kind == "go_binary"
    assert binary.attr_strings("embed") == [":go_default_library"]
    assert binary.attr_strings("visibility") == ["//visibility:public"]
    assert ("go_test", "go_default_test") in empty
    assert ("go_test", "go_default_xtest") in empty


def test_xtest_imports_library_when_absent(repo_builder) -> None:
    repo_builder.write(
        {
            "lib/lib.go": "package lib\n",
            "lib/ext_test.go": 'package lib_test\n\nimport "testing"\n',
        }
    )

    rules, _ = _generate(repo_builder, "lib")

    assert rules["go_default_xtest"].attr_strings("_buildgen_imports") == ["example.com/repo/lib", "testing"]


def test_tests_without_library_do_not_embed(repo_builder) -> None:
    repo_builder.write({"only/only_test.go": 'package only\n\nimport "testing"\n'})

    rules, empty = _generate(repo_builder, "only")

    assert list(rules) == ["go_default_test"]
    assert rules["go_default_test"].attr("embed") is None
    assert ("go_library", "go_default_library") in empty


def test_internal_packages_are_restricted(repo_builder) -> None:
    repo_builder.write(
        {
            "lib/internal/x/x.go": "package x\n",
            "internal/y/y.go": "package y\n",
        }
    )

    nested, _ = _generate(repo_builder, "lib/internal/x")
    top, _ = _generate(repo_builder, "internal/y")

    assert nested["go_default_library"].attr_strings("visibility") == ["//lib:__subpackages__"]
    assert top["go_default_library"].attr_strings("visibility") == ["//:__subpackages__"]


def test_default_visibility_suppresses_visibility(repo_builder) -> None:
    repo_builder.write(
        {
            "lib/BUILD.bazel": 'package(default_visibility = ["//visibility:public"])\n',
            "lib/lib.go": "package lib\n",
        }
    )

    rules, _ = _generate(repo_builder, "lib")

    assert rules["go_default_library"].attr("visibility") is None


def test_cgo_library(repo_builder) -> None:
    repo_builder.write(
        {
            "native/native.go": (
                "package native\n\n"
                "/*\n"
                "#cgo CFLAGS: -DFOO\n"
                "#cgo linux LDFLAGS: -lfoo\n"
                "*/\n"
                'import "C"\n'
            ),
            "native/helper.c": "int helper(void) { return 0; }\n",
        }
    )

    rules, _ = _generate(repo_builder, "native")

    lib = rules["go_default_library"]
    assert lib.attr_strings("srcs") == ["helper.c", "native.go"]
    assert format_expr(lib.attr("cgo")) == "True"
    assert lib.attr_strings("copts") == ["-DFOO"]
    entries = _select_entries(lib.attr("clinkopts"))
    assert entries["@io_bazel_rules_go//go/platform:linux"] == ["-lfoo"]


def test_platform_specific_sources(repo_builder) -> None:
    repo_builder.write(
        {
            "p/p.go": "package p\n",
            "p/p_darwin.go": 'package p\n\nimport "golang.org/x/sys/unix"\n',
        }
    )

    rules, _ = _generate(repo_builder, "p")

    lib = rules["go_default_library"]
    srcs = lib.attr("srcs")
    assert [item.value for item in srcs.left.items] == ["p.go"]
    assert _select_entries(srcs.right)["@io_bazel_rules_go//go/platform:darwin"] == ["p_darwin.go"]
    assert _select_entries(lib.attr("_buildgen_imports"))["@io_bazel_rules_go//go/platform:darwin"] == [
        "golang.org/x/sys/unix"
    ]


def test_proto_rules(repo_builder) -> None:
    repo_builder.write(
        {
            "api/api.proto": (
                'syntax = "proto3";\npackage api;\n'
                'import "google/protobuf/any.proto";\n'
                "service Greeter {\n  rpc Hello (Req) returns (Resp);\n}\n"
            ),
            "api/client.go": "package api\n",
        }
    )

    rules, empty = _generate(repo_builder, "api")

    assert list(rules) == ["api_proto", "api_go_proto", "go_default_library"]
    proto = rules["api_proto"]
    assert proto.kind == "proto_library"
    assert proto.attr_strings("srcs") == ["api.proto"]
    assert proto.attr_strings("_buildgen_imports") == ["google/protobuf/any.proto"]
    go_proto = rules["api_go_proto"]
    assert go_proto.kind == "go_grpc_library"
    assert go_proto.attr_string("importpath") == "example.com/repo/api"
    assert go_proto.attr_string("proto") == ":api_proto"
    assert rules["go_default_library"].attr_strings("embed") == [":api_go_proto"]
    assert ("go_proto_library", "api_go_proto") in empty
    assert ("filegroup", "go_default_library_protos") in empty


def test_checked_in_pbgo_next_to_proto_rules_is_reported(repo_builder, caplog: pytest.LogCaptureFixture) -> None:
    repo_builder.write(
        {
            "api/BUILD": "# buildgen:exclude old.proto\n",
            "api/old.proto": 'syntax = "proto3";\npackage api;\n',
            "api/old.pb.go": "package api\n",
            "api/new.proto": 'syntax = "proto3";\npackage api;\n',
        }
    )

    with caplog.at_level(logging.WARNING, logger="buildgen"):
        rules, _ = _generate(repo_builder, "api")

    assert rules["go_default_library"].attr_strings("srcs") == ["old.pb.go"]
    assert "api: checked-in .pb.go files are compiled next to api_go_proto" in caplog.text


def test_legacy_proto_filegroup(repo_builder) -> None:
    repo_builder.write(
        {
            "p/a.proto": 'syntax = "proto3";\npackage p;\n',
            "p/a.pb.go": "package p\n",
        }
    )

    rules, empty = _generate(repo_builder, "p", proto="legacy")

    filegroup = rules["go_default_library_protos"]
    assert filegroup.kind == "filegroup"
    assert filegroup.attr_strings("srcs") == ["a.proto"]
    assert filegroup.attr_strings("visibility") == ["//visibility:public"]
    assert rules["go_default_library"].attr_strings("srcs") == ["a.pb.go"]
    assert rules["go_default_library"].attr("embed") is None
    assert empty[0] == ("go_binary", "p")


def test_disabled_protos_generate_nothing(repo_builder) -> None:
    repo_builder.write({"p/p.go": "package p\n", "p/p.proto": 'syntax = "proto3";\npackage p;\n'})

    rules, empty = _generate(repo_builder, "p", proto="disable")

    assert list(rules) == ["go_default_library"]
    assert all(kind != "filegroup" for kind, _ in empty)


def test_flat_mode_prefixes_sources(repo_builder) -> None:
    repo_builder.write(
        {
            "a/b/b.go": "package b\n",
            "a/b/b_test.go": "package b\n",
            "a/b/testdata/x.txt": "x\n",
        }
    )

    rules, _ = _generate(repo_builder, "a/b", build_rel="", structure="flat")

    lib = rules["a/b"]
    assert lib.attr_strings("srcs") == ["a/b/b.go"]
    assert lib.attr_string("importpath") == "example.com/repo/a/b"
    test = rules["a/b_test"]
    assert test.attr_strings("embed") == [":a/b"]
    assert format_expr(test.attr("data")) == 'glob(["a/b/testdata/**"])'


def test_generated_rules_parse_back(repo_builder) -> None:
    repo_builder.write({"lib/lib.go": 'package lib\n\nimport "fmt"\n'})

    rules, _ = _generate(repo_builder, "lib")

    for rule in rules.values():
        text = format_expr(rule.call) + "\n"
        parsed = parse_file("BUILD", text)
        assert Rule(parsed.stmts[0]).name == rule.name  # type: ignore[arg-type]
