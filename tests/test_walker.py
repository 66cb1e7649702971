"""Tests for buildgen.walker and the package builder it drives."""

from __future__ import annotations

import logging

import pytest

from buildgen.config import DependencyMode, ProtoMode, load_settings
from buildgen.walker import build_ignore_rule, should_ignore


def test_walk_empty_repository(repo_builder) -> None:
    visits = repo_builder.walk()

    assert [visit.rel for visit in visits] == [""]
    assert visits[0].package is None


def test_walk_visits_children_first(repo_builder) -> None:
    repo_builder.write(
        {
            "a/a.go": "package a\n",
            "a/b/b.go": "package b\n",
            "c/c.go": "package c\n",
        }
    )

    visits = repo_builder.walk()

    assert [visit.rel for visit in visits] == ["a/b", "a", "c", ""]
    packages = {visit.rel: visit.package for visit in visits}
    assert packages["a"].name == "a"
    assert packages["a"].library.sources.generic == ["a.go"]
    assert packages["a/b"].name == "b"
    assert packages[""] is None


def test_walk_splits_library_and_tests(repo_builder) -> None:
    repo_builder.write(
        {
            "lib/lib.go": 'package lib\n\nimport "example.com/dep"\n',
            "lib/lib_test.go": 'package lib\n\nimport "testing"\n',
            "lib/ext_test.go": 'package lib_test\n\nimport "example.com/repo/lib"\n',
        }
    )

    pkg = repo_builder.packages()["lib"]

    assert pkg.library.sources.generic == ["lib.go"]
    assert pkg.library.imports.generic == ["example.com/dep"]
    assert pkg.test.sources.generic == ["lib_test.go"]
    assert pkg.test.imports.generic == ["testing"]
    assert pkg.xtest.sources.generic == ["ext_test.go"]
    assert pkg.xtest.imports.generic == ["example.com/repo/lib"]


def test_walk_records_platform_specific_sources(repo_builder) -> None:
    repo_builder.write(
        {
            "p/p.go": "package p\n",
            "p/p_linux.go": 'package p\n\nimport "golang.org/x/sys/unix"\n',
            "p/p_amd64.s": "",
            "p/ignored.go": "// +build ignore\n\npackage main\n",
        }
    )

    pkg = repo_builder.packages()["p"]

    assert pkg.library.sources.generic == ["p.go"]
    assert pkg.library.sources.os == {"linux": ["p_linux.go"]}
    assert pkg.library.imports.os == {"linux": ["golang.org/x/sys/unix"]}
    assert pkg.library.sources.arch == {"amd64": ["p_amd64.s"]}
    assert "ignored.go" not in pkg.library.sources.flat()


def test_proto_only_directory(repo_builder) -> None:
    repo_builder.write({"protos/foo.proto": 'syntax = "proto3";\npackage bar.foo;\n'})

    pkg = repo_builder.packages()["protos"]

    assert pkg.name == "bar_foo"
    assert pkg.proto.sources.generic == ["foo.proto"]
    assert not pkg.library.has_go()


def test_multiple_packages_with_default(repo_builder) -> None:
    repo_builder.write(
        {
            "foo/a.go": "package foo\n",
            "foo/b.go": "package bar\n",
        }
    )

    pkg = repo_builder.packages()["foo"]

    assert pkg.name == "foo"
    assert pkg.library.sources.generic == ["a.go"]


def test_multiple_packages_without_default(repo_builder, caplog: pytest.LogCaptureFixture) -> None:
    repo_builder.write(
        {
            "foo/b.go": "package b\n",
            "foo/a.go": "package a\n",
        }
    )

    with caplog.at_level(logging.ERROR, logger="buildgen"):
        packages = repo_builder.packages()

    assert "foo" not in packages
    expected_dir = (repo_builder.path() / "foo").resolve()
    assert f"found packages a (a.go) and b (b.go) in {expected_dir}" in caplog.text


def test_documentation_package_is_ignored(repo_builder) -> None:
    repo_builder.write(
        {
            "foo/doc.go": "package documentation\n",
            "foo/foo.go": "package bar\n",
        }
    )

    assert repo_builder.packages()["foo"].name == "bar"


def test_root_package_uses_prefix_name(repo_builder) -> None:
    repo_builder.write(
        {
            "a.go": "package repo\n",
            "b.go": "package other\n",
        }
    )

    packages = repo_builder.packages(repo_builder.config(prefix="example.com/repo"))

    assert packages[""].name == "repo"


def test_testdata_detection(repo_builder) -> None:
    repo_builder.write(
        {
            "raw/testdata/input.txt": "data\n",
            "raw/a.go": "package raw\n",
            "with_build/testdata/BUILD": "",
            "with_build/a.go": "package with_build\n",
            "with_build_nested/testdata/x/BUILD": "",
            "with_build_nested/a.go": "package with_build_nested\n",
            "with_go/testdata/a.go": "package testdata\n",
            "with_go/a.go": "package with_go\n",
        }
    )

    packages = repo_builder.packages()

    assert packages["raw"].has_testdata
    assert not packages["with_build"].has_testdata
    assert not packages["with_build_nested"].has_testdata
    assert not packages["with_go"].has_testdata
    assert packages["with_go/testdata"].name == "testdata"


def test_generated_files_from_existing_rules(repo_builder) -> None:
    repo_builder.write(
        {
            "gen/BUILD": """
                genrule(
                    name = "from_genrule",
                    outs = ["foo.go", "bar.go", "w.txt", "x.c", "y.s", "z.S"],
                )

                gen_other(
                    name = "from_gen_other",
                    out = "baz.go",
                )
            """,
            "gen/foo.go": 'package foo\n\nimport "github.com/jr_hacker/stuff"\n',
        }
    )

    pkg = repo_builder.packages()["gen"]

    assert pkg.library.sources.generic == ["foo.go", "bar.go", "y.s", "baz.go"]
    assert pkg.library.imports.generic == ["github.com/jr_hacker/stuff"]
    assert not pkg.library.cgo


def test_generated_files_with_cgo(repo_builder) -> None:
    repo_builder.write(
        {
            "gen/BUILD": """
                genrule(
                    name = "from_genrule",
                    outs = ["foo.go", "bar.go", "w.txt", "x.c", "y.s", "z.S"],
                )
            """,
            "gen/foo.go": 'package foo\n\nimport "C"\n\nimport "github.com/jr_hacker/stuff"\n',
        }
    )

    pkg = repo_builder.packages()["gen"]

    assert pkg.library.sources.generic == ["foo.go", "bar.go", "x.c", "y.s", "z.S"]
    assert pkg.library.cgo


def test_excluded_files(repo_builder) -> None:
    repo_builder.write(
        {
            "exclude/BUILD": """
                # buildgen:exclude do.go

                # buildgen:exclude not.go
                # buildgen:exclude build.go

                genrule(
                    name = "gen_build",
                    outs = ["build.go"],
                )
            """,
            "exclude/do.go": "",
            "exclude/not.go": "",
            "exclude/build.go": "",
            "exclude/real.go": "package exclude\n",
        }
    )

    pkg = repo_builder.packages()["exclude"]

    assert pkg.library.sources.generic == ["real.go"]


def test_excluded_proto_keeps_pb_go(repo_builder) -> None:
    repo_builder.write(
        {
            "exclude/BUILD": "# buildgen:exclude a.proto\n",
            "exclude/a.proto": 'syntax = "proto2";\npackage exclude;\n',
            "exclude/a.pb.go": "package exclude\n",
            "exclude/b.proto": 'syntax = "proto2";\npackage exclude;\n',
            "exclude/b.pb.go": "package exclude\n",
        }
    )

    pkg = repo_builder.packages()["exclude"]

    assert pkg.library.sources.generic == ["a.pb.go"]
    assert pkg.proto.sources.generic == ["b.proto"]
    assert pkg.proto.has_pbgo


def test_legacy_proto_directive_is_inherited(repo_builder) -> None:
    repo_builder.write(
        {
            "BUILD": "# buildgen:proto legacy\n",
            "have_pbgo/a.proto": 'syntax = "proto2";\npackage have_pbgo;\n',
            "have_pbgo/a.pb.go": "package have_pbgo\n",
            "proto_only/c.proto": 'syntax = "proto2";\npackage proto_only;\n',
        }
    )

    visits = {visit.rel: visit for visit in repo_builder.walk()}

    assert visits["have_pbgo"].config.proto_mode == ProtoMode.LEGACY
    pkg = visits["have_pbgo"].package
    assert pkg.library.sources.generic == ["a.pb.go"]
    assert pkg.proto.sources.generic == ["a.proto"]
    assert pkg.proto.has_pbgo
    assert visits["proto_only"].package is None


def test_legacy_proto_mode_inferred_from_load(repo_builder) -> None:
    repo_builder.write(
        {
            "p/BUILD": 'load("@io_bazel_rules_go//proto:go_proto_library.bzl", "go_proto_library")\n',
            "p/a.proto": 'syntax = "proto3";\npackage p;\n',
            "p/a.go": "package p\n",
        }
    )

    visits = {visit.rel: visit for visit in repo_builder.walk()}

    assert visits["p"].config.proto_mode == ProtoMode.LEGACY
    assert visits[""].config.proto_mode == ProtoMode.DEFAULT


def test_directives_do_not_leak_to_siblings(repo_builder) -> None:
    repo_builder.write(
        {
            "a/BUILD": "# buildgen:prefix example.com/a\n# buildgen:build_tags foo\n",
            "a/a.go": "package a\n",
            "b/b.go": "package b\n",
        }
    )

    visits = {visit.rel: visit for visit in repo_builder.walk()}

    assert visits["a"].config.prefix == "example.com/a"
    assert visits["a"].config.prefix_rel == "a"
    assert "foo" in visits["a"].config.build_tags
    assert visits["b"].config.prefix == ""
    assert "foo" not in visits["b"].config.build_tags


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (DependencyMode.EXTERNAL, set()),
        (DependencyMode.VENDORED, {"vendor/foo", "x/vendor/bar"}),
    ],
)
def test_vendor_directories(repo_builder, mode, expected) -> None:
    repo_builder.write(
        {
            "vendor/foo/foo.go": "package foo\n",
            "x/vendor/bar/bar.go": "package bar\n",
        }
    )

    packages = repo_builder.packages(repo_builder.config(external=mode.value))

    assert set(packages) == expected


def test_malformed_build_file_yields_no_package(repo_builder, caplog: pytest.LogCaptureFixture) -> None:
    repo_builder.write({"BUILD": "????\n", "foo.go": "package foo\n"})

    with caplog.at_level(logging.ERROR, logger="buildgen"):
        visits = repo_builder.walk()

    assert visits[-1].package is None
    assert "BUILD" in caplog.text


def test_multiple_build_files_yield_no_package(repo_builder, caplog: pytest.LogCaptureFixture) -> None:
    repo_builder.write({"BUILD": "", "BUILD.bazel": "", "foo.go": "package foo\n"})

    with caplog.at_level(logging.ERROR, logger="buildgen"):
        visits = repo_builder.walk()

    assert visits[-1].package is None
    assert "multiple build files" in caplog.text


def test_malformed_go_file_is_kept(repo_builder) -> None:
    repo_builder.write({"a.go": "pakcage foo\n", "b.go": "package foo\n"})

    pkg = repo_builder.packages()[""]

    assert pkg.name == "foo"
    assert pkg.library.sources.generic == ["b.go", "a.go"]


def test_cgo_in_test_is_rejected(repo_builder, caplog: pytest.LogCaptureFixture) -> None:
    repo_builder.write(
        {
            "c/c.go": "package c\n",
            "c/c_test.go": 'package c\n\nimport "C"\n',
        }
    )

    with caplog.at_level(logging.ERROR, logger="buildgen"):
        pkg = repo_builder.packages()["c"]

    assert pkg.test.sources.is_empty()
    assert "use of cgo in test not supported" in caplog.text


def test_non_source_directory_yields_no_package(repo_builder) -> None:
    repo_builder.write({"docs/README.md": "# docs\n", "docs/notes.txt": "notes\n"})

    assert "docs" not in repo_builder.packages()


def test_only_requested_directories_get_packages(repo_builder) -> None:
    repo_builder.write({"a/a.go": "package a\n", "b/b.go": "package b\n"})

    visits = {visit.rel: visit for visit in repo_builder.walk(repo_builder.config("a"))}

    assert visits["a"].package is not None
    assert visits["a"].is_update_dir
    assert visits["b"].package is None
    assert not visits["b"].is_update_dir


def test_exclude_paths_skip_matching_entries(repo_builder) -> None:
    repo_builder.write(
        {
            ".buildgen.yml": "exclude_paths:\n  - third_party/\n",
            "third_party/x/x.go": "package x\n",
            "keep/k.go": "package k\n",
        }
    )

    settings = load_settings(repo_builder.path())
    packages = repo_builder.packages(repo_builder.config(settings=settings))

    assert set(packages) == {"keep"}


def test_hidden_and_underscore_entries_are_skipped(repo_builder) -> None:
    repo_builder.write(
        {
            ".hidden/h.go": "package h\n",
            "_private/p.go": "package p\n",
            "pkg/_skip.go": "package pkg\n",
            "pkg/pkg.go": "package pkg\n",
        }
    )

    packages = repo_builder.packages()

    assert set(packages) == {"pkg"}
    assert packages["pkg"].library.sources.generic == ["pkg.go"]


@pytest.mark.parametrize(
    ("patterns", "path", "is_dir", "expected"),
    [
        (["third_party/"], "third_party", True, True),
        (["third_party/"], "third_party", False, False),
        (["*.pb.go"], "a/b/x.pb.go", False, True),
        (["/gen"], "gen", True, True),
        (["/gen"], "a/gen", True, False),
        (["gen/", "!gen/"], "gen", True, False),
    ],
)
def test_should_ignore(patterns, path, is_dir, expected) -> None:
    rules = [rule for rule in (build_ignore_rule(p) for p in patterns) if rule is not None]

    assert should_ignore(path, is_dir, rules) is expected
