"""Tests for the source classifiers in buildgen.languages."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from buildgen.config import Config, ProtoMode
from buildgen.languages import GoClassifier, SourceClassifier, available_languages, get_classifier
from buildgen.languages.go import go_file_info
from buildgen.languages.proto import proto_file_info
from buildgen.models import FileKind
from buildgen.platforms import Tag


def _write(directory: Path, name: str, content: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(content, encoding="utf-8")


def test_go_file_info_reads_package_and_imports(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "lib.go",
        '// Package lib does things.\npackage lib\n\nimport "fmt"\n\nimport (\n'
        '\t"os"\n\tw "github.com/acme/widget"\n\t_ "example.com/side"\n)\n\nfunc F() {}\n',
    )

    info = go_file_info(Config(repo_root=tmp_path), tmp_path, "", "lib.go")

    assert info.kind == FileKind.GO
    assert info.package_name == "lib"
    assert info.imports == ["fmt", "os", "github.com/acme/widget", "example.com/side"]
    assert not info.is_test
    assert not info.is_cgo


def test_go_file_info_marks_external_tests(tmp_path: Path) -> None:
    _write(tmp_path, "lib_test.go", 'package lib_test\n\nimport "testing"\n')

    info = go_file_info(Config(repo_root=tmp_path), tmp_path, "", "lib_test.go")

    assert info.is_test
    assert info.is_xtest
    assert info.package_name == "lib"


def test_go_file_info_reads_build_constraints(tmp_path: Path) -> None:
    _write(tmp_path, "a.go", "// +build foo\n\npackage a\n")
    _write(tmp_path, "b.go", "//go:build bar\n// +build foo\n\npackage b\n")
    _write(tmp_path, "c.go", "// +build foo\npackage c\n")

    config = Config(repo_root=tmp_path)

    assert go_file_info(config, tmp_path, "", "a.go").constraints == [Tag("foo")]
    assert go_file_info(config, tmp_path, "", "b.go").constraints == [Tag("bar")]
    # Without a blank line the +build comment is package documentation.
    assert go_file_info(config, tmp_path, "", "c.go").constraints == []


def test_go_file_info_reads_cgo_preamble(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "cgo.go",
        "package native\n\n"
        "/*\n"
        "#cgo CFLAGS: -I/usr/include/foo -DFOO=1\n"
        "#cgo linux LDFLAGS: -lfoo\n"
        "#include <foo.h>\n"
        "*/\n"
        'import "C"\n\n'
        'import "unsafe"\n',
    )

    info = go_file_info(Config(repo_root=tmp_path), tmp_path, "", "cgo.go")

    assert info.is_cgo
    assert info.imports == ["unsafe"]
    assert [option.opts for option in info.copts] == [["-I/usr/include/foo", "-DFOO=1"]]
    assert info.copts[0].condition is None
    assert [option.opts for option in info.clinkopts] == [["-lfoo"]]
    assert info.clinkopts[0].condition == Tag("linux")


def test_go_file_info_logs_missing_package(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _write(tmp_path, "broken.go", "func main() {}\n")

    with caplog.at_level(logging.ERROR, logger="buildgen"):
        info = go_file_info(Config(repo_root=tmp_path), tmp_path, "", "broken.go")

    assert info.package_name == ""
    assert "expected 'package'" in caplog.text


def test_proto_file_info_package_names(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "a.proto",
        'syntax = "proto3";\npackage foo.bar;\n'
        'import "google/protobuf/any.proto";\nimport public "b/c.proto";\n'
        "// service Commented {\n",
    )
    _write(
        tmp_path,
        "b.proto",
        'syntax = "proto3";\npackage foo;\noption go_package = "example.com/repo/b;bpb";\n'
        "service Greeter {\n  rpc Hello (Req) returns (Resp);\n}\n",
    )
    _write(tmp_path / "pkg", "c.proto", 'syntax = "proto3";\n')
    config = Config(repo_root=tmp_path)

    a = proto_file_info(config, tmp_path, "", "a.proto")
    b = proto_file_info(config, tmp_path, "", "b.proto")
    c = proto_file_info(config, tmp_path / "pkg", "pkg", "c.proto")

    assert a.kind == FileKind.PROTO
    assert a.package_name == "foo_bar"
    assert a.imports == ["google/protobuf/any.proto", "b/c.proto"]
    assert not a.has_services
    assert b.package_name == "bpb"
    assert b.has_services
    assert c.package_name == "pkg"


def test_go_classifier_sources_depend_on_proto_mode(tmp_path: Path) -> None:
    classifier = GoClassifier()
    default = Config(repo_root=tmp_path)
    disabled = Config(repo_root=tmp_path, proto_mode=ProtoMode.DISABLE)

    assert classifier.is_source("a.go", default)
    assert classifier.is_source("a.proto", default)
    assert not classifier.is_source("a.proto", disabled)
    assert not classifier.is_source("a.c", default)


def test_go_classifier_excludes_generated_pb_go(tmp_path: Path) -> None:
    classifier = GoClassifier()
    names = ["a.proto", "a.pb.go", "b.proto", "c.go"]

    default = classifier.companion_exclusions(names, {"b.proto"}, Config(repo_root=tmp_path))
    legacy = classifier.companion_exclusions(
        names, set(), Config(repo_root=tmp_path, proto_mode=ProtoMode.LEGACY)
    )

    assert default == {"a.pb.go"}
    assert legacy == set()


def test_get_classifier_returns_builtin_go() -> None:
    assert "go" in available_languages()
    classifier = get_classifier("go")

    assert isinstance(classifier, SourceClassifier)
    assert classifier.name == "go"


def test_get_classifier_rejects_unknown_language() -> None:
    with pytest.raises(ValueError) as excinfo:
        get_classifier("cobol")

    assert "Unknown language" in str(excinfo.value)
