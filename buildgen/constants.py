"""Names shared by the generator, resolver and merger."""

from __future__ import annotations

DEFAULT_LIB_NAME = "go_default_library"
DEFAULT_TEST_NAME = "go_default_test"
DEFAULT_XTEST_NAME = "go_default_xtest"
DEFAULT_PROTOS_NAME = "go_default_library_protos"

# Attribute carrying unresolved import strings between generation and resolution.
IMPORTS_ATTR = "_buildgen_imports"

DIRECTIVE_PREFIX = "# buildgen:"
KEEP_MARKER = "# keep"

RULES_GO_REPO = "io_bazel_rules_go"
PLATFORM_LABEL_PREFIX = "@io_bazel_rules_go//go/platform:"
CONDITIONS_DEFAULT = "//conditions:default"
PUBLIC_VISIBILITY = "//visibility:public"
PRIVATE_VISIBILITY = "//visibility:private"

GO_DEF_BZL = "@io_bazel_rules_go//go:def.bzl"
PROTO_DEF_BZL = "@io_bazel_rules_go//proto:def.bzl"
LEGACY_PROTO_BZL = "@io_bazel_rules_go//proto:go_proto_library.bzl"

# Symbols each known .bzl file provides; used to maintain load statements.
KNOWN_LOADS = {
    GO_DEF_BZL: (
        "cgo_library",
        "go_binary",
        "go_library",
        "go_prefix",
        "go_repository",
        "go_test",
    ),
    PROTO_DEF_BZL: (
        "go_grpc_library",
        "go_proto_library",
    ),
}

WELL_KNOWN_PROTO_REPO = "com_google_protobuf"
WELL_KNOWN_GO_PROTO_PKG = "proto/wkt"

# Attributes whose list values are merged rather than replaced.
MERGEABLE_LIST_ATTRS = ("srcs", "deps", "embed", "copts", "clinkopts")
# Scalar attributes owned by the generator.
MERGEABLE_SCALAR_ATTRS = ("cgo", "importpath", "proto")
# Attributes whose string lists hold labels and are sorted after merge.
LABEL_LIST_ATTRS = ("srcs", "deps", "embed", "data")
