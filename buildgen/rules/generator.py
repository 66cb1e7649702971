"""Rule Generator: turn a Package into rule expressions."""

from __future__ import annotations

import posixpath
from typing import Callable, Dict, List, Optional, Tuple

from ..buildfile import (
    BinaryExpr,
    CallExpr,
    DictExpr,
    Expr,
    File,
    KeyValue,
    ListExpr,
    Rule,
    StringExpr,
    call_expr,
    make_rule,
)
from ..config import Config, ProtoMode, StructureMode
from ..constants import (
    CONDITIONS_DEFAULT,
    DEFAULT_PROTOS_NAME,
    IMPORTS_ATTR,
    PLATFORM_LABEL_PREFIX,
    PRIVATE_VISIBILITY,
    PUBLIC_VISIBILITY,
)
from ..labels import Label, Labeler
from ..logging import get_logger
from ..models import GoTarget, Package, PlatformStrings
from ..platforms import KNOWN_PLATFORMS

logger = get_logger("rules")

RuleList = List[CallExpr]


class Generator:
    """Generates the rules of one package for the build file at ``build_rel``.

    ``generate_rules`` returns the generated rules and, separately, an empty
    placeholder (``kind(name = ...)``) for every kind the package no longer
    needs. The placeholders let the merger delete rules that went stale.
    """

    def __init__(self, config: Config, labeler: Labeler, build_rel: str, old_file: File | None) -> None:
        self._config = config
        self._labeler = labeler
        self._build_rel = build_rel
        self._set_visibility = old_file is None or not _has_default_visibility(old_file)

    def generate_rules(self, pkg: Package) -> Tuple[RuleList, RuleList]:
        rules: RuleList = []
        empty: RuleList = []

        go_proto_name, proto_rules, proto_empty = self._generate_proto(pkg)
        rules.extend(proto_rules)
        empty.extend(proto_empty)

        lib_name = self._sort(self._generate_lib(pkg, go_proto_name), rules, empty)
        self._sort(self._generate_bin(pkg, lib_name), rules, empty)
        self._sort(self._generate_test(pkg, lib_name, xtest=False), rules, empty)
        self._sort(self._generate_test(pkg, lib_name, xtest=True), rules, empty)
        return rules, empty

    @staticmethod
    def _sort(generated: Tuple[CallExpr, bool, str], rules: RuleList, empty: RuleList) -> str:
        rule, is_empty, name = generated
        (empty if is_empty else rules).append(rule)
        return "" if is_empty else name

    # ---- protos ------------------------------------------------------------

    def _generate_proto(self, pkg: Package) -> Tuple[str, RuleList, RuleList]:
        """Return the go proto target name (or ""), rules and empty rules."""
        mode = self._config.proto_mode
        if mode == ProtoMode.DISABLE:
            return "", [], []

        files = sorted(self._source_strings(pkg, pkg.proto.sources).flat())
        if mode == ProtoMode.LEGACY:
            if not files:
                return "", [], [make_rule("filegroup", name=DEFAULT_PROTOS_NAME)]
            filegroup = make_rule(
                "filegroup",
                name=DEFAULT_PROTOS_NAME,
                srcs=files,
                visibility=[PUBLIC_VISIBILITY],
            )
            return "", [filegroup], []

        proto_name = self._labeler.proto_label(pkg.rel, pkg.name).name
        go_proto_name = self._labeler.go_proto_label(pkg.rel, pkg.name).name
        filegroup_empty = make_rule("filegroup", name=DEFAULT_PROTOS_NAME)
        if not files:
            return "", [], [
                filegroup_empty,
                make_rule("proto_library", name=proto_name),
                make_rule("go_proto_library", name=go_proto_name),
                make_rule("go_grpc_library", name=go_proto_name),
            ]
        if pkg.proto.has_pbgo:
            logger.warning(
                "%s: checked-in .pb.go files are compiled next to %s and may redefine its symbols",
                pkg.rel or ".",
                go_proto_name,
            )

        imports = sorted(pkg.proto.imports.flat())
        proto_rule = make_rule(
            "proto_library",
            name=proto_name,
            srcs=files,
            visibility=[PUBLIC_VISIBILITY] if self._set_visibility else None,
        )
        _set_imports(proto_rule, ListExpr(items=[StringExpr(value=i) for i in imports]) if imports else None)

        go_kind, other_kind = "go_proto_library", "go_grpc_library"
        if pkg.proto.has_services:
            go_kind, other_kind = other_kind, go_kind
        go_proto_rule = make_rule(
            go_kind,
            name=go_proto_name,
            importpath=self._config.import_path(pkg.rel),
            proto=f":{proto_name}",
            visibility=[PUBLIC_VISIBILITY] if self._set_visibility else None,
        )
        _set_imports(go_proto_rule, ListExpr(items=[StringExpr(value=i) for i in imports]) if imports else None)

        empty = [filegroup_empty, make_rule(other_kind, name=go_proto_name)]
        return go_proto_name, [proto_rule, go_proto_rule], empty

    # ---- go ----------------------------------------------------------------

    def _generate_lib(self, pkg: Package, go_proto_name: str) -> Tuple[CallExpr, bool, str]:
        name = self._labeler.library_label(pkg.rel).name
        if not pkg.library.has_go() and not go_proto_name:
            return make_rule("go_library", name=name), True, name

        if pkg.is_command:
            visibility = PRIVATE_VISIBILITY
        else:
            visibility = _internal_visibility(pkg.rel, PUBLIC_VISIBILITY)
        embed = [self._relative(self._labeler.go_proto_label(pkg.rel, pkg.name))] if go_proto_name else None

        rule = self._go_rule(
            "go_library",
            name,
            pkg,
            pkg.library,
            embed=embed,
            importpath=self._config.import_path(pkg.rel),
            visibility=[visibility] if self._set_visibility else None,
        )
        return rule, False, name

    def _generate_bin(self, pkg: Package, lib_name: str) -> Tuple[CallExpr, bool, str]:
        name = self._labeler.binary_label(pkg.rel).name
        if not pkg.is_command or not lib_name:
            return make_rule("go_binary", name=name), True, name
        rule = make_rule(
            "go_binary",
            name=name,
            embed=[self._relative(self._labeler.library_label(pkg.rel))],
            visibility=[PUBLIC_VISIBILITY] if self._set_visibility else None,
        )
        return rule, False, name

    def _generate_test(self, pkg: Package, lib_name: str, xtest: bool) -> Tuple[CallExpr, bool, str]:
        name = self._labeler.test_label(pkg.rel, xtest).name
        target = pkg.xtest if xtest else pkg.test
        if not target.has_go():
            return make_rule("go_test", name=name), True, name

        data = None
        if pkg.has_testdata:
            data = call_expr("glob", [self._source_path(pkg, "testdata/**")])

        extra_imports: List[str] = []
        embed = None
        if xtest:
            import_path = self._config.import_path(pkg.rel)
            if lib_name and import_path:
                extra_imports.append(import_path)
        elif lib_name:
            embed = [self._relative(self._labeler.library_label(pkg.rel))]

        rule = self._go_rule(
            "go_test",
            name,
            pkg,
            target,
            data=data,
            embed=embed,
            extra_imports=extra_imports,
        )
        return rule, False, name

    def _go_rule(
        self,
        kind: str,
        name: str,
        pkg: Package,
        target: GoTarget,
        *,
        data: Optional[Expr] = None,
        embed: Optional[List[str]] = None,
        importpath: Optional[str] = None,
        visibility: Optional[List[str]] = None,
        extra_imports: Optional[List[str]] = None,
    ) -> CallExpr:
        cgo = target.cgo or None
        rule = make_rule(
            kind,
            name=name,
            srcs=platform_strings_expr(self._source_strings(pkg, target.sources)),
            cgo=cgo,
            clinkopts=platform_strings_expr(target.clinkopts, sort=False) if cgo else None,
            copts=platform_strings_expr(target.copts, sort=False) if cgo else None,
            data=data,
            embed=embed,
            importpath=importpath or None,
            visibility=visibility,
        )
        imports = target.imports
        if extra_imports:
            imports = PlatformStrings(
                generic=list(imports.generic) + [i for i in extra_imports if i not in imports.generic],
                os=imports.os,
                arch=imports.arch,
                platform=imports.platform,
            )
        _set_imports(rule, platform_strings_expr(imports))
        return rule

    # ---- helpers -----------------------------------------------------------

    def _relative(self, label: Label) -> str:
        return str(label.with_relative(not label.repo and label.pkg == self._build_rel))

    def _source_path(self, pkg: Package, name: str) -> str:
        prefix = self._source_prefix(pkg)
        return posixpath.join(prefix, name) if prefix else name

    def _source_prefix(self, pkg: Package) -> str:
        if self._config.structure_mode != StructureMode.FLAT or pkg.rel == self._build_rel:
            return ""
        if not self._build_rel:
            return pkg.rel
        return posixpath.relpath(pkg.rel, self._build_rel)

    def _source_strings(self, pkg: Package, strings: PlatformStrings) -> PlatformStrings:
        prefix = self._source_prefix(pkg)
        if not prefix:
            return strings
        return strings.map(lambda name: posixpath.join(prefix, name))


def platform_strings_expr(strings: PlatformStrings, sort: bool = True) -> Optional[Expr]:
    """Render platform strings as ``[generic] + select({...})``.

    Platform-specific values already present in the generic list are
    dropped. When more than one kind of map (OS, arch, OS/arch) remains,
    they are folded into a single OS/arch map so no platform sees the same
    value twice.
    """
    order: Callable[[List[str]], List[str]] = sorted if sort else _dedupe
    generic = order(list(dict.fromkeys(strings.generic)))
    seen = set(generic)

    tables: Dict[str, Dict[str, List[str]]] = {}
    for kind, table in strings.tables():
        trimmed = {key: [v for v in values if v not in seen] for key, values in table.items()}
        trimmed = {key: values for key, values in trimmed.items() if values}
        if trimmed:
            tables[kind] = trimmed

    if len(tables) > 1:
        tables = {"platform": _fold_platforms(tables)}

    parts: List[Expr] = []
    if generic:
        parts.append(ListExpr(items=[StringExpr(value=v) for v in generic]))
    for kind in ("os", "arch", "platform"):
        table = tables.get(kind)
        if table:
            parts.append(_select(table, order))

    if not parts:
        return None
    expr = parts[0]
    for part in parts[1:]:
        expr = BinaryExpr(op="+", left=expr, right=part)
    return expr


def _select(table: Dict[str, List[str]], order: Callable[[List[str]], List[str]]) -> CallExpr:
    entries = [
        KeyValue(
            key=StringExpr(value=PLATFORM_LABEL_PREFIX + key),
            value=ListExpr(items=[StringExpr(value=v) for v in order(list(values))]),
        )
        for key, values in sorted(table.items())
    ]
    entries.append(KeyValue(key=StringExpr(value=CONDITIONS_DEFAULT), value=ListExpr()))
    return call_expr("select", DictExpr(entries=entries))


def _fold_platforms(tables: Dict[str, Dict[str, List[str]]]) -> Dict[str, List[str]]:
    folded: Dict[str, List[str]] = {}
    for platform in KNOWN_PLATFORMS:
        values: List[str] = []
        values.extend(tables.get("os", {}).get(platform.os, []))
        values.extend(tables.get("arch", {}).get(platform.arch, []))
        values.extend(tables.get("platform", {}).get(str(platform), []))
        values = _dedupe(values)
        if values:
            folded[str(platform)] = values
    return folded


def _dedupe(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def _set_imports(rule: CallExpr, imports: Optional[Expr]) -> None:
    if imports is None:
        return
    Rule(rule).set_attr(IMPORTS_ATTR, imports)


def _internal_visibility(rel: str, visibility: str) -> str:
    """Restrict packages under an ``internal`` directory to their parent tree."""
    path = f"{rel}/"
    index = path.rfind("/internal/")
    if index >= 0:
        return f"//{path[:index]}:__subpackages__"
    if path.startswith("internal/"):
        return "//:__subpackages__"
    return visibility


def _has_default_visibility(file: File) -> bool:
    for rule in file.rules("package"):
        if rule.attr("default_visibility") is not None:
            return True
    return False


__all__ = ["Generator", "platform_strings_expr"]
