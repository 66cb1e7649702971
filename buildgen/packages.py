"""Package Builder: turn one directory's classified files into a Package."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from .buildfile import File, ListExpr, StringExpr
from .config import Config, ProtoMode
from .languages.base import SourceClassifier
from .logging import get_logger
from .models import CgoOptions, FileInfo, FileKind, GoTarget, Package, PlatformStrings, ProtoTarget
from .platforms import ALL_PLATFORMS, Platform, matching_platforms, placement_for

logger = get_logger("packages")

# Files declaring this package name are documentation only.
DOCUMENTATION_PACKAGE = "documentation"


class PackageSelectionError(Exception):
    """No single package could be chosen for a directory."""


class NoBuildableFilesError(PackageSelectionError):
    def __init__(self, directory: Path) -> None:
        super().__init__(f"no buildable Go source files in {directory}")
        self.directory = directory


class MultiplePackagesError(PackageSelectionError):
    def __init__(self, directory: Path, packages: Sequence[Package]) -> None:
        ordered = sorted(packages, key=lambda pkg: pkg.name)
        described = [f"{pkg.name} ({pkg.first_go_file()})" for pkg in ordered]
        if len(described) > 2:
            listing = ", ".join(described[:-1]) + f" and {described[-1]}"
        else:
            listing = " and ".join(described)
        super().__init__(f"found packages {listing} in {directory}")
        self.directory = directory
        self.names = [pkg.name for pkg in ordered]


def build_package(
    config: Config,
    classifier: SourceClassifier,
    directory: Path,
    rel: str,
    pkg_files: Iterable[str],
    other_files: Iterable[str],
    gen_files: Iterable[str],
    has_testdata: bool,
) -> Optional[Package]:
    """Read the sources of one directory and return its Package, if any.

    Sources are grouped by declared package name and a single group is
    selected; see :func:`select_package`. Files whose package could not be
    read, static companion files and files generated by rules of the existing
    build file are added to the selected package afterwards.
    """
    pkg_files = list(pkg_files)
    other_files = list(other_files)
    groups: Dict[str, Package] = {}
    unknown: List[FileInfo] = []
    cgo = False

    for name in pkg_files:
        info = classifier.file_info(config, directory, rel, name)
        if not info.package_name:
            unknown.append(info)
            continue
        if info.package_name == DOCUMENTATION_PACKAGE:
            continue
        cgo = cgo or info.is_cgo
        package = groups.get(info.package_name)
        if package is None:
            package = Package(name=info.package_name, dir=directory, rel=rel, has_testdata=has_testdata)
            groups[info.package_name] = package
        add_file(package, config, info, cgo=False)

    try:
        package = select_package(config, directory, groups)
    except NoBuildableFilesError as exc:
        logger.debug("%s", exc)
        return None
    except MultiplePackagesError as exc:
        logger.error("%s", exc)
        return None

    for info in unknown:
        add_file(package, config, info, cgo=cgo)

    for name in other_files:
        add_file(package, config, classifier.other_file_info(directory, rel, name), cgo=cgo)

    static = set(pkg_files) | set(other_files)
    for name in gen_files:
        if name in static:
            continue
        add_file(package, config, classifier.other_file_info(directory, rel, name), cgo=cgo)

    return package


def is_buildable(package: Package, config: Config) -> bool:
    """A package builds if it has Go sources, or protos in default proto mode."""
    has_go = any(target.has_go() for target in (package.library, package.test, package.xtest))
    return has_go or (package.proto.has_proto() and config.proto_mode == ProtoMode.DEFAULT)


def select_package(config: Config, directory: Path, groups: Dict[str, Package]) -> Package:
    """Pick the package to generate rules for among the declared names."""
    buildable = {name: pkg for name, pkg in groups.items() if is_buildable(pkg, config)}
    if not buildable:
        raise NoBuildableFilesError(directory)
    if len(buildable) == 1:
        return next(iter(buildable.values()))
    default = buildable.get(config.default_package_name(directory))
    if default is not None:
        return default
    raise MultiplePackagesError(directory, list(buildable.values()))


def add_file(package: Package, config: Config, info: FileInfo, cgo: bool) -> None:
    """Record ``info`` in the target of ``package`` it belongs to."""
    if info.kind == FileKind.UNKNOWN:
        return
    if info.kind in FileKind.CGO_ONLY and not cgo:
        return
    if info.kind == FileKind.PROTO and config.proto_mode == ProtoMode.DISABLE:
        return

    if info.is_xtest or info.is_test:
        if info.is_cgo:
            logger.error("%s: use of cgo in test not supported", info.path)
            return
        _add_go_file(package.xtest if info.is_xtest else package.test, config, info)
    elif info.kind == FileKind.PROTO:
        _add_proto_file(package.proto, info)
    else:
        _add_go_file(package.library, config, info)

    if info.is_pbgo:
        package.proto.has_pbgo = True


def find_gen_files(file: Optional[File], excluded: Set[str]) -> List[str]:
    """Return ``out``/``outs`` values of rules in ``file`` that are not excluded."""
    if file is None:
        return []
    outputs: List[str] = []
    for rule in file.rules():
        for key in ("out", "outs"):
            value = rule.attr(key)
            if isinstance(value, StringExpr):
                outputs.append(value.value)
            elif isinstance(value, ListExpr):
                outputs.extend(item.value for item in value.items if isinstance(item, StringExpr))
    return [name for name in outputs if name not in excluded]


# ---- Internals -------------------------------------------------------------


def _file_platforms(config: Config, info: FileInfo) -> FrozenSet[Platform]:
    if not info.has_constraints:
        return ALL_PLATFORMS
    return matching_platforms(info.goos, info.goarch, info.constraints, config.build_tags)


def _add_go_file(target: GoTarget, config: Config, info: FileInfo) -> None:
    platforms = _file_platforms(config, info)
    placement = placement_for(platforms)
    if placement.kind == "none":
        logger.debug("%s: excluded by build constraints", info.path)
        return
    target.sources.add(placement, [info.name])
    target.imports.add(placement, info.imports)
    target.cgo = target.cgo or info.is_cgo
    _add_cgo_options(target.copts, config, platforms, info.copts)
    _add_cgo_options(target.clinkopts, config, platforms, info.clinkopts)


def _add_cgo_options(
    strings: PlatformStrings,
    config: Config,
    platforms: FrozenSet[Platform],
    options: Iterable[CgoOptions],
) -> None:
    for option in options:
        matched = platforms
        if option.condition is not None:
            matched = platforms & matching_platforms("", "", [option.condition], config.build_tags)
        strings.add(placement_for(matched), option.opts)


def _add_proto_file(target: ProtoTarget, info: FileInfo) -> None:
    target.sources.add_generic(info.name)
    target.imports.add_generic(*info.imports)
    target.has_services = target.has_services or info.has_services


__all__ = [
    "DOCUMENTATION_PACKAGE",
    "MultiplePackagesError",
    "NoBuildableFilesError",
    "PackageSelectionError",
    "add_file",
    "build_package",
    "find_gen_files",
    "is_buildable",
    "select_package",
]
