"""Run configuration for buildgen (.buildgen.yml plus command-line overrides)."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import yaml

CONFIG_FILENAME = ".buildgen.yml"
DEFAULT_BUILD_FILE_NAMES: Tuple[str, ...] = ("BUILD.bazel", "BUILD")
# Tags that are always true when matching build constraints.
DEFAULT_BUILD_TAGS: Tuple[str, ...] = ("cgo", "gc")


class ConfigError(RuntimeError):
    """Raised when the configuration is invalid or cannot be parsed."""


class DependencyMode(Enum):
    """How imports outside the repository prefix are resolved."""

    EXTERNAL = "external"
    VENDORED = "vendored"

    @classmethod
    def from_string(cls, value: str) -> "DependencyMode":
        for mode in cls:
            if mode.value == value:
                return mode
        raise ConfigError(f"unrecognized dependency mode: {value!r}")


class StructureMode(Enum):
    """How build files are laid out in the repository."""

    HIERARCHICAL = "hierarchical"
    FLAT = "flat"

    @classmethod
    def from_string(cls, value: str) -> "StructureMode":
        for mode in cls:
            if mode.value == value:
                return mode
        raise ConfigError(f"unrecognized structure mode: {value!r}")


class ProtoMode(Enum):
    """How rules are generated for .proto files.

    ``DEFAULT`` generates proto_library and go_proto_library rules and
    excludes .pb.go files that have a matching .proto. ``DISABLE`` ignores
    .proto files entirely. ``LEGACY`` only generates a filegroup of protos.
    """

    DEFAULT = "default"
    DISABLE = "disable"
    LEGACY = "legacy"

    @classmethod
    def from_string(cls, value: str) -> "ProtoMode":
        for mode in cls:
            if mode.value == value:
                return mode
        raise ConfigError(f"unrecognized proto mode: {value!r}")


@dataclass(frozen=True)
class Config:
    """Settings for one directory of a run.

    Instances are never mutated; directives found in a build file produce a
    new value with :func:`dataclasses.replace` that is handed down to the
    directory's children.
    """

    repo_root: Path
    dirs: Tuple[Path, ...] = ()
    valid_build_file_names: Tuple[str, ...] = DEFAULT_BUILD_FILE_NAMES
    build_tags: FrozenSet[str] = frozenset(DEFAULT_BUILD_TAGS)
    prefix: str = ""
    prefix_rel: str = ""
    should_fix: bool = False
    dep_mode: DependencyMode = DependencyMode.EXTERNAL
    known_imports: Tuple[str, ...] = ()
    structure_mode: StructureMode = StructureMode.HIERARCHICAL
    proto_mode: ProtoMode = ProtoMode.DEFAULT
    proto_mode_explicit: bool = False
    exclude_paths: Tuple[str, ...] = ()
    language: str = "go"

    def is_valid_build_file_name(self, name: str) -> bool:
        return name in self.valid_build_file_names

    @property
    def default_build_file_name(self) -> str:
        return self.valid_build_file_names[0]

    def tag_enabled(self, tag: str) -> bool:
        return tag in self.build_tags

    def with_build_tags(self, tags: str) -> "Config":
        return replace(self, build_tags=parse_build_tags(tags))

    def default_package_name(self, directory: Path) -> str:
        """Package name expected in ``directory`` when several are declared.

        Below the root this is the directory's base name; at the root it is
        the last segment of the import prefix, or ``unnamed`` without one.
        """
        if Path(directory) != self.repo_root:
            return Path(directory).name
        name = posixpath.basename(self.prefix.rstrip("/"))
        return name or "unnamed"

    def import_path(self, rel: str) -> str:
        """Return the import path of the package at repository-relative ``rel``."""
        tail = rel
        if self.prefix_rel:
            if rel == self.prefix_rel:
                tail = ""
            elif rel.startswith(self.prefix_rel + "/"):
                tail = rel[len(self.prefix_rel) + 1 :]
        if not self.prefix:
            return tail
        if not tail:
            return self.prefix
        return posixpath.join(self.prefix, tail)


def parse_build_tags(tags: str | Iterable[str]) -> FrozenSet[str]:
    """Parse a comma-separated tag list; the default tags are always included."""
    if isinstance(tags, str):
        items = [item.strip() for item in tags.split(",")]
    else:
        items = [str(item).strip() for item in tags]
    result = set(DEFAULT_BUILD_TAGS)
    for tag in items:
        if not tag:
            continue
        if tag.startswith("!"):
            raise ConfigError(f"build tags can't be negated: {tag}")
        result.add(tag)
    return frozenset(result)


@dataclass
class FileSettings:
    """Values read from .buildgen.yml; ``None`` means not specified."""

    build_file_names: List[str] = field(default_factory=list)
    prefix: Optional[str] = None
    external: Optional[str] = None
    structure: Optional[str] = None
    proto: Optional[str] = None
    build_tags: List[str] = field(default_factory=list)
    known_imports: List[str] = field(default_factory=list)
    exclude_paths: List[str] = field(default_factory=list)
    language: Optional[str] = None


def load_settings(config_path: Path) -> FileSettings:
    """Load .buildgen.yml from disk, returning empty settings when absent."""
    config_file = _resolve_config_path(config_path)
    if not config_file.exists():
        return FileSettings()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    return FileSettings(
        build_file_names=_as_str_list(data.get("build_file_names")),
        prefix=_as_str(data.get("prefix")),
        external=_as_str(data.get("external")),
        structure=_as_str(data.get("structure")),
        proto=_as_str(data.get("proto")),
        build_tags=_as_str_list(data.get("build_tags")),
        known_imports=_as_str_list(data.get("known_imports")),
        exclude_paths=_as_str_list(data.get("exclude_paths")),
        language=_as_str(data.get("language")),
    )


def build_config(
    repo_root: Path,
    dirs: Sequence[Path] = (),
    settings: FileSettings | None = None,
    *,
    build_file_names: Sequence[str] | None = None,
    prefix: str | None = None,
    external: str | None = None,
    structure: str | None = None,
    proto: str | None = None,
    build_tags: str | None = None,
    known_imports: Sequence[str] = (),
    should_fix: bool = False,
) -> Config:
    """Combine file settings and explicit overrides into a validated root Config."""
    settings = settings or FileSettings()
    root = repo_root.expanduser().resolve()

    resolved_dirs = tuple(Path(d).expanduser().resolve() for d in dirs) or (root,)
    for directory in resolved_dirs:
        if not _is_descendant(directory, root):
            raise ConfigError(f"dir {str(directory)!r} is not a subdirectory of repo root {str(root)!r}")

    names: Sequence[str]
    if build_file_names is not None:
        names = [name.strip() for name in build_file_names if name.strip()]
    elif settings.build_file_names:
        names = settings.build_file_names
    else:
        names = DEFAULT_BUILD_FILE_NAMES
    if not names:
        raise ConfigError("no valid build file names specified")

    if build_tags is not None:
        tags = parse_build_tags(build_tags)
    else:
        tags = parse_build_tags(settings.build_tags)

    proto_value = proto if proto is not None else settings.proto
    known = list(settings.known_imports)
    known.extend(known_imports)

    return Config(
        repo_root=root,
        dirs=resolved_dirs,
        valid_build_file_names=tuple(names),
        build_tags=tags,
        prefix=_clean_prefix(prefix if prefix is not None else settings.prefix or ""),
        should_fix=should_fix,
        dep_mode=DependencyMode.from_string(external or settings.external or "external"),
        known_imports=tuple(known),
        structure_mode=StructureMode.from_string(structure or settings.structure or "hierarchical"),
        proto_mode=ProtoMode.from_string(proto_value or "default"),
        proto_mode_explicit=proto_value is not None,
        exclude_paths=tuple(settings.exclude_paths),
        language=settings.language or "go",
    )


def _clean_prefix(prefix: str) -> str:
    return prefix.strip().strip("/")


def _is_descendant(directory: Path, root: Path) -> bool:
    try:
        directory.relative_to(root)
    except ValueError:
        return False
    return True


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []
