"""Protocol buffer source files."""

from __future__ import annotations

import re
from pathlib import Path

from ..config import Config
from ..logging import get_logger
from ..models import FileInfo, FileKind
from .base import file_name_info

logger = get_logger("languages.proto")

# Strings are matched so that comment markers inside them are left alone.
_STRIP_RE = re.compile(r'("(?:[^"\\\n]|\\.)*"|\'(?:[^\'\\\n]|\\.)*\')|//[^\n]*|/\*.*?\*/', re.S)
_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.M)
_IMPORT_RE = re.compile(r'^\s*import\s+(?:public\s+|weak\s+)?"([^"]+)"\s*;', re.M)
_GO_PACKAGE_RE = re.compile(r'^\s*option\s+go_package\s*=\s*"([^"]+)"\s*;', re.M)
_SERVICE_RE = re.compile(r"^\s*service\s+\w+\s*\{", re.M)
_NON_IDENT_RE = re.compile(r"[^A-Za-z0-9_]")


def proto_file_info(config: Config, directory: Path, rel: str, filename: str) -> FileInfo:
    """Extract the package name, imports and services of a .proto file.

    The Go package name comes from the ``go_package`` option when present,
    then from the proto package (dots become underscores), and finally
    defaults to the directory's conventional name.
    """
    info = file_name_info(directory, rel, filename)
    info.kind = FileKind.PROTO
    try:
        text = info.path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.error("%s: error reading proto file: %s", info.path, exc)
        return info

    content = _STRIP_RE.sub(lambda m: m.group(1) or "", text)
    info.imports = _IMPORT_RE.findall(content)
    info.has_services = _SERVICE_RE.search(content) is not None

    go_package = _GO_PACKAGE_RE.search(content)
    package = _PACKAGE_RE.search(content)
    if go_package is not None:
        value = go_package.group(1)
        path, sep, name = value.partition(";")
        if not sep:
            name = path.rsplit("/", 1)[-1]
        info.package_name = _NON_IDENT_RE.sub("_", name)
    elif package is not None:
        info.package_name = package.group(1).replace(".", "_")
    else:
        info.package_name = config.default_package_name(directory)
    return info


__all__ = ["proto_file_info"]
