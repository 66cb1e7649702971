"""Resolution of imports outside the repository's import prefix."""

from __future__ import annotations

import posixpath
import re
from abc import ABC, abstractmethod
from html.parser import HTMLParser
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..constants import DEFAULT_LIB_NAME
from ..labels import Label, Labeler
from ..logging import get_logger

logger = get_logger("resolve.external")

# Hosts whose repositories are named by a fixed number of path segments.
_SPECIAL_PREFIXES: Tuple[Tuple[str, int], ...] = (
    ("golang.org/x/", 1),
    ("google.golang.org/", 1),
    ("cloud.google.com/", 1),
    ("github.com/", 2),
)
_GOPKG_RE = re.compile(r"^gopkg\.in/(?:[^/]+/)?[^/]+\.v\d+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

Fetcher = Callable[[str], str]
RepoRootLookup = Callable[[str], str]


class ResolveError(Exception):
    """An import could not be mapped to a label."""


class StandardImportError(ResolveError):
    """The import belongs to the standard library and needs no dependency."""

    def __init__(self, importpath: str) -> None:
        super().__init__(f"import path {importpath!r} is in the standard library")
        self.importpath = importpath


class ExternalResolver(ABC):
    """Contract for resolving imports that are not under the repository prefix."""

    @abstractmethod
    def resolve(self, importpath: str) -> Label:
        """Return the label providing ``importpath``; raise :class:`ResolveError` otherwise.

        Calls must be idempotent within a run.
        """


class VendoredResolver(ExternalResolver):
    """Maps imports to packages under the repository's ``vendor`` directory."""

    def __init__(self, labeler: Labeler) -> None:
        self._labeler = labeler

    def resolve(self, importpath: str) -> Label:
        return self._labeler.library_label(posixpath.join("vendor", importpath))


class RemoteResolver(ExternalResolver):
    """Maps imports to labels in external repositories.

    The repository root of an import is the shortest prefix naming a
    distinct repository. Known hosts are handled by fixed rules, other roots
    are discovered through the ``go-get=1`` meta tag protocol. Roots and
    failures are cached per prefix for the lifetime of the resolver.
    """

    def __init__(
        self,
        known_imports: Iterable[str] = (),
        *,
        lookup: RepoRootLookup | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._fetcher = fetcher or http_fetch
        self._lookup = lookup or self._discover
        self._prefixes: Dict[str, Union[bool, ResolveError]] = {}
        self._labels: Dict[str, Label] = {}
        for known in known_imports:
            known = known.strip().strip("/")
            if known:
                self._prefixes[known] = True

    def resolve(self, importpath: str) -> Label:
        cached = self._labels.get(importpath)
        if cached is not None:
            return cached
        prefix = self.lookup_prefix(importpath)
        pkg = importpath[len(prefix) :].lstrip("/")
        label = Label(repo=import_path_to_repo_name(prefix), pkg=pkg, name=DEFAULT_LIB_NAME)
        self._labels[importpath] = label
        return label

    def lookup_prefix(self, importpath: str) -> str:
        """Return the repository root prefix of ``importpath``."""
        candidate = importpath
        while candidate and candidate not in (".", "/"):
            entry = self._prefixes.get(candidate)
            if isinstance(entry, ResolveError):
                raise entry
            if entry:
                return candidate
            candidate = posixpath.dirname(candidate)

        try:
            prefix = self._special_case(importpath)
            if prefix is None:
                prefix = self._lookup(importpath)
        except ResolveError as exc:
            self._prefixes[importpath] = exc
            raise
        if not prefix or not (importpath == prefix or importpath.startswith(prefix + "/")):
            error = ResolveError(f"repository root {prefix!r} is not a prefix of {importpath!r}")
            self._prefixes[importpath] = error
            raise error
        self._prefixes[prefix] = True
        return prefix

    @staticmethod
    def _special_case(importpath: str) -> Optional[str]:
        for known, segments in _SPECIAL_PREFIXES:
            if not importpath.startswith(known):
                continue
            parts = importpath[len(known) :].split("/")
            if len(parts) < segments or not all(parts[:segments]):
                raise ResolveError(
                    f"import path {importpath!r} is shorter than the known prefix {known!r}"
                )
            return known + "/".join(parts[:segments])
        match = _GOPKG_RE.match(importpath)
        if match is not None:
            return match.group(0)
        return None

    def _discover(self, importpath: str) -> str:
        logger.debug("discovering repository root for %s", importpath)
        url = f"https://{importpath}?go-get=1"
        try:
            body = self._fetcher(url)
        except OSError as exc:
            raise ResolveError(f"could not resolve import path {importpath!r}: {exc}") from exc
        for root, _vcs, _repo_url in parse_go_import_meta(body):
            if importpath == root or importpath.startswith(root + "/"):
                return root
        raise ResolveError(f"could not resolve import path {importpath!r}: no go-import meta tag")


def import_path_to_repo_name(importpath: str) -> str:
    """Convert an import path prefix into an external repository name.

    ``example.com/repo.git`` becomes ``com_example_repo_git``.
    """
    components = importpath.lower().split("/")
    host = list(reversed(components[0].split(".")))
    joined = "_".join(host + components[1:])
    return _NON_ALNUM_RE.sub("_", joined)


def http_fetch(url: str, timeout: float = 10.0) -> str:
    """Fetch ``url`` and return the decoded body."""
    request = Request(url, headers={"User-Agent": "buildgen"})
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        raise OSError(f"HTTP {exc.code} fetching {url}") from exc
    except URLError as exc:
        raise OSError(f"failed to fetch {url}: {exc.reason}") from exc
    return raw.decode("utf-8", errors="replace")


class _GoImportParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__()
        self.imports: List[Tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag != "meta":
            return
        values = dict(attrs)
        if values.get("name") != "go-import":
            return
        fields = (values.get("content") or "").split()
        if len(fields) == 3:
            self.imports.append((fields[0], fields[1], fields[2]))


def parse_go_import_meta(body: str) -> List[Tuple[str, str, str]]:
    """Return ``(root, vcs, url)`` triples of the go-import meta tags in ``body``."""
    parser = _GoImportParser()
    parser.feed(body)
    parser.close()
    return parser.imports


__all__ = [
    "ExternalResolver",
    "RemoteResolver",
    "ResolveError",
    "StandardImportError",
    "VendoredResolver",
    "http_fetch",
    "import_path_to_repo_name",
    "parse_go_import_meta",
]
