"""Source classifier plugins and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable

from .base import SourceClassifier
from .go import GoClassifier

_ENTRY_POINT_GROUP = "buildgen.languages"


class UnknownLanguageError(ValueError):
    """No classifier is registered under the requested language name."""


_BUILTIN_FACTORIES: Dict[str, Callable[[], SourceClassifier]] = {
    "go": GoClassifier,
}


def available_languages() -> Dict[str, Callable[[], SourceClassifier]]:
    """Return classifier factories keyed by language name, built-ins first."""
    factories: Dict[str, Callable[[], SourceClassifier]] = dict(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        key = entry.name.lower()
        if key in factories:
            continue

        def _factory(entry: metadata.EntryPoint = entry) -> SourceClassifier:
            try:
                loaded = entry.load()
            except Exception as exc:  # pragma: no cover - depends on installed plugins
                raise RuntimeError(f"Failed to load language entry point '{entry.name}': {exc}") from exc
            return _coerce_classifier(loaded)

        factories[key] = _factory
    return factories


def get_classifier(name: str) -> SourceClassifier:
    """Instantiate the classifier registered under ``name``."""
    factories = available_languages()
    factory = factories.get(name.lower())
    if factory is None:
        known = ", ".join(sorted(factories))
        raise UnknownLanguageError(f"Unknown language {name!r}; available: {known}")
    instance = factory()
    if not isinstance(instance, SourceClassifier):
        raise TypeError(f"Language factory for '{name}' did not return a SourceClassifier instance")
    return instance


def _coerce_classifier(obj: object) -> SourceClassifier:
    if isinstance(obj, SourceClassifier):
        return obj
    if isinstance(obj, type) and issubclass(obj, SourceClassifier):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, SourceClassifier):
            return instance
    raise TypeError("Language entry point must be a SourceClassifier subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "GoClassifier",
    "SourceClassifier",
    "UnknownLanguageError",
    "available_languages",
    "get_classifier",
]
