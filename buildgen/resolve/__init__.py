"""Import resolution: map import strings to build labels."""

from .external import (
    ExternalResolver,
    RemoteResolver,
    ResolveError,
    StandardImportError,
    VendoredResolver,
    import_path_to_repo_name,
)
from .resolver import Resolver, is_standard, map_expr_strings, new_external_resolver

__all__ = [
    "ExternalResolver",
    "RemoteResolver",
    "ResolveError",
    "Resolver",
    "StandardImportError",
    "VendoredResolver",
    "import_path_to_repo_name",
    "is_standard",
    "map_expr_strings",
    "new_external_resolver",
]
