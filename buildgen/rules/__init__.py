"""Rule generation for selected packages."""

from .generator import Generator, platform_strings_expr

__all__ = ["Generator", "platform_strings_expr"]
