"""Generate and maintain Bazel BUILD files from Go and proto sources."""

__version__ = "0.3.0"
