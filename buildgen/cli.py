"""CLI entrypoints for buildgen commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import CONFIG_FILENAME, ConfigError, build_config, load_settings
from .emit import EMITTERS, get_emitter
from .languages import UnknownLanguageError
from .logging import configure_logging
from .orchestrator import Orchestrator
from .workspace import find_repo_root

COMMANDS = ("update", "fix")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "dirs",
        nargs="*",
        default=["."],
        help="Package directories to process (defaults to the current directory).",
    )
    parser.add_argument(
        "--repo-root",
        help="Repository root; defaults to the nearest directory containing a WORKSPACE file.",
    )
    parser.add_argument(
        "--build-file-name",
        help="Comma-separated build file names; the first is used for new files.",
    )
    parser.add_argument("--go-prefix", help="Import path of the repository root.")
    parser.add_argument(
        "--external",
        choices=("external", "vendored"),
        help="Resolve external imports to remote repositories or to the vendor directory.",
    )
    parser.add_argument(
        "--proto",
        choices=("default", "disable", "legacy"),
        help="How .proto files are handled.",
    )
    parser.add_argument(
        "--flat",
        action="store_true",
        help="Write all rules into a single build file at the repository root.",
    )
    parser.add_argument(
        "--known-import",
        action="append",
        default=[],
        help="Import prefix naming a repository root; skips discovery (repeatable).",
    )
    parser.add_argument(
        "--build-tags",
        help="Comma-separated build tags to treat as set when evaluating constraints.",
    )
    parser.add_argument(
        "--mode",
        choices=sorted(EMITTERS),
        default="fix",
        help="fix: rewrite files in place; print: write them to stdout; diff: show a unified diff.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only report warnings and errors.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write a debug-level log of the run to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildgen",
        description="Generate and maintain Bazel BUILD files for Go and proto sources.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    update_parser = subparsers.add_parser(
        "update",
        help="Create new build files or update existing ones (default).",
    )
    _add_verbose_option(update_parser, suppress_default=True)
    _add_run_options(update_parser)

    fix_parser = subparsers.add_parser(
        "fix",
        help="Like update, and also rewrite outdated rule shapes.",
    )
    _add_verbose_option(fix_parser, suppress_default=True)
    _add_run_options(fix_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for buildgen commands."""
    argv = list(sys.argv[1:] if argv is None else argv)
    first = next((arg for arg in argv if not arg.startswith("-")), None)
    if first not in COMMANDS and not {"-h", "--help"} & set(argv[:1]):
        argv.insert(0, "update")

    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=args.quiet, log_file=args.log_file)

    try:
        dirs = [Path(d).expanduser().resolve() for d in args.dirs]
        if args.repo_root:
            repo_root = Path(args.repo_root).expanduser().resolve()
        elif len(dirs) == 1:
            repo_root = find_repo_root(dirs[0])
        else:
            repo_root = find_repo_root(Path.cwd())
        settings = load_settings(repo_root / CONFIG_FILENAME)
        config = build_config(
            repo_root,
            dirs,
            settings,
            build_file_names=args.build_file_name.split(",") if args.build_file_name is not None else None,
            prefix=args.go_prefix,
            external=args.external,
            structure="flat" if args.flat else None,
            proto=args.proto,
            build_tags=args.build_tags,
            known_imports=args.known_import,
            should_fix=args.command == "fix",
        )
        emitter = get_emitter(args.mode)
        Orchestrator(emitter=emitter).run(config)
    except (ConfigError, UnknownLanguageError) as exc:
        parser.exit(1, f"buildgen: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
