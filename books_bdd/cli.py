"""CLI entry point for books-bdd.

Handles argument parsing and dispatches to resolve-url or run mode.
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path

from books_bdd.config import ConfigError, build_target_config, find_runtime_config, resolve_base_url
from books_bdd.logging_setup import configure_logging

DEFAULT_FEATURES_DIR = Path("tests") / "acceptance"

_TAG_PATTERN = re.compile(r"@([A-Za-z_][\w\-]*)")


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def tags_to_markexpr(tags: str | None) -> str | None:
    """Translate a Cucumber tag expression into a pytest marker expression.

    ``@happyPath and not @wip`` becomes ``happyPath and not wip``. Returns None
    for an empty expression.
    """
    if tags is None or not tags.strip():
        return None
    return _TAG_PATTERN.sub(r"\1", tags.strip())


@dataclass
class ResolveUrlArgs:
    """Parsed arguments for resolve-url mode."""

    base_url: str | None
    config: Path | None


@dataclass
class RunArgs:
    """Parsed arguments for run mode."""

    base_url: str | None
    config: Path | None
    tags: str | None
    features_dir: Path
    timeout: float | None
    pytest_args: list[str]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with resolve-url and run subcommands."""
    parser = argparse.ArgumentParser(
        prog="books-bdd",
        description="Behavior-driven acceptance tests for the Books HTTP API.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    # Resolve-url subcommand
    resolve_parser = subparsers.add_parser(
        "resolve-url",
        help="Show which base URL the suite would use, and where it came from",
    )
    _add_target_arguments(resolve_parser)

    # Run subcommand
    run_parser = subparsers.add_parser(
        "run",
        help="Run the acceptance scenarios against the resolved base URL",
        epilog="Arguments after '--' are passed through to pytest unchanged.",
    )
    _add_target_arguments(run_parser)
    run_parser.add_argument(
        "--tags",
        default=None,
        help="Tag expression selecting scenarios, e.g. '@happyPath and not @negative'",
    )
    run_parser.add_argument(
        "--features-dir",
        type=Path,
        default=DEFAULT_FEATURES_DIR,
        help=f"Directory holding the scenario tests (default: {DEFAULT_FEATURES_DIR})",
    )
    run_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Request timeout in seconds (overrides the config file)",
    )
    run_parser.add_argument(
        "--pytest-arg",
        action="append",
        default=[],
        dest="pytest_args",
        metavar="ARG",
        help=(
            "Extra argument passed through to pytest (can be repeated). Use "
            "--pytest-arg=-x for options, or list them after '--'"
        ),
    )

    return parser


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--base-url",
        default=None,
        help="Base URL of the Books API (highest priority)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: $BOOKS_BDD_CONFIG or ./config.yaml)",
    )


def split_passthrough(args: list[str]) -> tuple[list[str], list[str]]:
    """Split argv at the first '--' into (own arguments, arguments for pytest)."""
    if "--" not in args:
        return args, []
    index = args.index("--")
    return args[:index], args[index + 1 :]


def parse_args(args: list[str] | None = None) -> ResolveUrlArgs | RunArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    own_args, passthrough = split_passthrough(sys.argv[1:] if args is None else list(args))
    namespace = parser.parse_args(own_args)

    if namespace.command == "resolve-url":
        if passthrough:
            parser.error("resolve-url does not accept arguments after '--'")
        return ResolveUrlArgs(base_url=namespace.base_url, config=namespace.config)
    elif namespace.command == "run":
        return RunArgs(
            base_url=namespace.base_url,
            config=namespace.config,
            tags=namespace.tags,
            features_dir=namespace.features_dir,
            timeout=namespace.timeout,
            pytest_args=(namespace.pytest_args or []) + passthrough,
        )
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def dispatch(parsed: ResolveUrlArgs | RunArgs) -> int:
    """Run the mode selected by the parsed arguments."""
    if isinstance(parsed, ResolveUrlArgs):
        return run_resolve_url(parsed)
    return run_scenarios(parsed)


def main() -> int:
    """Main entry point."""
    try:
        return dispatch(parse_args())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_resolve_url(args: ResolveUrlArgs) -> int:
    """Print the resolved base URL and its source."""
    configure_logging("WARNING")
    try:
        config = find_runtime_config(args.config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    print(resolve_base_url(args.base_url, config=config))
    return 0


def build_pytest_args(args: RunArgs, base_url: str) -> list[str]:
    """Assemble the pytest command line for a live run."""
    pytest_args = [str(args.features_dir), "--live", "--api-base-url", base_url]
    if args.config is not None:
        pytest_args += ["--books-config", str(args.config)]
    if args.timeout is not None:
        pytest_args += ["--api-timeout", str(args.timeout)]
    markexpr = tags_to_markexpr(args.tags)
    if markexpr:
        pytest_args += ["-m", markexpr]
    return pytest_args + list(args.pytest_args)


def run_scenarios(args: RunArgs) -> int:
    """Run the acceptance suite live. Returns pytest's exit code."""
    try:
        target = build_target_config(args.base_url, args.config, timeout=args.timeout)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    if not args.features_dir.exists():
        print(f"Error: features directory not found: {args.features_dir}", file=sys.stderr)
        return 1

    import pytest

    print(f"Running scenarios in {args.features_dir} against {target.base_url}")
    return int(pytest.main(build_pytest_args(args, target.base_url)))


if __name__ == "__main__":
    sys.exit(main())
