# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for ndengine.

Every operation is a subcommand of `ndengine`. The global options
(--config, --log-level, --engine, --dry-run) are inherited by every
subcommand through argparse's parent parser mechanism.

Usage:
    ndengine <subcommand> [options]
    ndengine info
    ndengine resolve --engine onnxruntime
    ndengine fetch --config configs/engine.yaml
"""

import argparse
import sys
from typing import Optional

from ndengine.cli.commands import handle_fetch, handle_info, handle_load, handle_resolve
from ndengine.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """Parent parser with the options every subcommand accepts."""
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level.",
    )
    parent.add_argument(
        "--engine",
        type=str,
        default=None,
        help="Engine to operate on (overrides the config's engine.name).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Resolve and report without downloading or loading anything.",
    )
    return parent


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    commands = [
        ("info", "Display system and detected platform info.", handle_info),
        ("resolve", "Show the engine build and cache entry that would be used.", handle_resolve),
        ("fetch", "Populate the native library cache without loading.", handle_fetch),
        ("load", "Fetch if needed and load the native engine.", handle_load),
    ]

    for name, help_text, handler in commands:
        parser = subparsers.add_parser(name, parents=[parent], help=help_text)
        parser.set_defaults(func=handler)


def main(argv: Optional[list[str]] = None) -> None:
    """
    Main CLI entrypoint, what pyproject.toml's [project.scripts] points to.

    With no subcommand, help is shown and the exit code is USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="ndengine",
        description="ndengine: native engine resolver, fetcher and loader.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args(argv)

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
