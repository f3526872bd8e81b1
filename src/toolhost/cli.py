from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .authorizer import CommandAuthorizer
from .config import CONFIG_PATH, ServerConfig, load_config
from .errors import AuthorizationDenied
from .server import main as server_main

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _common_options() -> argparse.ArgumentParser:
    # Shared by the top-level parser and every subcommand so the options are
    # accepted on either side of the subcommand name.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", type=Path, default=argparse.SUPPRESS, help=f"Config file (default: {CONFIG_PATH})"
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=argparse.SUPPRESS,
        help="Override the configured log level",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="toolhost",
        description="MCP tool server with interactive elicitation and allow-listed command execution.",
        parents=[common],
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "serve",
        parents=[common],
        help="Run the MCP server over stdio (default when no subcommand is given).",
    )

    allow_parser = subparsers.add_parser("allowlist", parents=[common], help="Show or test the command allow-list")
    allow_parser.add_argument("--check", metavar="COMMAND", help="Exit 0 if COMMAND would be permitted, 1 otherwise")
    allow_parser.set_defaults(func=allowlist_command)

    return parser


def configure_logging(level: int) -> None:
    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=sys.stderr)


def allowlist_command(args: argparse.Namespace, config: ServerConfig) -> int:
    authorizer = CommandAuthorizer(config.allowed_commands, block_metacharacters=config.block_metacharacters)
    if args.check is None:
        for entry in authorizer.allowed:
            print(entry)
        return 0
    try:
        authorizer.authorize(args.check)
    except AuthorizationDenied as exc:
        print(exc)
        return 1
    print(f"allowed: {args.check}")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(getattr(args, "config", None))
    log_level = getattr(args, "log_level", None)
    if log_level:
        config = replace(config, log_level=log_level)
    configure_logging(config.log_level_value)
    func = getattr(args, "func", None)
    if func is None:
        server_main(config)
        return
    sys.exit(func(args, config))


if __name__ == "__main__":
    main()
