"""``xplat-auth`` command line entry point.

Subcommand modules provide ``COMMAND``, ``register_parser`` and ``run``. Failures
they raise as TokenCacheError or ValueError end up here as ``Error: ...`` on
stderr and exit status 1.
"""

from __future__ import annotations

import argparse
import logging
import sys
from types import ModuleType
from typing import Optional

from xplat.auth.cli import tokens
from xplat.auth.errors import TokenCacheError

log = logging.getLogger(__name__)

COMMANDS: dict[str, ModuleType] = {module.COMMAND: module for module in (tokens,)}

_handler: Optional[logging.Handler] = None


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xplat-auth",
        description="Inspect and maintain the cached access tokens",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    for module in COMMANDS.values():
        module.register_parser(subparsers)
    return parser


def _configure_logging(verbose: bool) -> None:
    global _handler
    logger = logging.getLogger("xplat.auth")
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(_handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def main(args: list[str] | None = None) -> int:
    parser = create_parser()
    parsed = parser.parse_args(args)
    _configure_logging(parsed.verbose)

    command = COMMANDS.get(parsed.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        return command.run(parsed)
    except (TokenCacheError, ValueError) as e:
        log.debug("%s command failed", parsed.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
