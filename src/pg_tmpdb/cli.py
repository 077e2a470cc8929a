# SPDX-FileCopyrightText: 2025 Blackcat Informatics® Inc.
# SPDX-License-Identifier: MIT

"""Run a command with a throwaway PostgreSQL instance exported via PG* variables."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import harness
from .config import Settings
from .errors import HarnessError, UsageError
from .log import configure_logging

EPILOG = """\
environment passed to the command:
  PGDATA PGHOST PGUSER PGDATABASE
  TMPDB_TEST_CONNECTION TMPDB_TEST_SCHEMA TMPDB_TEST_ANON_ROLE TMPDB_WORKSPACE

harness environment:
  TMPDB_PRESERVE=1       keep the workspace and print its path
  TMPDB_FIXTURE_FILE     SQL file included after the built-in fixtures
  TMPDB_READY_TIMEOUT    give up waiting for the server after N seconds
  TMPDB_PG_BINDIR        directory containing initdb, pg_ctl, pg_isready, psql
"""


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="with-tmp-db",
        description=__doc__,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--preserve", action="store_true", default=None, help="Keep the workspace after exit")
    parser.add_argument("--fixture", type=Path, help="Fixture SQL file to include")
    parser.add_argument("--ready-timeout", type=float, help="Seconds to wait for the server (default: forever)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every tool invocation")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments to run")
    return parser


def parse_args(argv: List[str]) -> argparse.Namespace:
    args = build_parser().parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.command:
        raise UsageError("missing command")
    if args.ready_timeout is not None and args.ready_timeout <= 0:
        raise UsageError("--ready-timeout must be greater than zero")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        args = parse_args(argv)
        settings = Settings.from_env().with_overrides(
            preserve=args.preserve,
            fixture_file=args.fixture,
            ready_timeout=args.ready_timeout,
        )
    except UsageError as exc:
        build_parser().print_usage(sys.stderr)
        print(f"[tmpdb] {exc}", file=sys.stderr)
        return exc.exit_code

    configure_logging(verbose=args.verbose)
    try:
        return harness.run(args.command, settings)
    except HarnessError as exc:
        print(f"[tmpdb] {exc}", file=sys.stderr)
        return exc.exit_code


if __name__ == "__main__":  # pragma: no cover - exercised via callers
    sys.exit(main())
