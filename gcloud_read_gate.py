#!/usr/bin/env python3
"""
gcloud-read-gate — run Google Cloud reads through a read-only safety gate.

Usage:
    gcloud-read-gate run <gcloud tokens...>           Run a read-only gcloud command
    gcloud-read-gate check-sql [--spanner] <sql>      Classify a SQL query (use - for stdin)
    gcloud-read-gate check-policy <path...> [-- <args...>]
                                                      Evaluate a command path against the policy

Global options (before the command):
    --config PATH    YAML config file (default: ~/.readgate/config.yaml)

check-policy scans the path tokens together with the extra args for
forbidden keywords, exactly as ``run`` does.  A path that contains one
(for example ``check-policy run services list``) reports UNSAFE_OPERATION.
"""

from __future__ import annotations

import logging
import sys

from readgate.config import GateConfig, load_config
from readgate.display import format_sql_rejection
from readgate.errors import GateError
from readgate.pipeline import run_read_only_command
from readgate.policy import check_command_against_policy
from readgate.sql_safety import BIGQUERY, SPANNER, assert_read_only

logger = logging.getLogger(__name__)

_KNOWN_COMMANDS = ("run", "check-sql", "check-policy")

RED = "\033[31m"
BOLD_RED = "\033[1;31m"
GREEN = "\033[32m"
RESET = "\033[0m"


def _configure_logging(level: str) -> None:
    # stderr only: stdout carries command output.
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    """Dispatch to the appropriate sub-command."""
    args = list(sys.argv[1:] if argv is None else argv)

    config_path = None
    if len(args) >= 2 and args[0] == "--config":
        config_path = args[1]
        args = args[2:]
    elif args and args[0].startswith("--config="):
        config_path = args[0].split("=", 1)[1]
        args = args[1:]

    if not args or args[0] not in _KNOWN_COMMANDS:
        if args and args[0] not in ("-h", "--help"):
            print(f"Unknown command: {args[0]}", file=sys.stderr)
        print(__doc__, file=sys.stderr)
        sys.exit(2)

    try:
        config = load_config(config_path)
    except (GateError, OSError) as exc:
        print(f"{BOLD_RED}Error:{RESET} could not load config: {exc}", file=sys.stderr)
        sys.exit(2)

    _configure_logging(config.log_level)

    if args[0] == "run":
        _cmd_run(args[1:], config)
    elif args[0] == "check-sql":
        _cmd_check_sql(args[1:])
    elif args[0] == "check-policy":
        _cmd_check_policy(args[1:])


# ---------------------------------------------------------------------------
# gcloud-read-gate run
# ---------------------------------------------------------------------------

def _cmd_run(tokens: list[str], config: GateConfig) -> None:
    response = run_read_only_command(tokens, config=config)
    print(response.content)
    sys.exit(1 if response.is_error else 0)


# ---------------------------------------------------------------------------
# gcloud-read-gate check-sql
# ---------------------------------------------------------------------------

def _cmd_check_sql(args: list[str]) -> None:
    dialect = BIGQUERY
    if args and args[0] == "--spanner":
        dialect = SPANNER
        args = args[1:]

    if args == ["-"]:
        sql = sys.stdin.read()
    else:
        sql = " ".join(args)

    try:
        assert_read_only(sql, dialect)
    except GateError as exc:
        print(format_sql_rejection(exc))
        sys.exit(1)

    print(f"{GREEN}OK{RESET} read-only {dialect} query")
    sys.exit(0)


# ---------------------------------------------------------------------------
# gcloud-read-gate check-policy
# ---------------------------------------------------------------------------

def _cmd_check_policy(args: list[str]) -> None:
    if "--" in args:
        split = args.index("--")
        path_tokens, extra = args[:split], args[split + 1:]
    else:
        path_tokens, extra = args, []

    command_path = " ".join(path_tokens)
    violation = check_command_against_policy(command_path, path_tokens + extra)
    if violation is not None:
        print(f"{RED}{violation.code}{RESET}: {violation.reason}")
        sys.exit(1)

    print(f"{GREEN}OK{RESET} {command_path}")
    sys.exit(0)


if __name__ == "__main__":
    main()
