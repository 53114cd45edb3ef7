"""
Lint-then-execute pipeline for read-only gcloud commands.

A request moves through fixed stages:

    normalize -> identity -> lint -> policy -> execute -> format

Any ``GateError`` ends the request with a rejection response and no later
stage runs.  The policy stage sees the linted command path, never a path
re-derived from the raw tokens.  A non-zero exit from the executed
command is part of a normal response, not a rejection.
"""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from readgate.config import GateConfig
from readgate.display import format_command_response, format_rejection
from readgate.errors import INVALID_ARGUMENT, UNKNOWN_ERROR, GateError
from readgate.gcloud import (
    GcloudInvocationResult,
    GcloudLinter,
    SubprocessLinter,
    get_active_gcloud_account,
    invoke_gcloud,
)
from readgate.identity import AccountLookup, require_service_account_identity
from readgate.policy import enforce_read_only_policy

logger = logging.getLogger(__name__)

Executor = Callable[[list[str]], GcloudInvocationResult]


class Stage(str, enum.Enum):
    NORMALIZE = "normalize"
    IDENTITY = "identity"
    LINT = "lint"
    POLICY = "policy"
    EXECUTE = "execute"
    FORMAT = "format"


@dataclass(frozen=True)
class NormalizedCommand:
    args: list[str]  # never includes the leading "gcloud"
    display: str


@dataclass(frozen=True)
class CommandResponse:
    content: str
    is_error: bool
    stage: Stage
    code: str | None = None  # rejection code; None when the pipeline completed
    exit_code: int | None = None


def normalize_args(raw_args: list[str]) -> NormalizedCommand:
    """Trim tokens, drop blanks and one optional leading ``gcloud``."""
    trimmed = [token.strip() for token in raw_args if token and token.strip()]

    if not trimmed:
        raise GateError(
            "Provide at least one argument after 'gcloud'.",
            INVALID_ARGUMENT,
            400,
        )

    if trimmed[0].lower() == "gcloud":
        trimmed = trimmed[1:]

    if not trimmed:
        raise GateError(
            "No gcloud subcommand supplied. Example: ['gcloud', 'projects', 'list'].",
            INVALID_ARGUMENT,
            400,
        )

    return NormalizedCommand(args=trimmed, display="gcloud " + " ".join(trimmed))


class ReadOnlyCommandRunner:
    """Runs gcloud commands only after every gate stage approves them.

    The linter, identity lookup and executor are pluggable so the gate can
    be exercised without spawning processes.
    """

    def __init__(
        self,
        config: GateConfig | None = None,
        linter: GcloudLinter | None = None,
        account_lookup: AccountLookup | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config or GateConfig()
        self.linter = linter or SubprocessLinter(self.config)
        self.account_lookup = account_lookup or self._active_account
        self.executor = executor or self._execute

    def _active_account(self) -> str | None:
        return get_active_gcloud_account(
            timeout=self.config.auth_timeout,
            binary=self.config.gcloud_binary,
        )

    def _execute(self, args: list[str]) -> GcloudInvocationResult:
        return invoke_gcloud(
            args,
            timeout=self.config.command_timeout,
            binary=self.config.gcloud_binary,
        )

    def run(self, tokens: list[str]) -> CommandResponse:
        stage = Stage.NORMALIZE
        command_text = " ".join(tokens)
        try:
            normalized = normalize_args(tokens)
            command_text = normalized.display

            stage = Stage.IDENTITY
            account = require_service_account_identity(normalized.args, self.account_lookup)

            stage = Stage.LINT
            lint_result = self.linter.lint(" ".join(normalized.args))

            stage = Stage.POLICY
            enforce_read_only_policy(lint_result.command_path, normalized.args)

            stage = Stage.EXECUTE
            logger.info("Executing read-only gcloud command: %s", normalized.display)
            execution = self.executor(normalized.args)

            stage = Stage.FORMAT
            content = format_command_response(normalized.display, account, execution)
        except GateError as exc:
            logger.warning("Blocked gcloud command at %s stage: [%s] %s", stage.value, exc.code, exc.message)
            self._audit(command_text, "rejected", stage, code=exc.code)
            return CommandResponse(
                content=format_rejection(exc),
                is_error=True,
                stage=stage,
                code=exc.code,
            )
        except Exception as exc:
            logger.exception("Unexpected failure at %s stage for %s", stage.value, command_text)
            self._audit(command_text, "rejected", stage, code=UNKNOWN_ERROR)
            return CommandResponse(
                content=format_rejection(exc),
                is_error=True,
                stage=stage,
                code=UNKNOWN_ERROR,
            )

        self._audit(command_text, "executed", stage, exit_code=execution.code)
        return CommandResponse(
            content=content,
            is_error=execution.code != 0,
            stage=stage,
            exit_code=execution.code,
        )

    def _audit(
        self,
        command: str,
        outcome: str,
        stage: Stage,
        code: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Append one JSON line to the audit log, when one is configured."""
        path = self.config.audit_log
        if not path:
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "command": command,
            "outcome": outcome,
            "stage": stage.value,
            "code": code,
            "exit_code": exit_code,
        }
        try:
            path = os.path.expanduser(path)
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as exc:
            logger.warning("Could not write audit log %s: %s", path, exc)


def run_read_only_command(
    tokens: list[str],
    config: GateConfig | None = None,
    linter: GcloudLinter | None = None,
    account_lookup: AccountLookup | None = None,
    executor: Executor | None = None,
) -> CommandResponse:
    """Entry point for the read-only gcloud command operation."""
    runner = ReadOnlyCommandRunner(
        config=config,
        linter=linter,
        account_lookup=account_lookup,
        executor=executor,
    )
    return runner.run(tokens)
