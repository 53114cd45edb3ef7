"""
Thin wrappers around the gcloud CLI.

Every call is a bounded ``subprocess.run``: a missing binary raises
GCLOUD_NOT_FOUND and an expired timeout raises DEADLINE_EXCEEDED, both as
``GateError`` so callers never see raw spawn exceptions.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol

from pydantic import BaseModel, TypeAdapter, ValidationError

from readgate.config import GateConfig
from readgate.errors import (
    DEADLINE_EXCEEDED,
    GCLOUD_AUTH_ERROR,
    GCLOUD_LINT_FAILED,
    GCLOUD_NOT_FOUND,
    INVALID_ARGUMENT,
    GateError,
)

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "gcloud"


@dataclass(frozen=True)
class GcloudInvocationResult:
    code: int | None  # None when the process was killed by a signal
    stdout: str
    stderr: str


@dataclass(frozen=True)
class LintResult:
    command_path: str


# ---------------------------------------------------------------------------
# JSON schemas
# ---------------------------------------------------------------------------

class LintEntry(BaseModel):
    command_string_no_args: str
    success: bool
    error_message: Optional[str] = None
    error_type: Optional[str] = None


class AuthAccount(BaseModel):
    account: str
    status: Optional[str] = None


_LINT_OUTPUT = TypeAdapter(list[LintEntry])
_AUTH_LIST_OUTPUT = TypeAdapter(list[AuthAccount])

_GCLOUD_PREFIX_RE = re.compile(r"^gcloud\s+", re.IGNORECASE)


def _parse_json(stdout: str, adapter: TypeAdapter):
    return adapter.validate_python(json.loads(stdout if stdout.strip() else "[]"))


# ---------------------------------------------------------------------------
# Process invocation
# ---------------------------------------------------------------------------

def invoke_gcloud(
    args: list[str],
    timeout: float | None = None,
    binary: str = DEFAULT_BINARY,
) -> GcloudInvocationResult:
    """Run ``gcloud`` with *args* verbatim and capture its output.

    A non-zero exit code is returned, not raised.
    """
    try:
        completed = subprocess.run(
            [binary, *args],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise GateError(
            "The gcloud CLI is not available on this host. Install the Google Cloud CLI "
            "or make sure it is on the PATH before invoking this tool.",
            GCLOUD_NOT_FOUND,
            500,
        ) from None
    except subprocess.TimeoutExpired:
        logger.warning("gcloud %s timed out after %ss", " ".join(args[:3]), timeout)
        raise GateError(
            f"gcloud did not finish within {timeout} seconds and was terminated.",
            DEADLINE_EXCEEDED,
            504,
        ) from None

    code = completed.returncode
    return GcloudInvocationResult(
        code=code if code >= 0 else None,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


# ---------------------------------------------------------------------------
# Lint
# ---------------------------------------------------------------------------

def lint_gcloud_command(
    command: str,
    timeout: float | None = None,
    binary: str = DEFAULT_BINARY,
) -> LintResult:
    """Ask ``gcloud meta lint-gcloud-commands`` for the canonical command path.

    *command* is the command without the leading ``gcloud`` token.
    """
    result = invoke_gcloud(
        ["meta", "lint-gcloud-commands", "--command-string", f"gcloud {command}"],
        timeout=timeout,
        binary=binary,
    )

    try:
        entries = _parse_json(result.stdout, _LINT_OUTPUT)
    except (ValueError, ValidationError) as exc:
        logger.warning("Unable to parse gcloud lint output: %s", exc)
        entries = None

    if result.code != 0:
        message = None
        if entries:
            message = entries[0].error_message
        message = message or result.stderr.strip() or "gcloud lint failed unexpectedly."
        raise GateError(message, GCLOUD_LINT_FAILED, 400)

    if entries is None:
        raise GateError(
            "gcloud lint returned invalid output while validating the command.",
            GCLOUD_LINT_FAILED,
            500,
        )

    if not entries:
        raise GateError(
            "gcloud lint did not return any analysis for the provided command.",
            GCLOUD_LINT_FAILED,
            500,
        )

    entry = entries[0]
    if not entry.success:
        message = entry.error_message or "Invalid gcloud command."
        if entry.error_type:
            message = f"{entry.error_type}: {message}"
        raise GateError(message, INVALID_ARGUMENT, 400)

    command_path = _GCLOUD_PREFIX_RE.sub("", entry.command_string_no_args.strip()).strip()
    if not command_path or command_path.lower() == "gcloud":
        raise GateError(
            "Unable to determine the gcloud command path from lint results.",
            INVALID_ARGUMENT,
            400,
        )

    return LintResult(command_path=command_path)


class GcloudLinter(Protocol):
    def lint(self, command: str) -> LintResult: ...


class SubprocessLinter:
    """``GcloudLinter`` backed by the real gcloud binary."""

    def __init__(self, config: GateConfig | None = None) -> None:
        self.config = config or GateConfig()

    def lint(self, command: str) -> LintResult:
        return lint_gcloud_command(
            command,
            timeout=self.config.lint_timeout,
            binary=self.config.gcloud_binary,
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def get_active_gcloud_account(
    timeout: float | None = None,
    binary: str = DEFAULT_BINARY,
) -> str | None:
    """Return the account gcloud reports as ACTIVE, or None."""
    result = invoke_gcloud(["auth", "list", "--format=json"], timeout=timeout, binary=binary)

    if result.code != 0:
        detail = (result.stderr or result.stdout).strip()
        raise GateError(
            f"Unable to inspect gcloud authentication state (exit {result.code}). {detail}".strip(),
            GCLOUD_AUTH_ERROR,
            500,
        )

    try:
        accounts = _parse_json(result.stdout, _AUTH_LIST_OUTPUT)
    except (ValueError, ValidationError) as exc:
        logger.warning("Unable to parse gcloud auth list output: %s", exc)
        raise GateError(
            "gcloud auth list returned malformed JSON; cannot validate the active identity.",
            GCLOUD_AUTH_ERROR,
            500,
        ) from None

    for entry in accounts:
        if entry.status and entry.status.upper() == "ACTIVE":
            return entry.account
    return None
