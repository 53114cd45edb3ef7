"""
Read-only policy for gcloud command execution.

The command path comes from gcloud's own linter (flags and positional
values already stripped).  A command must end in a read-only verb and then
survive every deny table: sensitive command groups, sensitive tokens
anywhere in the path, and mutating operation keywords anywhere in the raw
arguments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from readgate.errors import GCLOUD_POLICY_DENIED, GateError

INVALID_COMMAND = "INVALID_COMMAND"
UNSAFE_VERB = "UNSAFE_VERB"
SENSITIVE_COMMAND = "SENSITIVE_COMMAND"
UNSAFE_OPERATION = "UNSAFE_OPERATION"


@dataclass(frozen=True)
class PolicyViolation:
    code: str  # INVALID_COMMAND | UNSAFE_VERB | SENSITIVE_COMMAND | UNSAFE_OPERATION
    reason: str


# ---------------------------------------------------------------------------
# Policy tables
# ---------------------------------------------------------------------------

READ_ONLY_VERBS = (
    "list",
    "lists",
    "describe",
    "get",
    "read",
    "tail",
    "check",
    "diagnose",
    "inspect",
    "lookup",
    "ls",
    "print",
    "show",
    "status",
    "verify",
    "whoami",
)

# Command groups blocked regardless of verb, across GA/alpha/beta surfaces.
STRICT_PREFIX_DENYLIST = (
    "iam",
    "alpha iam",
    "beta iam",
    "secret-manager",
    "alpha secret-manager",
    "beta secret-manager",
    "secrets",
    "kms",
    "alpha kms",
    "beta kms",
    "access-context-manager",
    "alpha access-context-manager",
    "beta access-context-manager",
    "iam service-accounts",
    "iam roles",
    "organizations policies",
    "resource-manager org-policies",
)

# Substrings matched inside each path token, so compound subcommand names
# such as "get-iam-policy" or "ssh-keys" are caught too.
SENSITIVE_TOKEN_SNIPPETS = (
    "iam",
    "secretmanager",
    "secret-manager",
    "secrets",
    "kms",
    "keymanagement",
    "accesscontext",
    "ssh",
    "scp",
    "tunnel",
    "interactive",
    "inactivate",
    "activate",
)

FORBIDDEN_OPERATION_KEYWORDS = (
    "apply",
    "attach",
    "cancel",
    "connect",
    "copy",
    "create",
    "delete",
    "deploy",
    "destroy",
    "detach",
    "disable",
    "enable",
    "export",
    "import",
    "move",
    "patch",
    "promote",
    "publish",
    "purge",
    "recreate",
    "remove",
    "reset",
    "restart",
    "resume",
    "revoke",
    "rollback",
    "run",
    "set",
    "start",
    "stop",
    "suspend",
    "truncate",
    "update",
    "upgrade",
    "write",
)

_FORBIDDEN_OPERATION_PATTERNS = tuple(
    (keyword, re.compile(rf"\b{re.escape(keyword)}\b"))
    for keyword in FORBIDDEN_OPERATION_KEYWORDS
)

_WHITESPACE_RE = re.compile(r"\s+")


def policy_table_conflicts() -> list[str]:
    """Return a description of every read-only verb that a deny table
    would also block.  Empty for a consistent set of tables."""
    conflicts: list[str] = []
    for verb in READ_ONLY_VERBS:
        if verb in FORBIDDEN_OPERATION_KEYWORDS:
            conflicts.append(f"{verb}: forbidden operation keyword")
        if any(snippet in verb for snippet in SENSITIVE_TOKEN_SNIPPETS):
            conflicts.append(f"{verb}: contains a sensitive token snippet")
        if verb in STRICT_PREFIX_DENYLIST:
            conflicts.append(f"{verb}: strict prefix")
    return conflicts


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def check_command_against_policy(
    command_path: str,
    args: list[str],
) -> PolicyViolation | None:
    """Classify a linted command path plus its raw arguments.

    Returns ``None`` when the command is approved.  No I/O.
    """
    normalized = _WHITESPACE_RE.sub(" ", command_path.strip().lower())

    if not normalized:
        return PolicyViolation(
            code=INVALID_COMMAND,
            reason="Unable to parse the gcloud command path.",
        )

    tokens = normalized.split(" ")
    verb = tokens[-1]

    if verb not in READ_ONLY_VERBS:
        return PolicyViolation(
            code=UNSAFE_VERB,
            reason=(
                f"Only read-only verbs ({', '.join(READ_ONLY_VERBS)}) are permitted. "
                f'Detected "{verb}".'
            ),
        )

    for prefix in STRICT_PREFIX_DENYLIST:
        if normalized == prefix or normalized.startswith(prefix + " "):
            return PolicyViolation(
                code=SENSITIVE_COMMAND,
                reason=f'Commands under "{prefix}" are blocked to prevent access to sensitive surfaces.',
            )

    for token in tokens:
        if any(snippet in token for snippet in SENSITIVE_TOKEN_SNIPPETS):
            return PolicyViolation(
                code=SENSITIVE_COMMAND,
                reason=f'The token "{token}" indicates a security-sensitive surface, so this command is blocked.',
            )

    # Word-boundary matching over the joined arguments can over-match a
    # keyword inside a flag value and under-match one split across tokens.
    args_text = " ".join(args).lower()
    for keyword, pattern in _FORBIDDEN_OPERATION_PATTERNS:
        if pattern.search(args_text):
            return PolicyViolation(
                code=UNSAFE_OPERATION,
                reason=(
                    f'Detected prohibited operation keyword "{keyword}". '
                    "Only read-only commands are permitted."
                ),
            )

    return None


def enforce_read_only_policy(command_path: str, args: list[str]) -> None:
    """Raise ``GateError(GCLOUD_POLICY_DENIED)`` if the policy vetoes the command."""
    violation = check_command_against_policy(command_path, args)
    if violation is not None:
        raise GateError(
            violation.reason,
            GCLOUD_POLICY_DENIED,
            403,
            detail=violation.code,
        )
