"""
Markdown formatter for gate responses.

All public functions return strings; the caller decides where to print
them.  Command output is echoed verbatim inside fenced blocks.
"""

from __future__ import annotations

from typing import Any

from readgate.errors import UNKNOWN_ERROR, GateError


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Retrieve *key* from a dict **or** an attribute on a dataclass / object."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _fenced(title: str, body: str) -> list[str]:
    return ["", f"## {title}", "```", body, "```"]


def format_command_response(display_command: str, account: str, result: Any) -> str:
    """Render the output of an approved gcloud command."""
    code = _get(result, "code")
    stdout = (_get(result, "stdout") or "").strip()
    stderr = (_get(result, "stderr") or "").strip()

    lines = [
        "# gcloud command output",
        "",
        f"- Command: `{display_command}`",
        f"- Service account: `{account}`",
        f"- Exit code: `{code if code is not None else 'unknown'}`",
    ]

    if stdout:
        lines.extend(_fenced("STDOUT", stdout))
    else:
        lines.extend(["", "## STDOUT", "_(no output)_"])

    if stderr:
        lines.extend(_fenced("STDERR", stderr))

    return "\n".join(lines)


def format_rejection(error: BaseException) -> str:
    """Render a structured rejection.  Never includes a traceback."""
    code = error.code if isinstance(error, GateError) else UNKNOWN_ERROR
    message = str(error) or "Unknown error"

    lines = [
        "# gcloud command rejected",
        "",
        f"- Error code: `{code}`",
    ]
    if isinstance(error, GateError) and error.detail and error.detail not in message:
        lines.append(f"- Violation: `{error.detail}`")
    lines.append(f"- Detail: {message}")
    return "\n".join(lines)


def format_sql_rejection(error: GateError) -> str:
    lines = [
        "# SQL query rejected",
        "",
        f"- Error code: `{error.code}`",
        f"- Detail: {error.message}",
    ]
    return "\n".join(lines)
