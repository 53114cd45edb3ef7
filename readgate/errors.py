"""
Error taxonomy for the read-only gate.

Every rejection raised by the gate is a ``GateError`` carrying a stable
``code`` string, an HTTP-style ``status_code`` and an optional ``detail``
(the detected keyword, pattern description or policy violation code).
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

INVALID_ARGUMENT = "INVALID_ARGUMENT"
FAILED_PRECONDITION = "FAILED_PRECONDITION"
GCLOUD_LINT_FAILED = "GCLOUD_LINT_FAILED"
GCLOUD_POLICY_DENIED = "GCLOUD_POLICY_DENIED"
UNSUPPORTED_IDENTITY = "UNSUPPORTED_IDENTITY"
UNAUTHENTICATED = "UNAUTHENTICATED"
GCLOUD_NOT_FOUND = "GCLOUD_NOT_FOUND"
GCLOUD_AUTH_ERROR = "GCLOUD_AUTH_ERROR"
DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"

UNKNOWN_ERROR = "UNKNOWN_ERROR"


class GateError(Exception):
    """Raised when a request is rejected by any stage of the gate."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.detail = detail

    def __repr__(self) -> str:
        return f"GateError(code={self.code!r}, status_code={self.status_code}, message={self.message!r})"
