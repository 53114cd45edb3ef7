"""
Service account enforcement for gcloud commands.

Commands only run as a non-human identity: an explicitly impersonated
service account, an explicit ``--account`` that is one, or an active
gcloud account that is one.
"""

from __future__ import annotations

from typing import Callable, Optional

from readgate.errors import UNAUTHENTICATED, UNSUPPORTED_IDENTITY, GateError
from readgate.gcloud import get_active_gcloud_account

SERVICE_ACCOUNT_SUFFIX = ".gserviceaccount.com"
IMPERSONATE_FLAG = "--impersonate-service-account"
ACCOUNT_FLAG = "--account"

AccountLookup = Callable[[], Optional[str]]


def is_service_account_email(value: str | None) -> bool:
    return isinstance(value, str) and value.strip().lower().endswith(SERVICE_ACCOUNT_SUFFIX)


def _flag_value(args: list[str], flag: str) -> str | None:
    for i, token in enumerate(args):
        if token.startswith(flag + "="):
            return token[len(flag) + 1:]
        if token == flag:
            return args[i + 1] if i + 1 < len(args) else ""
    return None


def extract_impersonated_service_account(args: list[str]) -> str | None:
    """Return the impersonation flag value, ``""`` if the flag has no value,
    or None if the flag is absent."""
    return _flag_value(args, IMPERSONATE_FLAG)


def extract_account_override(args: list[str]) -> str | None:
    """Return the ``--account`` value, ``""`` if the flag has no value, or
    None if the flag is absent."""
    return _flag_value(args, ACCOUNT_FLAG)


def require_service_account_identity(
    args: list[str],
    account_lookup: AccountLookup | None = None,
) -> str:
    """Return the identity the command will run as, or raise ``GateError``.

    An explicit ``--account`` must be a service account even when
    impersonation is also requested.  An impersonated service account
    takes precedence; otherwise ``--account`` replaces the active gcloud
    account, which is then never looked up.
    """
    override = extract_account_override(args)
    if override is not None and not is_service_account_email(override):
        raise GateError(
            f'Only service accounts may be passed to {ACCOUNT_FLAG}. "{override}" is not a service account.',
            UNSUPPORTED_IDENTITY,
            403,
        )

    impersonated = extract_impersonated_service_account(args)
    if impersonated is not None:
        # Every account in a delegation chain must be a service account.
        chain = [part.strip() for part in impersonated.split(",")]
        if not impersonated.strip() or not all(is_service_account_email(p) for p in chain):
            raise GateError(
                f'Only service account impersonation is permitted. "{impersonated}" is not a service account.',
                UNSUPPORTED_IDENTITY,
                403,
            )
        return impersonated

    if override is not None:
        return override.strip()

    if account_lookup is None:
        account_lookup = get_active_gcloud_account
    active_account = account_lookup()
    if not active_account:
        raise GateError(
            "gcloud has no active account. Activate or impersonate a service account "
            "(for example via `gcloud config set auth/impersonate_service_account <sa-email>`) "
            "before invoking this tool.",
            UNAUTHENTICATED,
            401,
        )

    if not is_service_account_email(active_account):
        raise GateError(
            f'Active gcloud account "{active_account}" is not a service account. '
            "Configure impersonation or ADC credentials for a service account to continue.",
            UNSUPPORTED_IDENTITY,
            403,
        )

    return active_account
