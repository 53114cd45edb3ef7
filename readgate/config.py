"""Configuration for the read-only gate: YAML file plus environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from readgate.errors import INVALID_ARGUMENT, GateError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".readgate"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"

_TIMEOUT_FIELDS = ("lint_timeout", "auth_timeout", "command_timeout")

# field name -> environment variable
_ENV_OVERRIDES = {
    "gcloud_binary": "READGATE_GCLOUD_BIN",
    "lint_timeout": "READGATE_LINT_TIMEOUT",
    "auth_timeout": "READGATE_AUTH_TIMEOUT",
    "command_timeout": "READGATE_COMMAND_TIMEOUT",
    "log_level": "READGATE_LOG_LEVEL",
    "audit_log": "READGATE_AUDIT_LOG",
    "bigquery_location": "BIGQUERY_LOCATION",
    "bigquery_maximum_bytes_billed": "READGATE_BQ_MAX_BYTES_BILLED",
}


@dataclass(frozen=True)
class GateConfig:
    """Settings shared by the gcloud pipeline and the query wrappers.

    Every subprocess call is bounded by one of the timeouts (seconds).
    """

    gcloud_binary: str = "gcloud"
    lint_timeout: float = 30.0
    auth_timeout: float = 15.0
    command_timeout: float = 120.0
    log_level: str = "WARNING"
    audit_log: str | None = None
    bigquery_location: str | None = None
    bigquery_maximum_bytes_billed: int | None = None


def _coerce(name: str, value):
    if value is None or value == "":
        if name in _TIMEOUT_FIELDS or name == "gcloud_binary":
            raise GateError(f"Config value {name} cannot be empty.", INVALID_ARGUMENT, 400)
        return None

    if name in _TIMEOUT_FIELDS:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise GateError(
                f"Config value {name} must be a number of seconds, got {value!r}.",
                INVALID_ARGUMENT,
                400,
            ) from None
        if number <= 0:
            raise GateError(
                f"Config value {name} must be positive, got {value!r}.",
                INVALID_ARGUMENT,
                400,
            )
        return number

    if name == "bigquery_maximum_bytes_billed":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise GateError(
                f"Config value {name} must be an integer, got {value!r}.",
                INVALID_ARGUMENT,
                400,
            ) from None

    if name == "log_level":
        return str(value).upper()

    return str(value)


def _read_config_file(path: Path) -> dict:
    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise GateError(
            f"Config file {path} must contain a YAML mapping.",
            INVALID_ARGUMENT,
            400,
        )
    return data


def load_config(path: str | os.PathLike | None = None) -> GateConfig:
    """Build a ``GateConfig`` from a YAML file and the environment.

    File resolution: *path*, then ``$READGATE_CONFIG``, then
    ``~/.readgate/config.yaml`` when it exists.  Environment variables
    override file values.
    """
    if path is None:
        env_path = os.environ.get("READGATE_CONFIG")
        if env_path:
            path = env_path
        elif DEFAULT_CONFIG_FILE.exists():
            path = DEFAULT_CONFIG_FILE

    known = {f.name for f in fields(GateConfig)}
    values: dict = {}

    if path is not None:
        for key, value in _read_config_file(Path(path)).items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            values[key] = _coerce(key, value)

    for name, env_var in _ENV_OVERRIDES.items():
        if env_var in os.environ:
            values[name] = _coerce(name, os.environ[env_var])

    return replace(GateConfig(), **values)
