"""Read-only Spanner query execution inside a snapshot transaction."""

from __future__ import annotations

import datetime
import decimal
import logging
from typing import Any

from readgate.sql_safety import SPANNER, assert_read_only

logger = logging.getLogger(__name__)

_CLIENTS: dict[str | None, Any] = {}


def _spanner_module():
    try:
        from google.cloud import spanner
    except ImportError:
        logger.warning(
            "google-cloud-spanner is not installed. "
            "Run: pip install google-cloud-spanner"
        )
        raise RuntimeError(
            "google-cloud-spanner is required for Spanner queries. "
            "Install it with: pip install 'gcloud-read-gate[gcp]'"
        ) from None
    return spanner


def get_client(project: str | None = None):
    client = _CLIENTS.get(project)
    if client is None:
        client = _spanner_module().Client(project=project)
        _CLIENTS[project] = client
    return client


def _scalar_type(value: Any, spanner):
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return spanner.param_types.BOOL
    if isinstance(value, int):
        return spanner.param_types.INT64
    if isinstance(value, float):
        return spanner.param_types.FLOAT64
    if isinstance(value, decimal.Decimal):
        return spanner.param_types.NUMERIC
    if isinstance(value, bytes):
        return spanner.param_types.BYTES
    if isinstance(value, datetime.datetime):
        return spanner.param_types.TIMESTAMP
    if isinstance(value, datetime.date):
        return spanner.param_types.DATE
    return spanner.param_types.STRING


def _param_types(params: dict[str, Any], spanner) -> dict:
    types = {}
    for name, value in params.items():
        if isinstance(value, (list, tuple)):
            element = _scalar_type(value[0], spanner) if value else spanner.param_types.STRING
            types[name] = spanner.param_types.Array(element)
        else:
            types[name] = _scalar_type(value, spanner)
    return types


def run_read_only_query(
    instance_id: str,
    database_id: str,
    sql: str,
    project: str | None = None,
    params: dict[str, Any] | None = None,
    client=None,
) -> list[dict]:
    """Execute *sql* against a Spanner database once it is proven read-only.

    Runs in a read-only snapshot.  Returns one dict per row keyed by
    column name.
    """
    assert_read_only(sql, SPANNER)

    spanner = _spanner_module()
    client = client or get_client(project)
    database = client.instance(instance_id).database(database_id)

    with database.snapshot() as snapshot:
        kwargs = {}
        if params:
            kwargs["params"] = params
            kwargs["param_types"] = _param_types(params, spanner)
        results = snapshot.execute_sql(sql, **kwargs)
        rows = list(results)
        names = [field.name for field in results.fields]

    return [dict(zip(names, row)) for row in rows]
