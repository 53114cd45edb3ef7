"""
Read-only BigQuery query execution.

Every query passes ``assert_read_only`` before a job is created; the
client library is only touched after the gate approves.
"""

from __future__ import annotations

import datetime
import decimal
import logging
from typing import Any

from readgate.config import GateConfig
from readgate.sql_safety import BIGQUERY, assert_read_only

logger = logging.getLogger(__name__)

_CLIENTS: dict[str | None, Any] = {}


def _bigquery_module():
    try:
        from google.cloud import bigquery
    except ImportError:
        logger.warning(
            "google-cloud-bigquery is not installed. "
            "Run: pip install google-cloud-bigquery"
        )
        raise RuntimeError(
            "google-cloud-bigquery is required for BigQuery queries. "
            "Install it with: pip install 'gcloud-read-gate[gcp]'"
        ) from None
    return bigquery


def get_client(project: str | None = None):
    """Return a cached ``bigquery.Client`` for *project*."""
    client = _CLIENTS.get(project)
    if client is None:
        client = _bigquery_module().Client(project=project)
        _CLIENTS[project] = client
    return client


def _parameter_type(value: Any) -> str:
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, decimal.Decimal):
        return "NUMERIC"
    if isinstance(value, bytes):
        return "BYTES"
    if isinstance(value, datetime.datetime):
        return "TIMESTAMP"
    if isinstance(value, datetime.date):
        return "DATE"
    return "STRING"


def build_query_parameters(params: dict[str, Any] | None, bigquery=None) -> list:
    """Map named Python values to BigQuery query parameters."""
    if not params:
        return []
    bigquery = bigquery or _bigquery_module()

    parameters = []
    for name, value in params.items():
        if isinstance(value, (list, tuple)):
            element_type = _parameter_type(value[0]) if value else "STRING"
            parameters.append(bigquery.ArrayQueryParameter(name, element_type, list(value)))
        else:
            parameters.append(bigquery.ScalarQueryParameter(name, _parameter_type(value), value))
    return parameters


def run_read_only_query(
    sql: str,
    project: str | None = None,
    location: str | None = None,
    params: dict[str, Any] | None = None,
    maximum_bytes_billed: int | None = None,
    dry_run: bool = False,
    use_legacy_sql: bool = False,
    max_results: int | None = None,
    timeout: float | None = None,
    client=None,
    config: GateConfig | None = None,
) -> dict:
    """Run *sql* as a BigQuery job once it is proven read-only.

    Returns ``job_id``, ``location``, ``dry_run``,
    ``total_bytes_processed`` and ``rows`` (a list of dicts, empty for a
    dry run).
    """
    assert_read_only(sql, BIGQUERY)

    config = config or GateConfig()
    location = location or config.bigquery_location
    if maximum_bytes_billed is None:
        maximum_bytes_billed = config.bigquery_maximum_bytes_billed

    bigquery = _bigquery_module()
    client = client or get_client(project)

    job_config = bigquery.QueryJobConfig(
        dry_run=dry_run,
        use_legacy_sql=use_legacy_sql,
        query_parameters=build_query_parameters(params, bigquery),
    )
    if maximum_bytes_billed is not None:
        job_config.maximum_bytes_billed = maximum_bytes_billed

    job = client.query(sql, job_config=job_config, location=location)

    rows: list[dict] = []
    if not dry_run:
        result = job.result(max_results=max_results, timeout=timeout)
        rows = [dict(row.items()) for row in result]

    return {
        "job_id": job.job_id,
        "location": job.location or location,
        "dry_run": dry_run,
        "total_bytes_processed": job.total_bytes_processed,
        "rows": rows,
    }
