"""
Databricks SQL access for the fact store.

A single WorkspaceClient is shared per process (SDK auto-auth inside a
Databricks App, token fallback for local development).  ``execute_sql`` runs
one statement on the SQL warehouse, follows it to completion when the scan
outlasts the synchronous wait, and pages through every result chunk, since
fact-table extracts routinely exceed one chunk.  Results are cached in memory
for ``CACHE_TTL`` seconds under the caller's key.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from databricks.sdk import WorkspaceClient
from databricks.sdk.config import Config
from databricks.sdk.service.sql import StatementState

from cost_benchmarks.utils.config import (
    CACHE_TTL,
    CATALOG_NAME,
    DATABRICKS_HOST,
    DATABRICKS_TOKEN,
    SCHEMA_FACTS,
    SQL_MAX_WAIT,
    SQL_POLL_INTERVAL,
    SQL_WAIT_TIMEOUT,
    WAREHOUSE_ID,
)

logger = logging.getLogger(__name__)

_IN_FLIGHT = (StatementState.PENDING, StatementState.RUNNING)


# ---------------------------------------------------------------------------
# In-memory query cache
# ---------------------------------------------------------------------------
_cache: dict[str, list[dict[str, Any]]] = {}
_cache_time: dict[str, float] = {}


def _cache_get(key: str) -> list[dict[str, Any]] | None:
    if key in _cache and (time.time() - _cache_time.get(key, 0)) < CACHE_TTL:
        return _cache[key]
    return None


def _cache_set(key: str, rows: list[dict[str, Any]]) -> None:
    """Store *rows*, evicting every entry whose TTL has run out."""
    now = time.time()
    expired = [k for k, t in _cache_time.items() if now - t >= CACHE_TTL]
    for k in expired:
        _cache.pop(k, None)
        _cache_time.pop(k, None)
    if expired:
        logger.debug("Evicted %d expired cache entr%s", len(expired),
                     "y" if len(expired) == 1 else "ies")
    _cache[key] = rows
    _cache_time[key] = now


def invalidate_cache(prefix: str | None = None) -> int:
    """Drop cached relations and return how many entries were removed.

    With *prefix* only matching keys go, e.g. ``"spend:"`` after the spend
    report is reloaded upstream while crew extracts stay warm.
    """
    keys = [k for k in _cache if prefix is None or k.startswith(prefix)]
    for k in keys:
        _cache.pop(k, None)
        _cache_time.pop(k, None)
    logger.info("Invalidated %d cached relation(s)%s", len(keys),
                f" with prefix '{prefix}'" if prefix else "")
    return len(keys)


# ---------------------------------------------------------------------------
# Singleton client
# ---------------------------------------------------------------------------
_client: WorkspaceClient | None = None


def get_workspace_client() -> WorkspaceClient:
    """Return the process-wide WorkspaceClient, creating it on first use."""
    global _client
    if _client is None:
        config = Config(http_timeout_seconds=120)
        if DATABRICKS_TOKEN:
            logger.info("Connecting to %s with a personal access token", DATABRICKS_HOST)
            _client = WorkspaceClient(host=DATABRICKS_HOST, token=DATABRICKS_TOKEN, config=config)
        else:
            logger.info("Connecting with SDK auto-auth")
            _client = WorkspaceClient(config=config)
    return _client


# ---------------------------------------------------------------------------
# Statement execution
# ---------------------------------------------------------------------------
def _await_completion(w: WorkspaceClient, response: Any) -> Any:
    """Poll a statement still pending/running after the synchronous wait."""
    deadline = time.monotonic() + SQL_MAX_WAIT
    while response.status.state in _IN_FLIGHT:
        if time.monotonic() >= deadline:
            w.statement_execution.cancel_execution(response.statement_id)
            raise TimeoutError(
                f"Statement {response.statement_id} did not finish within {SQL_MAX_WAIT:.0f}s"
            )
        time.sleep(SQL_POLL_INTERVAL)
        response = w.statement_execution.get_statement(response.statement_id)
    return response


def _collect_rows(w: WorkspaceClient, response: Any) -> list[dict[str, Any]]:
    """Zip every result chunk with the manifest's column names."""
    columns = [col.name for col in response.manifest.schema.columns]
    rows: list[dict[str, Any]] = []

    chunk = response.result
    while chunk is not None:
        for values in chunk.data_array or []:
            rows.append(dict(zip(columns, values)))
        if chunk.next_chunk_index is None:
            break
        chunk = w.statement_execution.get_statement_result_chunk_n(
            response.statement_id, chunk.next_chunk_index
        )
    return rows


def execute_sql(
    query: str,
    *,
    cache_key: str | None = None,
    catalog: str | None = None,
    schema: str | None = None,
) -> list[dict[str, Any]]:
    """Run *query* on the SQL warehouse and return all rows.

    Parameters
    ----------
    query:
        SQL text.
    cache_key:
        When given, rows are served from / stored in the TTL cache.
    catalog / schema:
        Override the default catalog and fact schema.

    Returns
    -------
    list[dict]
        One dict per row, column name -> value.  Values arrive as strings
        (or None); the fact store coerces them.

    Raises
    ------
    RuntimeError
        The statement failed, was cancelled, or was closed.
    TimeoutError
        The statement was still running after ``SQL_MAX_WAIT`` seconds.
    """
    if cache_key:
        cached = _cache_get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key)
            return cached

    w = get_workspace_client()
    started = time.monotonic()
    response = w.statement_execution.execute_statement(
        warehouse_id=WAREHOUSE_ID,
        statement=query,
        wait_timeout=SQL_WAIT_TIMEOUT,
        catalog=catalog or CATALOG_NAME,
        schema=schema or SCHEMA_FACTS,
    )
    response = _await_completion(w, response)

    if response.status.state != StatementState.SUCCEEDED:
        error = getattr(response.status, "error", None)
        raise RuntimeError(f"SQL execution failed ({response.status.state}): {error}")

    rows = _collect_rows(w, response)
    logger.debug("Statement %s returned %d row(s) in %.1fs",
                 response.statement_id, len(rows), time.monotonic() - started)

    if cache_key:
        _cache_set(cache_key, rows)
    return rows
