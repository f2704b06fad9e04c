"""
Fact-store access layer.

Reads the three fact relations (spend, production crew, payroll) from Unity
Catalog through the cached ``execute_sql`` helper and turns the raw rows into
validated, type-coerced pandas DataFrames.  The SQL Statement Execution API
returns every value as a string, so numeric and date columns are coerced
here; unparseable values become null rather than failing the run.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import pandas as pd

from cost_benchmarks.services.statistics import require_columns
from cost_benchmarks.utils.config import (
    TABLE_PAYROLL,
    TABLE_PRODUCTION_CREW,
    TABLE_SPEND,
)
from cost_benchmarks.utils.databricks_client import execute_sql

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Relation schemas
# ---------------------------------------------------------------------------
SPEND_RECORDS = "spend_records"
PRODUCTION_CREW_RECORDS = "production_crew_records"
PAYROLL_TRANSACTIONS = "payroll_transactions"

RELATION_COLUMNS: dict[str, list[str]] = {
    SPEND_RECORDS: [
        "production_id",
        "vendor_id",
        "vendor_name",
        "spend_category",
        "spend_usd",
        "market",
        "fiscal_year",
        "fiscal_quarter",
    ],
    PRODUCTION_CREW_RECORDS: [
        "production_id",
        "production_title",
        "production_type",
        "production_location",
        "crew_member_id",
        "crew_role",
        "crew_payroll_usd",
        "vendor_spend_usd",
        "production_year",
        "fiscal_year",
        "fiscal_quarter",
    ],
    PAYROLL_TRANSACTIONS: [
        "transaction_id",
        "production_id",
        "crew_member_id",
        "pay_period_start",
        "pay_period_end",
        "gross_pay_usd",
        "tax_jurisdiction",
    ],
}

_NUMERIC_COLUMNS: dict[str, list[str]] = {
    SPEND_RECORDS: ["spend_usd", "fiscal_year", "fiscal_quarter"],
    PRODUCTION_CREW_RECORDS: [
        "crew_payroll_usd",
        "vendor_spend_usd",
        "production_year",
        "fiscal_year",
        "fiscal_quarter",
    ],
    PAYROLL_TRANSACTIONS: ["gross_pay_usd"],
}

_DATE_COLUMNS: dict[str, list[str]] = {
    PAYROLL_TRANSACTIONS: ["pay_period_start", "pay_period_end"],
}

_TABLES = {
    SPEND_RECORDS: TABLE_SPEND,
    PRODUCTION_CREW_RECORDS: TABLE_PRODUCTION_CREW,
    PAYROLL_TRANSACTIONS: TABLE_PAYROLL,
}


# ---------------------------------------------------------------------------
# Validation / coercion
# ---------------------------------------------------------------------------
def validate_columns(frame: pd.DataFrame, relation: str) -> None:
    """Raise ``InputSchemaError`` if *frame* lacks a column of *relation*."""
    require_columns(frame, RELATION_COLUMNS[relation], relation)


def to_relation(
    rows: pd.DataFrame | Iterable[Mapping[str, Any]],
    relation: str,
) -> pd.DataFrame:
    """Convert raw rows into a validated, type-coerced relation.

    Parameters
    ----------
    rows:
        A DataFrame or an iterable of column -> value mappings.
    relation:
        One of ``SPEND_RECORDS``, ``PRODUCTION_CREW_RECORDS`` or
        ``PAYROLL_TRANSACTIONS``.

    Returns
    -------
    DataFrame
        A copy of the input with numeric and date columns coerced.  Extra
        columns are kept.  An empty input yields an empty frame carrying the
        relation's columns.

    Raises
    ------
    InputSchemaError
        If a required column is missing from a non-empty input.
    """
    if isinstance(rows, pd.DataFrame):
        frame = rows.copy()
    else:
        records = list(rows)
        if not records:
            frame = pd.DataFrame(columns=RELATION_COLUMNS[relation])
        else:
            frame = pd.DataFrame.from_records(records)

    validate_columns(frame, relation)

    for col in _NUMERIC_COLUMNS.get(relation, []):
        frame[col] = pd.to_numeric(frame[col], errors="coerce")
    for col in _DATE_COLUMNS.get(relation, []):
        frame[col] = pd.to_datetime(frame[col], errors="coerce")

    return frame


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
def _load(relation: str, where_clauses: list[str], cache_key: str) -> pd.DataFrame:
    cols = ", ".join(RELATION_COLUMNS[relation])
    where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
    query = f"""
        SELECT {cols}
        FROM {_TABLES[relation]}
        {where_sql}
    """
    rows = execute_sql(query, cache_key=cache_key)
    logger.info("Loaded %d row(s) from %s", len(rows), _TABLES[relation])
    return to_relation(rows, relation)


def load_spend_records(fiscal_year: int | None = None) -> pd.DataFrame:
    """Return spend records, optionally pre-filtered to one fiscal year."""
    where_clauses: list[str] = []
    if fiscal_year is not None:
        where_clauses.append(f"fiscal_year = {int(fiscal_year)}")
    return _load(SPEND_RECORDS, where_clauses, f"spend:{fiscal_year}")


def load_production_crew_records(
    production_year: int | None = None,
    min_production_year: int | None = None,
) -> pd.DataFrame:
    """Return production/crew records.

    Parameters
    ----------
    production_year:
        Restrict to a single production year.
    min_production_year:
        Restrict to production years on or after this value.
    """
    where_clauses: list[str] = []
    if production_year is not None:
        where_clauses.append(f"production_year = {int(production_year)}")
    if min_production_year is not None:
        where_clauses.append(f"production_year >= {int(min_production_year)}")
    return _load(
        PRODUCTION_CREW_RECORDS,
        where_clauses,
        f"production_crew:{production_year}:{min_production_year}",
    )


def load_payroll_transactions(
    production_ids: list[str] | None = None,
) -> pd.DataFrame:
    """Return payroll transactions, optionally for a set of productions."""
    where_clauses: list[str] = []
    if production_ids:
        id_list = ", ".join("'" + str(pid).replace("'", "''") + "'" for pid in production_ids)
        where_clauses.append(f"production_id IN ({id_list})")
    cache_key = f"payroll:{','.join(sorted(str(pid) for pid in production_ids or []))}"
    return _load(PAYROLL_TRANSACTIONS, where_clauses, cache_key)
