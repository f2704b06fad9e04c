"""
Tests for the fact-store access layer.

The Databricks SQL helper is patched out so relation loading, schema
validation, and type coercion run without a live workspace connection.
"""

from __future__ import annotations

import os
import sys
from unittest.mock import patch

import pandas as pd
import pytest

# Ensure the app package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app"))

from cost_benchmarks.errors import InputSchemaError  # noqa: E402
from cost_benchmarks.services import fact_store  # noqa: E402
from cost_benchmarks.services.statistics import group_and_aggregate  # noqa: E402


# ---------------------------------------------------------------------------
# Mock data helpers (values arrive as strings from the SQL API)
# ---------------------------------------------------------------------------
def _mock_spend_rows() -> list[dict]:
    return [
        {
            "production_id": "P-001",
            "vendor_id": "V-100",
            "vendor_name": "Acme Production Services",
            "spend_category": "Equipment",
            "spend_usd": "125000.50",
            "market": "US",
            "fiscal_year": "2024",
            "fiscal_quarter": "2",
        },
        {
            "production_id": "P-002",
            "vendor_id": "V-100",
            "vendor_name": "Acme Production Services",
            "spend_category": "Equipment",
            "spend_usd": "not-a-number",
            "market": "UK",
            "fiscal_year": "2024",
            "fiscal_quarter": "3",
        },
    ]


def _mock_payroll_rows() -> list[dict]:
    return [
        {
            "transaction_id": "T-1",
            "production_id": "P-001",
            "crew_member_id": "C-1",
            "pay_period_start": "2024-01-01",
            "pay_period_end": "2024-01-14",
            "gross_pay_usd": "4200.00",
            "tax_jurisdiction": "CA",
        },
        {
            "transaction_id": "T-2",
            "production_id": "P-001",
            "crew_member_id": "C-2",
            "pay_period_start": "2024-01-01",
            "pay_period_end": "2024-01-14",
            "gross_pay_usd": "3800.00",
            "tax_jurisdiction": "CA",
        },
        {
            "transaction_id": "T-3",
            "production_id": "P-002",
            "crew_member_id": "C-1",
            "pay_period_start": "2024-02-01",
            "pay_period_end": "2024-02-14",
            "gross_pay_usd": "5000.00",
            "tax_jurisdiction": "GA",
        },
    ]


# ===========================================================================
# Schema validation and coercion
# ===========================================================================
class TestToRelation:
    """Tests for converting raw rows into typed relations."""

    def test_numeric_columns_are_coerced(self):
        frame = fact_store.to_relation(_mock_spend_rows(), fact_store.SPEND_RECORDS)
        assert frame["spend_usd"].iloc[0] == pytest.approx(125000.50)
        assert frame["fiscal_year"].tolist() == [2024, 2024]

    def test_unparseable_numbers_become_null(self):
        frame = fact_store.to_relation(_mock_spend_rows(), fact_store.SPEND_RECORDS)
        assert pd.isna(frame["spend_usd"].iloc[1])

    def test_missing_column_raises_before_computation(self):
        rows = _mock_spend_rows()
        for row in rows:
            del row["market"]
        with pytest.raises(InputSchemaError) as exc_info:
            fact_store.to_relation(rows, fact_store.SPEND_RECORDS)
        assert exc_info.value.relation == fact_store.SPEND_RECORDS
        assert exc_info.value.missing == ["market"]

    def test_empty_input_has_relation_columns(self):
        frame = fact_store.to_relation([], fact_store.PRODUCTION_CREW_RECORDS)
        assert frame.empty
        assert list(frame.columns) == fact_store.RELATION_COLUMNS[
            fact_store.PRODUCTION_CREW_RECORDS
        ]

    def test_dataframe_input_is_not_mutated(self):
        original = pd.DataFrame(_mock_spend_rows())
        fact_store.to_relation(original, fact_store.SPEND_RECORDS)
        assert original["spend_usd"].iloc[0] == "125000.50"

    def test_payroll_dates_are_parsed(self):
        frame = fact_store.to_relation(_mock_payroll_rows(), fact_store.PAYROLL_TRANSACTIONS)
        assert frame["pay_period_start"].iloc[0] == pd.Timestamp("2024-01-01")
        assert (frame["pay_period_start"] <= frame["pay_period_end"]).all()

    def test_payroll_groups_like_any_other_relation(self):
        frame = fact_store.to_relation(_mock_payroll_rows(), fact_store.PAYROLL_TRANSACTIONS)
        result = group_and_aggregate(
            frame,
            ["production_id"],
            {
                "gross_pay_usd": ("gross_pay_usd", "sum"),
                "crew_paid": ("crew_member_id", "count_distinct"),
                "first_period": ("pay_period_start", "min"),
            },
            relation=fact_store.PAYROLL_TRANSACTIONS,
        )
        assert result["production_id"].tolist() == ["P-001", "P-002"]
        assert result["gross_pay_usd"].tolist() == [8000.0, 5000.0]
        assert result["crew_paid"].tolist() == [2, 1]


# ===========================================================================
# Loaders
# ===========================================================================
class TestLoaders:
    """Tests for the SQL-backed relation loaders."""

    def test_load_spend_records_filters_by_fiscal_year(self):
        with patch.object(fact_store, "execute_sql", return_value=_mock_spend_rows()) as mock_sql:
            frame = fact_store.load_spend_records(2024)

        query = mock_sql.call_args.args[0]
        assert "fiscal_year = 2024" in query
        assert "global_spend_report" in query
        assert mock_sql.call_args.kwargs["cache_key"] == "spend:2024"
        assert len(frame) == 2

    def test_load_production_crew_records_with_lower_bound(self):
        with patch.object(fact_store, "execute_sql", return_value=[]) as mock_sql:
            frame = fact_store.load_production_crew_records(min_production_year=2023)

        query = mock_sql.call_args.args[0]
        assert "production_year >= 2023" in query
        assert "production_finance_hub" in query
        assert frame.empty

    def test_load_payroll_transactions_quotes_ids(self):
        with patch.object(fact_store, "execute_sql", return_value=_mock_payroll_rows()) as mock_sql:
            frame = fact_store.load_payroll_transactions(["P-001", "O'Brien"])

        query = mock_sql.call_args.args[0]
        assert "production_id IN ('P-001', 'O''Brien')" in query
        assert frame["gross_pay_usd"].sum() == pytest.approx(13000.0)

    def test_load_payroll_transactions_accepts_numeric_ids(self):
        with patch.object(fact_store, "execute_sql", return_value=[]) as mock_sql:
            fact_store.load_payroll_transactions([1002, "P-001", 17])

        assert "production_id IN ('1002', 'P-001', '17')" in mock_sql.call_args.args[0]
        assert mock_sql.call_args.kwargs["cache_key"] == "payroll:1002,17,P-001"

    def test_malformed_table_raises_schema_error(self):
        rows = [{"production_id": "P-001", "spend_usd": "10"}]
        with patch.object(fact_store, "execute_sql", return_value=rows):
            with pytest.raises(InputSchemaError):
                fact_store.load_spend_records(2024)
