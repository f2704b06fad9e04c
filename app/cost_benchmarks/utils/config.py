"""
Configuration module for the Production Cost Benchmarks service.

All settings are configurable via environment variables with sensible defaults
for Databricks Apps deployment.  Analysis defaults apply when a request does
not override them.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Unity Catalog
# ---------------------------------------------------------------------------
CATALOG_NAME: str = os.getenv("CATALOG_NAME", "finance_catalog")
SCHEMA_FACTS: str = os.getenv("SCHEMA_FACTS", "production_finance")


# Fully-qualified table helpers
def _fqn(schema: str, table: str) -> str:
    """Return a fully-qualified three-level Unity Catalog table name."""
    return f"{CATALOG_NAME}.{schema}.{table}"


# Fact tables
TABLE_SPEND: str = _fqn(
    SCHEMA_FACTS, os.getenv("TABLE_SPEND", "global_spend_report")
)
TABLE_PRODUCTION_CREW: str = _fqn(
    SCHEMA_FACTS, os.getenv("TABLE_PRODUCTION_CREW", "production_finance_hub")
)
TABLE_PAYROLL: str = _fqn(
    SCHEMA_FACTS, os.getenv("TABLE_PAYROLL", "payroll_transactions")
)

# ---------------------------------------------------------------------------
# SQL Warehouse
# ---------------------------------------------------------------------------
WAREHOUSE_ID: str = os.getenv("DATABRICKS_WAREHOUSE_ID", "your-warehouse-id")

# Fact-table scans can outlive the synchronous wait; poll until this deadline
SQL_WAIT_TIMEOUT: str = os.getenv("SQL_WAIT_TIMEOUT", "30s")
SQL_POLL_INTERVAL: float = float(os.getenv("SQL_POLL_INTERVAL", "2"))  # seconds
SQL_MAX_WAIT: float = float(os.getenv("SQL_MAX_WAIT", "600"))  # seconds

# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------
CACHE_TTL: int = int(os.getenv("CACHE_TTL", "300"))  # seconds

# ---------------------------------------------------------------------------
# Databricks connection (local dev fallback)
# ---------------------------------------------------------------------------
DATABRICKS_HOST: str = os.getenv("DATABRICKS_HOST", "")
DATABRICKS_TOKEN: str = os.getenv("DATABRICKS_TOKEN", "")

# ---------------------------------------------------------------------------
# Analysis defaults
# ---------------------------------------------------------------------------
DEFAULT_SPEND_THRESHOLD_USD: float = float(
    os.getenv("DEFAULT_SPEND_THRESHOLD_USD", "5000000")
)
DEFAULT_PRODUCTION_TYPE: str = os.getenv("DEFAULT_PRODUCTION_TYPE", "series")
DEFAULT_TREND_LOOKBACK_YEARS: int = int(os.getenv("DEFAULT_TREND_LOOKBACK_YEARS", "2"))
DEFAULT_CONCENTRATION_RISK_THRESHOLD: float = float(
    os.getenv("DEFAULT_CONCENTRATION_RISK_THRESHOLD", "0.75")
)
DEFAULT_LOWER_COST_QUANTILE: float = float(os.getenv("DEFAULT_LOWER_COST_QUANTILE", "0.25"))
DEFAULT_UPPER_COST_QUANTILE: float = float(os.getenv("DEFAULT_UPPER_COST_QUANTILE", "0.75"))

# Minimum productions in a location cohort for a valid benchmark
DEFAULT_MIN_COHORT_SIZE: int = int(os.getenv("DEFAULT_MIN_COHORT_SIZE", "3"))

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_TITLE: str = "Production Cost Benchmarks"
APP_VERSION: str = "1.0.0"
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
