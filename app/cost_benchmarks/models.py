"""
Pydantic data models for the Production Cost Benchmarks API.

The run configuration and every response row schema live here so they can be
shared across routers, services, and tests.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from cost_benchmarks.errors import InvalidConfiguration
from cost_benchmarks.utils.config import (
    DEFAULT_CONCENTRATION_RISK_THRESHOLD,
    DEFAULT_LOWER_COST_QUANTILE,
    DEFAULT_MIN_COHORT_SIZE,
    DEFAULT_PRODUCTION_TYPE,
    DEFAULT_SPEND_THRESHOLD_USD,
    DEFAULT_TREND_LOOKBACK_YEARS,
    DEFAULT_UPPER_COST_QUANTILE,
)


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------
class AnalysisConfig(BaseModel):
    """Parameters for a single analysis run.

    ``fiscal_year`` doubles as the production year for the location
    benchmark and as the last year of the crew trend window.
    """

    model_config = {"frozen": True}

    fiscal_year: int = Field(..., ge=1900, le=2200)
    spend_threshold_usd: float = Field(DEFAULT_SPEND_THRESHOLD_USD, ge=0.0)
    production_type: str = Field(DEFAULT_PRODUCTION_TYPE, min_length=1)
    trend_lookback_years: int = Field(DEFAULT_TREND_LOOKBACK_YEARS, ge=1)
    concentration_risk_threshold: float = Field(
        DEFAULT_CONCENTRATION_RISK_THRESHOLD, ge=0.0, le=1.0
    )
    cost_tier_quantiles: tuple[float, float] = (
        DEFAULT_LOWER_COST_QUANTILE,
        DEFAULT_UPPER_COST_QUANTILE,
    )
    min_cohort_size: int = Field(DEFAULT_MIN_COHORT_SIZE, ge=1)

    @field_validator("cost_tier_quantiles")
    @classmethod
    def _quantiles_in_unit_interval(cls, value: tuple[float, float]) -> tuple[float, float]:
        lower, upper = value
        if not (0.0 <= lower <= 1.0 and 0.0 <= upper <= 1.0):
            raise ValueError("cost tier quantiles must lie in [0, 1]")
        return value

    @model_validator(mode="after")
    def _quantiles_ordered(self) -> "AnalysisConfig":
        lower, upper = self.cost_tier_quantiles
        if lower > upper:
            raise ValueError("lower cost tier quantile exceeds upper quantile")
        return self

    @property
    def trend_start_year(self) -> int:
        """First production year included in the crew trend window."""
        return self.fiscal_year - self.trend_lookback_years + 1


def build_config(**params) -> AnalysisConfig:
    """Validate run parameters, raising ``InvalidConfiguration`` on failure.

    ``None`` values are dropped so callers can pass optional query
    parameters straight through and fall back to the defaults.
    """
    supplied = {k: v for k, v in params.items() if v is not None}
    try:
        return AnalysisConfig(**supplied)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidConfiguration(details) from exc


# ---------------------------------------------------------------------------
# Vendor concentration
# ---------------------------------------------------------------------------
class VendorConcentration(BaseModel):
    """One qualifying vendor with diversification metrics."""

    vendor_id: str
    vendor_name: str | None = None
    spend_millions_usd: float
    total_spend_usd: float
    markets_active_in: int
    spend_category_diversity: int
    total_production_count: int
    distinct_production_count: int
    top_market_share: float | None = Field(None, ge=0.0, le=1.0)
    pct_spend_in_top_market: float | None = None
    geographic_risk_flag: str


# ---------------------------------------------------------------------------
# Location benchmarks
# ---------------------------------------------------------------------------
class LocationBenchmark(BaseModel):
    """Cost benchmark for one (location, production type) cohort."""

    production_location: str
    production_type: str
    production_count: int
    avg_crew_size: float | None = None
    avg_total_cost_per_production: float | None = None
    avg_crew_payroll_per_production: float | None = None
    avg_vendor_spend_per_production: float | None = None
    avg_cost_per_crew_member: float | None = None
    pct_cost_is_crew: float | None = None
    cost_tier: str | None = None


# ---------------------------------------------------------------------------
# Crew trends
# ---------------------------------------------------------------------------
class CrewTrendPoint(BaseModel):
    """Crew metrics for one category in one fiscal quarter."""

    time_period: str
    fiscal_year: int
    fiscal_quarter: int
    crew_category: str
    total_crew: int
    total_productions: int
    crew_per_production: float | None = None
    payroll_millions_usd: float | None = None
    qoq_change_pct: float | None = None


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------
class VendorConcentrationResponse(BaseModel):
    count: int
    parameters: dict
    data: list[VendorConcentration]


class LocationBenchmarkResponse(BaseModel):
    count: int
    parameters: dict
    data: list[LocationBenchmark]


class CrewTrendResponse(BaseModel):
    count: int
    parameters: dict
    data: list[CrewTrendPoint]
