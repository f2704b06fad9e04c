"""
Location cost benchmarking.

Benchmarks production locations by cost per crew member and tiers each
location against the other locations producing the same type of show.

Costs are first rolled up per production (crew payroll plus vendor spend),
then averaged per (location, production type) cohort.  Cost per crew member
is the average of the per-production ratios, not the ratio of the averages;
the two diverge when production sizes are skewed, so readers comparing
locations with very different crew sizes should treat the figure as a
typical-production benchmark.

Cohorts with fewer than ``min_cohort_size`` productions are dropped before
tiering so that thin samples neither receive a tier nor shift the quantiles
of the remaining locations.
"""

from __future__ import annotations

import logging

import pandas as pd

from cost_benchmarks.models import AnalysisConfig, LocationBenchmark
from cost_benchmarks.services.fact_store import PRODUCTION_CREW_RECORDS, to_relation
from cost_benchmarks.services.statistics import (
    cohort_quantile_classify,
    group_and_aggregate,
    safe_divide,
)
from cost_benchmarks.utils.formatting import int_or_zero, round_or_none, str_or_none

logger = logging.getLogger(__name__)

HIGH_COST = "High Cost"
AVERAGE_COST = "Average Cost"
LOW_COST = "Low Cost"

_PRODUCTION_KEYS = [
    "production_id",
    "production_title",
    "production_type",
    "production_location",
    "production_year",
]

RESULT_COLUMNS = [
    "production_location",
    "production_type",
    "production_count",
    "total_crew_across_productions",
    "avg_crew_size",
    "avg_total_cost_per_production",
    "avg_crew_payroll_per_production",
    "avg_vendor_spend_per_production",
    "avg_cost_per_crew_member",
    "pct_cost_is_crew",
    "cost_tier",
    "cost_tier_lower_bound",
    "cost_tier_upper_bound",
]


def rollup_productions(crew: pd.DataFrame, production_year: int) -> pd.DataFrame:
    """Combine crew and vendor costs into one row per production.

    Only records for *production_year* with a location and positive crew
    payroll are used; the rest are treated as incomplete.
    """
    scoped = crew[
        (crew["production_year"] == production_year)
        & crew["production_location"].notna()
        & (crew["crew_payroll_usd"] > 0)
    ].copy()
    logger.debug(
        "Production rollup %d: %d of %d crew row(s) in scope",
        production_year,
        len(scoped),
        len(crew),
    )
    scoped["location_cost_usd"] = scoped["crew_payroll_usd"] + scoped["vendor_spend_usd"]

    rollup = group_and_aggregate(
        scoped,
        _PRODUCTION_KEYS,
        {
            "unique_crew_count": ("crew_member_id", "count_distinct"),
            "total_crew_payroll_usd": ("crew_payroll_usd", "sum"),
            "total_vendor_spend_usd": ("vendor_spend_usd", "sum"),
            "total_location_cost_usd": ("location_cost_usd", "sum"),
        },
        relation=PRODUCTION_CREW_RECORDS,
    )
    rollup["cost_per_crew_member"] = safe_divide(
        rollup["total_location_cost_usd"], rollup["unique_crew_count"]
    )
    rollup["crew_cost_share"] = safe_divide(
        rollup["total_crew_payroll_usd"], rollup["total_location_cost_usd"]
    )
    return rollup


def summarize_locations(rollup: pd.DataFrame, min_cohort_size: int) -> pd.DataFrame:
    """Average per-production metrics for each (location, type) cohort."""
    cohorts = group_and_aggregate(
        rollup,
        ["production_location", "production_type"],
        {
            "production_count": ("production_id", "count_distinct"),
            "total_crew_across_productions": ("unique_crew_count", "sum"),
            "avg_crew_size": ("unique_crew_count", "mean"),
            "avg_total_cost_per_production": ("total_location_cost_usd", "mean"),
            "avg_crew_payroll_per_production": ("total_crew_payroll_usd", "mean"),
            "avg_vendor_spend_per_production": ("total_vendor_spend_usd", "mean"),
            "avg_cost_per_crew_member": ("cost_per_crew_member", "mean"),
            "avg_crew_cost_share": ("crew_cost_share", "mean"),
        },
    )
    cohorts["pct_cost_is_crew"] = pd.to_numeric(cohorts["avg_crew_cost_share"]) * 100

    valid = cohorts[cohorts["production_count"] >= min_cohort_size]
    if len(valid) < len(cohorts):
        logger.debug(
            "Dropped %d location cohort(s) with fewer than %d productions",
            len(cohorts) - len(valid),
            min_cohort_size,
        )
    return valid.reset_index(drop=True)


def benchmark_locations(
    crew: pd.DataFrame | list[dict],
    config: AnalysisConfig,
) -> pd.DataFrame:
    """Return location benchmarks for ``config.production_type``.

    Parameters
    ----------
    crew:
        Production/crew records.
    config:
        Run configuration; ``fiscal_year`` is used as the production year.

    Returns
    -------
    DataFrame
        ``RESULT_COLUMNS`` sorted by ``avg_cost_per_crew_member`` descending.
        Tiers are assigned across all production types before the type filter
        is applied, each type being its own cohort.
    """
    frame = to_relation(crew, PRODUCTION_CREW_RECORDS)
    rollup = rollup_productions(frame, config.fiscal_year)
    if rollup.empty:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    cohorts = summarize_locations(rollup, config.min_cohort_size)
    lower_q, upper_q = config.cost_tier_quantiles
    tiered = cohort_quantile_classify(
        cohorts,
        "avg_cost_per_crew_member",
        "production_type",
        lower_q,
        upper_q,
        labels=(HIGH_COST, AVERAGE_COST, LOW_COST),
        output_field="cost_tier",
    )

    result = tiered[tiered["production_type"] == config.production_type]
    logger.info(
        "Location benchmarks %d/%s: %d location(s) from %d production(s)",
        config.fiscal_year,
        config.production_type,
        len(result),
        len(rollup),
    )
    ranked = result.sort_values(
        "avg_cost_per_crew_member",
        ascending=False,
        kind="mergesort",
        na_position="last",
    ).reset_index(drop=True)
    return ranked[RESULT_COLUMNS]


def to_location_rows(result: pd.DataFrame) -> list[LocationBenchmark]:
    """Round benchmark rows: whole dollars, one decimal for percentages."""
    return [
        LocationBenchmark(
            production_location=str(r["production_location"]),
            production_type=str(r["production_type"]),
            production_count=int_or_zero(r["production_count"]),
            avg_crew_size=round_or_none(r["avg_crew_size"], 0),
            avg_total_cost_per_production=round_or_none(r["avg_total_cost_per_production"], 0),
            avg_crew_payroll_per_production=round_or_none(
                r["avg_crew_payroll_per_production"], 0
            ),
            avg_vendor_spend_per_production=round_or_none(
                r["avg_vendor_spend_per_production"], 0
            ),
            avg_cost_per_crew_member=round_or_none(r["avg_cost_per_crew_member"], 0),
            pct_cost_is_crew=round_or_none(r["pct_cost_is_crew"], 1),
            cost_tier=str_or_none(r["cost_tier"]),
        )
        for r in result.to_dict(orient="records")
    ]
