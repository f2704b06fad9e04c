"""
Crew count trend analysis.

Tracks crew per production by role category, quarter by quarter, and the
quarter-over-quarter change in that ratio.  Normalising by the number of
active productions separates genuine crew-size growth from growth in
production volume.
"""

from __future__ import annotations

import logging

import pandas as pd

from cost_benchmarks.models import AnalysisConfig, CrewTrendPoint
from cost_benchmarks.services.fact_store import PRODUCTION_CREW_RECORDS, to_relation
from cost_benchmarks.services.statistics import (
    group_and_aggregate,
    ordered_period_delta,
    safe_divide,
)
from cost_benchmarks.utils.formatting import int_or_zero, millions, quarter_label, round_or_none

logger = logging.getLogger(__name__)

ABOVE_THE_LINE = "Above-the-Line"
CAMERA_AND_LIGHTING = "Camera & Lighting"
ART_DEPARTMENT = "Art Department"
POST_PRODUCTION = "Post-Production"
OTHER_PRODUCTION = "Other Production"

CREW_CATEGORIES = (
    ABOVE_THE_LINE,
    CAMERA_AND_LIGHTING,
    ART_DEPARTMENT,
    POST_PRODUCTION,
    OTHER_PRODUCTION,
)

_ROLE_CATEGORIES: dict[str, str] = {
    "director": ABOVE_THE_LINE,
    "producer": ABOVE_THE_LINE,
    "writer": ABOVE_THE_LINE,
    "dp": CAMERA_AND_LIGHTING,
    "camera operator": CAMERA_AND_LIGHTING,
    "gaffer": CAMERA_AND_LIGHTING,
    "grip": CAMERA_AND_LIGHTING,
    "production designer": ART_DEPARTMENT,
    "art director": ART_DEPARTMENT,
    "set decorator": ART_DEPARTMENT,
    "editor": POST_PRODUCTION,
    "vfx supervisor": POST_PRODUCTION,
    "colorist": POST_PRODUCTION,
}

_PERIOD_KEYS = ["fiscal_year", "fiscal_quarter"]

RESULT_COLUMNS = [
    "fiscal_year",
    "fiscal_quarter",
    "time_period",
    "crew_category",
    "total_crew",
    "total_productions",
    "crew_per_production",
    "payroll_total_usd",
    "qoq_change_pct",
]


def categorize_role(role: str | None) -> str:
    """Map a crew role to its category; unknown roles are Other Production."""
    if role is None or pd.isna(role):
        return OTHER_PRODUCTION
    return _ROLE_CATEGORIES.get(str(role).strip().lower(), OTHER_PRODUCTION)


def analyze_crew_trends(
    crew: pd.DataFrame | list[dict],
    config: AnalysisConfig,
) -> pd.DataFrame:
    """Return the quarterly crew trend table for ``config.production_type``.

    Production years from ``config.trend_start_year`` onward are included.
    Rows are ordered by category, then year and quarter.  A quarter with no
    active productions has a null ``crew_per_production``, which also nulls
    the next quarter's change.
    """
    frame = to_relation(crew, PRODUCTION_CREW_RECORDS)
    scoped = frame[
        (frame["production_year"] >= config.trend_start_year)
        & frame["crew_role"].notna()
    ].copy()
    logger.info(
        "Crew trends from %d: %d of %d crew row(s) in scope",
        config.trend_start_year,
        len(scoped),
        len(frame),
    )
    if scoped.empty:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    scoped["crew_category"] = scoped["crew_role"].map(categorize_role)

    by_type = group_and_aggregate(
        scoped,
        _PERIOD_KEYS + ["production_type", "crew_category"],
        {
            "unique_crew_members": ("crew_member_id", "count_distinct"),
            "active_production_count": ("production_id", "count_distinct"),
            "total_payroll_usd": ("crew_payroll_usd", "sum"),
        },
        relation=PRODUCTION_CREW_RECORDS,
    )
    of_type = by_type[by_type["production_type"] == config.production_type]
    if of_type.empty:
        logger.info("No crew rows for production type %r", config.production_type)
        return pd.DataFrame(columns=RESULT_COLUMNS)

    periods = group_and_aggregate(
        of_type,
        _PERIOD_KEYS + ["crew_category"],
        {
            "total_crew": ("unique_crew_members", "sum"),
            "total_productions": ("active_production_count", "sum"),
            "payroll_total_usd": ("total_payroll_usd", "sum"),
        },
    )
    periods["crew_per_production"] = safe_divide(
        periods["total_crew"], periods["total_productions"]
    )

    trend = ordered_period_delta(
        periods,
        ["crew_category"],
        _PERIOD_KEYS,
        "crew_per_production",
        output_field="qoq_change_pct",
    )
    trend["time_period"] = [
        quarter_label(y, q) for y, q in zip(trend["fiscal_year"], trend["fiscal_quarter"])
    ]
    return trend[RESULT_COLUMNS]


def to_trend_rows(result: pd.DataFrame) -> list[CrewTrendPoint]:
    """Round trend rows for presentation."""
    return [
        CrewTrendPoint(
            time_period=str(r["time_period"]),
            fiscal_year=int(r["fiscal_year"]),
            fiscal_quarter=int(r["fiscal_quarter"]),
            crew_category=str(r["crew_category"]),
            total_crew=int_or_zero(r["total_crew"]),
            total_productions=int_or_zero(r["total_productions"]),
            crew_per_production=round_or_none(r["crew_per_production"], 1),
            payroll_millions_usd=millions(r["payroll_total_usd"]),
            qoq_change_pct=round_or_none(r["qoq_change_pct"], 1),
        )
        for r in result.to_dict(orient="records")
    ]
