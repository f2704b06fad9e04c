"""
Vendor spend concentration analysis.

Ranks vendors whose global spend in a fiscal year meets a threshold and
measures how diversified that spend is across markets:

1. Keep spend records for the target fiscal year with positive spend.
2. Collapse to one row per (vendor, vendor name, market, spend category),
   summing spend and counting distinct productions.
3. Roll up to one row per vendor: total spend, distinct markets and
   categories, production counts, and the share of spend in the vendor's
   largest market.
4. Keep vendors at or above the spend threshold.
5. Flag vendors whose top-market share exceeds the concentration threshold.
6. Sort by total spend, largest first.

Step 2 collapses duplicates within a single (vendor, market, category)
triple only.  Cross-system vendor-name aliasing ("ABC Studios Inc." vs
"ABC Studios" under different vendor ids) is not resolved.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from cost_benchmarks.models import AnalysisConfig, VendorConcentration
from cost_benchmarks.services.fact_store import SPEND_RECORDS, to_relation
from cost_benchmarks.services.statistics import group_and_aggregate, safe_divide
from cost_benchmarks.utils.formatting import int_or_zero, millions, round_or_none, str_or_none

logger = logging.getLogger(__name__)

HIGH_CONCENTRATION = "High geographic concentration"
DIVERSIFIED = "Diversified"

_TRIPLE_KEYS = ["vendor_id", "vendor_name", "market", "spend_category"]

RESULT_COLUMNS = [
    "vendor_id",
    "vendor_name",
    "total_spend_usd",
    "markets_active_in",
    "spend_category_diversity",
    "total_production_count",
    "distinct_production_count",
    "top_market_spend_usd",
    "top_market_share",
    "geographic_risk_flag",
]


def analyze_vendor_concentration(
    spend: pd.DataFrame | list[dict],
    config: AnalysisConfig,
) -> pd.DataFrame:
    """Return qualifying vendors ranked by total spend (full precision).

    Parameters
    ----------
    spend:
        Spend records (any fiscal years; filtering is reapplied here).
    config:
        Run configuration; uses ``fiscal_year``, ``spend_threshold_usd`` and
        ``concentration_risk_threshold``.

    Returns
    -------
    DataFrame
        One row per vendor with ``RESULT_COLUMNS``.  Empty when no vendor
        qualifies.
    """
    frame = to_relation(spend, SPEND_RECORDS)
    in_year = frame[
        (frame["fiscal_year"] == config.fiscal_year) & (frame["spend_usd"] > 0)
    ]
    logger.info(
        "Vendor concentration FY%d: %d of %d spend row(s) in scope",
        config.fiscal_year,
        len(in_year),
        len(frame),
    )
    if in_year.empty:
        return pd.DataFrame(columns=RESULT_COLUMNS)

    by_triple = group_and_aggregate(
        in_year,
        _TRIPLE_KEYS,
        {
            "market_spend_usd": ("spend_usd", "sum"),
            "production_count_in_market": ("production_id", "count_distinct"),
        },
        relation=SPEND_RECORDS,
    )

    # Total spend is the sum of per-market spend so a single-market vendor
    # has a share of exactly 1.0.
    per_market = group_and_aggregate(
        by_triple,
        ["vendor_id", "market"],
        {"market_spend_usd": ("market_spend_usd", "sum")},
    )
    market_totals = group_and_aggregate(
        per_market,
        ["vendor_id"],
        {
            "total_spend_usd": ("market_spend_usd", "sum"),
            "top_market_spend_usd": ("market_spend_usd", "max"),
            "markets_active_in": ("market", "count_distinct"),
        },
    )
    vendor_totals = group_and_aggregate(
        by_triple,
        ["vendor_id"],
        {
            "vendor_name": ("vendor_name", "first"),
            "spend_category_diversity": ("spend_category", "count_distinct"),
            "total_production_count": ("production_count_in_market", "sum"),
        },
    )
    distinct_productions = group_and_aggregate(
        in_year.dropna(subset=_TRIPLE_KEYS),
        ["vendor_id"],
        {"distinct_production_count": ("production_id", "count_distinct")},
    )

    vendors = vendor_totals.merge(market_totals, on="vendor_id").merge(
        distinct_productions, on="vendor_id", how="left"
    )
    vendors["top_market_share"] = safe_divide(
        vendors["top_market_spend_usd"], vendors["total_spend_usd"]
    )

    qualifying = vendors[vendors["total_spend_usd"] >= config.spend_threshold_usd].copy()
    logger.info(
        "%d of %d vendor(s) meet the $%.0f threshold",
        len(qualifying),
        len(vendors),
        config.spend_threshold_usd,
    )
    qualifying["geographic_risk_flag"] = np.where(
        qualifying["top_market_share"] > config.concentration_risk_threshold,
        HIGH_CONCENTRATION,
        DIVERSIFIED,
    )

    ranked = qualifying.sort_values(
        "total_spend_usd", ascending=False, kind="mergesort"
    ).reset_index(drop=True)
    return ranked[RESULT_COLUMNS]


def to_vendor_rows(result: pd.DataFrame) -> list[VendorConcentration]:
    """Round an analysis result for presentation."""
    return [
        VendorConcentration(
            vendor_id=str(r["vendor_id"]),
            vendor_name=str_or_none(r["vendor_name"]),
            spend_millions_usd=millions(r["total_spend_usd"]),
            total_spend_usd=round_or_none(r["total_spend_usd"], 0),
            markets_active_in=int_or_zero(r["markets_active_in"]),
            spend_category_diversity=int_or_zero(r["spend_category_diversity"]),
            total_production_count=int_or_zero(r["total_production_count"]),
            distinct_production_count=int_or_zero(r["distinct_production_count"]),
            top_market_share=round_or_none(r["top_market_share"], 4),
            pct_spend_in_top_market=(
                None
                if r["top_market_share"] is None or pd.isna(r["top_market_share"])
                else round(float(r["top_market_share"]) * 100, 1)
            ),
            geographic_risk_flag=str(r["geographic_risk_flag"]),
        )
        for r in result.to_dict(orient="records")
    ]
