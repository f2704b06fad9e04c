"""
Tests for the vendor spend concentration analysis.
"""

from __future__ import annotations

import os
import sys

import pytest

# Ensure the app package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "app"))

from cost_benchmarks.models import build_config  # noqa: E402
from cost_benchmarks.services.vendor_concentration import (  # noqa: E402
    DIVERSIFIED,
    HIGH_CONCENTRATION,
    RESULT_COLUMNS,
    analyze_vendor_concentration,
    to_vendor_rows,
)

FISCAL_YEAR = 2024


# ---------------------------------------------------------------------------
# Mock data helpers
# ---------------------------------------------------------------------------
def _spend(vendor_id, vendor_name, market, spend_usd, *, category="Equipment",
           production_id="P-001", fiscal_year=FISCAL_YEAR, fiscal_quarter=1) -> dict:
    return {
        "production_id": production_id,
        "vendor_id": vendor_id,
        "vendor_name": vendor_name,
        "spend_category": category,
        "spend_usd": spend_usd,
        "market": market,
        "fiscal_year": fiscal_year,
        "fiscal_quarter": fiscal_quarter,
    }


def _mock_acme_rows() -> list[dict]:
    """Acme: $47.32M over 12 markets, $16.18M in the largest."""
    name = "Acme Production Services"
    rows = [
        # Top market split over two categories
        _spend("V-ACME", name, "US", 8_090_000, category="Equipment", production_id="P-001"),
        _spend("V-ACME", name, "US", 8_090_000, category="Catering", production_id="P-002"),
    ]
    for i in range(10):
        rows.append(
            _spend("V-ACME", name, f"M{i:02d}", 2_830_000, production_id=f"P-1{i:02d}")
        )
    rows.append(_spend("V-ACME", name, "M10", 2_840_000, production_id="P-200"))
    return rows


def _mock_xyz_rows() -> list[dict]:
    """XYZ: $23.18M over 3 markets, 82.1% in the largest."""
    name = "XYZ Equipment Rental"
    return [
        _spend("V-XYZ", name, "US", 19_030_000, production_id="P-300"),
        _spend("V-XYZ", name, "CA", 2_000_000, production_id="P-301"),
        _spend("V-XYZ", name, "UK", 2_150_000, production_id="P-302"),
    ]


def _mock_spend_rows() -> list[dict]:
    rows = _mock_acme_rows() + _mock_xyz_rows()
    # Below threshold
    rows.append(_spend("V-SMALL", "Small Grip Co", "US", 1_000_000))
    # Other fiscal year must not leak into FY2024 totals
    rows.append(_spend("V-ACME", "Acme Production Services", "US", 99_000_000, fiscal_year=2023))
    # Zero and negative spend are filtered out
    rows.append(_spend("V-XYZ", "XYZ Equipment Rental", "DE", 0))
    rows.append(_spend("V-XYZ", "XYZ Equipment Rental", "FR", -500_000))
    return rows


def _config(**overrides):
    return build_config(fiscal_year=FISCAL_YEAR, **overrides)


# ===========================================================================
# Analysis
# ===========================================================================
class TestVendorConcentration:
    """Tests for analyze_vendor_concentration."""

    def test_acme_is_diversified(self):
        """$47.32M over 12 markets with $16.18M top market -> ~0.342, Diversified."""
        result = analyze_vendor_concentration(_mock_spend_rows(), _config())
        acme = result[result["vendor_id"] == "V-ACME"].iloc[0]

        assert acme["total_spend_usd"] == pytest.approx(47_320_000)
        assert acme["markets_active_in"] == 12
        assert acme["top_market_spend_usd"] == pytest.approx(16_180_000)
        assert acme["top_market_share"] == pytest.approx(0.342, abs=1e-3)
        assert acme["geographic_risk_flag"] == DIVERSIFIED

    def test_xyz_is_high_concentration(self):
        result = analyze_vendor_concentration(_mock_spend_rows(), _config())
        xyz = result[result["vendor_id"] == "V-XYZ"].iloc[0]

        assert xyz["markets_active_in"] == 3
        assert xyz["top_market_share"] == pytest.approx(0.821, abs=1e-3)
        assert xyz["geographic_risk_flag"] == HIGH_CONCENTRATION

    def test_threshold_and_ranking(self):
        """Vendors below the threshold are dropped; the rest sort by spend."""
        result = analyze_vendor_concentration(_mock_spend_rows(), _config())
        assert result["vendor_id"].tolist() == ["V-ACME", "V-XYZ"]
        assert list(result.columns) == RESULT_COLUMNS

    def test_threshold_is_inclusive(self):
        result = analyze_vendor_concentration(
            _mock_spend_rows(), _config(spend_threshold_usd=1_000_000)
        )
        assert "V-SMALL" in result["vendor_id"].tolist()

    def test_other_fiscal_years_never_leak(self):
        rows = _mock_spend_rows()
        result = analyze_vendor_concentration(rows, _config())
        assert result["total_spend_usd"].sum() == pytest.approx(47_320_000 + 23_180_000)

    def test_category_and_production_counts(self):
        result = analyze_vendor_concentration(_mock_spend_rows(), _config())
        acme = result[result["vendor_id"] == "V-ACME"].iloc[0]
        assert acme["spend_category_diversity"] == 2
        assert acme["total_production_count"] == 13
        assert acme["distinct_production_count"] == 13

    def test_production_counts_sum_across_markets(self):
        """One production in two markets counts once per market in the total."""
        rows = [
            _spend("V-1", "One", "US", 3_000_000, production_id="P-1"),
            _spend("V-1", "One", "UK", 3_000_000, production_id="P-1"),
        ]
        result = analyze_vendor_concentration(rows, _config())
        vendor = result.iloc[0]
        assert vendor["total_production_count"] == 2
        assert vendor["distinct_production_count"] == 1

    def test_single_market_vendor_share_is_exactly_one(self):
        rows = [
            _spend("V-1", "One Market", "US", 2_500_000.10, category="Equipment"),
            _spend("V-1", "One Market", "US", 2_600_000.20, category="Lighting"),
            _spend("V-1", "One Market", "US", 1_000_000.30, category="Catering"),
        ]
        result = analyze_vendor_concentration(rows, _config())
        vendor = result.iloc[0]
        assert vendor["top_market_share"] == 1.0
        assert vendor["geographic_risk_flag"] == HIGH_CONCENTRATION

    def test_share_is_bounded_and_one_only_for_single_market(self):
        rows = _mock_spend_rows() + [_spend("V-1", "One", "US", 6_000_000)]
        result = analyze_vendor_concentration(rows, _config())
        for _, vendor in result.iterrows():
            assert 0.0 <= vendor["top_market_share"] <= 1.0
            assert (vendor["top_market_share"] == 1.0) == (vendor["markets_active_in"] == 1)

    def test_configurable_risk_threshold(self):
        result = analyze_vendor_concentration(
            _mock_spend_rows(), _config(concentration_risk_threshold=0.3)
        )
        assert set(result["geographic_risk_flag"]) == {HIGH_CONCENTRATION}

    def test_no_qualifying_vendors_is_empty_not_error(self):
        result = analyze_vendor_concentration(
            _mock_spend_rows(), _config(spend_threshold_usd=1e12)
        )
        assert result.empty

    def test_no_rows_in_year_is_empty(self):
        result = analyze_vendor_concentration(_mock_spend_rows(), build_config(fiscal_year=2019))
        assert result.empty
        assert list(result.columns) == RESULT_COLUMNS


# ===========================================================================
# Presentation
# ===========================================================================
class TestVendorRows:
    """Tests for rounding at the presentation boundary."""

    def test_rounded_rows(self):
        rows = to_vendor_rows(analyze_vendor_concentration(_mock_spend_rows(), _config()))
        acme, xyz = rows

        assert acme.vendor_name == "Acme Production Services"
        assert acme.spend_millions_usd == 47.32
        assert acme.pct_spend_in_top_market == 34.2
        assert xyz.spend_millions_usd == 23.18
        assert xyz.pct_spend_in_top_market == 82.1
        assert xyz.geographic_risk_flag == HIGH_CONCENTRATION

    def test_empty_result(self):
        empty = analyze_vendor_concentration([], _config())
        assert to_vendor_rows(empty) == []
