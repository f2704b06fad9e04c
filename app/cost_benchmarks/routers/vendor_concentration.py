"""
Vendor concentration router.

Ranks vendors above a global spend threshold for a fiscal year and flags
those whose spend is concentrated in a single market.

The handler is a plain ``def``: FastAPI runs it in the threadpool, so a
slow warehouse statement never blocks the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query

from cost_benchmarks.errors import InputSchemaError, InvalidConfiguration
from cost_benchmarks.models import VendorConcentrationResponse, build_config
from cost_benchmarks.services.fact_store import load_spend_records
from cost_benchmarks.services.vendor_concentration import (
    analyze_vendor_concentration,
    to_vendor_rows,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/vendor-concentration", tags=["vendors"])


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------
@router.get(
    "/",
    response_model=VendorConcentrationResponse,
    summary="Vendors above the spend threshold with diversification metrics",
)
def get_vendor_concentration(
    fiscal_year: int = Query(..., description="Fiscal year to analyse"),
    spend_threshold_usd: float | None = Query(
        None, description="Minimum total spend in USD (default 5,000,000)"
    ),
    concentration_risk_threshold: float | None = Query(
        None, description="Top-market share above which a vendor is flagged"
    ),
    limit: int | None = Query(None, ge=1, le=5000, description="Return only the top N vendors"),
) -> VendorConcentrationResponse:
    """Return qualifying vendors ranked by total global spend."""
    try:
        config = build_config(
            fiscal_year=fiscal_year,
            spend_threshold_usd=spend_threshold_usd,
            concentration_risk_threshold=concentration_risk_threshold,
        )
        result = analyze_vendor_concentration(load_spend_records(fiscal_year), config)
        if limit is not None:
            result = result.head(limit)

        rows = to_vendor_rows(result)
        return VendorConcentrationResponse(
            count=len(rows),
            parameters={
                "fiscal_year": config.fiscal_year,
                "spend_threshold_usd": config.spend_threshold_usd,
                "concentration_risk_threshold": config.concentration_risk_threshold,
                "limit": limit,
            },
            data=rows,
        )
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InputSchemaError as exc:
        logger.error("Spend relation failed schema validation: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Vendor concentration analysis failed for FY%s", fiscal_year)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
