"""
Crew trends router.

Quarterly crew-per-production by role category with quarter-over-quarter
change, for workforce and labour budget planning.

The handler is a plain ``def``: FastAPI runs it in the threadpool, so a
slow warehouse statement never blocks the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query

from cost_benchmarks.errors import InputSchemaError, InvalidConfiguration
from cost_benchmarks.models import CrewTrendResponse, build_config
from cost_benchmarks.services.crew_trends import analyze_crew_trends, to_trend_rows
from cost_benchmarks.services.fact_store import load_production_crew_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/crew-trends", tags=["crew"])


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------
@router.get(
    "/",
    response_model=CrewTrendResponse,
    summary="Quarterly crew per production by role category",
)
def get_crew_trends(
    fiscal_year: int = Query(..., description="Last fiscal year of the trend window"),
    production_type: str | None = Query(None, description="Production type (default series)"),
    lookback_years: int | None = Query(
        None, description="Number of production years in the window (default 2)"
    ),
) -> CrewTrendResponse:
    """Return the crew trend table ordered by category then quarter."""
    try:
        config = build_config(
            fiscal_year=fiscal_year,
            production_type=production_type,
            trend_lookback_years=lookback_years,
        )
        crew = load_production_crew_records(min_production_year=config.trend_start_year)
        rows = to_trend_rows(analyze_crew_trends(crew, config))
        return CrewTrendResponse(
            count=len(rows),
            parameters={
                "fiscal_year": config.fiscal_year,
                "production_type": config.production_type,
                "trend_start_year": config.trend_start_year,
            },
            data=rows,
        )
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InputSchemaError as exc:
        logger.error("Production crew relation failed schema validation: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Crew trend analysis failed for FY%s", fiscal_year)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
