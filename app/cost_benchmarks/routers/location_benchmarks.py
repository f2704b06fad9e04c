"""
Location benchmarks router.

Cost per crew member by filming location, tiered against other locations
producing the same type of show.

The handler is a plain ``def``: FastAPI runs it in the threadpool, so a
slow warehouse statement never blocks the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query

from cost_benchmarks.errors import InputSchemaError, InvalidConfiguration
from cost_benchmarks.models import AnalysisConfig, LocationBenchmarkResponse, build_config
from cost_benchmarks.services.fact_store import load_production_crew_records
from cost_benchmarks.services.location_benchmarks import benchmark_locations, to_location_rows

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/location-benchmarks", tags=["locations"])


def _tier_quantiles(
    lower: float | None, upper: float | None
) -> tuple[float, float] | None:
    """Fill a partially supplied quantile pair from the configured defaults."""
    if lower is None and upper is None:
        return None
    default_lower, default_upper = AnalysisConfig.model_fields["cost_tier_quantiles"].default
    return (
        default_lower if lower is None else lower,
        default_upper if upper is None else upper,
    )


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------
@router.get(
    "/",
    response_model=LocationBenchmarkResponse,
    summary="Per-location cost benchmarks with cost tiers",
)
def get_location_benchmarks(
    production_year: int = Query(..., description="Production year to benchmark"),
    production_type: str | None = Query(
        None, description="series, film or unscripted (default series)"
    ),
    lower_quantile: float | None = Query(
        None, description="Quantile below which a location is Low Cost (default 0.25)"
    ),
    upper_quantile: float | None = Query(
        None, description="Quantile above which a location is High Cost (default 0.75)"
    ),
    min_cohort_size: int | None = Query(
        None, description="Minimum productions for a valid benchmark (default 3)"
    ),
) -> LocationBenchmarkResponse:
    """Return location benchmarks sorted by cost per crew member."""
    try:
        config = build_config(
            fiscal_year=production_year,
            production_type=production_type,
            cost_tier_quantiles=_tier_quantiles(lower_quantile, upper_quantile),
            min_cohort_size=min_cohort_size,
        )
        crew = load_production_crew_records(production_year=production_year)
        rows = to_location_rows(benchmark_locations(crew, config))
        return LocationBenchmarkResponse(
            count=len(rows),
            parameters={
                "production_year": config.fiscal_year,
                "production_type": config.production_type,
                "cost_tier_quantiles": list(config.cost_tier_quantiles),
                "min_cohort_size": config.min_cohort_size,
            },
            data=rows,
        )
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except InputSchemaError as exc:
        logger.error("Production crew relation failed schema validation: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Location benchmarks failed for %s", production_year)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
