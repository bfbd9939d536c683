"""
FastAPI router module for margin attribution endpoints.

This module implements endpoints for:
- Attribution of a JSON portfolio
- Attribution of an uploaded CSV component table
- Top driver ranking by performance, mix or total effect
- Group roll-up of effects

Error mapping:
- InvalidInputError, DivisionByZeroError, NumericError -> 422 with
  {"code", "message", "component_id"}
- CSV validation failures -> 422 with the list of validation errors
- TieOutError and unexpected failures -> 500
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from margin_attribution.core.dependencies import SettingsDep
from margin_attribution.models import (
    AttributionReport,
    AttributionRequest,
    ComponentAttribution,
    EffectType,
    ErrorCode,
    GroupAttribution,
)
from margin_attribution.services.attribution import (
    attribute_margin,
    rank_drivers,
    rollup_by_group,
)
from margin_attribution.services.errors import AttributionError, TieOutError
from margin_attribution.services.ingestion import (
    build_ingestion_result,
    ingest_upload,
    records_from_frame,
)

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI documentation
router = APIRouter(prefix="/attribution", tags=["attribution"])


# =============================================================================
# Helper Functions
# =============================================================================


def _run_attribution(records, settings) -> AttributionReport:
    """
    Run the calculator and translate its errors into HTTP errors.

    Raises:
        HTTPException 422: Rejected input (empty, zero revenue, non-finite)
        HTTPException 500: Tie-out failure or unexpected error
    """
    try:
        return attribute_margin(
            records,
            tie_out_rel_tolerance=settings.tie_out_rel_tolerance,
            weight_sum_tolerance=settings.weight_sum_tolerance,
        )
    except TieOutError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    except AttributionError as e:
        logger.warning(f"Attribution rejected: {e}")
        raise HTTPException(status_code=422, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Error computing attribution: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error computing attribution: {str(e)}",
        )


# =============================================================================
# Attribution Endpoints
# =============================================================================


@router.post("", response_model=AttributionReport)
async def attribute_portfolio(
    request: AttributionRequest,
    settings: SettingsDep,
) -> AttributionReport:
    """
    Decompose a portfolio's margin change into performance and mix effects.

    Args:
        request: Portfolio components with prior/current revenue and profit

    Returns:
        AttributionReport containing:
        - components: one row per component with margins, weights, deltas
          and performance/mix/total effects in bps
        - summary: portfolio margins, effect sums and tie-out residual

    Raises:
        HTTPException 422: Empty portfolio, duplicate id, zero revenue,
            non-finite values
        HTTPException 500: Tie-out failure
    """
    return _run_attribution(request.records, settings)


@router.post("/upload", response_model=AttributionReport)
async def attribute_upload(
    settings: SettingsDep,
    file: UploadFile = File(..., description="CSV component table"),
) -> AttributionReport:
    """
    Attribute a portfolio uploaded as a CSV component table.

    Accepted columns (case-insensitive): id, revenue_prior, revenue_current,
    and per period profit_* or cost_*; aliases such as rev_t0 / cost_t1 are
    resolved. An optional group column enables the group roll-up.

    Raises:
        HTTPException 422: CSV validation errors or rejected input
        HTTPException 500: Tie-out failure
    """
    df, errors = await ingest_upload(file, max_bytes=settings.max_upload_bytes)

    if df is None or errors:
        result = build_ingestion_result(df, errors)
        logger.warning(f"CSV upload rejected with {len(result.errors)} validation errors")
        raise HTTPException(
            status_code=422,
            detail={
                "code": ErrorCode.VALIDATION_FAILED.value,
                "message": "Component table failed validation",
                "errors": [e.model_dump() for e in result.errors],
            },
        )

    return _run_attribution(records_from_frame(df), settings)


@router.post("/drivers", response_model=List[ComponentAttribution])
async def top_drivers(
    request: AttributionRequest,
    settings: SettingsDep,
    top_n: Optional[int] = Query(
        default=None, ge=1, le=500, description="Maximum drivers to return"
    ),
    by: EffectType = Query(
        default=EffectType.TOTAL, description="Effect used for ranking"
    ),
) -> List[ComponentAttribution]:
    """
    Get the components that moved the portfolio margin the most.

    Args:
        request: Portfolio components
        top_n: Maximum number of drivers (defaults to the configured value)
        by: 'total', 'performance' or 'mix'

    Returns:
        Component rows sorted by absolute effect, descending.
    """
    report = _run_attribution(request.records, settings)
    return rank_drivers(report, top_n=top_n or settings.default_top_n, by=by)


@router.post("/groups", response_model=List[GroupAttribution])
async def group_rollup(
    request: AttributionRequest,
    settings: SettingsDep,
) -> List[GroupAttribution]:
    """
    Sum performance, mix and total effects by component group.

    Components without a group are reported under '(ungrouped)'.

    Returns:
        Group rows sorted by absolute total effect, descending.
    """
    report = _run_attribution(request.records, settings)
    return rollup_by_group(report)
