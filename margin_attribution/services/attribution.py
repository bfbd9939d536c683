"""
Margin Attribution Service - Performance vs Mix Decomposition

This module decomposes the period-over-period change in a portfolio's
aggregate profit margin into additive per-component effects.

Algorithm Overview:
- For each component (product category, channel, region, ...):
  * margin = profit / revenue, per period
  * weight = revenue / portfolio revenue, per period
  * Performance effect: delta_margin_bps * weight_prior
  * Mix effect: delta_weight_bps * (margin_current - total_margin_current)
  * Total effect = performance effect + mix effect
- Summary row: column sums of the three effects
- Tie-out: sum(total effects) must equal
  (total_margin_current - total_margin_prior) * 10000 within a relative tolerance

The identity holds exactly in real arithmetic because current weights and
prior weights both sum to one, so the mix term's portfolio-margin offset
cancels and the performance term telescopes. Any residual beyond floating
point noise means the decomposition is broken, and the computation aborts.

Pipeline (no partial results on any failure):
    coerce rows -> validate -> portfolio totals -> derived columns
    -> effects -> reconcile -> report
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from margin_attribution.models import (
    AttributionReport,
    AttributionSummary,
    ComponentAttribution,
    ComponentRecord,
    EffectType,
    GroupAttribution,
    Period,
)
from margin_attribution.services.errors import (
    DivisionByZeroError,
    InvalidInputError,
    NumericError,
    TieOutError,
)

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Basis points per unit of margin or weight
BPS: float = 10_000.0

DEFAULT_TIE_OUT_REL_TOLERANCE: float = 1e-9
DEFAULT_WEIGHT_SUM_TOLERANCE: float = 1e-9

# Default number of top drivers to return
DEFAULT_TOP_N_DRIVERS: int = 10

# Label for components without a group in the group roll-up
UNGROUPED_LABEL: str = "(ungrouped)"

# Index label of the summary row in report_to_frame
SUMMARY_ROW_LABEL: str = "TOTAL"

RowLike = Union[ComponentRecord, Mapping[str, Any]]


# =============================================================================
# DATA CLASSES - Internal representations
# =============================================================================

@dataclass(frozen=True)
class PortfolioTotals:
    """
    Portfolio-level revenue and profit sums for both periods.

    Margins are derived on access so they always agree with the sums.
    """
    revenue_prior: float
    revenue_current: float
    profit_prior: float
    profit_current: float

    @property
    def margin_prior(self) -> float:
        return self.profit_prior / self.revenue_prior

    @property
    def margin_current(self) -> float:
        return self.profit_current / self.revenue_current

    @property
    def margin_change_bps(self) -> float:
        return (self.margin_current - self.margin_prior) * BPS


@dataclass(frozen=True)
class DerivedColumns:
    """
    Per-component derived columns as numpy arrays aligned with input order.

    Written once by compute_derived_columns and never mutated.
    """
    ids: List[str]
    margin_prior: np.ndarray
    margin_current: np.ndarray
    weight_prior: np.ndarray
    weight_current: np.ndarray
    delta_margin_bps: np.ndarray
    delta_weight_bps: np.ndarray


@dataclass(frozen=True)
class EffectColumns:
    """Per-component effect columns in basis points, aligned with input order."""
    performance_effect_bps: np.ndarray
    mix_effect_bps: np.ndarray
    total_effect_bps: np.ndarray


# =============================================================================
# INPUT HANDLING
# =============================================================================

def coerce_records(rows: Iterable[RowLike]) -> List[ComponentRecord]:
    """
    Turn an iterable of rows into ComponentRecord instances.

    Rows may already be ComponentRecord objects or plain mappings with the
    record's field names (e.g. dicts from a CSV reader or a DB cursor).

    Raises:
        InvalidInputError: If a mapping row fails schema validation
            (missing field, negative revenue, non-numeric value, ...).
    """
    records: List[ComponentRecord] = []
    for position, row in enumerate(rows, start=1):
        if isinstance(row, ComponentRecord):
            records.append(row)
            continue
        try:
            records.append(ComponentRecord.model_validate(row))
        except PydanticValidationError as e:
            raw_id = row.get("id") if isinstance(row, Mapping) else None
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "row"
            raise InvalidInputError(
                f"Row {position} is malformed: {location}: {first['msg']}",
                component_id=str(raw_id) if raw_id is not None else None,
            ) from e
    return records


def validate_records(records: Sequence[ComponentRecord]) -> None:
    """
    Check the preconditions of the calculator.

    - the portfolio is non-empty
    - component ids are unique
    - all raw values are finite
    - revenue is non-zero in both periods

    Raises:
        InvalidInputError: Empty portfolio or duplicate id.
        NumericError: NaN or infinite raw value.
        DivisionByZeroError: Zero revenue in either period.
    """
    if not records:
        raise InvalidInputError("Portfolio is empty; at least one component is required")

    seen: set = set()
    for record in records:
        if record.id in seen:
            raise InvalidInputError("Duplicate component id", component_id=record.id)
        seen.add(record.id)

        for field in ("revenue_prior", "revenue_current", "profit_prior", "profit_current"):
            if not np.isfinite(getattr(record, field)):
                raise NumericError(field, component_id=record.id)

        if record.revenue_prior < 0 or record.revenue_current < 0:
            raise InvalidInputError("Revenue must not be negative", component_id=record.id)
        if record.revenue_prior == 0:
            raise DivisionByZeroError(record.id, Period.PRIOR)
        if record.revenue_current == 0:
            raise DivisionByZeroError(record.id, Period.CURRENT)


def _column(records: Sequence[ComponentRecord], field: str) -> np.ndarray:
    return np.array([getattr(r, field) for r in records], dtype=float)


def _ensure_finite(ids: Sequence[str], columns: Mapping[str, np.ndarray]) -> None:
    """Raise NumericError naming the first component with a non-finite value."""
    for name, values in columns.items():
        bad = np.flatnonzero(~np.isfinite(values))
        if bad.size:
            raise NumericError(name, component_id=ids[int(bad[0])])


# =============================================================================
# AGGREGATE AND DERIVED PASSES
# =============================================================================

def compute_portfolio_totals(records: Sequence[ComponentRecord]) -> PortfolioTotals:
    """
    Sum revenue and profit over all components for both periods.

    Sums use numpy's pairwise summation.

    Raises:
        NumericError: If a total overflows to a non-finite value.
    """
    totals = PortfolioTotals(
        revenue_prior=float(np.sum(_column(records, "revenue_prior"))),
        revenue_current=float(np.sum(_column(records, "revenue_current"))),
        profit_prior=float(np.sum(_column(records, "profit_prior"))),
        profit_current=float(np.sum(_column(records, "profit_current"))),
    )
    for name in ("revenue_prior", "revenue_current", "profit_prior", "profit_current"):
        if not np.isfinite(getattr(totals, name)):
            raise NumericError(name, f"Portfolio total of '{name}' is not finite")
    return totals


def compute_derived_columns(
    records: Sequence[ComponentRecord],
    totals: PortfolioTotals,
    weight_sum_tolerance: float = DEFAULT_WEIGHT_SUM_TOLERANCE,
) -> DerivedColumns:
    """
    Compute margins, weights and their deltas for every component.

    Args:
        records: Validated components.
        totals: Portfolio totals from compute_portfolio_totals.
        weight_sum_tolerance: Allowed deviation of each period's weight sum from 1.

    Returns:
        DerivedColumns aligned with the order of `records`.

    Raises:
        NumericError: If any derived value is non-finite, or a period's
            weights do not sum to 1 within tolerance.
    """
    ids = [r.id for r in records]
    revenue_prior = _column(records, "revenue_prior")
    revenue_current = _column(records, "revenue_current")

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        margin_prior = _column(records, "profit_prior") / revenue_prior
        margin_current = _column(records, "profit_current") / revenue_current
        weight_prior = revenue_prior / totals.revenue_prior
        weight_current = revenue_current / totals.revenue_current
        delta_margin_bps = (margin_current - margin_prior) * BPS
        delta_weight_bps = (weight_current - weight_prior) * BPS

    _ensure_finite(ids, {
        "margin_prior": margin_prior,
        "margin_current": margin_current,
        "weight_prior": weight_prior,
        "weight_current": weight_current,
        "delta_margin_bps": delta_margin_bps,
        "delta_weight_bps": delta_weight_bps,
    })

    for name, weights in (("weight_prior", weight_prior), ("weight_current", weight_current)):
        weight_sum = float(np.sum(weights))
        if abs(weight_sum - 1.0) > weight_sum_tolerance:
            raise NumericError(
                name,
                f"Weights in '{name}' sum to {weight_sum!r}, not 1.0",
            )

    return DerivedColumns(
        ids=ids,
        margin_prior=margin_prior,
        margin_current=margin_current,
        weight_prior=weight_prior,
        weight_current=weight_current,
        delta_margin_bps=delta_margin_bps,
        delta_weight_bps=delta_weight_bps,
    )


# =============================================================================
# CORE DECOMPOSITION
# =============================================================================

def compute_effects(derived: DerivedColumns, totals: PortfolioTotals) -> EffectColumns:
    """
    Compute the performance, mix and total effect of every component.

    For each component:
    - Performance effect: delta_margin_bps * weight_prior
      Margin movement of the component itself, holding prior-period mix
    - Mix effect: delta_weight_bps * (margin_current - total_margin_current)
      Shift in revenue share, positive when share moves toward components
      more profitable than the current portfolio

    Each effect depends only on the component and the portfolio totals.
    """
    with np.errstate(over="ignore", invalid="ignore"):
        performance = derived.delta_margin_bps * derived.weight_prior
        mix = derived.delta_weight_bps * (derived.margin_current - totals.margin_current)
        total = performance + mix

    _ensure_finite(derived.ids, {
        "performance_effect_bps": performance,
        "mix_effect_bps": mix,
        "total_effect_bps": total,
    })

    return EffectColumns(
        performance_effect_bps=performance,
        mix_effect_bps=mix,
        total_effect_bps=total,
    )


def reconcile(
    effects: EffectColumns,
    totals: PortfolioTotals,
    rel_tolerance: float = DEFAULT_TIE_OUT_REL_TOLERANCE,
) -> Tuple[float, float]:
    """
    Tie out the summed total effects against the observed margin change.

    The absolute tolerance is `rel_tolerance` scaled by the largest of 1 bps,
    the observed change, the summed absolute total effects and the summed
    absolute performance and mix terms. Performance and mix can cancel
    inside a component's total, so rounding error in the residual follows
    the size of the individual terms rather than of the totals.

    Returns:
        Tuple of (residual_bps, tolerance_bps).

    Raises:
        TieOutError: If |residual| exceeds the tolerance.
    """
    total_effect_bps = effects.total_effect_bps
    effect_sum = float(np.sum(total_effect_bps))
    change = totals.margin_change_bps
    residual = effect_sum - change
    magnitude = max(
        1.0,
        abs(change),
        float(np.sum(np.abs(total_effect_bps))),
        float(np.sum(np.abs(effects.performance_effect_bps)) + np.sum(np.abs(effects.mix_effect_bps))),
    )
    tolerance = rel_tolerance * magnitude

    if not abs(residual) <= tolerance:
        logger.error(
            f"Tie-out failed: effects sum to {effect_sum:.6f} bps, "
            f"observed change {change:.6f} bps, residual {residual:.3e} bps"
        )
        raise TieOutError(residual, tolerance)

    return residual, tolerance


# =============================================================================
# MAIN ANALYSIS FUNCTION
# =============================================================================

def attribute_margin(
    rows: Iterable[RowLike],
    tie_out_rel_tolerance: float = DEFAULT_TIE_OUT_REL_TOLERANCE,
    weight_sum_tolerance: float = DEFAULT_WEIGHT_SUM_TOLERANCE,
) -> AttributionReport:
    """
    Perform the complete margin attribution for a portfolio.

    This is the main entry point. It:
    1. Coerces and validates the input rows
    2. Computes portfolio totals
    3. Computes per-component margins, weights and deltas
    4. Computes performance, mix and total effects
    5. Ties out the summed effects against the observed margin change

    Args:
        rows: ComponentRecord objects or mappings with the same fields.
        tie_out_rel_tolerance: Relative tolerance for the reconciliation check.
        weight_sum_tolerance: Allowed deviation of weight sums from 1.

    Returns:
        AttributionReport with one row per component in input order and the
        portfolio summary.

    Raises:
        InvalidInputError, DivisionByZeroError, NumericError: Bad input.
        TieOutError: The decomposition failed to reconcile.
    """
    records = coerce_records(rows)
    validate_records(records)

    totals = compute_portfolio_totals(records)
    derived = compute_derived_columns(records, totals, weight_sum_tolerance)
    effects = compute_effects(derived, totals)
    residual, tolerance = reconcile(effects, totals, tie_out_rel_tolerance)

    components = [
        ComponentAttribution(
            id=record.id,
            group=record.group,
            revenue_prior=record.revenue_prior,
            revenue_current=record.revenue_current,
            profit_prior=record.profit_prior,
            profit_current=record.profit_current,
            margin_prior=float(derived.margin_prior[i]),
            margin_current=float(derived.margin_current[i]),
            weight_prior=float(derived.weight_prior[i]),
            weight_current=float(derived.weight_current[i]),
            delta_margin_bps=float(derived.delta_margin_bps[i]),
            delta_weight_bps=float(derived.delta_weight_bps[i]),
            performance_effect_bps=float(effects.performance_effect_bps[i]),
            mix_effect_bps=float(effects.mix_effect_bps[i]),
            total_effect_bps=float(effects.total_effect_bps[i]),
        )
        for i, record in enumerate(records)
    ]

    summary = AttributionSummary(
        component_count=len(records),
        revenue_prior=totals.revenue_prior,
        revenue_current=totals.revenue_current,
        profit_prior=totals.profit_prior,
        profit_current=totals.profit_current,
        total_margin_prior=totals.margin_prior,
        total_margin_current=totals.margin_current,
        margin_change_bps=totals.margin_change_bps,
        performance_effect_bps=float(np.sum(effects.performance_effect_bps)),
        mix_effect_bps=float(np.sum(effects.mix_effect_bps)),
        total_effect_bps=float(np.sum(effects.total_effect_bps)),
        tie_out_residual_bps=residual,
        tie_out_tolerance_bps=tolerance,
    )

    logger.info(
        f"Attributed {summary.component_count} components: margin change "
        f"{summary.margin_change_bps:.2f} bps (performance "
        f"{summary.performance_effect_bps:.2f}, mix {summary.mix_effect_bps:.2f})"
    )

    return AttributionReport(components=components, summary=summary)


# =============================================================================
# TOP DRIVERS RETRIEVAL
# =============================================================================

def effect_value(attribution: ComponentAttribution, by: EffectType) -> float:
    """Return the effect column of `attribution` selected by `by`."""
    if by == EffectType.PERFORMANCE:
        return attribution.performance_effect_bps
    if by == EffectType.MIX:
        return attribution.mix_effect_bps
    return attribution.total_effect_bps


def rank_drivers(
    report: AttributionReport,
    top_n: Optional[int] = DEFAULT_TOP_N_DRIVERS,
    by: EffectType = EffectType.TOTAL,
) -> List[ComponentAttribution]:
    """
    Get the components that moved the portfolio margin the most.

    Args:
        report: Attribution report.
        top_n: Number of components to return; None returns all of them.
        by: Effect column used for ranking.

    Returns:
        Components sorted by absolute effect, descending. Ties keep input order.
    """
    if top_n is not None and top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")

    ranked = sorted(
        report.components,
        key=lambda c: abs(effect_value(c, by)),
        reverse=True,
    )
    return ranked if top_n is None else ranked[:top_n]


# =============================================================================
# GROUP ROLL-UP
# =============================================================================

def rollup_by_group(report: AttributionReport) -> List[GroupAttribution]:
    """
    Aggregate effects by the components' group label.

    Effects are additive, so the roll-up reconciles to the same portfolio
    margin change as the component rows. Components without a group are
    collected under UNGROUPED_LABEL.

    Returns:
        GroupAttribution list sorted by absolute total effect, descending.
    """
    grouped: Dict[str, Dict[str, Any]] = {}

    for component in report.components:
        label = component.group if component.group is not None else UNGROUPED_LABEL
        if label not in grouped:
            grouped[label] = {
                "group": label,
                "component_count": 0,
                "weight_prior": 0.0,
                "weight_current": 0.0,
                "performance_effect_bps": 0.0,
                "mix_effect_bps": 0.0,
                "total_effect_bps": 0.0,
            }

        agg = grouped[label]
        agg["component_count"] += 1
        agg["weight_prior"] += component.weight_prior
        agg["weight_current"] += component.weight_current
        agg["performance_effect_bps"] += component.performance_effect_bps
        agg["mix_effect_bps"] += component.mix_effect_bps
        agg["total_effect_bps"] += component.total_effect_bps

    return sorted(
        (GroupAttribution(**values) for values in grouped.values()),
        key=lambda g: abs(g.total_effect_bps),
        reverse=True,
    )


# =============================================================================
# TABULAR OUTPUT
# =============================================================================

def report_to_frame(report: AttributionReport, include_summary: bool = True) -> pd.DataFrame:
    """
    Render the report as a pandas DataFrame indexed by component id.

    Columns are the input, derived and effect columns. With
    `include_summary`, a final SUMMARY_ROW_LABEL row carries the portfolio
    revenue, profit and margins, the effect column sums, the summed weights
    and the tie-out residual (the only row with a tie_out_residual_bps value).

    Raises:
        InvalidInputError: If `include_summary` is set and a component id
            equals SUMMARY_ROW_LABEL.
    """
    if include_summary:
        for c in report.components:
            if c.id == SUMMARY_ROW_LABEL:
                raise InvalidInputError(
                    f"Component id '{SUMMARY_ROW_LABEL}' collides with the summary row label",
                    component_id=c.id,
                )

    columns = [name for name in ComponentAttribution.model_fields if name != "id"]
    frame = pd.DataFrame(
        [c.model_dump(exclude={"id"}) for c in report.components],
        index=pd.Index([c.id for c in report.components], name="id"),
        columns=columns,
    )

    if not include_summary:
        return frame

    summary = report.summary
    summary_row = {
        "group": None,
        "revenue_prior": summary.revenue_prior,
        "revenue_current": summary.revenue_current,
        "profit_prior": summary.profit_prior,
        "profit_current": summary.profit_current,
        "margin_prior": summary.total_margin_prior,
        "margin_current": summary.total_margin_current,
        "weight_prior": float(frame["weight_prior"].sum()),
        "weight_current": float(frame["weight_current"].sum()),
        "delta_margin_bps": summary.margin_change_bps,
        "delta_weight_bps": float(frame["delta_weight_bps"].sum()),
        "performance_effect_bps": summary.performance_effect_bps,
        "mix_effect_bps": summary.mix_effect_bps,
        "total_effect_bps": summary.total_effect_bps,
        "tie_out_residual_bps": summary.tie_out_residual_bps,
    }

    frame["tie_out_residual_bps"] = np.nan
    summary_frame = pd.DataFrame(
        [summary_row],
        index=pd.Index([SUMMARY_ROW_LABEL], name="id"),
        columns=frame.columns,
    )
    return pd.concat([frame, summary_frame])


# =============================================================================
# EXPORTS - Public API
# =============================================================================

__all__ = [
    # Main analysis function
    "attribute_margin",
    # Pipeline steps
    "coerce_records",
    "validate_records",
    "compute_portfolio_totals",
    "compute_derived_columns",
    "compute_effects",
    "reconcile",
    # Reporting helpers
    "effect_value",
    "rank_drivers",
    "rollup_by_group",
    "report_to_frame",
    # Data classes
    "PortfolioTotals",
    "DerivedColumns",
    "EffectColumns",
    # Constants
    "BPS",
    "DEFAULT_TIE_OUT_REL_TOLERANCE",
    "DEFAULT_WEIGHT_SUM_TOLERANCE",
    "DEFAULT_TOP_N_DRIVERS",
    "UNGROUPED_LABEL",
    "SUMMARY_ROW_LABEL",
]
