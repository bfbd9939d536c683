"""
Pydantic request/response models for the margin attribution service.

This module provides type-safe data validation and serialization for the
calculator's input rows, its per-component and portfolio outputs, the group
roll-up, and CSV ingestion feedback.

Units:
- revenue and profit are in currency units of the input table
- margins and weights are decimal fractions (0.17 = 17%)
- every *_bps field is in basis points (1 bps = 0.01 percentage point)

All models use Pydantic v2 syntax.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Input Models
# =============================================================================


class ComponentRecord(BaseModel):
    """
    One slice of the portfolio (product category, channel, region, ...).

    Records are immutable once built. Revenue bounds are enforced by the
    calculator rather than the schema, so zero, negative and non-finite
    revenue surface as attribution errors that name the component.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "id": "Tacos",
                "revenue_prior": 15000.0,
                "revenue_current": 20000.0,
                "profit_prior": 2550.0,
                "profit_current": 3400.0,
                "group": "Food",
            }
        }
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Component label, unique within the portfolio"
    )
    revenue_prior: float = Field(
        ...,
        description="Revenue in the prior period"
    )
    revenue_current: float = Field(
        ...,
        description="Revenue in the current period"
    )
    profit_prior: float = Field(
        ...,
        description="Profit in the prior period (may be negative)"
    )
    profit_current: float = Field(
        ...,
        description="Profit in the current period (may be negative)"
    )
    group: Optional[str] = Field(
        default=None,
        description="Optional roll-up label (e.g. region); does not affect effects"
    )


class AttributionRequest(BaseModel):
    """Request body carrying the portfolio to attribute."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "records": [
                    {"id": "Tacos", "revenue_prior": 15000, "revenue_current": 20000,
                     "profit_prior": 2550, "profit_current": 3400},
                    {"id": "Sides", "revenue_prior": 15000, "revenue_current": 10000,
                     "profit_prior": 3000, "profit_current": 2200},
                    {"id": "Drinks", "revenue_prior": 5000, "revenue_current": 5000,
                     "profit_prior": 1600, "profit_current": 750},
                ]
            }
        }
    )

    records: List[ComponentRecord] = Field(
        ...,
        description="Portfolio components; must be non-empty"
    )


# =============================================================================
# Output Models
# =============================================================================


class ComponentAttribution(BaseModel):
    """
    Attribution row for a single component: input columns, derived columns
    and the three effects.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Component label")
    group: Optional[str] = Field(default=None, description="Roll-up label")

    revenue_prior: float = Field(..., description="Prior-period revenue")
    revenue_current: float = Field(..., description="Current-period revenue")
    profit_prior: float = Field(..., description="Prior-period profit")
    profit_current: float = Field(..., description="Current-period profit")

    margin_prior: float = Field(..., description="profit_prior / revenue_prior")
    margin_current: float = Field(..., description="profit_current / revenue_current")
    weight_prior: float = Field(..., description="Share of prior-period portfolio revenue")
    weight_current: float = Field(..., description="Share of current-period portfolio revenue")
    delta_margin_bps: float = Field(..., description="Margin change in bps")
    delta_weight_bps: float = Field(..., description="Revenue share change in bps")

    performance_effect_bps: float = Field(
        ...,
        description="delta_margin_bps * weight_prior"
    )
    mix_effect_bps: float = Field(
        ...,
        description="delta_weight_bps * (margin_current - total_margin_current)"
    )
    total_effect_bps: float = Field(
        ...,
        description="performance_effect_bps + mix_effect_bps"
    )


class AttributionSummary(BaseModel):
    """
    Portfolio-level summary row: aggregate margins, effect column sums and
    the tie-out residual.
    """
    model_config = ConfigDict(frozen=True)

    component_count: int = Field(..., ge=1, description="Number of components")
    revenue_prior: float = Field(..., description="Total prior-period revenue")
    revenue_current: float = Field(..., description="Total current-period revenue")
    profit_prior: float = Field(..., description="Total prior-period profit")
    profit_current: float = Field(..., description="Total current-period profit")
    total_margin_prior: float = Field(..., description="Portfolio margin, prior period")
    total_margin_current: float = Field(..., description="Portfolio margin, current period")
    margin_change_bps: float = Field(
        ...,
        description="(total_margin_current - total_margin_prior) * 10000"
    )
    performance_effect_bps: float = Field(..., description="Sum of performance effects")
    mix_effect_bps: float = Field(..., description="Sum of mix effects")
    total_effect_bps: float = Field(..., description="Sum of total effects")
    tie_out_residual_bps: float = Field(
        ...,
        description="total_effect_bps - margin_change_bps"
    )
    tie_out_tolerance_bps: float = Field(
        ...,
        ge=0.0,
        description="Absolute tolerance the residual was checked against"
    )


class AttributionReport(BaseModel):
    """
    Complete attribution output: one row per component, in input order, plus
    the portfolio summary.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "components": [],
                "summary": {
                    "component_count": 3,
                    "total_margin_prior": 0.2043,
                    "total_margin_current": 0.1814,
                    "margin_change_bps": -228.57,
                    "total_effect_bps": -228.57,
                    "tie_out_residual_bps": 0.0,
                }
            }
        }
    )

    components: List[ComponentAttribution] = Field(
        ...,
        description="Per-component attribution rows"
    )
    summary: AttributionSummary = Field(
        ...,
        description="Portfolio totals and tie-out"
    )

    @property
    def has_groups(self) -> bool:
        """True when at least one component carries a group label."""
        return any(c.group is not None for c in self.components)


class GroupAttribution(BaseModel):
    """
    Effects summed over all components sharing a group label.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "group": "Food",
                "component_count": 2,
                "weight_prior": 0.857,
                "weight_current": 0.857,
                "performance_effect_bps": 85.71,
                "mix_effect_bps": -71.43,
                "total_effect_bps": 14.29,
            }
        }
    )

    group: str = Field(..., description="Group label")
    component_count: int = Field(..., ge=1, description="Components in the group")
    weight_prior: float = Field(..., description="Summed prior-period weight")
    weight_current: float = Field(..., description="Summed current-period weight")
    performance_effect_bps: float = Field(..., description="Summed performance effect")
    mix_effect_bps: float = Field(..., description="Summed mix effect")
    total_effect_bps: float = Field(..., description="Summed total effect")


class ErrorResponse(BaseModel):
    """Error payload returned for rejected attributions."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable message")
    component_id: Optional[str] = Field(
        default=None,
        description="Offending component, when the error is tied to one"
    )


# =============================================================================
# Ingestion Models
# =============================================================================


class ValidationError(BaseModel):
    """
    Validation error detail.

    Used for reporting data validation issues during ingestion.
    """
    field: str = Field(
        ...,
        description="Field with validation error"
    )
    message: str = Field(
        ...,
        description="Error message"
    )
    row_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="Row number where error occurred"
    )


class IngestionResult(BaseModel):
    """
    Result of parsing a component table.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "rows_processed": 3,
                "errors": []
            }
        }
    )

    success: bool = Field(
        ...,
        description="Whether the table passed validation"
    )
    rows_processed: int = Field(
        ...,
        ge=0,
        description="Number of rows read"
    )
    errors: List[ValidationError] = Field(
        default_factory=list,
        description="Validation errors encountered"
    )
