"""
Attribution error taxonomy.

Every failure of the attribution calculator is one of these exceptions. All
of them are detected eagerly, abort the whole computation and carry the
offending component id (when one exists) so the caller can correct the
source data and run again.

    AttributionError
    ├── InvalidInputError    empty dataset, duplicate id, negative revenue
    ├── DivisionByZeroError  zero revenue in either period
    ├── NumericError         NaN/inf in raw or derived values
    └── TieOutError          effects do not reproduce the observed change
"""

from typing import Any, Dict, Optional

from margin_attribution.models.enums import ErrorCode, Period


class AttributionError(Exception):
    """Base exception for margin attribution failures."""

    code: str = "attribution_error"

    def __init__(self, message: str, component_id: Optional[str] = None):
        self.message = message
        self.component_id = component_id
        if component_id is not None:
            message = f"{message} (component: {component_id})"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for API error payloads."""
        return {
            "code": self.code,
            "message": self.message,
            "component_id": self.component_id,
        }


class InvalidInputError(AttributionError):
    """Raised when the dataset is empty or malformed."""

    code = ErrorCode.INVALID_INPUT.value


class DivisionByZeroError(AttributionError):
    """Raised when a component has zero revenue, leaving its margin undefined."""

    code = ErrorCode.DIVISION_BY_ZERO.value

    def __init__(self, component_id: str, period: Period):
        self.period = period
        super().__init__(
            f"Revenue is zero in the {period.value} period; margin is undefined",
            component_id=component_id,
        )


class NumericError(AttributionError):
    """Raised when a raw or derived value is not finite."""

    code = ErrorCode.NUMERIC_ERROR.value

    def __init__(
        self,
        field: str,
        message: Optional[str] = None,
        component_id: Optional[str] = None,
    ):
        self.field = field
        super().__init__(
            message or f"Non-finite value in '{field}'",
            component_id=component_id,
        )


class TieOutError(AttributionError):
    """
    Raised when the summed effects do not reproduce the portfolio margin change.

    This signals a defect in the decomposition, not bad input.
    """

    code = ErrorCode.TIE_OUT_FAILURE.value

    def __init__(self, residual_bps: float, tolerance_bps: float):
        self.residual_bps = residual_bps
        self.tolerance_bps = tolerance_bps
        super().__init__(
            f"Tie-out residual {residual_bps:.3e} bps exceeds "
            f"tolerance {tolerance_bps:.3e} bps"
        )


__all__ = [
    "AttributionError",
    "InvalidInputError",
    "DivisionByZeroError",
    "NumericError",
    "TieOutError",
]
