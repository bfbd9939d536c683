"""
Enumeration definitions for the margin attribution service.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models and FastAPI query parameters.
"""

from enum import Enum


class EffectType(str, Enum):
    """
    Effect columns produced by the attribution calculator.

    Used as the ranking key when selecting top drivers:
    - performance: component's own margin movement at prior-period weight
    - mix: component's shift in revenue share, weighted by its margin
      relative to the current portfolio margin
    - total: performance + mix
    """
    PERFORMANCE = "performance"
    MIX = "mix"
    TOTAL = "total"


class Period(str, Enum):
    """
    The two periods compared by an attribution.

    Error messages and memo headings name the period involved.
    """
    PRIOR = "prior"
    CURRENT = "current"


class ErrorCode(str, Enum):
    """
    Machine-readable error codes returned by the API.

    Mirrors the `code` attribute of each exception in services/errors.py.
    """
    INVALID_INPUT = "invalid_input"
    DIVISION_BY_ZERO = "division_by_zero"
    NUMERIC_ERROR = "numeric_error"
    TIE_OUT_FAILURE = "tie_out_failure"
    VALIDATION_FAILED = "validation_failed"
