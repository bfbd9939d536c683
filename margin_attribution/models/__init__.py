"""
Package initialization file for margin attribution models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from margin_attribution.models directly.

Usage:
    from margin_attribution.models import (
        ComponentRecord,
        AttributionReport,
        EffectType,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from margin_attribution.models.enums import (
    EffectType,
    ErrorCode,
    Period,
)


# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from margin_attribution.models.schemas import (
    # Input
    ComponentRecord,
    AttributionRequest,
    # Output
    ComponentAttribution,
    AttributionSummary,
    AttributionReport,
    GroupAttribution,
    ErrorResponse,
    # Ingestion
    ValidationError,
    IngestionResult,
)


__all__ = [
    # Enums
    "EffectType",
    "ErrorCode",
    "Period",
    # Schemas
    "ComponentRecord",
    "AttributionRequest",
    "ComponentAttribution",
    "AttributionSummary",
    "AttributionReport",
    "GroupAttribution",
    "ErrorResponse",
    "ValidationError",
    "IngestionResult",
]
