"""
Margin Attribution Services Module

This module contains the business logic of the margin attribution service.
Each service is stateless and testable.

Services:
- attribution: Performance vs mix decomposition of a portfolio margin change
- ingestion: Component table parsing and validation (CSV, upload, DataFrame)
- errors: Attribution error taxonomy

All services are consumed by the API layer (margin_attribution/api/) and the
memo job (margin_attribution/jobs/).
"""

# =============================================================================
# Attribution Service Exports
# Performance vs mix decomposition with tie-out reconciliation, driver
# ranking, group roll-up and tabular output
# =============================================================================

from margin_attribution.services.attribution import (
    attribute_margin,
    rank_drivers,
    rollup_by_group,
    report_to_frame,
    PortfolioTotals,
    BPS,
    DEFAULT_TOP_N_DRIVERS,
)

# =============================================================================
# Ingestion Service Exports
# Component table parsing with column alias resolution, type and id
# validation, and profit derivation from cost
# =============================================================================

from margin_attribution.services.ingestion import (
    ingest_csv,
    ingest_dataframe,
    ingest_upload,
    records_from_frame,
    build_ingestion_result,
)

# =============================================================================
# Error Taxonomy Exports
# =============================================================================

from margin_attribution.services.errors import (
    AttributionError,
    InvalidInputError,
    DivisionByZeroError,
    NumericError,
    TieOutError,
)


__all__ = [
    # Attribution
    "attribute_margin",
    "rank_drivers",
    "rollup_by_group",
    "report_to_frame",
    "PortfolioTotals",
    "BPS",
    "DEFAULT_TOP_N_DRIVERS",
    # Ingestion
    "ingest_csv",
    "ingest_dataframe",
    "ingest_upload",
    "records_from_frame",
    "build_ingestion_result",
    # Errors
    "AttributionError",
    "InvalidInputError",
    "DivisionByZeroError",
    "NumericError",
    "TieOutError",
]
