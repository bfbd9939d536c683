"""
Settings and environment management module for the margin attribution service.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development
- Singleton pattern via @lru_cache for efficient access

Environment Variables:
- APP_NAME: Title shown in the OpenAPI docs
- TIE_OUT_REL_TOLERANCE: Relative tolerance for the reconciliation check (default: 1e-9)
- WEIGHT_SUM_TOLERANCE: Allowed deviation of per-period weight sums from 1.0 (default: 1e-9)
- DEFAULT_TOP_N: Number of drivers returned when none is requested (default: 10)
- MAX_UPLOAD_BYTES: Size cap for CSV uploads (default: 5 MB)
- CORS_ORIGINS: JSON list of allowed origins
- LOG_LEVEL: Root logging level (default: INFO)

Usage:
    from margin_attribution.core.config import get_settings

    settings = get_settings()
    tolerance = settings.tie_out_rel_tolerance
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The calculator itself never reads these; the API and the memo job pass
    the relevant values in explicitly.

    Attributes:
        app_name: FastAPI application title.
        tie_out_rel_tolerance: Relative tolerance for sum(total effects) vs the
            observed portfolio margin change.
        weight_sum_tolerance: Allowed deviation of each period's weight sum from 1.
        default_top_n: Default number of drivers in rankings and memos.
        max_upload_bytes: Largest CSV upload accepted by the API.
        cors_origins: Origins allowed by the CORS middleware.
        log_level: Root logging level name.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    app_name: str = 'Margin Attribution API'

    # =========================================================================
    # Numeric Tolerances
    # =========================================================================

    # Residual allowed = tie_out_rel_tolerance * max(1, |change|, sum|effects|)
    tie_out_rel_tolerance: float = Field(default=1e-9, gt=0.0)

    weight_sum_tolerance: float = Field(default=1e-9, gt=0.0)

    # =========================================================================
    # Reporting Defaults
    # =========================================================================

    default_top_n: int = Field(default=10, ge=1)

    # =========================================================================
    # HTTP Surface
    # =========================================================================

    max_upload_bytes: int = Field(default=5_000_000, ge=1)

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    log_level: str = 'INFO'


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Raises:
        pydantic.ValidationError: If an environment variable has an invalid value.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
