"""
Core infrastructure package for the margin attribution service.

Provides:
- Configuration management via pydantic-settings
- FastAPI dependency injection utilities

Re-exports key components so other modules can write:

    from margin_attribution.core import get_settings, SettingsDep
"""

from margin_attribution.core.config import Settings, get_settings
from margin_attribution.core.dependencies import (
    get_settings_dependency,
    SettingsDep,
)

__all__ = [
    'Settings',
    'get_settings',
    'get_settings_dependency',
    'SettingsDep',
]
