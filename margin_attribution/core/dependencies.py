"""
FastAPI dependency injection module for the margin attribution service.

Provides:
- get_settings_dependency: Returns the cached Settings singleton
- SettingsDep: Type alias for injecting Settings into endpoints

Usage:
    @router.post("/attribution")
    async def attribute(
        request: AttributionRequest,
        settings: SettingsDep,
    ) -> AttributionReport:
        ...

In tests, override the dependency:

    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
"""

from typing import Annotated

from fastapi import Depends

from margin_attribution.core.config import Settings, get_settings


def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() so FastAPI's dependency
    override mechanism can swap settings in tests.
    """
    return get_settings()


# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]
