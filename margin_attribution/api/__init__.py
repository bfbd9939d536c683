"""
API package initialization.

This package contains FastAPI router modules for the margin attribution service:
- attribution: portfolio attribution, CSV upload, driver ranking, group roll-up
"""

from fastapi import APIRouter

from margin_attribution.api.attribution import router as attribution_router

# Create main API router
api_router = APIRouter()

# attribution router has its own /attribution prefix
api_router.include_router(attribution_router)

__all__ = [
    "api_router",
    "attribution_router",
]
