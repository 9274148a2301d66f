"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from internlink.api.routes.application_routes import router as application_router
from internlink.api.routes.listing_routes import router as listing_router
from internlink.api.routes.stream_routes import router as stream_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(application_router)
api_router.include_router(listing_router)
api_router.include_router(stream_router)
