"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from geomatch.api.routes import presence, requests

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(presence.router)
api_router.include_router(requests.router)
