"""
API v1 router configuration
"""

from fastapi import APIRouter
from showcase.api.v1.endpoints import image_search

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(image_search.router, prefix="/image-search", tags=["image-search"])
