"""
API v1 Router
"""

from fastapi import APIRouter

from app.api.v1 import app, auth

router = APIRouter()

# Include all endpoint routers
router.include_router(auth.router)
router.include_router(app.router)

__all__ = ["router"]
