"""API v1 route aggregation.

Composes the v1 sub-routers into a single `api_router`.
"""
from fastapi import APIRouter

from .auth import router as auth_router

ROUTERS = [
    auth_router,
]


api_router = APIRouter()
for router in ROUTERS:
    api_router.include_router(router)

__all__ = ["api_router"]
