"""API v1 router combining all endpoints"""
from fastapi import APIRouter

from app.api.v1.endpoints import installations, projects, repositories, scans, users, webhooks

router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
router.include_router(users.router)
router.include_router(installations.router)
router.include_router(repositories.router)
router.include_router(projects.router)
router.include_router(scans.router)
router.include_router(webhooks.router)

__all__ = ["router"]
