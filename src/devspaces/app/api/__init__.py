"""HTTP API routers."""

from fastapi import APIRouter

from devspaces.app.api.auth import router as auth_router
from devspaces.app.api.workspaces import router as workspaces_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(workspaces_router)

__all__ = ["router"]
