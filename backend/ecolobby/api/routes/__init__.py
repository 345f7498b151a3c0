from fastapi import APIRouter

from ecolobby.api.routes.health import router as health_router
from ecolobby.api.routes.sessions import router as sessions_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
