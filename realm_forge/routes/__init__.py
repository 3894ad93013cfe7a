"""FastAPI API endpoints under /api.

Endpoint groups: settings (health + config), world (create, read, advance,
export, delete, diffs), traces (decision audit trail), tools (Tool Archive).
"""

from fastapi import APIRouter

from .settings import router as settings_router
from .tools import router as tools_router
from .traces import router as traces_router
from .world import router as world_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(world_router)
router.include_router(traces_router)
router.include_router(tools_router)
