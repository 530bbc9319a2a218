"""FastAPI API endpoints under /api.

Endpoint groups: health + providers, scenarios (list, detail), and the
multi-agent session stream.
"""

from fastapi import APIRouter

from .council import router as council_router
from .scenarios import router as scenarios_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(scenarios_router)
router.include_router(council_router)
