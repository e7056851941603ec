from fastapi import APIRouter

from .health import router as health_router
from .lane import router as lane_router
from .model import router as model_router

router = APIRouter(prefix="/api")
router.include_router(health_router)
router.include_router(lane_router)
router.include_router(model_router)
