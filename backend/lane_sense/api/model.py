"""API endpoint for model file status."""

from fastapi import APIRouter

from lane_sense.model import get_model_path

router = APIRouter(prefix="/model")


@router.get("/status")
async def model_status():
    path = get_model_path()
    return {"exists": path.exists(), "name": path.name}
