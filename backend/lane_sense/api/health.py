from fastapi import APIRouter

from lane_sense.config import get_mode

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok", "mode": get_mode().value}
