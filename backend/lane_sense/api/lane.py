"""Read-only views of the lane context and the pipeline's latest tick."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel

from lane_sense.context_store import LaneContextStore
from lane_sense.pipeline import LanePipeline

router = APIRouter(prefix="/lane")


class LaneContextOut(BaseModel):
    ego: Optional[int] = None
    total: Optional[int] = None
    context_line: Optional[str] = None
    prompt_line: str


class TickReportOut(BaseModel):
    ego_lane: int
    total_lanes: int
    lane_report: str
    timing: dict[str, float]
    timing_report: str
    age_s: float
    has_overlay: bool


def _store(request: Request) -> LaneContextStore:
    return request.app.state.store


def _pipeline(request: Request) -> LanePipeline:
    pipeline = request.app.state.pipeline
    if pipeline is None:
        raise HTTPException(404, "Lane pipeline is not running")
    return pipeline


@router.get("", response_model=LaneContextOut)
async def lane_context(request: Request):
    store = _store(request)
    snap = store.snapshot()
    return LaneContextOut(
        ego=snap.ego if snap else None,
        total=snap.total if snap else None,
        context_line=store.context_line(),
        prompt_line=store.prompt_line(),
    )


@router.get("/report", response_model=TickReportOut)
async def lane_report(request: Request):
    report = _pipeline(request).latest_report()
    if report is None:
        raise HTTPException(404, "No lane result published yet")
    return TickReportOut(
        ego_lane=report.scan.ego_lane,
        total_lanes=report.scan.total_lanes,
        lane_report=report.lane_report,
        timing={k: round(v, 1) for k, v in report.timings.items()},
        timing_report=report.timing_report,
        age_s=round(time.monotonic() - report.published_at, 3),
        has_overlay=report.overlay_jpeg is not None,
    )


@router.get("/overlay")
async def lane_overlay(request: Request):
    """Latest overlay as JPEG (only produced while overlay drawing is enabled)."""
    report = _pipeline(request).latest_report()
    if report is None or report.overlay_jpeg is None:
        raise HTTPException(404, "No overlay available")
    return Response(content=report.overlay_jpeg, media_type="image/jpeg")


@router.get("/stats")
async def lane_stats(request: Request):
    pipeline = _pipeline(request)
    return {**pipeline.stats(), "running": pipeline.running}


class OverlayToggle(BaseModel):
    enabled: bool


@router.put("/overlay-enabled")
async def set_overlay_enabled(req: OverlayToggle, request: Request):
    pipeline = _pipeline(request)
    pipeline.overlay_enabled = req.enabled
    return {"ok": True, "overlay_enabled": pipeline.overlay_enabled}
