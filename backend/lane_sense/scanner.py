"""Parabola scan that turns drivable / lane-line masks into a lane count.

A single parabolic path is traced across the mask, starting near the bottom
at the ego column and bending upward (towards the horizon) as it moves away
sideways.  Samples on or next to a lane marking are barriers; drivable samples
between barriers form regions, one per visible lane.

The path shape is fixed by ``ScanParams``, not fitted to the road.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ScanParams:
    start_frac: float = 0.82   # scan start row, near the vehicle
    top_frac: float = 0.22     # row the path reaches at +-x_span
    span_frac: float = 0.35    # half-width of the look-ahead cone
    min_span: int = 24
    curvature: float = 0.45
    step_x: int = 2
    radius: int = 2            # half-size of the barrier neighbourhood


@dataclass(frozen=True)
class LaneRegion:
    start_x: int
    end_x: int

    def contains(self, x: int) -> bool:
        return self.start_x <= x <= self.end_x

    def distance(self, x: int) -> int:
        if x < self.start_x:
            return self.start_x - x
        if x > self.end_x:
            return x - self.end_x
        return 0


@dataclass(frozen=True)
class LaneScanResult:
    total_lanes: int
    ego_lane: int
    path: tuple[tuple[int, int], ...] = ()
    regions: tuple[LaneRegion, ...] = ()


DEFAULT_PARAMS = ScanParams()


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


def pick_ego_lane(regions: list[LaneRegion] | tuple[LaneRegion, ...], ego_x: int) -> int:
    """1-based index of the region holding ``ego_x``, else the nearest one.

    Ties go to the region met first in scan order; no regions gives lane 1.
    """
    best_idx = 0
    best_dist: int | None = None
    for i, region in enumerate(regions):
        if region.contains(ego_x):
            return i + 1
        d = region.distance(ego_x)
        if best_dist is None or d < best_dist:
            best_dist = d
            best_idx = i
    return best_idx + 1


def parabola_lane_count(
    da_mask: np.ndarray,
    ll_mask: np.ndarray,
    ego_x: int = -1,
    build_path: bool = True,
    params: ScanParams = DEFAULT_PARAMS,
) -> LaneScanResult:
    """Count lanes crossed by the scan parabola and locate the ego lane.

    Parameters
    ----------
    da_mask, ll_mask : np.ndarray
        Binary (H, W) drivable-area and lane-line masks in mask space.
    ego_x : int
        Reference column of the vehicle; negative means the centre column.
    build_path : bool
        Whether to return the sampled ``(x, y)`` points for drawing.

    Never raises for 2-D masks: out-of-range samples are clamped and an empty
    scan reports zero lanes with the vehicle in lane 1.
    """
    h = min(da_mask.shape[0], ll_mask.shape[0])
    w = min(da_mask.shape[1], ll_mask.shape[1])
    if h <= 0 or w <= 0:
        return LaneScanResult(total_lanes=0, ego_lane=1)

    x0 = ego_x if ego_x >= 0 else w // 2
    y0 = int(h * params.start_frac)
    y_top = int(h * params.top_frac)
    x_span = max(params.min_span, int(w * params.span_frac))
    k_base = (y0 - y_top) / (x_span * x_span) if y0 > y_top else 0.0
    a = -params.curvature * k_base
    step = max(1, params.step_x)
    r = max(0, params.radius)

    path: list[tuple[int, int]] = []
    regions: list[LaneRegion] = []
    in_drivable = False
    cur_start = 0
    crossings = 0
    last_was_barrier = True  # the left image edge acts as a marking

    for x in range(0, w, step):
        dx = x - x0
        y = _clamp(int(a * dx * dx + y0), 0, h - 1)
        if build_path:
            path.append((x, y))

        barrier = bool(ll_mask[max(0, y - r) : min(h - 1, y + r) + 1,
                               max(0, x - r) : min(w - 1, x + r) + 1].any())
        drive = not barrier and bool(da_mask[y, x])

        if barrier:
            if in_drivable:
                regions.append(LaneRegion(cur_start, x - 1))
                in_drivable = False
        elif drive and not in_drivable:
            in_drivable = True
            cur_start = x
            if last_was_barrier:
                crossings += 1
        last_was_barrier = barrier

    if in_drivable:
        regions.append(LaneRegion(cur_start, w - 1))

    if crossings > 0:
        total = crossings
    else:
        total = 1 if regions else 0

    return LaneScanResult(
        total_lanes=total,
        ego_lane=pick_ego_lane(regions, x0),
        path=tuple(path) if build_path else (),
        regions=tuple(regions),
    )
