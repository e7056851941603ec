"""Debug overlay: segmentation masks, scan path and lane text on the working frame."""

from __future__ import annotations

import cv2
import numpy as np
from PIL import Image

from .scanner import LaneScanResult

_ALPHA = 0.5
_GREEN = np.array([0, 255, 0], dtype=np.float32)
_RED = np.array([255, 0, 0], dtype=np.float32)
_PATH_COLOR = (255, 255, 0)  # yellow, RGB
_FONT = cv2.FONT_HERSHEY_SIMPLEX


def _fit_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    if mask.shape[:2] != (height, width):
        mask = cv2.resize(mask.astype(np.uint8), (width, height), interpolation=cv2.INTER_NEAREST)
    return mask > 0


def blend_masks(base_rgb: np.ndarray, da_mask: np.ndarray, ll_mask: np.ndarray) -> np.ndarray:
    """Tint drivable pixels green and lane pixels red (lane wins where both are set)."""
    h, w = base_rgb.shape[:2]
    da = _fit_mask(da_mask, w, h)
    ll = _fit_mask(ll_mask, w, h)

    out = base_rgb.astype(np.float32)
    out[da] = out[da] * (1 - _ALPHA) + _GREEN * _ALPHA
    out[ll] = out[ll] * (1 - _ALPHA) + _RED * _ALPHA
    return np.clip(out, 0, 255).astype(np.uint8)


def _draw_label(img: np.ndarray, text: str, org: tuple[int, int]) -> None:
    cv2.putText(img, text, org, _FONT, 0.6, (0, 0, 0), 4, cv2.LINE_AA)
    cv2.putText(img, text, org, _FONT, 0.6, (255, 255, 255), 1, cv2.LINE_AA)


def render_overlay(
    frame: Image.Image,
    da_mask: np.ndarray,
    ll_mask: np.ndarray,
    scan: LaneScanResult,
) -> np.ndarray:
    """Draw masks, scan path and lane counts over *frame*; returns an RGB array.

    Masks and path live in mask space and are scaled to the frame size.
    """
    base = np.asarray(frame.convert("RGB"))
    h, w = base.shape[:2]
    out = blend_masks(base, da_mask, ll_mask)

    if len(scan.path) >= 2:
        mh, mw = da_mask.shape[:2]
        sx = w / mw if mw else 1.0
        sy = h / mh if mh else 1.0
        pts = np.array(
            [(int(round(x * sx)), int(round(y * sy))) for x, y in scan.path],
            dtype=np.int32,
        ).reshape(-1, 1, 2)
        cv2.polylines(out, [pts], False, _PATH_COLOR, 3, cv2.LINE_AA)

    _draw_label(out, f"Ego in lane {max(1, scan.ego_lane)}", (8, 24))
    _draw_label(out, f"{max(0, scan.total_lanes)} total lanes", (8, 46))
    return out


def encode_jpeg(rgb: np.ndarray, quality: int = 92) -> bytes:
    ok, jpeg = cv2.imencode(".jpg", cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR),
                            [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return jpeg.tobytes()
