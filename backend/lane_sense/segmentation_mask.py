"""
Segmentation head decoding and mask resampling.

YOLOPv2 exposes two segmentation heads next to its detection outputs:

    drivable area   [1, 2, H, W]   background / road scores, decoded by argmax
    lane lines      [1, 1, H, W]   lane probability, set at 1.0

Decoded masks are ``uint8`` arrays of shape (H, W) holding only 0 and 1.

Resampling
----------
The model sees a letterboxed input, so the top ``pad_top`` and bottom
``pad_bottom`` rows of every head are padding.  ``make_masks`` drops those
rows and upsamples the rest by ``UPSAMPLE_FACTOR`` in both axes:

    (H, W)  ->  crop  ->  (H - pad_top - pad_bottom, W)  ->  x2  ->  mask space

Horizontal padding is not removed.  Coordinates in mask space are therefore
neither camera nor canvas pixels.

Usage example
-------------
    from lane_sense.segmentation_mask import make_masks, pick_seg_heads

    da_head, ll_head = pick_seg_heads(session.run(None, feeds))
    da_mask, ll_mask = make_masks(da_head, ll_head, lb.pad_top, lb.pad_bottom)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import cv2
import numpy as np

from .errors import CropError, HeadSelectionError, ShapeMismatchError

UPSAMPLE_FACTOR = 2

# lane head values are near 0 or 1; only a full 1.0 counts as a marking.
# Soft scores are compared as-is, not rounded, so 0.5..0.999 stays background.
_LANE_THRESHOLD = 1.0


def pick_seg_heads(
    outputs: Sequence[np.ndarray] | Mapping[str, np.ndarray],
) -> tuple[np.ndarray, np.ndarray]:
    """Select the (drivable, lane) heads from raw model outputs.

    Only 4-D outputs with batch size 1 are candidates.  A 2-channel head is
    the drivable area and a 1-channel head the lane lines; when the channel
    counts don't settle it, the head with more channels is taken as drivable.

    Raises
    ------
    HeadSelectionError
        Fewer than two candidate heads.
    """
    values = outputs.values() if isinstance(outputs, Mapping) else outputs
    heads = [
        o for o in values
        if isinstance(o, np.ndarray) and o.ndim == 4 and o.shape[0] == 1
    ]
    if len(heads) < 2:
        shapes = [getattr(o, "shape", None) for o in values]
        raise HeadSelectionError(f"Need two 4-D segmentation heads, got shapes {shapes}")

    da = next((h for h in heads if h.shape[1] == 2), None)
    ll = next((h for h in heads if h.shape[1] == 1), None)
    if da is not None and ll is not None:
        return da, ll

    by_channels = sorted(heads, key=lambda h: h.shape[1])
    return by_channels[1], by_channels[0]


def decode_head(tensor: np.ndarray) -> np.ndarray:
    """Decode a [1, C, H, W] head into a binary (H, W) mask.

    C == 1: pixel is set when its value reaches 1.0 (0.999 stays unset).
    C == 2: pixel is set when the channel-1 score beats channel 0 strictly.
    """
    if tensor.ndim != 4 or tensor.shape[0] != 1:
        raise ShapeMismatchError(f"Expected a [1, C, H, W] head, got {tensor.shape}")
    channels, h, w = tensor.shape[1:]
    if h < 1 or w < 1:
        raise ShapeMismatchError(f"Empty segmentation head: {tensor.shape}")

    if channels == 1:
        mask = tensor[0, 0] >= _LANE_THRESHOLD
    elif channels == 2:
        mask = tensor[0, 1] > tensor[0, 0]
    else:
        raise ShapeMismatchError(f"Unsupported channel count {channels} in {tensor.shape}")
    return np.ascontiguousarray(mask, dtype=np.uint8)


def decode_heads(drivable: np.ndarray, lane: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Decode both heads, requiring the same spatial resolution."""
    if drivable.ndim != 4 or lane.ndim != 4 or drivable.shape[2:] != lane.shape[2:]:
        raise ShapeMismatchError(
            f"Head shapes disagree: drivable {drivable.shape}, lane {lane.shape}"
        )
    return decode_head(drivable), decode_head(lane)


def crop_rows(mask: np.ndarray, pad_top: int, pad_bottom: int) -> np.ndarray:
    """Drop ``pad_top`` rows from the top and ``pad_bottom`` rows from the bottom."""
    h = mask.shape[0]
    if pad_top < 0 or pad_bottom < 0:
        raise CropError(f"Negative padding: top={pad_top}, bottom={pad_bottom}")
    if h <= pad_top + pad_bottom:
        raise CropError(
            f"Padding top={pad_top} bottom={pad_bottom} leaves no rows of {h}"
        )
    return mask[pad_top : h - pad_bottom]


def upsample_nearest(mask: np.ndarray, factor: int = UPSAMPLE_FACTOR) -> np.ndarray:
    """Nearest-neighbour upsample a 2-D mask by an integer factor."""
    h, w = mask.shape
    return cv2.resize(
        np.ascontiguousarray(mask, dtype=np.uint8),
        (w * factor, h * factor),
        interpolation=cv2.INTER_NEAREST,
    )


def make_masks(
    drivable: np.ndarray,
    lane: np.ndarray,
    pad_top: int,
    pad_bottom: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Decode, un-letterbox and upsample the two heads into mask space.

    Parameters
    ----------
    drivable, lane : np.ndarray
        Raw [1, C, H, W] heads as picked by ``pick_seg_heads``.
    pad_top, pad_bottom : int
        Vertical letterbox padding in model-input rows.

    Returns
    -------
    tuple of np.ndarray
        ``(da_mask, ll_mask)``, each uint8 of shape
        ``(2 * (H - pad_top - pad_bottom), 2 * W)``.
    """
    da_model, ll_model = decode_heads(drivable, lane)
    da_crop = crop_rows(da_model, pad_top, pad_bottom)
    ll_crop = crop_rows(ll_model, pad_top, pad_bottom)
    return upsample_nearest(da_crop), upsample_nearest(ll_crop)
