"""Frame geometry: working-canvas fit, letterboxing and model input tensors.

Only the vertical letterbox padding is recorded.  The segmentation masks are
later cropped by rows only, so any horizontal padding the letterbox adds stays
in the mask width (see ``segmentation_mask.crop_rows``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from .errors import GeometryError

DEFAULT_CANVAS = (1280, 720)
PAD_COLOR = (114, 114, 114)


@dataclass(frozen=True)
class Letterboxed:
    """Model-sized image plus the vertical padding added around the content."""

    image: Image.Image
    pad_top: int
    pad_bottom: int

    @property
    def content_height(self) -> int:
        return self.image.height - self.pad_top - self.pad_bottom


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest int, halves going up."""
    return int(math.floor(value + 0.5))


def as_rgb_image(frame) -> Image.Image:
    """Return *frame* as an RGB PIL image.

    Accepts a PIL image or an OpenCV-style ``numpy`` array (BGR ``H×W×3`` or
    grayscale ``H×W``).  Raises GeometryError when there are no pixels to read.
    """
    if isinstance(frame, Image.Image):
        if frame.width <= 0 or frame.height <= 0:
            raise GeometryError(f"Frame has no pixels: {frame.size}")
        try:
            return frame.convert("RGB")
        except OSError as e:
            raise GeometryError(f"Cannot decode frame: {e}") from e

    if isinstance(frame, np.ndarray):
        if frame.size == 0:
            raise GeometryError(f"Frame has no pixels: shape {frame.shape}")
        arr = frame if frame.dtype == np.uint8 else np.clip(frame, 0, 255).astype(np.uint8)
        if arr.ndim == 2:
            return Image.fromarray(cv2.cvtColor(arr, cv2.COLOR_GRAY2RGB))
        if arr.ndim == 3 and arr.shape[2] == 3:
            return Image.fromarray(cv2.cvtColor(arr, cv2.COLOR_BGR2RGB))
        if arr.ndim == 3 and arr.shape[2] == 4:
            return Image.fromarray(cv2.cvtColor(arr, cv2.COLOR_BGRA2RGB))
        raise GeometryError(f"Unsupported frame shape: {frame.shape}")

    raise GeometryError(f"Unsupported frame type: {type(frame).__name__}")


def fit_to_canvas(frame, canvas: tuple[int, int] = DEFAULT_CANVAS) -> Image.Image:
    """Aspect-fit *frame* into a black ``canvas`` (width, height) image.

    This produces the per-tick working frame.  Unlike ``letterbox`` the
    content is scaled up as well as down.
    """
    img = as_rgb_image(frame)
    cw, ch = canvas
    if cw <= 0 or ch <= 0:
        raise GeometryError(f"Invalid canvas size: {canvas}")

    r = min(cw / img.width, ch / img.height)
    new_w = max(1, round_half_up(img.width * r))
    new_h = max(1, round_half_up(img.height * r))

    out = Image.new("RGB", (cw, ch), (0, 0, 0))
    if (new_w, new_h) != img.size:
        img = img.resize((new_w, new_h), Image.BILINEAR)
    out.paste(img, (round_half_up((cw - new_w) / 2), round_half_up((ch - new_h) / 2)))
    return out


def letterbox(
    frame,
    target_size: tuple[int, int],
    pad_color: tuple[int, int, int] = PAD_COLOR,
    scale_up: bool = True,
) -> Letterboxed:
    """Resize *frame* into ``target_size`` (width, height) keeping its aspect ratio.

    The content is centred on a ``pad_color`` canvas.  With ``scale_up=False``
    the content is only ever shrunk.
    """
    img = as_rgb_image(frame)
    wt, ht = target_size
    if wt <= 0 or ht <= 0:
        raise GeometryError(f"Invalid target size: {target_size}")
    w0, h0 = img.size

    r = min(ht / h0, wt / w0)
    if not scale_up:
        r = min(r, 1.0)
    w1 = max(1, round_half_up(w0 * r))
    h1 = max(1, round_half_up(h0 * r))

    left = round_half_up((wt - w1) / 2)
    top = round_half_up((ht - h1) / 2)
    bottom = ht - h1 - top

    out = Image.new("RGB", (wt, ht), pad_color)
    if (w1, h1) != img.size:
        img = img.resize((w1, h1), Image.BILINEAR)
    out.paste(img, (left, top))
    return Letterboxed(image=out, pad_top=top, pad_bottom=bottom)


def to_input_tensor(image: Image.Image) -> np.ndarray:
    """Convert an RGB image to a float32 NCHW tensor scaled to [0, 1]."""
    arr = np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0  # HWC
    return np.ascontiguousarray(arr.transpose(2, 0, 1)[np.newaxis])   # NCHW
