"""OpenCV camera capture keeping only the newest frame."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def latest_frame(self) -> Optional[np.ndarray]:
        """Most recent BGR frame, or None before the first one arrives."""


def parse_device(device: Union[str, int]) -> Union[str, int]:
    """``"0"`` -> camera index 0; anything non-numeric is a file or stream URL."""
    if isinstance(device, int):
        return device
    return int(device) if device.strip().isdigit() else device


class CameraFrameSource:
    """Reads frames on a background thread; late frames are simply overwritten."""

    def __init__(self, device: Union[str, int] = 0, loop: bool = True) -> None:
        self.device = parse_device(device)
        self.loop = loop
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cap = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._cap = cv2.VideoCapture(self.device)
        if not self._cap.isOpened():
            raise RuntimeError(f"Cannot open camera: {self.device}")
        logger.info("Camera %s opened (%dx%d)", self.device,
                    int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                    int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)))
        self._thread = threading.Thread(target=self._run, name="camera", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def _run(self) -> None:
        cap = self._cap
        while not self._stop.is_set():
            ok, frame = cap.read()
            if not ok:
                # Video files: rewind; streams and live cameras: back off, retry
                if self.loop and isinstance(self.device, str):
                    if cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
                        continue
                if self._stop.wait(0.05):
                    break
                continue
            with self._lock:
                self._frame = frame
