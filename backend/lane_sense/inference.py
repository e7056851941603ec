"""Segmentation model adapters.

The pipeline only needs two things from a model: the input size it expects
and a ``predict`` call returning the raw output arrays.  ``OnnxSegmentationModel``
provides them for the YOLOPv2 ONNX export.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol, Sequence

import numpy as np

from .errors import InferenceError

logger = logging.getLogger(__name__)

# Used when the model input has dynamic spatial dims
DEFAULT_INPUT_SIZE = (640, 640)


class SegmentationModel(Protocol):
    def input_size(self) -> tuple[int, int]:
        """Model input as (width, height)."""

    def predict(self, tensor: np.ndarray) -> Sequence[np.ndarray]:
        """Run the model on a [1, 3, H, W] float tensor."""


class OnnxSegmentationModel:
    """Lazily loaded onnxruntime session for a YOLOPv2-style export."""

    def __init__(self, path: Path, providers: Sequence[str] | None = None) -> None:
        self.path = Path(path)
        self.providers = list(providers) if providers else None
        self._session = None
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            if self._session is None:
                import onnxruntime as ort

                if not self.path.exists():
                    raise FileNotFoundError(
                        f"Model not found at {self.path}. Run: lane-sense-download-model"
                    )
                self._session = ort.InferenceSession(str(self.path), providers=self.providers)
                logger.info("Loaded segmentation model %s. Outputs:", self.path.name)
                for o in self._session.get_outputs():
                    logger.info("  %s: %s", o.name, o.shape)
            return self._session

    def input_size(self) -> tuple[int, int]:
        try:
            shape = self.load().get_inputs()[0].shape
        except Exception as e:
            raise InferenceError(f"Segmentation model unavailable: {e}") from e
        if len(shape) == 4 and all(isinstance(d, int) and d > 0 for d in shape[2:]):
            return int(shape[3]), int(shape[2])
        return DEFAULT_INPUT_SIZE

    def predict(self, tensor: np.ndarray) -> list[np.ndarray]:
        try:
            session = self.load()
            return session.run(None, {session.get_inputs()[0].name: tensor})
        except Exception as e:
            raise InferenceError(f"Segmentation inference failed: {e}") from e
