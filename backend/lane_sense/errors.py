"""Tick-local failures raised by the lane pipeline stages.

None of these are fatal: the pipeline logs them, skips publication for the
tick and carries on with the next one.
"""


class LanePipelineError(Exception):
    """Base class for recoverable per-tick pipeline failures."""


class GeometryError(LanePipelineError):
    """The source frame has no decodable pixels or the target size is invalid."""


class HeadSelectionError(LanePipelineError):
    """Model output does not contain two resolvable segmentation heads."""


class ShapeMismatchError(LanePipelineError):
    """Segmentation head shapes are invalid or disagree with each other."""


class CropError(LanePipelineError):
    """Letterbox padding leaves no valid mask rows."""


class InferenceError(LanePipelineError):
    """The segmentation model failed to produce outputs."""
