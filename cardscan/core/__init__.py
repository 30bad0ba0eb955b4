"""Core domain entities and exceptions."""

from .entities import (
    CANDIDATE_SLOTS, FINAL_FIELDS, DisplayRotation, FieldCandidates, FinalRecord,
    FrameOutcome, PlanarFrame, PlanarPlane, Rect, ScanProgress, ScanState, Size,
)
from .exceptions import (
    ApplicationError, ConfigError, FrameError, GeometryError, RecognitionError,
    ServiceError, UnsupportedRotationError, ValidationError,
)

__all__ = [
    "CANDIDATE_SLOTS", "FINAL_FIELDS", "DisplayRotation", "FieldCandidates", "FinalRecord",
    "FrameOutcome", "PlanarFrame", "PlanarPlane", "Rect", "ScanProgress", "ScanState", "Size",
    "ApplicationError", "ConfigError", "FrameError", "GeometryError", "RecognitionError",
    "ServiceError", "UnsupportedRotationError", "ValidationError",
]
