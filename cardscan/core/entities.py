"""Domain entities (data-only structures) used across services."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import FrameError, ValidationError


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned integer rectangle (left, top, right, bottom).

    The same type is used for display space and buffer space; only the
    geometry helpers convert between the two.
    """
    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def validated(cls, left: int, top: int, right: int, bottom: int) -> "Rect":
        """Build a rect from caller input, enforcing right > left and bottom > top."""
        if right <= left or bottom <= top:
            raise ValidationError(
                f"Degenerate rectangle ({left}, {top}, {right}, {bottom})"
            )
        return cls(int(left), int(top), int(right), int(bottom))

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def is_empty(self) -> bool:
        return self.right <= self.left or self.bottom <= self.top

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.right, self.bottom)

    def clamped(self, width: int, height: int) -> "Rect":
        """Clamp every bound into [0, width] x [0, height]."""
        left = max(0, min(self.left, width))
        top = max(0, min(self.top, height))
        right = max(left, min(self.right, width))
        bottom = max(top, min(self.bottom, height))
        return Rect(left, top, right, bottom)


@dataclass(frozen=True, slots=True)
class Size:
    width: int
    height: int


class DisplayRotation(Enum):
    """Rotation of the display relative to its natural orientation."""
    ROTATION_0 = 0
    ROTATION_90 = 1
    ROTATION_180 = 2
    ROTATION_270 = 3

    @property
    def degrees(self) -> int:
        return self.value * 90

    @property
    def is_perpendicular(self) -> bool:
        return self in (DisplayRotation.ROTATION_90, DisplayRotation.ROTATION_270)

    @classmethod
    def from_degrees(cls, degrees: int) -> "DisplayRotation":
        normalized = degrees % 360
        if normalized % 90 != 0:
            raise ValidationError(f"Rotation must be a multiple of 90 degrees, got {degrees}")
        return cls(normalized // 90)


@dataclass(frozen=True, slots=True)
class PlanarPlane:
    """One plane of a planar frame: raw bytes plus its row and pixel strides."""
    buffer: Any  # bytes, bytearray, memoryview or 1-D uint8 ndarray
    row_stride: int
    pixel_stride: int = 1


@dataclass(slots=True)
class PlanarFrame:
    """A captured 4:2:0 frame with luma and two chroma planes (Y, U, V).

    The pixel data is never modified. ``close()`` hands the frame back to its
    producer and may be called any number of times; the release callback runs
    once.
    """
    width: int
    height: int
    planes: Tuple[PlanarPlane, PlanarPlane, PlanarPlane]
    on_close: Optional[Any] = None
    _closed: bool = False

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise FrameError(f"Invalid frame size {self.width}x{self.height}")
        if len(self.planes) != 3:
            raise FrameError(f"Expected 3 planes, got {len(self.planes)}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def luma(self) -> PlanarPlane:
        return self.planes[0]

    @property
    def chroma_u(self) -> PlanarPlane:
        return self.planes[1]

    @property
    def chroma_v(self) -> PlanarPlane:
        return self.planes[2]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.on_close is not None:
            self.on_close(self)


# Slot order shared by extraction, history and formatting.
CANDIDATE_SLOTS: Tuple[str, ...] = (
    "name_birth",
    "name_birth_legacy",
    "address",
    "issue",
    "expiry",
    "number",
)


@dataclass(frozen=True, slots=True)
class FieldCandidates:
    """Raw per-frame matches. ``None`` means the field was not found this frame."""
    name_birth: Optional[str] = None
    name_birth_legacy: Optional[str] = None
    address: Optional[str] = None
    issue: Optional[str] = None
    expiry: Optional[str] = None
    number: Optional[str] = None

    def as_slots(self) -> Tuple[Optional[str], ...]:
        return tuple(getattr(self, name) for name in CANDIDATE_SLOTS)

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.as_slots())

    @classmethod
    def from_slots(cls, values) -> "FieldCandidates":
        values = list(values)
        if len(values) != len(CANDIDATE_SLOTS):
            raise ValidationError(
                f"Expected {len(CANDIDATE_SLOTS)} slots, got {len(values)}"
            )
        return cls(**{name: (value or None) for name, value in zip(CANDIDATE_SLOTS, values)})


FINAL_FIELDS: Tuple[str, ...] = (
    "name",
    "birth_date",
    "address",
    "issue_date",
    "expiry_date",
    "document_number",
)


@dataclass(frozen=True, slots=True)
class FinalRecord:
    name: str
    birth_date: str
    address: str
    issue_date: str
    expiry_date: str
    document_number: str

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(getattr(self, name) for name in FINAL_FIELDS)

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in FINAL_FIELDS}


class ScanState(Enum):
    COLLECTING = "collecting"
    FINALIZED = "finalized"


class FrameOutcome(Enum):
    """What the session did with one delivered frame."""
    DROPPED_INACTIVE = "dropped_inactive"
    DROPPED_BUSY = "dropped_busy"
    SKIPPED_INVALID = "skipped_invalid"
    DEFERRED_TO_VIEW = "deferred_to_view"  # upright display, caller sends a view image instead
    SUBMITTED = "submitted"


@dataclass(slots=True)
class ScanProgress:
    counts: List[int] = field(default_factory=list)
    capacity: int = 5

    @property
    def is_complete(self) -> bool:
        return bool(self.counts) and all(count >= self.capacity for count in self.counts)
