"""Geometry between display space and the unrotated sensor buffer.

The preview buffer is delivered in the sensor's native orientation. When the
display is turned a quarter (ROTATION_90 / ROTATION_270) the preview is drawn
rotated and cover-fitted into the view, so a rectangle drawn on screen has to
be pushed through the same transform, backwards, before it can be used to
crop the buffer. ``map_view_rect_to_buffer`` does that and
``map_buffer_rect_to_view`` is its exact inverse, used to draw the region
that will actually be cropped.
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

import numpy as np

from ..core.entities import DisplayRotation, Rect, Size
from ..core.exceptions import UnsupportedRotationError, ValidationError

Point = Tuple[float, float]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _corners(rect: Rect) -> Tuple[Point, Point, Point, Point]:
    return (
        (float(rect.left), float(rect.top)),
        (float(rect.right), float(rect.top)),
        (float(rect.right), float(rect.bottom)),
        (float(rect.left), float(rect.bottom)),
    )


def _bounds(points: Iterable[Point]) -> Tuple[float, float, float, float]:
    xs, ys = zip(*points)
    return min(xs), min(ys), max(xs), max(ys)


def _require_perpendicular(rotation: DisplayRotation) -> None:
    if not rotation.is_perpendicular:
        raise UnsupportedRotationError(
            f"Exact buffer mapping is only defined for ROTATION_90/ROTATION_270, got {rotation.name}"
        )


def cover_fit(view_w: float, view_h: float, buf_w: float, buf_h: float) -> Tuple[float, float, float]:
    """Scale and centring offsets of a quarter-turned buffer covering the view.

    Returns:
        (scale, offset_x, offset_y) where rotated-buffer point (xr, yr) is
        drawn at (xr * scale + offset_x, yr * scale + offset_y).
    """
    rot_w, rot_h = buf_h, buf_w
    scale = max(view_w / rot_w, view_h / rot_h)
    offset_x = (view_w - scale * rot_w) / 2.0
    offset_y = (view_h - scale * rot_h) / 2.0
    return scale, offset_x, offset_y


def map_view_rect_to_buffer(view_rect: Rect, view_w: int, view_h: int,
                            buf_w: int, buf_h: int, rotation: DisplayRotation) -> Rect:
    """Map a display-space rectangle into the unrotated buffer.

    Corners outside the visible buffer are clamped, never rejected. The
    result has even left/top/width/height (4:2:0 chroma needs even crops)
    and is at least 2x2 inside ``[0, buf_w] x [0, buf_h]``.

    Raises:
        UnsupportedRotationError: for ROTATION_0 / ROTATION_180, where the
            capture rectangle is used as is (see ``passthrough_rect``).
    """
    _require_perpendicular(rotation)

    rot_w, rot_h = float(buf_h), float(buf_w)
    scale, offset_x, offset_y = cover_fit(view_w, view_h, buf_w, buf_h)

    mapped = []
    for xv, yv in _corners(view_rect):
        xr = _clamp((xv - offset_x) / scale, 0.0, rot_w)
        yr = _clamp((yv - offset_y) / scale, 0.0, rot_h)
        if rotation is DisplayRotation.ROTATION_90:
            mapped.append((buf_w - yr, xr))
        else:
            mapped.append((yr, buf_h - xr))

    min_x, min_y, max_x, max_y = _bounds(mapped)
    min_x = _clamp(min_x, 0.0, buf_w)
    min_y = _clamp(min_y, 0.0, buf_h)
    max_x = _clamp(max_x, 0.0, buf_w)
    max_y = _clamp(max_y, 0.0, buf_h)

    left = max(_round_half_up(min_x) & ~1, 0)
    top = max(_round_half_up(min_y) & ~1, 0)
    right = min(_round_half_up(max_x) & ~1, buf_w)
    bottom = min(_round_half_up(max_y) & ~1, buf_h)

    # Collapsed after clamping: push the far edge out, or the near edge back at the border.
    if right <= left:
        right = min(left + 2, buf_w)
        if right <= left:
            left = max((right - 2) & ~1, 0)
    if bottom <= top:
        bottom = min(top + 2, buf_h)
        if bottom <= top:
            top = max((bottom - 2) & ~1, 0)

    return Rect(left, top, right, bottom)


def map_buffer_rect_to_view(buffer_rect: Rect, view_w: int, view_h: int,
                            buf_w: int, buf_h: int, rotation: DisplayRotation) -> Rect:
    """Inverse of ``map_view_rect_to_buffer`` (without even alignment).

    Used only to show where the crop lands on screen.
    """
    _require_perpendicular(rotation)

    scale, offset_x, offset_y = cover_fit(view_w, view_h, buf_w, buf_h)

    mapped = []
    for xu, yu in _corners(buffer_rect):
        if rotation is DisplayRotation.ROTATION_90:
            xr, yr = yu, buf_w - xu
        else:
            xr, yr = buf_h - yu, xu
        mapped.append((xr * scale + offset_x, yr * scale + offset_y))

    min_x, min_y, max_x, max_y = _bounds(mapped)
    return Rect(
        _round_half_up(_clamp(min_x, 0.0, view_w)),
        _round_half_up(_clamp(min_y, 0.0, view_h)),
        _round_half_up(_clamp(max_x, 0.0, view_w)),
        _round_half_up(_clamp(max_y, 0.0, view_h)),
    )


def passthrough_rect(view_rect: Rect, width: int, height: int) -> Rect:
    """Capture rectangle for upright and half-turn displays: clamped, unchanged otherwise."""
    return view_rect.clamped(width, height)


class RotationMapper:
    """Binds view size, buffer size and rotation for repeated mapping."""

    def __init__(self, view_size: Size, buffer_size: Size, rotation: DisplayRotation):
        self.view_size = view_size
        self.buffer_size = buffer_size
        self.rotation = rotation

    @property
    def is_exact(self) -> bool:
        return self.rotation.is_perpendicular

    def to_buffer(self, view_rect: Rect) -> Rect:
        return map_view_rect_to_buffer(
            view_rect, self.view_size.width, self.view_size.height,
            self.buffer_size.width, self.buffer_size.height, self.rotation,
        )

    def to_view(self, buffer_rect: Rect) -> Rect:
        return map_buffer_rect_to_view(
            buffer_rect, self.view_size.width, self.view_size.height,
            self.buffer_size.width, self.buffer_size.height, self.rotation,
        )

    def round_trip(self, view_rect: Rect) -> Rect:
        """Display-space outline of the region that will be cropped for ``view_rect``."""
        return self.to_view(self.to_buffer(view_rect))


def compute_rotation_degrees(sensor_orientation: int, rotation: DisplayRotation) -> int:
    """Clockwise degrees that turn a buffer crop upright for the recognizer."""
    return (sensor_orientation - rotation.degrees + 360) % 360


def is_buffer_swapped(rotation: DisplayRotation, sensor_orientation: int) -> bool:
    """True when buffer width/height run across the view's height/width."""
    if rotation in (DisplayRotation.ROTATION_0, DisplayRotation.ROTATION_180):
        return sensor_orientation in (90, 270)
    return sensor_orientation in (0, 180)


def choose_optimal_preview_size(choices: Sequence[Size], view_w: int, view_h: int,
                                swapped: bool) -> Size:
    """Pick the preview size whose aspect ratio is closest to the view.

    Sizes smaller than the view in either axis get a 0.2 penalty. Ties keep
    the earliest choice.
    """
    if not choices:
        raise ValidationError("No preview sizes to choose from")

    target_w = view_h if swapped else view_w
    target_h = view_w if swapped else view_h
    target_ratio = target_w / target_h

    def score(size: Size) -> float:
        ratio_diff = abs(size.width / size.height - target_ratio)
        too_small = 0.2 if (size.width < target_w or size.height < target_h) else 0.0
        return ratio_diff + too_small

    return min(choices, key=score)


def capture_box_rect(view_w: int, view_h: int, box_w_dp: float = 250,
                     box_h_dp: float = 150, density: float = 1.0) -> Rect:
    """The fixed capture window, centred in the view."""
    box_w = box_w_dp * density
    box_h = box_h_dp * density
    left = int((view_w - box_w) / 2.0)
    top = int((view_h - box_h) / 2.0)
    return Rect(left, top, int(left + box_w), int(top + box_h))


def _about(center_x: float, center_y: float, matrix: np.ndarray) -> np.ndarray:
    to_origin = np.array([[1, 0, -center_x], [0, 1, -center_y], [0, 0, 1]], dtype=np.float64)
    back = np.array([[1, 0, center_x], [0, 1, center_y], [0, 0, 1]], dtype=np.float64)
    return back @ matrix @ to_origin


def _rotation(degrees: float) -> np.ndarray:
    rad = math.radians(degrees)
    cos, sin = math.cos(rad), math.sin(rad)
    return np.array([[cos, -sin, 0], [sin, cos, 0], [0, 0, 1]], dtype=np.float64)


def preview_transform_matrix(view_w: int, view_h: int, preview: Size,
                             rotation: DisplayRotation) -> np.ndarray:
    """3x3 transform that draws the preview texture upright and cover-fitted.

    Quarter turns stretch the view rect onto the swapped buffer rect, scale
    it to cover and rotate by ``90 * (rotation - 2)``; a half turn rotates by
    180 degrees; upright is the identity.
    """
    center_x, center_y = view_w / 2.0, view_h / 2.0

    if rotation.is_perpendicular:
        buf_w, buf_h = float(preview.height), float(preview.width)
        buf_left = center_x - buf_w / 2.0
        buf_top = center_y - buf_h / 2.0
        fill = np.array([
            [buf_w / view_w, 0, buf_left],
            [0, buf_h / view_h, buf_top],
            [0, 0, 1],
        ], dtype=np.float64)
        scale = max(view_h / preview.height, view_w / preview.width)
        scaled = _about(center_x, center_y, np.diag([scale, scale, 1.0])) @ fill
        return _about(center_x, center_y, _rotation(90.0 * (rotation.value - 2))) @ scaled

    if rotation is DisplayRotation.ROTATION_180:
        return _about(center_x, center_y, _rotation(180.0))

    return np.eye(3, dtype=np.float64)
