"""Utility functions package."""

from .geometry import (
    RotationMapper, map_view_rect_to_buffer, map_buffer_rect_to_view, passthrough_rect,
    compute_rotation_degrees, is_buffer_swapped, choose_optimal_preview_size,
    capture_box_rect, preview_transform_matrix
)
from .image_utils import (
    to_packed_chroma, crop_and_compress, decode_image, rotate_raster, crop_image, to_bgr_array
)

__all__ = [
    "RotationMapper", "map_view_rect_to_buffer", "map_buffer_rect_to_view", "passthrough_rect",
    "compute_rotation_degrees", "is_buffer_swapped", "choose_optimal_preview_size",
    "capture_box_rect", "preview_transform_matrix",
    "to_packed_chroma", "crop_and_compress", "decode_image", "rotate_raster", "crop_image",
    "to_bgr_array"
]
