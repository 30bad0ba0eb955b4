"""Frame buffer conversion and image helpers."""

import logging
from typing import Any, Optional

import cv2
import numpy as np
from PIL import Image

from ..core.entities import PlanarFrame, PlanarPlane, Rect
from ..core.exceptions import FrameError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 85


def _plane_bytes(plane: PlanarPlane) -> np.ndarray:
    if isinstance(plane.buffer, np.ndarray):
        if plane.buffer.dtype != np.uint8:
            raise FrameError(f"Plane buffer must be uint8, got {plane.buffer.dtype}")
        return plane.buffer.reshape(-1)
    return np.frombuffer(plane.buffer, dtype=np.uint8)


def _read_plane(plane: PlanarPlane, width: int, height: int, name: str) -> np.ndarray:
    """Read a ``height x width`` block out of a strided plane."""
    data = _plane_bytes(plane)
    row_stride, pixel_stride = plane.row_stride, plane.pixel_stride
    if row_stride <= 0 or pixel_stride <= 0:
        raise FrameError(f"{name} plane has invalid strides ({row_stride}, {pixel_stride})")

    last_index = (height - 1) * row_stride + (width - 1) * pixel_stride
    if last_index >= data.size:
        raise FrameError(
            f"{name} plane too short: need index {last_index}, have {data.size} bytes"
        )

    if pixel_stride == 1:
        # Contiguous rows: slice each row, skipping the row padding.
        if row_stride == width:
            return data[:width * height].reshape(height, width)
        return np.stack([data[r * row_stride:r * row_stride + width] for r in range(height)])

    rows = np.arange(height, dtype=np.int64)[:, None] * row_stride
    cols = np.arange(width, dtype=np.int64)[None, :] * pixel_stride
    return data[rows + cols]


def to_packed_chroma(frame: PlanarFrame) -> bytes:
    """Convert a planar 4:2:0 frame to NV21 bytes.

    Output is the full luma plane followed by interleaved V,U pairs at half
    resolution, ``width * height * 3 / 2`` bytes for even sizes. Row and
    pixel strides of every plane are honoured, so padded frames produce the
    same bytes as tightly packed ones.

    Raises:
        FrameError: If the frame was already closed or a plane is shorter
            than its declared geometry.
    """
    if frame.closed:
        raise FrameError("Frame already closed")

    width, height = frame.width, frame.height
    chroma_w, chroma_h = width // 2, height // 2

    luma = _read_plane(frame.luma, width, height, "Y")
    packed = np.empty(width * height + 2 * chroma_w * chroma_h, dtype=np.uint8)
    packed[:width * height] = luma.reshape(-1)

    if chroma_w and chroma_h:
        u = _read_plane(frame.chroma_u, chroma_w, chroma_h, "U")
        v = _read_plane(frame.chroma_v, chroma_w, chroma_h, "V")
        interleaved = np.empty((chroma_h, chroma_w * 2), dtype=np.uint8)
        interleaved[:, 0::2] = v
        interleaved[:, 1::2] = u
        packed[width * height:] = interleaved.reshape(-1)

    return packed.tobytes()


def crop_and_compress(packed: bytes, buf_w: int, buf_h: int, rect: Rect,
                      quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """JPEG-compress only ``rect`` of an NV21 buffer.

    The rectangle is clamped to the buffer and snapped to even bounds so that
    it never splits a chroma pair.

    Raises:
        FrameError: If the buffer does not match the declared size, the
            clamped rectangle is empty or encoding fails.
    """
    if buf_w % 2 or buf_h % 2:
        raise FrameError(f"NV21 buffer size must be even, got {buf_w}x{buf_h}")

    data = np.frombuffer(packed, dtype=np.uint8)
    expected = buf_w * buf_h * 3 // 2
    if data.size < expected:
        raise FrameError(f"NV21 buffer too short: {data.size} < {expected}")

    clamped = rect.clamped(buf_w, buf_h)
    left, top = clamped.left & ~1, clamped.top & ~1
    right, bottom = clamped.right & ~1, clamped.bottom & ~1
    if right <= left or bottom <= top:
        raise FrameError(f"Crop rectangle {rect.as_tuple()} is empty inside {buf_w}x{buf_h}")

    luma = data[:buf_w * buf_h].reshape(buf_h, buf_w)
    chroma = data[buf_w * buf_h:expected].reshape(buf_h // 2, buf_w)

    sub = np.vstack((
        luma[top:bottom, left:right],
        chroma[top // 2:bottom // 2, left:right],
    ))
    bgr = cv2.cvtColor(np.ascontiguousarray(sub), cv2.COLOR_YUV2BGR_NV21)

    ok, encoded = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise FrameError("JPEG encoding failed")
    return encoded.tobytes()


def decode_image(data: bytes) -> np.ndarray:
    """Decode compressed image bytes into a BGR array."""
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise FrameError("Could not decode image data")
    return image


_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def rotate_raster(image: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate clockwise by a multiple of 90 degrees; 0 returns ``image`` itself."""
    normalized = degrees % 360
    if normalized == 0:
        return image
    if normalized not in _ROTATE_CODES:
        raise ValueError(f"Rotation must be a multiple of 90 degrees, got {degrees}")
    return cv2.rotate(image, _ROTATE_CODES[normalized])


def crop_image(image: np.ndarray, rect: Rect) -> Optional[np.ndarray]:
    """Crop image using a rectangle clamped to the image; ``None`` if nothing is left."""
    h, w = image.shape[:2]
    clamped = rect.clamped(w, h)
    if clamped.is_empty:
        return None
    return image[clamped.top:clamped.bottom, clamped.left:clamped.right]


def to_bgr_array(image: Any) -> np.ndarray:
    """Accept a numpy array (gray, BGR or BGRA) or a PIL image and return BGR."""
    if isinstance(image, Image.Image):
        rgb = np.asarray(image.convert("RGB"))
        return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)

    if isinstance(image, np.ndarray):
        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        if image.ndim == 3 and image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        if image.ndim == 3 and image.shape[2] == 3:
            return image
        raise ValidationError(f"Unsupported image shape {image.shape}")

    raise ValidationError(f"Unsupported image type {type(image).__name__}")
