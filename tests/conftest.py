"""Pytest configuration and shared fixtures for the card scanning package.

This module provides test configuration, fixtures and helpers shared by the
unit and integration suites: configuration objects, recorded recognition
text, synthetic planar frames and stand-ins for the recognition engine.
"""
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional
from unittest.mock import Mock

import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cardscan.config.settings import Config
from cardscan.core.entities import PlanarFrame, PlanarPlane
from cardscan.core.exceptions import RecognitionError
from cardscan.core.logging_config import logging_manager
from cardscan.services.recognition_service import BaseRecognitionEngine


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

logging.getLogger('PIL').setLevel(logging.WARNING)


SAMPLE_CARD_TEXT = (
    "氏名 山田太郎 昭和50年1月1日生\n"
    "住所 東京都千代田区霞が関2-1-2\n"
    "交付 令和03年04月05日 12345\n"
    "令和08年02月01日まで有効\n"
    "第 123456789012 号"
)

# Same card with typical recognition noise: a misread name, no number line.
NOISY_CARD_TEXT = (
    "氏名 山田大郎 昭和50年1月1日生\n"
    "住所 東京都千代田区霞が関2-1-2\n"
    "交付 令和03年04月05日 12345\n"
    "令和08年02月01日まで有効"
)


@pytest.fixture(scope="session")
def project_root():
    """Provide project root directory path."""
    return PROJECT_ROOT


@pytest.fixture
def mock_config():
    """Provide a mock configuration object for testing."""
    config = Mock(spec=Config)

    config.history_limit = 5
    config.jpeg_quality = 85
    config.capture_box_width_dp = 250
    config.capture_box_height_dp = 150
    config.display_density = 1.0
    config.debug_overlay_enabled = True
    config.recognizer_language = "jpn"
    config.tesseract_config = "--psm 6"
    config.recognition_workers = 1
    config.log_level = "INFO"
    config.log_dir = "logs"
    config.enable_file_logging = False
    config.structured_logging = False

    return config


@pytest.fixture
def real_config():
    """Provide a real configuration object with default values."""
    return Config()


@pytest.fixture
def sample_image():
    """Provide a sample BGR image for testing."""
    image = np.zeros((100, 100, 3), dtype=np.uint8)
    image[10:40, 10:40] = [255, 0, 0]
    image[60:90, 60:90] = [0, 0, 255]
    return image


@pytest.fixture
def sample_card_text():
    return SAMPLE_CARD_TEXT


@pytest.fixture
def noisy_card_text():
    return NOISY_CARD_TEXT


@pytest.fixture(autouse=True)
def reset_logging_manager():
    """Detach handlers the CLI may install so they never outlive a test."""
    yield
    logging_manager.shutdown()


def strided_plane(values: np.ndarray, pixel_stride: int = 1, row_padding: int = 0,
                  truncate_last_row: bool = False, fill: int = 0xEE) -> PlanarPlane:
    """Lay ``values`` out in a buffer with the given strides.

    Padding bytes are filled with ``fill`` so that any read of padding shows
    up in the converted output.
    """
    rows, cols = values.shape
    row_stride = (cols - 1) * pixel_stride + 1 + row_padding
    buffer = np.full(row_stride * rows, fill, dtype=np.uint8)
    index = np.arange(rows)[:, None] * row_stride + np.arange(cols)[None, :] * pixel_stride
    buffer[index] = values
    if truncate_last_row:
        buffer = buffer[:index.max() + 1]
    return PlanarPlane(buffer.tobytes(), row_stride, pixel_stride)


class FrameFactory:
    """Builds synthetic 4:2:0 frames with known pixel values."""

    @staticmethod
    def planes(width: int, height: int):
        y = (np.arange(width * height) % 251).astype(np.uint8).reshape(height, width)
        chroma = (width // 2) * (height // 2)
        u = ((np.arange(chroma) * 7 + 3) % 256).astype(np.uint8).reshape(height // 2, width // 2)
        v = ((np.arange(chroma) * 13 + 5) % 256).astype(np.uint8).reshape(height // 2, width // 2)
        return y, u, v

    @classmethod
    def create(cls, width: int = 640, height: int = 480, chroma_pixel_stride: int = 1,
               row_padding: int = 0, truncate_last_row: bool = False,
               on_close: Optional[Callable[[PlanarFrame], None]] = None) -> PlanarFrame:
        y, u, v = cls.planes(width, height)
        planes = (
            strided_plane(y, 1, row_padding, truncate_last_row),
            strided_plane(u, chroma_pixel_stride, row_padding, truncate_last_row),
            strided_plane(v, chroma_pixel_stride, row_padding, truncate_last_row),
        )
        return PlanarFrame(width, height, planes, on_close=on_close)


@pytest.fixture
def frame_factory():
    """Provide the FrameFactory utility."""
    return FrameFactory


class FakeRecognitionEngine(BaseRecognitionEngine):
    """Returns scripted texts in order; an Exception entry is raised instead."""

    name = "fake"

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.calls = []
        self.closed = False

    def recognize(self, image, rotation_degrees: int = 0) -> str:
        self.calls.append((getattr(image, "shape", None), rotation_degrees))
        if not self.results:
            return ""
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise RecognitionError(str(result))
        return result

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine():
    return FakeRecognitionEngine([SAMPLE_CARD_TEXT])


@pytest.fixture
def engine_factory():
    """Build a FakeRecognitionEngine from a list of scripted results."""
    return FakeRecognitionEngine


@dataclass
class PendingJob:
    image: Any
    rotation_degrees: int
    on_success: Optional[Callable[[str], None]]
    on_failure: Optional[Callable[[Exception], None]]
    on_complete: Optional[Callable[[], None]]

    def succeed(self, text: str) -> None:
        if self.on_success:
            self.on_success(text)
        if self.on_complete:
            self.on_complete()

    def fail(self, error: Exception) -> None:
        if self.on_failure:
            self.on_failure(error)
        if self.on_complete:
            self.on_complete()


class ManualRunner:
    """Recognition runner that queues jobs until the test resolves them."""

    def __init__(self, engine: Optional[BaseRecognitionEngine] = None):
        self.engine = engine or FakeRecognitionEngine()
        self.jobs: List[PendingJob] = []
        self.shut_down = False

    def submit(self, image, rotation_degrees=0, on_success=None, on_failure=None, on_complete=None):
        self.jobs.append(PendingJob(image, rotation_degrees, on_success, on_failure, on_complete))

    def shutdown(self, wait: bool = True) -> None:
        self.shut_down = True


@pytest.fixture
def manual_runner():
    return ManualRunner()
