"""Text recognition engines and the asynchronous runner that drives them.

The scanning logic only needs "image plus orientation hint in, text out".
``BaseRecognitionEngine`` is that boundary; ``TesseractRecognitionEngine``
is the concrete adapter and ``CallableRecognitionEngine`` wraps any plain
function (replayed results, tests).
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

import cv2
from PIL import Image

from ..core.exceptions import RecognitionError
from ..utils.image_utils import rotate_raster, to_bgr_array

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[str], None]
FailureCallback = Callable[[Exception], None]
CompleteCallback = Callable[[], None]


class BaseRecognitionEngine(ABC):
    """Abstract base class for text recognition engines."""

    name = "base"

    @abstractmethod
    def recognize(self, image: Any, rotation_degrees: int = 0) -> str:
        """Recognize text in an image.

        Args:
            image: BGR numpy array or PIL image
            rotation_degrees: Clockwise rotation that makes the image upright

        Returns:
            str: Recognized text, possibly empty

        Raises:
            RecognitionError: If recognition fails
        """
        pass

    def close(self) -> None:
        """Release engine resources."""
        pass


class CallableRecognitionEngine(BaseRecognitionEngine):
    """Adapter for a plain ``func(image, rotation_degrees) -> str``."""

    def __init__(self, func: Callable[[Any, int], str], name: str = "callable"):
        self._func = func
        self.name = name

    def recognize(self, image: Any, rotation_degrees: int = 0) -> str:
        try:
            text = self._func(image, rotation_degrees)
        except RecognitionError:
            raise
        except Exception as e:
            raise RecognitionError(f"{self.name} recognition failed: {e}") from e
        if not isinstance(text, str):
            raise RecognitionError(f"{self.name} returned {type(text).__name__}, expected str")
        return text


class TesseractRecognitionEngine(BaseRecognitionEngine):
    """Recognition through the Tesseract binary via ``pytesseract``."""

    name = "tesseract"

    def __init__(self, language: str = "jpn", tesseract_config: str = "--psm 6",
                 tesseract_cmd: Optional[str] = None):
        self.language = language
        self.tesseract_config = tesseract_config
        self.tesseract_cmd = tesseract_cmd
        self._backend = None

    def _load(self):
        if self._backend is None:
            try:
                import pytesseract
            except ImportError as e:
                raise RecognitionError(
                    "pytesseract is not installed; install the 'tesseract' extra"
                ) from e
            if self.tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
            self._backend = pytesseract
            logger.info(f"Tesseract engine ready (lang={self.language})")
        return self._backend

    def recognize(self, image: Any, rotation_degrees: int = 0) -> str:
        pytesseract = self._load()
        bgr = rotate_raster(to_bgr_array(image), rotation_degrees)
        pil_image = Image.fromarray(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
        try:
            return pytesseract.image_to_string(pil_image, lang=self.language, config=self.tesseract_config)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
            raise RecognitionError(f"Tesseract failed: {e}") from e


class AsyncRecognitionRunner:
    """Runs recognition on a worker pool and reports back through callbacks.

    ``on_complete`` runs after success and after failure alike. There is no
    cancellation; a stuck call is the engine's timeout to enforce.
    """

    def __init__(self, engine: BaseRecognitionEngine, max_workers: int = 1):
        self.engine = engine
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recognition")

    def submit(self, image: Any, rotation_degrees: int = 0,
               on_success: Optional[SuccessCallback] = None,
               on_failure: Optional[FailureCallback] = None,
               on_complete: Optional[CompleteCallback] = None) -> Future:
        def run() -> Optional[str]:
            try:
                try:
                    text = self.engine.recognize(image, rotation_degrees)
                except Exception as e:
                    logger.error(f"Recognition failed: {e}")
                    if on_failure is not None:
                        on_failure(e)
                    return None
                if on_success is not None:
                    on_success(text)
                return text
            except Exception:
                logger.exception("Recognition callback raised")
                raise
            finally:
                if on_complete is not None:
                    on_complete()

        return self._executor.submit(run)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self.engine.close()
