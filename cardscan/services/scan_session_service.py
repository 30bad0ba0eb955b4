"""Live scan session: frames in, progress text and one final record out.

The service owns every piece of mutable scan state (scanning flag, busy
flag, histories, latest raw text) and changes it only while holding the
service state lock. At most one recognition is in flight; frames that
arrive meanwhile are closed and dropped.
"""
from __future__ import annotations

import uuid
from functools import partial
from typing import Any, Callable, Dict, Optional

from ..core.base_service import BaseService
from ..core.entities import DisplayRotation, FinalRecord, FrameOutcome, PlanarFrame, Rect, Size
from ..core.logging_config import CorrelationContext
from ..utils.geometry import RotationMapper, capture_box_rect, compute_rotation_degrees
from ..utils.image_utils import (
    crop_and_compress, crop_image, decode_image, rotate_raster, to_bgr_array, to_packed_chroma
)
from .consensus_service import ConsensusAggregator
from .field_extractor import FieldExtractor
from .recognition_service import AsyncRecognitionRunner, BaseRecognitionEngine, TesseractRecognitionEngine
from .report_formatter import format_final_report, format_history_debug, format_live_text

LiveTextListener = Callable[[str], None]
FinalRecordListener = Callable[[FinalRecord, str], None]
DebugRectListener = Callable[[Optional[Rect]], None]


class ScanSessionService(BaseService):
    """Drives one document scan from camera frames to a FinalRecord.

    Listeners:
        on_live_text(text): progress header plus the latest raw text
        on_final_record(record, report): once per session, when the vote is done
        on_debug_rect(rect): display-space outline of the region actually
            cropped (``None`` when the overlay is switched off)

    Every reset starts a new session generation; recognition results and
    completions from an older generation are ignored.
    """

    def __init__(self,
                 config=None,
                 engine: Optional[BaseRecognitionEngine] = None,
                 runner: Optional[AsyncRecognitionRunner] = None,
                 extractor: Optional[FieldExtractor] = None,
                 on_live_text: Optional[LiveTextListener] = None,
                 on_final_record: Optional[FinalRecordListener] = None,
                 on_debug_rect: Optional[DebugRectListener] = None,
                 **kwargs):
        super().__init__(config=config, service_name="ScanSessionService", **kwargs)

        self._engine = engine
        self._runner = runner
        self._extractor = extractor or FieldExtractor()
        self._aggregator = ConsensusAggregator(self.config.history_limit, self._extractor)

        self.on_live_text = on_live_text
        self.on_final_record = on_final_record
        self.on_debug_rect = on_debug_rect

        # Session state, guarded by self._state_lock
        self._scanning_active = False
        self._busy = False
        self._generation = 0
        self._live_text = ""
        self._debug_overlay_enabled = bool(self.config.debug_overlay_enabled)
        self._session_id = uuid.uuid4().hex[:8]

        self._frame_outcomes: Dict[FrameOutcome, int] = {outcome: 0 for outcome in FrameOutcome}

    def _initialize(self) -> None:
        if self._runner is None:
            if self._engine is None:
                self._engine = TesseractRecognitionEngine(
                    language=self.config.recognizer_language,
                    tesseract_config=self.config.tesseract_config,
                )
            self._runner = AsyncRecognitionRunner(self._engine, self.config.recognition_workers)
        self.logger.debug(f"Recognition runner ready ({self._runner.engine.name})")

    def _shutdown(self) -> None:
        if self._runner is not None:
            self._runner.shutdown(wait=True)
            self._runner = None

    def _start(self) -> None:
        self._scanning_active = True
        self.logger.info(f"Scan session {self._session_id} started")

    def _stop(self) -> None:
        self._scanning_active = False

    def _get_health_details(self) -> Dict[str, Any]:
        details = super()._get_health_details()
        details.update({
            'scanning_active': self._scanning_active,
            'busy': self._busy,
            'history_counts': self._aggregator.progress().counts,
            'frame_outcomes': {k.value: v for k, v in self._frame_outcomes.items()},
        })
        return details

    # State accessors

    @property
    def aggregator(self) -> ConsensusAggregator:
        return self._aggregator

    @property
    def is_scanning(self) -> bool:
        with self._state_lock:
            return self._scanning_active

    @property
    def is_busy(self) -> bool:
        with self._state_lock:
            return self._busy

    @property
    def live_text(self) -> str:
        with self._state_lock:
            return self._live_text

    @property
    def debug_overlay_enabled(self) -> bool:
        with self._state_lock:
            return self._debug_overlay_enabled

    @property
    def final_record(self) -> Optional[FinalRecord]:
        return self._aggregator.final_record

    def capture_box(self, view_size: Size) -> Rect:
        """Centred capture window for a view, sized from the configuration."""
        return capture_box_rect(
            view_size.width, view_size.height,
            self.config.capture_box_width_dp, self.config.capture_box_height_dp,
            self.config.display_density,
        )

    def toggle_debug_overlay(self) -> bool:
        with self._state_lock:
            self._debug_overlay_enabled = not self._debug_overlay_enabled
            enabled = self._debug_overlay_enabled
        if not enabled and self.on_debug_rect is not None:
            self.on_debug_rect(None)
        return enabled

    # Frame intake

    def on_frame(self,
                 frame: Optional[PlanarFrame],
                 view_size: Size,
                 rotation: DisplayRotation,
                 sensor_orientation: int = 90,
                 view_rect: Optional[Rect] = None,
                 preview_size: Optional[Size] = None) -> FrameOutcome:
        """Handle one camera frame.

        Args:
            frame: Latest frame from the camera, or None if none was available
            view_size: Size of the preview view on screen
            rotation: Current display rotation
            sensor_orientation: Sensor orientation in degrees
            view_rect: Capture rectangle in view space (defaults to the capture box)
            preview_size: Buffer size; defaults to the frame size

        Returns:
            FrameOutcome: What happened to the frame. The frame is always
            closed before this returns or, when submitted, as soon as its
            pixels have been read.
        """
        if view_rect is None:
            view_rect = self.capture_box(view_size)
        if preview_size is None and frame is not None:
            preview_size = Size(frame.width, frame.height)

        if rotation.is_perpendicular and preview_size is not None:
            self._publish_debug_rect(view_rect, view_size, preview_size, rotation)

        with self._state_lock:
            if not self._scanning_active:
                outcome = FrameOutcome.DROPPED_INACTIVE
            elif self._busy:
                outcome = FrameOutcome.DROPPED_BUSY
            elif not rotation.is_perpendicular:
                outcome = FrameOutcome.DEFERRED_TO_VIEW
            elif frame is None or frame.closed:
                outcome = FrameOutcome.SKIPPED_INVALID
            else:
                outcome = FrameOutcome.SUBMITTED
                self._busy = True
                generation = self._generation
            self._frame_outcomes[outcome] += 1

        if outcome is not FrameOutcome.SUBMITTED:
            if frame is not None:
                frame.close()
            return outcome

        try:
            with self.operation_context("convert_frame"):
                mapper = RotationMapper(view_size, preview_size, rotation)
                buffer_rect = mapper.to_buffer(view_rect)
                try:
                    packed = to_packed_chroma(frame)
                finally:
                    frame.close()
                jpeg = crop_and_compress(
                    packed, preview_size.width, preview_size.height, buffer_rect,
                    quality=self.config.jpeg_quality,
                )
                upright = rotate_raster(decode_image(jpeg), compute_rotation_degrees(sensor_orientation, rotation))
            self._submit(upright, generation)
        except Exception as e:
            self.logger.error(f"Frame conversion failed: {e}")
            frame.close()
            self._clear_busy(generation)
            with self._state_lock:
                self._frame_outcomes[FrameOutcome.SUBMITTED] -= 1
                self._frame_outcomes[FrameOutcome.SKIPPED_INVALID] += 1
            return FrameOutcome.SKIPPED_INVALID

        return FrameOutcome.SUBMITTED

    def on_view_image(self, image: Any, view_rect: Rect) -> FrameOutcome:
        """Handle a screenshot of the rendered preview (upright displays).

        The image is cropped to ``view_rect`` and recognized as is.
        """
        with self._state_lock:
            if not self._scanning_active:
                return self._count_outcome(FrameOutcome.DROPPED_INACTIVE)
            if self._busy:
                return self._count_outcome(FrameOutcome.DROPPED_BUSY)

        if image is None:
            return self._count_outcome(FrameOutcome.SKIPPED_INVALID)
        cropped = crop_image(to_bgr_array(image), view_rect)
        if cropped is None:
            return self._count_outcome(FrameOutcome.SKIPPED_INVALID)

        with self._state_lock:
            if not self._scanning_active:
                return self._count_outcome(FrameOutcome.DROPPED_INACTIVE)
            if self._busy:
                return self._count_outcome(FrameOutcome.DROPPED_BUSY)
            self._busy = True
            generation = self._generation

        try:
            self._submit(cropped.copy(), generation)
        except Exception as e:
            self.logger.error(f"Could not submit view image: {e}")
            self._clear_busy(generation)
            return self._count_outcome(FrameOutcome.SKIPPED_INVALID)
        return self._count_outcome(FrameOutcome.SUBMITTED)

    def _count_outcome(self, outcome: FrameOutcome) -> FrameOutcome:
        with self._state_lock:
            self._frame_outcomes[outcome] += 1
        return outcome

    def _submit(self, image: Any, generation: int) -> None:
        self._runner.submit(
            image, 0,
            on_success=partial(self._on_recognized, generation),
            on_failure=self._on_recognition_failed,
            on_complete=partial(self._clear_busy, generation),
        )

    def _publish_debug_rect(self, view_rect: Rect, view_size: Size, preview_size: Size,
                            rotation: DisplayRotation) -> None:
        if not self.debug_overlay_enabled or self.on_debug_rect is None:
            return
        try:
            outline = RotationMapper(view_size, preview_size, rotation).round_trip(view_rect)
        except Exception as e:
            self.logger.debug(f"Debug rectangle skipped: {e}")
            return
        self.on_debug_rect(outline)

    # Recognition results

    def _clear_busy(self, generation: int) -> None:
        with self._state_lock:
            if generation == self._generation:
                self._busy = False

    def _on_recognition_failed(self, error: Exception) -> None:
        self.logger.warning(f"Recognition failed, frame skipped: {error}")

    def _on_recognized(self, generation: int, text: str) -> None:
        self.handle_recognition_result(text, generation)

    def handle_recognition_result(self, text: str, generation: Optional[int] = None) -> Optional[FinalRecord]:
        """Publish progress for ``text``, add its fields to the history and
        finish the session when every history is full.

        Args:
            text: Recognized text for one frame
            generation: Session generation the frame was submitted in; a
                result from an older generation is discarded

        Returns:
            The FinalRecord if this result completed the scan, otherwise None.
        """
        with CorrelationContext(self._session_id):
            with self._state_lock:
                if generation is not None and generation != self._generation:
                    self.logger.debug("Discarding result from a previous session")
                    return None
                if not self._scanning_active:
                    return None
                live = format_live_text(self._aggregator.progress(), text)
                self._live_text = live

                candidates = self._extractor.extract(text)
                record = self._aggregator.ingest(candidates)
                finished = record is not None
                if finished:
                    self._scanning_active = False
                    snapshot = self._aggregator.snapshot()

            if self.on_live_text is not None:
                self.on_live_text(live)

            if not finished:
                return None

            report = format_final_report(record)
            self.logger.info("Scan finished")
            self.logger.debug(f"History at finalization:\n{format_history_debug(snapshot)}")
            with self._state_lock:
                self._live_text = report
            if self.on_final_record is not None:
                self.on_final_record(record, report)
            return record

    def reset(self) -> None:
        """Start over: scanning on, not busy, text and histories cleared."""
        with self._state_lock:
            self._generation += 1
            self._aggregator.reset()
            self._busy = False
            self._scanning_active = True
            self._live_text = ""
            self._session_id = uuid.uuid4().hex[:8]
        self.logger.info(f"Scan session {self._session_id} started")
        if self.on_live_text is not None:
            self.on_live_text("")
