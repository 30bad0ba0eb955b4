"""Services package for scanning logic."""

from .field_extractor import FieldExtractor, FieldPattern, LinePairPattern, extract, format_final, normalize_text
from .consensus_service import ConsensusAggregator, select_best
from .recognition_service import (
    AsyncRecognitionRunner, BaseRecognitionEngine, CallableRecognitionEngine, TesseractRecognitionEngine
)
from .scan_session_service import ScanSessionService
from .report_formatter import format_final_report, format_history_debug, format_live_text, format_progress

__all__ = [
    "FieldExtractor", "FieldPattern", "LinePairPattern", "extract", "format_final", "normalize_text",
    "ConsensusAggregator", "select_best",
    "AsyncRecognitionRunner", "BaseRecognitionEngine", "CallableRecognitionEngine",
    "TesseractRecognitionEngine", "ScanSessionService",
    "format_final_report", "format_history_debug", "format_live_text", "format_progress"
]
