"""Cross-frame consensus over extracted field candidates."""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from ..core.entities import CANDIDATE_SLOTS, FieldCandidates, FinalRecord, ScanProgress, ScanState
from ..core.exceptions import ValidationError
from .field_extractor import FieldExtractor

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5


def select_best(values: Iterable[str]) -> str:
    """Most frequent value; ties go to the value seen first. Empty input gives ``""``."""
    counts: Dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    if not counts:
        return ""
    return max(counts, key=counts.get)


class ConsensusAggregator:
    """Bounded per-slot histories that resolve into one FinalRecord.

    Every slot keeps the last ``history_limit`` non-empty candidates. As soon
    as all slots are full, sample ``i`` (the i-th entry of every history) is
    formatted as one record and each output field is decided by majority
    vote across the samples. After that the aggregator is FINALIZED and
    ignores input until ``reset()``.

    All state is guarded by one lock, so ``ingest`` and ``reset`` may be
    called from different threads.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT,
                 extractor: Optional[FieldExtractor] = None):
        if history_limit < 1:
            raise ValidationError(f"history_limit must be positive, got {history_limit}")
        self.history_limit = history_limit
        self.extractor = extractor or FieldExtractor()
        self._lock = threading.RLock()
        self._histories: Tuple[Deque[str], ...] = tuple(
            deque(maxlen=history_limit) for _ in CANDIDATE_SLOTS
        )
        self._state = ScanState.COLLECTING
        self._record: Optional[FinalRecord] = None

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def final_record(self) -> Optional[FinalRecord]:
        with self._lock:
            return self._record

    @property
    def is_finalized(self) -> bool:
        return self.state is ScanState.FINALIZED

    def ingest(self, candidates: FieldCandidates) -> Optional[FinalRecord]:
        """Append one frame's candidates and finalize when every history is full.

        Returns:
            The final record once finalized (also on later calls), otherwise None.
        """
        with self._lock:
            if self._state is ScanState.FINALIZED:
                return self._record

            for history, value in zip(self._histories, candidates.as_slots()):
                if value:
                    history.append(value)

            if all(len(history) == self.history_limit for history in self._histories):
                self._record = self._resolve()
                self._state = ScanState.FINALIZED
                logger.info("Consensus reached, scan finalized")
            return self._record

    def _resolve(self) -> FinalRecord:
        formatted: List[Tuple[str, ...]] = []
        for i in range(self.history_limit):
            sample = [history[i] for history in self._histories]
            formatted.append(self.extractor.format_final(sample))
        best = [select_best(column) for column in zip(*formatted)]
        return FinalRecord(*best)

    def reset(self) -> None:
        """Clear every history and the record in one step."""
        with self._lock:
            for history in self._histories:
                history.clear()
            self._record = None
            self._state = ScanState.COLLECTING
        logger.debug("Consensus histories reset")

    def progress(self) -> ScanProgress:
        with self._lock:
            return ScanProgress([len(history) for history in self._histories], self.history_limit)

    def snapshot(self) -> List[List[str]]:
        """Copy of every history, oldest entry first."""
        with self._lock:
            return [list(history) for history in self._histories]

    def history_size(self, slot: str) -> int:
        with self._lock:
            return len(self._histories[CANDIDATE_SLOTS.index(slot)])

