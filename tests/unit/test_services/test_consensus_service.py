"""Unit tests for ConsensusAggregator and majority voting."""
import threading

import pytest

from cardscan.core.entities import CANDIDATE_SLOTS, FieldCandidates, FinalRecord, ScanState
from cardscan.core.exceptions import ValidationError
from cardscan.services.consensus_service import ConsensusAggregator, select_best
from cardscan.services.field_extractor import extract


def card_candidates(name="山田太郎", number="123456789012"):
    line = f"氏名 {name} 昭和50年1月1日生"
    return FieldCandidates(
        name_birth=line,
        name_birth_legacy=line,
        address="住所 東京都千代田区霞が関2-1-2",
        issue="交付 令和03年04月05日 12345",
        expiry="令和08年02月01日まで有効",
        number=f"第{number}号" if number else None,
    )


class TestSelectBest:
    def test_majority(self):
        assert select_best(["A", "A", "B", "A", "C"]) == "A"

    def test_tie_goes_to_first_seen(self):
        assert select_best(["B", "A", "A", "B"]) == "B"
        assert select_best(["C", "B", "A"]) == "C"

    def test_empty(self):
        assert select_best([]) == ""

    def test_empty_strings_are_votes(self):
        assert select_best(["", "", "X"]) == ""


class TestConsensusAggregator:
    """Test suite for history accumulation and finalization."""

    def test_invalid_history_limit(self):
        with pytest.raises(ValidationError):
            ConsensusAggregator(history_limit=0)

    def test_not_finalized_before_limit(self):
        aggregator = ConsensusAggregator()

        for _ in range(4):
            assert aggregator.ingest(card_candidates()) is None

        assert aggregator.state is ScanState.COLLECTING
        assert aggregator.progress().counts == [4] * 6

    def test_finalizes_when_every_history_is_full(self):
        aggregator = ConsensusAggregator()

        records = [aggregator.ingest(card_candidates()) for _ in range(5)]

        assert records[:4] == [None] * 4
        assert records[4] == FinalRecord(
            "山田太郎", "昭和50年1月1日", "東京都千代田区霞が関2-1-2",
            "令和03年04月05日(12345)", "令和08年02月01日", "123456789012",
        )
        assert aggregator.is_finalized
        assert aggregator.final_record == records[4]

    def test_one_short_history_blocks_finalization(self):
        aggregator = ConsensusAggregator()

        for _ in range(10):
            aggregator.ingest(card_candidates(number=None))

        assert aggregator.state is ScanState.COLLECTING
        assert aggregator.progress().counts == [5, 5, 5, 5, 5, 0]

        record = aggregator.ingest(card_candidates())
        assert record is None
        assert aggregator.history_size("number") == 1

    def test_empty_candidates_change_nothing(self):
        aggregator = ConsensusAggregator()

        aggregator.ingest(FieldCandidates())

        assert aggregator.progress().counts == [0] * 6

    def test_majority_vote_per_field(self):
        aggregator = ConsensusAggregator()
        names = ["山田太郎", "山田大郎", "山田太郎", "山田太朗", "山田太郎"]

        for name in names[:-1]:
            aggregator.ingest(card_candidates(name=name))
        record = aggregator.ingest(card_candidates(name=names[-1]))

        assert record.name == "山田太郎"

    def test_histories_keep_latest_entries(self):
        aggregator = ConsensusAggregator(history_limit=3)

        for i in range(3):
            aggregator.ingest(FieldCandidates(address=f"住所 {i}"))

        aggregator.ingest(FieldCandidates(address="住所 3"))

        assert aggregator.snapshot()[CANDIDATE_SLOTS.index("address")] == ["住所 1", "住所 2", "住所 3"]

    def test_ignores_input_after_finalization(self):
        aggregator = ConsensusAggregator(history_limit=1)
        record = aggregator.ingest(card_candidates())

        again = aggregator.ingest(card_candidates(name="別人"))

        assert again is record
        assert aggregator.snapshot()[0] == [card_candidates().name_birth]

    def test_reset(self):
        aggregator = ConsensusAggregator(history_limit=1)
        aggregator.ingest(card_candidates())

        aggregator.reset()

        assert aggregator.state is ScanState.COLLECTING
        assert aggregator.final_record is None
        assert aggregator.progress().counts == [0] * 6

    def test_works_with_extracted_text(self, sample_card_text):
        aggregator = ConsensusAggregator()

        for _ in range(5):
            record = aggregator.ingest(extract(sample_card_text))

        assert record.document_number == "123456789012"

    def test_noisy_frames_converge(self, sample_card_text, noisy_card_text):
        aggregator = ConsensusAggregator()
        texts = [sample_card_text, noisy_card_text, sample_card_text, noisy_card_text,
                 sample_card_text, sample_card_text, sample_card_text, sample_card_text]

        record = None
        for text in texts:
            record = aggregator.ingest(extract(text))
            if record:
                break

        assert record is not None
        assert record.name == "山田太郎"

    def test_reset_concurrent_with_ingest(self):
        """Readers never see histories of different lengths."""
        aggregator = ConsensusAggregator(history_limit=50)
        stop = threading.Event()
        errors = []

        def ingest():
            while not stop.is_set():
                aggregator.ingest(card_candidates())

        def reset():
            while not stop.is_set():
                aggregator.reset()

        def inspect():
            while not stop.is_set():
                lengths = {len(history) for history in aggregator.snapshot()}
                if len(lengths) != 1:
                    errors.append(lengths)

        threads = [threading.Thread(target=target) for target in (ingest, ingest, reset, inspect)]
        for thread in threads:
            thread.start()
        stop.wait(0.3)
        stop.set()
        for thread in threads:
            thread.join(timeout=5)

        assert errors == []
