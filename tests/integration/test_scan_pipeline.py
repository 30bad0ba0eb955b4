"""Integration tests for the scan pipeline.

Frames go through the real conversion path and the real worker pool; only
the recognition engine is scripted. The CLI tests run ``main`` end to end on
recorded recognition text.
"""
import threading
import time

import pytest

from cardscan.core.entities import DisplayRotation, FrameOutcome, Size
from cardscan.main import main, read_text_blocks
from cardscan.services.recognition_service import AsyncRecognitionRunner, CallableRecognitionEngine
from cardscan.services.scan_session_service import ScanSessionService

VIEW = Size(1000, 600)


def feed_frames(service, frame_factory, until, timeout=10.0):
    """Deliver frames like a camera would until ``until`` is set."""
    outcomes = []
    deadline = time.monotonic() + timeout
    while not until.is_set() and time.monotonic() < deadline:
        outcomes.append(service.on_frame(frame_factory.create(), VIEW, DisplayRotation.ROTATION_90))
        time.sleep(0.005)
    return outcomes


@pytest.mark.integration
class TestLiveScanIntegration:
    """Test the session with the threaded recognition runner."""

    @pytest.fixture
    def finished(self):
        return threading.Event()

    def build_service(self, config, engine, finished, records):
        def on_final(record, report):
            records.append((record, report))
            finished.set()

        service = ScanSessionService(config=config, engine=engine, on_final_record=on_final)
        service.initialize()
        service.start()
        return service

    def test_scan_completes_from_camera_frames(self, real_config, fake_engine, frame_factory, finished):
        records = []
        service = self.build_service(real_config, fake_engine, finished, records)

        outcomes = feed_frames(service, frame_factory, finished)

        assert finished.is_set()
        assert outcomes.count(FrameOutcome.SUBMITTED) == 5
        assert len(records) == 1
        record, report = records[0]
        assert record.document_number == "123456789012"
        assert report.startswith("スキャン成功")
        assert fake_engine.calls == [((120, 72, 3), 0)] * 5
        service.shutdown()
        assert fake_engine.closed

    def test_noisy_results_converge(self, real_config, sample_card_text, noisy_card_text,
                                    frame_factory, finished, engine_factory):
        engine = engine_factory([sample_card_text, noisy_card_text] * 2 + [sample_card_text])
        records = []
        service = self.build_service(real_config, engine, finished, records)

        feed_frames(service, frame_factory, finished)

        assert finished.is_set()
        assert records[0][0].name == "山田太郎"
        service.shutdown()

    def test_recognition_errors_are_skipped(self, real_config, sample_card_text, frame_factory, finished,
                                            engine_factory):
        engine = engine_factory([RuntimeError("blurred"), sample_card_text])
        records = []
        service = self.build_service(real_config, engine, finished, records)

        feed_frames(service, frame_factory, finished)

        assert finished.is_set()
        assert len(engine.calls) == 6
        service.shutdown()

    def test_result_in_flight_during_reset_is_discarded(self, real_config, sample_card_text, frame_factory):
        gate = threading.Event()
        published = threading.Event()

        def slow_engine(image, rotation):
            gate.wait(5)
            return sample_card_text

        service = ScanSessionService(
            config=real_config,
            engine=CallableRecognitionEngine(slow_engine, name="slow"),
            on_live_text=lambda text: published.set() if text else None,
        )
        service.initialize()
        service.start()

        assert service.on_frame(frame_factory.create(), VIEW, DisplayRotation.ROTATION_90) is FrameOutcome.SUBMITTED
        service.reset()
        assert service.on_frame(frame_factory.create(), VIEW, DisplayRotation.ROTATION_90) is FrameOutcome.SUBMITTED
        gate.set()

        assert published.wait(5)
        deadline = time.monotonic() + 5
        while service.is_busy and time.monotonic() < deadline:
            time.sleep(0.005)

        assert not service.is_busy
        assert service.aggregator.progress().counts == [1] * 6
        service.shutdown()

    def test_runner_serializes_recognition(self, sample_image):
        active = []
        overlap = []
        lock = threading.Lock()

        def engine(image, rotation):
            with lock:
                active.append(1)
                if len(active) > 1:
                    overlap.append(True)
            time.sleep(0.01)
            with lock:
                active.pop()
            return ""

        runner = AsyncRecognitionRunner(CallableRecognitionEngine(engine), max_workers=1)
        futures = [runner.submit(sample_image) for _ in range(5)]
        for future in futures:
            future.result(timeout=5)
        runner.shutdown()

        assert overlap == []


@pytest.mark.integration
class TestCommandLine:
    """Test the replay and image commands end to end."""

    @pytest.fixture(autouse=True)
    def workdir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        return tmp_path

    def write_dump(self, path, blocks):
        path.write_text("\n---\n".join(blocks) + "\n", encoding="utf-8")
        return str(path)

    def test_read_text_blocks(self, workdir, sample_card_text):
        path = self.write_dump(workdir / "session.txt", [sample_card_text, "", "second"])

        assert list(read_text_blocks([path], split=True)) == [sample_card_text, "second"]
        assert len(list(read_text_blocks([path]))) == 1

    def test_replay_finishes_scan(self, workdir, capsys, sample_card_text, noisy_card_text):
        path = self.write_dump(workdir / "session.txt", [sample_card_text, noisy_card_text] + [sample_card_text] * 6)

        exit_code = main(["replay", "--split", path])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "スキャン成功" in out
        assert "氏　　名：山田太郎" in out
        assert "番　　号：123456789012" in out
        assert "履歴進捗（各グループ 件数/目標5）" in out

    def test_replay_one_file_per_result(self, workdir, capsys, sample_card_text):
        paths = []
        for i in range(5):
            path = workdir / f"frame{i}.txt"
            path.write_text(sample_card_text, encoding="utf-8")
            paths.append(str(path))

        assert main(["replay"] + paths) == 0

    def test_replay_incomplete(self, workdir, capsys, sample_card_text):
        path = self.write_dump(workdir / "session.txt", [sample_card_text] * 2)

        exit_code = main(["replay", "--split", path])

        assert exit_code == 1
        assert "Scan incomplete" in capsys.readouterr().err

    def test_history_limit_from_config(self, workdir, capsys, sample_card_text):
        (workdir / "cardscan.json").write_text('{"history_limit": 2}', encoding="utf-8")
        path = self.write_dump(workdir / "session.txt", [sample_card_text] * 2)

        assert main(["replay", "--split", path]) == 0

    def test_missing_file(self, workdir):
        assert main(["replay", str(workdir / "missing.txt")]) == 2

    def test_rotation_must_be_quarter_turns(self, workdir):
        with pytest.raises(SystemExit) as excinfo:
            main(["image", "--rotation", "45", "card.jpg"])

        assert excinfo.value.code == 2
