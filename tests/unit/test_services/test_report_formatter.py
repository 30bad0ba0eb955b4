"""Unit tests for progress and report text."""
from cardscan.core.entities import FinalRecord, ScanProgress
from cardscan.services.report_formatter import (
    format_final_report, format_history_debug, format_live_text, format_progress
)


class TestFormatProgress:
    def test_lines(self):
        text = format_progress(ScanProgress([5, 5, 3, 2, 1, 0], capacity=5))

        assert text.split("\n") == [
            "履歴進捗（各グループ 件数/目標5）",
            "氏名：5/5",
            "生年月日：5/5",
            "住所：3/5",
            "交付日：2/5",
            "有効期限：1/5",
            "番号：0/5",
        ]

    def test_live_text_appends_raw_text(self):
        text = format_live_text(ScanProgress([0] * 6, capacity=3), "氏名 山田太郎")

        assert text.endswith("番号：0/3\n\n---\n氏名 山田太郎")


class TestFormatFinalReport:
    def test_report(self):
        record = FinalRecord("山田太郎", "昭和50年1月1日", "東京都", "令和03年04月05日(12345)",
                             "令和08年02月01日", "123456789012")

        assert format_final_report(record) == (
            "スキャン成功\n"
            "氏　　名：山田太郎\n"
            "生年月日：昭和50年1月1日\n"
            "住　　所：東京都\n"
            "交  付  日：令和03年04月05日(12345)\n"
            "有効期限：令和08年02月01日\n"
            "番　　号：123456789012"
        )

    def test_empty_fields(self):
        assert format_final_report(FinalRecord("", "", "", "", "", "")).endswith("番　　号：")


def test_history_debug():
    assert format_history_debug([["a", "b"], []]) == "グループ1:\n  [1] a\n  [2] b\nグループ2:"
