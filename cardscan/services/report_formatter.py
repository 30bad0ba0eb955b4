"""Text shown to the user while scanning and once the scan succeeds."""
from typing import Sequence

from ..core.entities import FinalRecord, ScanProgress

GROUP_NAMES = ("氏名", "生年月日", "住所", "交付日", "有効期限", "番号")

FINAL_LABELS = (
    "氏　　名：",
    "生年月日：",
    "住　　所：",
    "交  付  日：",
    "有効期限：",
    "番　　号：",
)

SUCCESS_HEADER = "スキャン成功"


def format_progress(progress: ScanProgress) -> str:
    """Progress header followed by one ``name：count/limit`` line per history."""
    lines = [f"履歴進捗（各グループ 件数/目標{progress.capacity}）"]
    for name, count in zip(GROUP_NAMES, progress.counts):
        lines.append(f"{name}：{count}/{progress.capacity}")
    return "\n".join(lines)


def format_live_text(progress: ScanProgress, raw_text: str) -> str:
    return f"{format_progress(progress)}\n\n---\n{raw_text}"


def format_final_report(record: FinalRecord) -> str:
    lines = [SUCCESS_HEADER]
    lines.extend(f"{label}{value}" for label, value in zip(FINAL_LABELS, record.as_tuple()))
    return "\n".join(lines)


def format_history_debug(snapshot: Sequence[Sequence[str]]) -> str:
    """Dump every history as numbered groups, for the debug log."""
    lines = []
    for group, items in enumerate(snapshot, 1):
        lines.append(f"グループ{group}:")
        lines.extend(f"  [{index}] {item}" for index, item in enumerate(items, 1))
    return "\n".join(lines)
