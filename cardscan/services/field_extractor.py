"""Field extraction from recognized card text.

Raw recognizer output is normalized and run through one ordered cascade of
compiled patterns per field; the first pattern that matches wins. Matches
are kept raw (``extract``) so that the history holds what was actually
seen, and are only cleaned up into final values by ``format_final`` when a
vote is taken.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..core.entities import CANDIDATE_SLOTS, FieldCandidates

logger = logging.getLogger(__name__)

ERA = r"(?:昭和|平成|令和)"
NUM = r"\d{1,2}"
PAREN_OPT = r"(?:[（(][^）)]*[）)])?"
DATE_WEST = rf"\d{{4}}\s*年\s*{PAREN_OPT}\s*{NUM}\s*月\s*{PAREN_OPT}\s*{NUM}\s*日"
DATE_ERA = rf"(?:{ERA}\s*{NUM}\s*年\s*{NUM}\s*月\s*{NUM}\s*日)"
DATE_ANY = rf"(?:{DATE_WEST}|{DATE_ERA})"

# Dates after whitespace has been removed.
_COMPACT_DATE = re.compile(
    r"(?:\d{4}年(?:\([^)]*\))?\d{1,2}月\d{1,2}日|(?:昭和|平成|令和)\d{1,2}年\d{1,2}月\d{1,2}日)"
)
_NAME_LABEL = re.compile(r".*?氏名\s*[:：]?")
_ERA_TAIL = re.compile(r"(昭和|平成|令和).*$")
_ADDRESS_LABEL = re.compile(r"^住[所居][:：]?")
_ISSUE_LABEL = re.compile(r"[交文]付")
_ISSUE_CODE = re.compile(r"(?<!\d)\d{5}(?!\d)")
_EXPIRY_TERMINAL = re.compile(r"(?:[まマ][でテデ]|迄[でテ]?)[有領]?[効效]?")
_DASHES = re.compile(r"[ー−―－]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")


@dataclass(frozen=True)
class FieldPattern:
    """One compiled pattern in a field cascade."""
    name: str
    regex: re.Pattern
    group: int = 0

    @classmethod
    def compile(cls, name: str, pattern: str, group: int = 0, flags: int = 0) -> "FieldPattern":
        return cls(name, re.compile(pattern, flags), group)

    def find(self, text: str) -> Optional[str]:
        match = self.regex.search(text)
        if match is None:
            return None
        return match.group(self.group)


@dataclass(frozen=True)
class LinePairPattern:
    """Joins the first line matching ``first`` with the first line matching ``second``."""
    name: str
    first: re.Pattern
    second: re.Pattern
    separator: str = " "

    def find(self, text: str) -> Optional[str]:
        first = self.first.search(text)
        second = self.second.search(text)
        if first is None or second is None:
            return None
        return f"{first.group(0).strip()}{self.separator}{second.group(0).strip()}"


Pattern = Union[FieldPattern, LinePairPattern]


def default_cascades() -> Dict[str, List[Pattern]]:
    """Ordered pattern lists for every extracted field."""
    return {
        "name_birth": [
            FieldPattern.compile("name_birth_combined", rf"氏名\s*.+?{DATE_ERA}\s*生?"),
            LinePairPattern(
                "name_birth_lines",
                re.compile(r"^[^\r\n]*氏名[^\r\n]*$", re.MULTILINE),
                re.compile(rf"^[^\r\n]*{DATE_ERA}\s*生[^\r\n]*$", re.MULTILINE),
            ),
        ],
        "address": [
            FieldPattern.compile("address", r"住[所居]\s*[:：]?[^\r\n]+"),
        ],
        "issue": [
            FieldPattern.compile("issue", rf"[交文]付\s*{DATE_ERA}[^\r\n]*"),
        ],
        "expiry": [
            FieldPattern.compile("expiry_strict", rf"{DATE_ANY}[^\r\n]*?[迄まマﾏ][でﾃテ]\s*有[効效]"),
            FieldPattern.compile("expiry_loose", rf"{DATE_ANY}[^\r\n]{{0,12}}?(?:まで|迄|マデ)\s*[有領]?[効效]?"),
        ],
        "number": [
            FieldPattern.compile("number", r"第\s*[0-9０-９]{10,12}\s*号"),
        ],
    }


def normalize_text(raw: str) -> str:
    """NFKC-normalize recognizer output and drop table-border noise."""
    text = unicodedata.normalize("NFKC", raw)
    text = text.replace("\u00a0", " ")
    text = re.sub(r"[|｜]", "", text)
    return text.strip()


def _pre_clean(raw: Optional[str]) -> str:
    text = unicodedata.normalize("NFKC", raw or "")
    text = _DASHES.sub("-", text)
    return _WHITESPACE.sub("", text)


class FieldExtractor:
    """Turns recognized text into per-field candidates and final values."""

    def __init__(self, cascades: Optional[Dict[str, List[Pattern]]] = None):
        self.cascades = cascades if cascades is not None else default_cascades()

    def _run_cascade(self, field_name: str, text: str) -> Optional[str]:
        for pattern in self.cascades.get(field_name, []):
            try:
                value = pattern.find(text)
            except Exception as e:
                logger.debug(f"Pattern {pattern.name} failed: {e}")
                continue
            if value:
                return value
        return None

    def extract(self, raw: str) -> FieldCandidates:
        """Raw per-field matches for one recognition result.

        Never raises; anything that is not a string counts as empty text.
        """
        if not isinstance(raw, str) or not raw:
            return FieldCandidates()

        text = normalize_text(raw)
        if not text:
            return FieldCandidates()

        name_birth = self._run_cascade("name_birth", text)
        candidates = FieldCandidates(
            name_birth=name_birth,
            name_birth_legacy=name_birth,
            address=self._run_cascade("address", text),
            issue=self._run_cascade("issue", text),
            expiry=self._run_cascade("expiry", text),
            number=self._run_cascade("number", text),
        )
        logger.debug(
            f"Extracted {sum(v is not None for v in candidates.as_slots())}/{len(CANDIDATE_SLOTS)} slots"
        )
        return candidates

    def format_final(self, sample: Union[FieldCandidates, Sequence[Optional[str]]]) -> Tuple[str, ...]:
        """Clean one history sample into (name, birth, address, issue, expiry, number).

        Args:
            sample: A ``FieldCandidates`` or its raw lines. Six lines follow the
                slot order (the duplicate second slot is ignored); five lines
                are the layout without the duplicate slot.

        Returns:
            Six strings, empty where nothing usable was found.
        """
        if isinstance(sample, FieldCandidates):
            lines = list(sample.as_slots())
        else:
            lines = list(sample)
            if len(lines) == len(CANDIDATE_SLOTS) - 1:
                lines.insert(1, lines[0])

        def line(index: int) -> str:
            return _pre_clean(lines[index] if index < len(lines) else None)

        name, birth = self._split_name_birth(line(0))
        return (
            name,
            birth,
            _ADDRESS_LABEL.sub("", line(2), count=1),
            self._format_issue(line(3)),
            _EXPIRY_TERMINAL.sub("", line(4)),
            _NON_DIGIT.sub("", line(5).replace("第", "").replace("号", "")),
        )

    @staticmethod
    def _split_name_birth(text: str) -> Tuple[str, str]:
        if "氏名" not in text:
            return "", ""
        body = _NAME_LABEL.sub("", text, count=1).strip()
        date = _COMPACT_DATE.search(body)
        if date is None:
            return "", ""
        name = _ERA_TAIL.sub("", body[:date.start()]).strip()
        return name, date.group(0).replace("生", "").strip()

    @staticmethod
    def _format_issue(text: str) -> str:
        body = _ISSUE_LABEL.sub("", text)
        date = _COMPACT_DATE.search(body)
        if date is None:
            return ""
        code = _ISSUE_CODE.search(body)
        if code is None:
            return date.group(0)
        return f"{date.group(0)}({code.group(0)})"


_default_extractor = FieldExtractor()


def extract(raw: str) -> FieldCandidates:
    return _default_extractor.extract(raw)


def format_final(sample: Union[FieldCandidates, Sequence[Optional[str]]]) -> Tuple[str, ...]:
    return _default_extractor.format_final(sample)
