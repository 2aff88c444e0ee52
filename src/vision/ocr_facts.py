# src/vision/ocr_facts.py
"""Mine structured facts (dates, awards, phone numbers, slogans) from OCR text.

Matchers are a declarative table so each one can be tested and extended
on its own. Pattern matches come first, in table order, followed by
standalone short lines that look like slogans.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sitelift.vision.models import ImageRole, OcrFact

MAX_FACTS = 10
PATTERN_CONFIDENCE = 0.85
LINE_CONFIDENCE = 0.7


@dataclass(frozen=True)
class FactPattern:
    category: str
    pattern: re.Pattern[str]
    confidence: float = PATTERN_CONFIDENCE


FACT_PATTERNS: tuple[FactPattern, ...] = (
    FactPattern(
        "established",
        re.compile(r"(?:est\.?|established|since|founded)\s*(?:in\s*)?(\d{4})", re.IGNORECASE),
    ),
    FactPattern(
        "award",
        re.compile(r"(?:award|certified|voted|best|#1|number one|top\s+\d+)", re.IGNORECASE),
    ),
    FactPattern(
        "phone",
        re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}"),
    ),
    FactPattern(
        "quoted_slogan",
        re.compile(r'"([^"]+)"'),
    ),
    FactPattern(
        "years_in_business",
        re.compile(
            r"(\d+)\+?\s*years?\s*(?:of\s+)?(?:experience|service|in\s+business)",
            re.IGNORECASE,
        ),
    ),
)

_MIN_MATCH_LEN = 3
_MAX_MATCH_LEN = 100
_LINE_WORDS = (2, 8)
_LINE_CHARS = (10, 80)
_LINE_SPLIT = re.compile(r"[\n\r]+")


def match_patterns(
    full_text: str, patterns: tuple[FactPattern, ...] = FACT_PATTERNS,
) -> list[tuple[str, str, float]]:
    """Return ``(category, text, confidence)`` for every pattern match."""
    matches: list[tuple[str, str, float]] = []
    for fact_pattern in patterns:
        for match in fact_pattern.pattern.finditer(full_text):
            text = match.group(0).strip()
            if _MIN_MATCH_LEN < len(text) < _MAX_MATCH_LEN:
                matches.append((fact_pattern.category, text, fact_pattern.confidence))
    return matches


def slogan_lines(full_text: str, captured: list[str]) -> list[str]:
    """Short capitalized lines not already covered by a captured fact."""
    lines: list[str] = []
    for line in _LINE_SPLIT.split(full_text):
        trimmed = line.strip()
        if not trimmed:
            continue
        words = len(trimmed.split())
        if not _LINE_WORDS[0] <= words <= _LINE_WORDS[1]:
            continue
        if not _LINE_CHARS[0] < len(trimmed) < _LINE_CHARS[1]:
            continue
        if not trimmed[0].isupper():
            continue
        if any(text in trimmed or trimmed in text for text in captured):
            continue
        lines.append(trimmed)
        captured.append(trimmed)
    return lines


def extract_facts(full_text: str, image_url: str, source: ImageRole) -> list[OcrFact]:
    """Extract up to ``MAX_FACTS`` deduplicated facts from OCR text."""
    if not full_text:
        return []

    candidates: list[tuple[str, float]] = [
        (text, confidence) for _, text, confidence in match_patterns(full_text)
    ]
    captured = [text for text, _ in candidates]
    candidates.extend((line, LINE_CONFIDENCE) for line in slogan_lines(full_text, captured))

    facts: list[OcrFact] = []
    seen: set[str] = set()
    for text, confidence in candidates:
        folded = text.lower()
        if folded in seen:
            continue
        seen.add(folded)
        facts.append(
            OcrFact(source=source, text=text, confidence=confidence, image_url=image_url)
        )

    return facts[:MAX_FACTS]
