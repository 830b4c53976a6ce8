"""Regex fallback used when no model backend could be loaded."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Sequence, Tuple

from med7.extraction.entities import Entity, EntityType

LOGGER = logging.getLogger(__name__)

DRUG_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b\w*(cillin|mycin|pril|sartan|statin|zole|mab)\b", flags=re.IGNORECASE),
    re.compile(r"\b(aspirin|ibuprofen|acetaminophen|warfarin|metformin|insulin)\b", flags=re.IGNORECASE),
)
DOSAGE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b\d+(?:\.\d*)?\s*(mg|g|ml|mcg|units?|iu)\b", flags=re.IGNORECASE),
)
FREQUENCY_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(daily|bid|tid|qid|q\d+h|once|twice|three times)\b", flags=re.IGNORECASE),
    re.compile(r"\b(morning|evening|bedtime|as needed|prn)\b", flags=re.IGNORECASE),
)

PUNCTUATION_RE = re.compile(r"[^\w\s]")
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(slots=True, frozen=True)
class PatternGroup:
    """All patterns that emit one entity type."""

    label: EntityType
    patterns: Tuple[Pattern[str], ...]

    def extract(self, text: str) -> List[Entity]:
        entities: List[Entity] = []
        for pattern in self.patterns:
            for match in pattern.finditer(text):
                start, end = match.span()
                if start == end:
                    continue
                entities.append(
                    Entity(start=start + 1, stop=end, label=self.label.value, text=text[start:end])
                )
        return entities


PATTERN_GROUPS: Sequence[PatternGroup] = (
    PatternGroup(label=EntityType.DRUG, patterns=DRUG_PATTERNS),
    PatternGroup(label=EntityType.DOSAGE, patterns=DOSAGE_PATTERNS),
    PatternGroup(label=EntityType.FREQUENCY, patterns=FREQUENCY_PATTERNS),
)


def extract_pattern_entities(text: str, groups: Iterable[PatternGroup] = PATTERN_GROUPS) -> List[Entity]:
    """Run every pattern group over *text*.

    Groups may overlap each other. A group whose matching raises contributes
    nothing for this text; the remaining groups still run.
    """

    entities: List[Entity] = []
    if not text:
        return entities
    for group in groups:
        try:
            found = group.extract(text)
        except Exception as exc:
            LOGGER.warning("Pattern group %s failed, skipping it: %s", group.label.value, exc)
            continue
        entities.extend(found)
    entities.sort(key=lambda entity: (entity.start, entity.stop))
    return entities


def simple_tokenize(text: str) -> List[str]:
    """Split on whitespace after replacing punctuation with spaces.

    Public helper for callers that need the word view the patterns operate on;
    extraction itself does not tokenize.
    """

    return [word for word in WHITESPACE_RE.split(PUNCTUATION_RE.sub(" ", text)) if word]


__all__ = [
    "DOSAGE_PATTERNS",
    "DRUG_PATTERNS",
    "FREQUENCY_PATTERNS",
    "PATTERN_GROUPS",
    "PatternGroup",
    "extract_pattern_entities",
    "simple_tokenize",
]
