"""Merge token-level BIO tags into entity spans."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from med7.extraction.entities import Entity, TaggedToken, is_entity_type

OUTSIDE = "O"


@dataclass(slots=True, frozen=True)
class PartialEntity:
    """Entity under construction, still in 0-based half-open offsets."""

    start: int
    end: int
    label: str

    def extend(self, end: int) -> "PartialEntity":
        return PartialEntity(start=self.start, end=max(self.end, end), label=self.label)


def split_tag(tag: object) -> Tuple[str, Optional[str]]:
    """Return ``(prefix, label)`` for a BIO tag; anything unusable becomes ``("O", None)``."""

    if not isinstance(tag, str):
        return OUTSIDE, None
    cleaned = (tag or OUTSIDE).strip().upper()
    if len(cleaned) > 2 and cleaned[0] in ("B", "I") and cleaned[1] in ("-", "_"):
        label = cleaned[2:]
        if is_entity_type(label):
            return cleaned[0], label
    return OUTSIDE, None


def finalize(partial: PartialEntity, text: str) -> Entity:
    return Entity(
        start=partial.start + 1,
        stop=partial.end,
        label=partial.label,
        text=text[partial.start : partial.end],
    )


def advance(
    current: Optional[PartialEntity],
    token: TaggedToken,
    text_length: int,
) -> Tuple[Optional[PartialEntity], Optional[PartialEntity]]:
    """One reconstruction step: returns the new open entity and the entity closed by this token."""

    start = max(token.start, 0)
    end = min(token.end, text_length)
    if token.special or start >= end:
        return current, None
    prefix, label = split_tag(token.tag)
    if label is None:
        return None, current
    if prefix == "I" and current is not None and current.label == label:
        return current.extend(end), None
    # B- tags and dangling I- tags both open a fresh entity.
    return PartialEntity(start=start, end=end, label=label), current


def reconstruct_entities(text: str, tokens: Iterable[TaggedToken]) -> List[Entity]:
    """Convert an ordered token/tag sequence over *text* into entities."""

    entities: List[Entity] = []
    current: Optional[PartialEntity] = None
    for token in tokens:
        current, closed = advance(current, token, len(text))
        if closed is not None:
            entities.append(finalize(closed, text))
    if current is not None:
        entities.append(finalize(current, text))
    entities.sort(key=lambda entity: (entity.start, entity.stop))
    return entities


__all__ = ["PartialEntity", "advance", "finalize", "reconstruct_entities", "split_tag"]
