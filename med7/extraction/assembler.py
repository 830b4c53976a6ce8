"""Build `Document` objects and enforce span integrity."""
from __future__ import annotations

from typing import Iterable, Optional

from med7.extraction.entities import Document, Entity, is_entity_type


class InvariantViolation(ValueError):
    """An entity does not describe a real slice of its source text."""

    def __init__(self, message: str, *, entity: Entity, reason: str) -> None:
        super().__init__(message)
        self.entity = entity
        self.reason = reason


def check_entity(entity: Entity, text: str) -> Optional[str]:
    """Return the failure reason for *entity* over *text*, or ``None`` when it is valid."""

    if not is_entity_type(entity.label):
        return "unknown_label"
    if entity.start < 1 or entity.stop > len(text):
        return "out_of_bounds"
    if entity.start > entity.stop:
        return "empty_span"
    if text[entity.start - 1 : entity.stop] != entity.text:
        return "text_mismatch"
    return None


def assemble_document(text: str, entities: Iterable[Entity]) -> Document:
    """Wrap *entities* found in *text* into a `Document`, ordered by position."""

    ordered = sorted(entities, key=lambda entity: (entity.start, entity.stop))
    for entity in ordered:
        reason = check_entity(entity, text)
        if reason is not None:
            raise InvariantViolation(
                f"Entity {entity.to_dict()} does not match its source text ({reason})",
                entity=entity,
                reason=reason,
            )
    return Document(text=text, entities=tuple(ordered))


__all__ = ["InvariantViolation", "assemble_document", "check_entity"]
