"""Shared entity schema for model-backed and pattern-backed extraction."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import BaseModel, Field, ValidationError


class EntityType(str, Enum):
    """Canonical medication entity types."""

    DRUG = "DRUG"
    STRENGTH = "STRENGTH"
    DOSAGE = "DOSAGE"
    DURATION = "DURATION"
    FREQUENCY = "FREQUENCY"
    FORM = "FORM"
    ROUTE = "ROUTE"


ENTITY_TYPES: Tuple[str, ...] = tuple(member.value for member in EntityType)


def is_entity_type(label: str) -> bool:
    return label in ENTITY_TYPES


@dataclass(slots=True, frozen=True)
class TaggedToken:
    """One tokenizer span (0-based, half-open) with its BIO tag."""

    start: int
    end: int
    tag: str
    special: bool = False


@dataclass(slots=True, frozen=True)
class Entity:
    """Typed span of the source text.

    ``start`` and ``stop`` are 1-based and inclusive, so the covered text is
    ``source[start - 1 : stop]``.
    """

    start: int
    stop: int
    label: str
    text: str

    def to_dict(self) -> dict:
        return {"start": self.start, "stop": self.stop, "label": self.label, "text": self.text}


@dataclass(slots=True, frozen=True)
class Document:
    """Processed text plus the entities found in it, ordered by position."""

    text: str
    entities: Tuple[Entity, ...] = ()

    def by_label(self, label: str) -> List[Entity]:
        return [entity for entity in self.entities if entity.label == label]

    def to_dict(self) -> dict:
        return {"text": self.text, "entities": [entity.to_dict() for entity in self.entities]}


class EntityModel(BaseModel):
    """Pydantic representation mirroring the runtime dataclass."""

    start: int = Field(ge=1)
    stop: int = Field(ge=1)
    label: EntityType
    text: str = Field(min_length=1)

    model_config = {"extra": "forbid"}

    @property
    def length(self) -> int:
        return self.stop - self.start + 1


class DocumentModel(BaseModel):
    text: str
    entities: List[EntityModel] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


def validate_entity(entity: Entity | EntityModel | Dict[str, Any]) -> EntityModel:
    """Validate an entity dataclass/dict and return an `EntityModel`."""

    if isinstance(entity, EntityModel):
        return entity
    if isinstance(entity, Entity):
        payload = entity.to_dict()
    else:
        payload = entity
    return EntityModel.model_validate(payload)


def validate_entities(entities: Iterable[Entity | EntityModel | Dict[str, Any]]) -> List[EntityModel]:
    """Validate a collection of entity-like objects."""

    validated: List[EntityModel] = []
    for entity in entities:
        try:
            validated.append(validate_entity(entity))
        except ValidationError as exc:
            raise ValueError(f"Invalid entity payload: {entity}") from exc
    return validated


def validate_document(document: Document | Dict[str, Any]) -> DocumentModel:
    payload = document.to_dict() if isinstance(document, Document) else document
    try:
        return DocumentModel.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Invalid document payload") from exc


__all__ = [
    "ENTITY_TYPES",
    "Document",
    "DocumentModel",
    "Entity",
    "EntityModel",
    "EntityType",
    "TaggedToken",
    "is_entity_type",
    "validate_document",
    "validate_entities",
    "validate_entity",
]
