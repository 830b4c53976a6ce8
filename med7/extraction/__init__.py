"""Entity reconstruction, pattern fallback and backend resolution."""

from .assembler import InvariantViolation, assemble_document
from .backends import BackendUnavailable, BaseLabelBackend
from .bio import reconstruct_entities
from .entities import ENTITY_TYPES, Document, Entity, EntityType, TaggedToken
from .model import Med7Model, ModelBacked, PatternBacked, StrictLoadFailure, load_model
from .patterns import DOSAGE_PATTERNS, DRUG_PATTERNS, FREQUENCY_PATTERNS, extract_pattern_entities

__all__ = [
    "ENTITY_TYPES",
    "DOSAGE_PATTERNS",
    "DRUG_PATTERNS",
    "FREQUENCY_PATTERNS",
    "BackendUnavailable",
    "BaseLabelBackend",
    "Document",
    "Entity",
    "EntityType",
    "InvariantViolation",
    "Med7Model",
    "ModelBacked",
    "PatternBacked",
    "StrictLoadFailure",
    "TaggedToken",
    "assemble_document",
    "extract_pattern_entities",
    "load_model",
    "reconstruct_entities",
]
