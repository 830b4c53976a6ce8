"""Medication entity extraction from clinical text."""

from med7.config import FALLBACK_MODELS, ModelConfig
from med7.extraction import (
    ENTITY_TYPES,
    BackendUnavailable,
    Document,
    Entity,
    InvariantViolation,
    Med7Model,
    StrictLoadFailure,
    load_model,
)

__all__ = [
    "ENTITY_TYPES",
    "FALLBACK_MODELS",
    "BackendUnavailable",
    "Document",
    "Entity",
    "InvariantViolation",
    "Med7Model",
    "ModelConfig",
    "StrictLoadFailure",
    "load_model",
]
