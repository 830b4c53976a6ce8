"""Backend resolution and the `Med7Model` processing entry point."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from med7.config import DEFAULT_BATCH_SIZE, FALLBACK_MODELS, ModelConfig
from med7.extraction.assembler import assemble_document
from med7.extraction.backends import BaseLabelBackend, default_loader
from med7.extraction.bio import reconstruct_entities
from med7.extraction.entities import Document, TaggedToken
from med7.extraction.patterns import PATTERN_GROUPS, PatternGroup, extract_pattern_entities

LOGGER = logging.getLogger(__name__)

Loader = Callable[[str], BaseLabelBackend]


class StrictLoadFailure(RuntimeError):
    """Raised when fallback is disabled and no requested backend could be loaded."""

    def __init__(
        self,
        message: str,
        *,
        attempted: Sequence[str],
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.attempted = tuple(attempted)
        self.last_error = last_error


@dataclass(slots=True, frozen=True)
class ModelBacked:
    backend: BaseLabelBackend


@dataclass(slots=True, frozen=True)
class PatternBacked:
    groups: Tuple[PatternGroup, ...] = field(default_factory=lambda: tuple(PATTERN_GROUPS))


LabelSource = Union[ModelBacked, PatternBacked]


def _ensure_text(text: object) -> str:
    if not isinstance(text, str):
        raise TypeError(f"Expected str, got {type(text).__name__}")
    return text


class Med7Model:
    """Extracts medication entities with a loaded backend or the regex fallback."""

    def __init__(
        self,
        source: Optional[LabelSource] = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        config: Optional[ModelConfig] = None,
    ) -> None:
        self.config = config if config is not None else ModelConfig(batch_size=batch_size)
        self.source: LabelSource = source if source is not None else PatternBacked()

    @classmethod
    def pattern_only(cls, *, batch_size: int = DEFAULT_BATCH_SIZE) -> "Med7Model":
        return cls(PatternBacked(), batch_size=batch_size)

    @property
    def batch_size(self) -> int:
        return self.config.batch_size

    @property
    def is_fallback(self) -> bool:
        return isinstance(self.source, PatternBacked)

    @property
    def backend_name(self) -> str:
        if isinstance(self.source, ModelBacked):
            return getattr(self.source.backend, "name", "unknown")
        return "patterns"

    def __repr__(self) -> str:
        return f"Med7Model(backend={self.backend_name!r}, batch_size={self.batch_size})"

    def process(self, text: Union[str, Sequence[str]]) -> Union[Document, List[Document]]:
        """Process one text, or a sequence of texts (see `process_batch`)."""

        if isinstance(text, str):
            return self._process_one(text)
        return self.process_batch(text)

    def process_batch(self, texts: Iterable[str], *, workers: Optional[int] = None) -> List[Document]:
        """Process *texts* in order; ``workers`` fans the per-text step out over threads."""

        items = [_ensure_text(text) for text in texts]
        if not items:
            return []
        source = self.source
        if isinstance(source, PatternBacked):
            return self._map(lambda text: self._from_patterns(text, source), items, workers)
        try:
            tagged = source.backend.tag_batch(items, self.batch_size)
            if len(tagged) != len(items):
                raise RuntimeError(f"backend returned {len(tagged)} results for {len(items)} texts")
        except Exception as exc:
            LOGGER.warning("Batch tagging with %s failed: %s. Processing individually.", self.backend_name, exc)
            return self._map(self._process_one, items, workers)
        return self._map(lambda pair: self._from_tokens(*pair), list(zip(items, tagged)), workers)

    def _process_one(self, text: str) -> Document:
        text = _ensure_text(text)
        source = self.source
        if not text:
            return Document(text=text)
        if isinstance(source, PatternBacked):
            return self._from_patterns(text, source)
        try:
            tokens = source.backend.tag(text)
        except Exception as exc:
            LOGGER.warning("Tagging with %s failed: %s. Using pattern-based fallback.", self.backend_name, exc)
            return self._from_patterns(text, PatternBacked())
        return self._from_tokens(text, tokens)

    @staticmethod
    def _from_tokens(text: str, tokens: Sequence[TaggedToken]) -> Document:
        return assemble_document(text, reconstruct_entities(text, tokens))

    @staticmethod
    def _from_patterns(text: str, source: PatternBacked) -> Document:
        return assemble_document(text, extract_pattern_entities(text, source.groups))

    @staticmethod
    def _map(func: Callable, items: list, workers: Optional[int]) -> list:
        if not workers or workers <= 1 or len(items) <= 1:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(func, items))


def candidate_order(
    preferred_backend_name: Optional[str] = None,
    candidates: Iterable[str] = FALLBACK_MODELS,
    *,
    allow_fallback: bool = True,
) -> List[str]:
    """Names to try, preferred first, de-duplicated in order."""

    if preferred_backend_name and not allow_fallback:
        return [preferred_backend_name]
    ordered: List[str] = []
    for name in ([preferred_backend_name] if preferred_backend_name else []) + list(candidates):
        if name and name not in ordered:
            ordered.append(name)
    return ordered


def resolve_backend(
    names: Sequence[str],
    loader: Loader = default_loader,
) -> Tuple[Optional[BaseLabelBackend], Optional[BaseException]]:
    """Load the first name that succeeds; returns ``(backend, last_error)``."""

    last_error: Optional[BaseException] = None
    for name in names:
        LOGGER.info("Attempting to load model: %s", name)
        try:
            backend = loader(name)
        except Exception as exc:
            LOGGER.warning("Failed to load model %s: %s", name, exc)
            last_error = exc
            continue
        LOGGER.info("Successfully loaded model: %s", name)
        return backend, None
    return None, last_error


def load_model(
    preferred_backend_name: Optional[str] = None,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    allow_fallback: bool = True,
    candidates: Iterable[str] = FALLBACK_MODELS,
    loader: Loader = default_loader,
) -> Med7Model:
    """Load the best available backend, degrading to regex patterns unless *allow_fallback* is off."""

    config = ModelConfig(
        preferred_backend_name=preferred_backend_name,
        batch_size=batch_size,
        allow_fallback=allow_fallback,
    )
    names = candidate_order(config.preferred_backend_name, candidates, allow_fallback=config.allow_fallback)
    backend, last_error = resolve_backend(names, loader)
    if backend is not None:
        return Med7Model(ModelBacked(backend), config=config)
    if not config.allow_fallback:
        raise StrictLoadFailure(
            f"Could not load any of {names}: {last_error}",
            attempted=names,
            last_error=last_error,
        )
    LOGGER.warning("All models failed to load. Using pattern-based processor.")
    return Med7Model(PatternBacked(), config=config)


def load_model_from_config(
    config: ModelConfig,
    *,
    candidates: Iterable[str] = FALLBACK_MODELS,
    loader: Loader = default_loader,
) -> Med7Model:
    return load_model(
        config.preferred_backend_name,
        batch_size=config.batch_size,
        allow_fallback=config.allow_fallback,
        candidates=candidates,
        loader=loader,
    )


__all__ = [
    "LabelSource",
    "Med7Model",
    "ModelBacked",
    "PatternBacked",
    "StrictLoadFailure",
    "candidate_order",
    "load_model",
    "load_model_from_config",
    "resolve_backend",
]
