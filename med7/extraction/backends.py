"""Model-backed label sources: spaCy pipelines and HuggingFace token classifiers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from med7.config import TRANSFORMERS_PREFIX
from med7.extraction.bio import OUTSIDE
from med7.extraction.entities import TaggedToken

LOGGER = logging.getLogger(__name__)


class BackendUnavailable(RuntimeError):
    """Raised when a named backend cannot be loaded."""

    def __init__(self, message: str, *, backend_name: str) -> None:
        super().__init__(message)
        self.backend_name = backend_name


class BaseLabelBackend:
    """Produces one BIO tag per token, with character offsets into the input."""

    name: str = "base"

    def tag(self, text: str) -> List[TaggedToken]:
        raise NotImplementedError

    def tag_batch(self, texts: Sequence[str], batch_size: int) -> List[List[TaggedToken]]:
        return [self.tag(text) for text in texts]


def tokens_from_spacy_doc(doc: Any) -> List[TaggedToken]:
    """Read token-level IOB annotations off a spaCy ``Doc``."""

    tokens: List[TaggedToken] = []
    for token in doc:
        iob = token.ent_iob_
        label = token.ent_type_
        tag = f"{iob}-{label}" if iob in ("B", "I") and label else OUTSIDE
        tokens.append(TaggedToken(start=token.idx, end=token.idx + len(token.text), tag=tag))
    return tokens


class SpacyBackend(BaseLabelBackend):
    def __init__(self, model_name: str) -> None:
        import spacy  # type: ignore

        self.name = model_name
        self._nlp = spacy.load(model_name)
        LOGGER.debug("Loaded spaCy pipeline %s", model_name)

    def tag(self, text: str) -> List[TaggedToken]:
        return tokens_from_spacy_doc(self._nlp(text))

    def tag_batch(self, texts: Sequence[str], batch_size: int) -> List[List[TaggedToken]]:
        return [tokens_from_spacy_doc(doc) for doc in self._nlp.pipe(list(texts), batch_size=batch_size)]


@dataclass(slots=True)
class TokenEncoding:
    ids: List[int]
    offsets: List[Tuple[int, int]]
    special: List[bool]


def truncated_at(encoding: TokenEncoding, text: str, max_length: int) -> Optional[int]:
    """Character offset where a length-capped encoding stopped covering *text*, or ``None``."""

    if len(encoding.offsets) < max_length:
        return None
    covered = max((int(end) for (_, end), special in zip(encoding.offsets, encoding.special) if not special), default=0)
    if covered < len(text.rstrip()):
        return covered
    return None


def _lookup_label(id2label: Mapping[Any, str], index: int) -> str:
    label = id2label.get(index)
    if label is None:
        label = id2label.get(str(index))
    return label or OUTSIDE


def tokens_from_distribution(
    encoding: TokenEncoding,
    distribution: Sequence[Sequence[float]],
    id2label: Mapping[Any, str],
) -> List[TaggedToken]:
    """Pick the most probable label per sub-word token."""

    tokens: List[TaggedToken] = []
    for (start, end), special, scores in zip(encoding.offsets, encoding.special, distribution):
        if not scores:
            continue
        best = max(range(len(scores)), key=lambda idx: scores[idx])
        tokens.append(
            TaggedToken(start=int(start), end=int(end), tag=_lookup_label(id2label, best), special=bool(special))
        )
    return tokens


class TransformersBackend(BaseLabelBackend):
    """Token-classification model with a fast tokenizer (needed for offset mapping)."""

    def __init__(self, model_name: str, *, max_length: int = 512) -> None:
        import torch  # type: ignore
        from transformers import AutoModelForTokenClassification, AutoTokenizer  # type: ignore

        self.name = f"{TRANSFORMERS_PREFIX}{model_name}"
        self.max_length = max_length
        self._torch = torch
        self._tokenizer = AutoTokenizer.from_pretrained(model_name)
        if not getattr(self._tokenizer, "is_fast", False):
            raise RuntimeError(f"{model_name} has no fast tokenizer; offsets are unavailable.")
        self._model = AutoModelForTokenClassification.from_pretrained(model_name)
        self._model.eval()
        self._id2label = dict(self._model.config.id2label)
        LOGGER.debug("Loaded token classifier %s with %s labels", model_name, len(self._id2label))

    def tokenize(self, text: str) -> TokenEncoding:
        encoded = self._tokenizer(
            text,
            return_offsets_mapping=True,
            return_special_tokens_mask=True,
            truncation=True,
            max_length=self.max_length,
        )
        return TokenEncoding(
            ids=list(encoded["input_ids"]),
            offsets=[tuple(pair) for pair in encoded["offset_mapping"]],
            special=[bool(flag) for flag in encoded["special_tokens_mask"]],
        )

    def infer(self, token_ids: Sequence[int]) -> List[List[float]]:
        torch = self._torch
        with torch.no_grad():
            logits = self._model(input_ids=torch.tensor([list(token_ids)])).logits[0]
        return torch.softmax(logits, dim=-1).tolist()

    def tag(self, text: str) -> List[TaggedToken]:
        encoding = self.tokenize(text)
        if not encoding.ids:
            return []
        self._warn_if_truncated(encoding, text)
        return tokens_from_distribution(encoding, self.infer(encoding.ids), self._id2label)

    def _warn_if_truncated(self, encoding: TokenEncoding, text: str) -> None:
        position = truncated_at(encoding, text, self.max_length)
        if position is not None:
            LOGGER.warning(
                "%s truncated input at character %s of %s; later text is not tagged", self.name, position, len(text)
            )

    def tag_batch(self, texts: Sequence[str], batch_size: int) -> List[List[TaggedToken]]:
        torch = self._torch
        results: List[List[TaggedToken]] = []
        for offset in range(0, len(texts), batch_size):
            chunk = list(texts[offset : offset + batch_size])
            encoded = self._tokenizer(
                chunk,
                return_offsets_mapping=True,
                return_special_tokens_mask=True,
                truncation=True,
                max_length=self.max_length,
                padding=True,
                return_tensors="pt",
            )
            offsets = encoded.pop("offset_mapping").tolist()
            special = encoded.pop("special_tokens_mask").tolist()
            mask = encoded["attention_mask"].tolist()
            with torch.no_grad():
                distribution = torch.softmax(self._model(**encoded).logits, dim=-1).tolist()
            for row in range(len(chunk)):
                keep = [idx for idx, flag in enumerate(mask[row]) if flag]
                encoding = TokenEncoding(
                    ids=[0] * len(keep),
                    offsets=[tuple(offsets[row][idx]) for idx in keep],
                    special=[bool(special[row][idx]) for idx in keep],
                )
                self._warn_if_truncated(encoding, chunk[row])
                results.append(
                    tokens_from_distribution(encoding, [distribution[row][idx] for idx in keep], self._id2label)
                )
        return results


def default_loader(name: str) -> BaseLabelBackend:
    """Load *name* as a spaCy pipeline, or as a HuggingFace model when prefixed ``hf:``."""

    try:
        if name.startswith(TRANSFORMERS_PREFIX):
            return TransformersBackend(name[len(TRANSFORMERS_PREFIX) :])
        return SpacyBackend(name)
    except Exception as exc:  # pragma: no cover - depends on installed models
        raise BackendUnavailable(f"Backend {name} unavailable: {exc}", backend_name=name) from exc


__all__ = [
    "BackendUnavailable",
    "BaseLabelBackend",
    "SpacyBackend",
    "TokenEncoding",
    "TransformersBackend",
    "default_loader",
    "tokens_from_distribution",
    "tokens_from_spacy_doc",
    "truncated_at",
]
