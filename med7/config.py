"""Project-wide configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

# Tried in this order when no backend is requested explicitly.
FALLBACK_MODELS: Tuple[str, ...] = (
    "kormilitzin/en_core_med7_lg",
    "en_core_med7_lg",
    "en_core_web_sm",
    "en_core_web_md",
    "en_core_web_lg",
)
DEFAULT_BATCH_SIZE = 8
TRANSFORMERS_PREFIX = "hf:"

ENV_MODEL = "MED7_MODEL"
ENV_BATCH_SIZE = "MED7_BATCH_SIZE"
ENV_ALLOW_FALLBACK = "MED7_ALLOW_FALLBACK"

_FALSEY = {"0", "false", "no", "off"}


@dataclass(slots=True, frozen=True)
class ModelConfig:
    """Parameters accepted when constructing a `Med7Model`."""

    preferred_backend_name: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    allow_fallback: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {self.batch_size!r}")

    @classmethod
    def from_env(cls) -> "ModelConfig":
        """Build a config from ``MED7_*`` environment variables."""

        preferred = os.environ.get(ENV_MODEL) or None
        raw_batch = os.environ.get(ENV_BATCH_SIZE)
        try:
            batch_size = int(raw_batch) if raw_batch else DEFAULT_BATCH_SIZE
        except ValueError as exc:
            raise ValueError(f"{ENV_BATCH_SIZE} must be an integer, got {raw_batch!r}") from exc
        raw_fallback = os.environ.get(ENV_ALLOW_FALLBACK, "")
        allow_fallback = raw_fallback.strip().lower() not in _FALSEY
        return cls(preferred_backend_name=preferred, batch_size=batch_size, allow_fallback=allow_fallback)
