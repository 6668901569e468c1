"""Model catalogue and the per-model rate limiter registry."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Tuple

from .errors import ModelError
from .ratelimit import RateLimiter, RateLimits


@dataclass(frozen=True)
class ModelConfig:
    """Limits and generation defaults for one backend model."""

    name: str
    input_token_limit: int
    output_token_limit: int
    rpm: int
    tpm: int
    rpd: int
    is_paid: bool = False
    max_images: int = 16
    features: Tuple[str, ...] = ()
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 8192

    @property
    def limits(self) -> RateLimits:
        return RateLimits(rpm=self.rpm, tpm=self.tpm, rpd=self.rpd)

    def info(self) -> Dict[str, object]:
        """Return a JSON friendly description of the model."""
        return {
            "name": self.name,
            "input_token_limit": self.input_token_limit,
            "output_token_limit": self.output_token_limit,
            "rpm": self.rpm,
            "tpm": self.tpm,
            "rpd": self.rpd,
            "features": list(self.features),
            "is_paid": self.is_paid,
        }


_MULTIMODAL = (
    "text",
    "images",
    "audio",
    "video",
    "system_instructions",
    "function_calling",
)

GEMINI_15_PRO = ModelConfig(
    name="gemini-1.5-pro",
    input_token_limit=2_097_152,
    output_token_limit=8_192,
    rpm=60,
    tpm=450_000,
    rpd=1_000,
    features=_MULTIMODAL,
    temperature=0.7,
    top_k=40,
    top_p=0.95,
    max_output_tokens=8192,
)

GEMINI_15_FLASH = ModelConfig(
    name="gemini-1.5-flash",
    input_token_limit=1_048_576,
    output_token_limit=8_192,
    rpm=120,
    tpm=1_000_000,
    rpd=10_000,
    features=_MULTIMODAL,
    temperature=0.8,
    top_k=20,
    top_p=0.9,
    max_output_tokens=4096,
)

DEFAULT_MODELS = (GEMINI_15_PRO, GEMINI_15_FLASH)
DEFAULT_MODEL_NAME = GEMINI_15_PRO.name


class ModelRegistry:
    """Maps model names to their config and their own rate limiter.

    Limiters are created on first use and live as long as the registry,
    which is owned by a provider.
    """

    def __init__(
        self,
        models: Iterable[ModelConfig] = DEFAULT_MODELS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._models: Dict[str, ModelConfig] = {m.name: m for m in models}
        self._limiters: Dict[str, RateLimiter] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def names(self) -> List[str]:
        return sorted(self._models)

    def get(self, name: str) -> ModelConfig:
        try:
            return self._models[name]
        except KeyError:
            raise ModelError(f"unknown model: {name}")

    def limiter(self, name: str) -> RateLimiter:
        """Return the limiter for ``name``, creating it on first use."""
        config = self.get(name)
        with self._lock:
            limiter = self._limiters.get(name)
            if limiter is None:
                limiter = RateLimiter(config.limits, model_name=name, clock=self._clock)
                self._limiters[name] = limiter
            return limiter

    def register(self, config: ModelConfig) -> None:
        with self._lock:
            self._models[config.name] = config
            self._limiters.pop(config.name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._models
