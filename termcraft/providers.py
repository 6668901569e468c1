"""Model provider layer.

This module contains the abstraction over the language-model backend
that turns a prompt into a reply, plus the :class:`Provider` that owns
a backend, the model catalogue and one rate limiter per model.

Backends implement :meth:`BaseBackend.generate`, which accepts a list
of prompt parts (text or binary attachments) and generation parameters
and returns the candidate reply texts.  Transport errors are surfaced
as :class:`ProviderError`.

Supported backends:

* ``GeminiBackend`` - calls the Google Gemini API through the
  ``google-genai`` SDK.
* ``MockBackend`` - answers from a queue of canned replies, falling
  back to a few keyword heuristics.  Used for offline work and tests.
"""

from __future__ import annotations

import logging
import os
import re
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List, Optional, Sequence, Union

import httpx

from .errors import ConfigurationError, ExecutionError, RequestTimeoutError
from .models import DEFAULT_MODEL_NAME, ModelConfig, ModelRegistry


logger = logging.getLogger(__name__)

API_KEY_ENV = "GEMINI_API_KEY"


class ProviderError(ExecutionError):
    """Raised when a backend fails to generate a reply."""


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class BinaryPart:
    mime_type: str
    data: bytes


Part = Union[TextPart, BinaryPart]


@dataclass(frozen=True)
class GenerationParams:
    """Sampling settings passed with every request."""

    model: str
    temperature: float
    top_k: int
    top_p: float
    max_output_tokens: int

    @classmethod
    def for_model(cls, config: ModelConfig) -> "GenerationParams":
        return cls(
            model=config.name,
            temperature=config.temperature,
            top_k=config.top_k,
            top_p=config.top_p,
            max_output_tokens=config.max_output_tokens,
        )


class BaseBackend:
    """Abstract base class for all backends."""

    def generate(
        self,
        parts: Sequence[Part],
        params: GenerationParams,
        timeout: Optional[float] = None,
    ) -> List[str]:
        """Return the candidate reply texts for ``parts``.

        Subclasses must implement this method and raise
        :class:`ProviderError` when the backend cannot answer.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources.  The default does nothing."""


class GeminiBackend(BaseBackend):
    """Backend talking to the Gemini API.

    Requests carry the system instruction and block dangerous,
    harassing, hateful and sexually explicit content at medium
    probability and above.
    """

    SAFETY_CATEGORIES = (
        "HARM_CATEGORY_DANGEROUS_CONTENT",
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    )

    def __init__(self, api_key: Optional[str], system_instruction: str = "") -> None:
        if not api_key:
            raise ConfigurationError("Gemini API key is required")
        # Imported lazily so the mock backend works without the SDK.
        from google import genai

        try:
            self._client = genai.Client(api_key=api_key)
        except Exception as exc:
            raise ConfigurationError("failed to create Gemini client", exc)
        self.system_instruction = system_instruction

    def _build_config(self, params: GenerationParams, timeout: Optional[float]):
        from google.genai import types

        http_options = None
        if timeout is not None:
            http_options = types.HttpOptions(timeout=int(timeout * 1000))
        return types.GenerateContentConfig(
            temperature=params.temperature,
            top_k=params.top_k,
            top_p=params.top_p,
            max_output_tokens=params.max_output_tokens,
            system_instruction=self.system_instruction or None,
            safety_settings=[
                types.SafetySetting(category=category, threshold="BLOCK_MEDIUM_AND_ABOVE")
                for category in self.SAFETY_CATEGORIES
            ],
            http_options=http_options,
        )

    @staticmethod
    def _to_sdk_part(part: Part):
        from google.genai import types

        if isinstance(part, BinaryPart):
            return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
        return types.Part.from_text(text=part.text)

    def generate(
        self,
        parts: Sequence[Part],
        params: GenerationParams,
        timeout: Optional[float] = None,
    ) -> List[str]:
        if self._client is None:
            raise ConfigurationError("Gemini client not initialized")
        contents = [self._to_sdk_part(part) for part in parts]
        try:
            response = self._client.models.generate_content(
                model=params.model,
                contents=contents,
                config=self._build_config(params, timeout),
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError("Gemini request timed out", exc)
        except Exception as exc:
            raise ProviderError("failed to generate content", exc)
        texts = []
        for candidate in response.candidates or []:
            content = candidate.content
            if content is None or not content.parts:
                continue
            text = "".join(part.text for part in content.parts if part.text)
            if text:
                texts.append(text)
        return texts

    def close(self) -> None:
        self._client = None


class MockBackend(BaseBackend):
    """Backend serving canned replies.

    Replies queued with :meth:`queue` (or passed at construction) are
    returned first, oldest first.  When the queue is empty the request
    text is matched against a few keyword heuristics.  ``error`` makes
    every call fail, which is handy for testing error paths.
    """

    HEURISTICS = (
        (r"\bgit\b.*\bstatus\b|\bstatus\b", "git status"),
        (r"\blist\b.*\bfiles\b", "ls -la"),
        (r"\b(where am i|current directory)\b", "pwd"),
        (r"\bdisk\b", "df -h"),
    )

    def __init__(
        self,
        replies: Iterable[str] = (),
        error: Optional[Exception] = None,
    ) -> None:
        self._replies: Deque[str] = deque(replies)
        self.error = error
        self.requests: List[List[Part]] = []

    def queue(self, *replies: str) -> None:
        self._replies.extend(replies)

    def generate(
        self,
        parts: Sequence[Part],
        params: GenerationParams,
        timeout: Optional[float] = None,
    ) -> List[str]:
        self.requests.append(list(parts))
        if self.error is not None:
            raise self.error
        if self._replies:
            return [self._replies.popleft()]
        prompt = " ".join(p.text for p in parts if isinstance(p, TextPart))
        request = prompt.rsplit("User request:", 1)[-1].lower()
        for pattern, command in self.HEURISTICS:
            if re.search(pattern, request):
                return [f"```bash\n{command}\n```"]
        return ["I could not map that request to a command."]


class Provider:
    """Owns a backend, the model registry and the system instruction.

    Each model gets its own rate limiter from the registry, shared by
    every chat session opened on that model through this provider.
    """

    def __init__(
        self,
        backend: BaseBackend,
        registry: Optional[ModelRegistry] = None,
        system_instruction: str = "",
        default_model: str = DEFAULT_MODEL_NAME,
    ) -> None:
        self.backend = backend
        self.registry = registry or ModelRegistry()
        self.system_instruction = system_instruction
        self.default_model = default_model

    def chat(self, model: Optional[str] = None, **kwargs):
        """Open a :class:`~termcraft.session.ChatSession` on ``model``."""
        from .session import ChatSession

        name = model or self.default_model
        config = self.registry.get(name)
        return ChatSession(
            backend=self.backend,
            model_config=config,
            rate_limiter=self.registry.limiter(name),
            **kwargs,
        )

    def list_models(self) -> List[str]:
        return self.registry.names()

    def model_info(self, name: str) -> dict:
        return self.registry.get(name).info()

    def close(self) -> None:
        self.backend.close()


def resolve_api_key(api_key: Optional[str]) -> Optional[str]:
    return api_key or os.environ.get(API_KEY_ENV)


def get_provider(
    provider_name: str,
    api_key: Optional[str] = None,
    system_instruction: str = "",
    default_model: str = DEFAULT_MODEL_NAME,
) -> Provider:
    """Factory function to instantiate the appropriate provider.

    :param provider_name: ``gemini`` or ``mock``.
    :param api_key: Gemini API key; ``$GEMINI_API_KEY`` is used when omitted.
    :raises ConfigurationError: if the Gemini key is missing.
    :raises ValueError: if the provider name is unknown.
    """
    name = provider_name.lower().strip()
    if name == "gemini":
        key = resolve_api_key(api_key)
        if not key:
            raise ConfigurationError(
                f"API key not found in config or environment. Please set {API_KEY_ENV}"
            )
        backend: BaseBackend = GeminiBackend(key, system_instruction)
    elif name == "mock":
        backend = MockBackend()
    else:
        raise ValueError(f"Unknown provider: {provider_name}")
    logger.debug("using %s provider with default model %s", name, default_model)
    return Provider(backend, system_instruction=system_instruction, default_model=default_model)
