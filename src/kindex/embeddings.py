"""Embedding provider: LiteLLM client, API key validation, and rate-limit backoff.

All embedding calls in the ingest and query pipelines route through this
module. LiteLLM's own retry is disabled (``num_retries=0``) so that a 429
surfaces as ``RateLimited``; ingestion wraps the provider in
``RetryingEmbedder`` (tenacity) so that rate limits back off exponentially up
to a fixed ceiling. The query path uses the bare provider
and never retries.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable, Protocol

import litellm
import openai
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kindex.config import EmbeddingCfg
from kindex.errors import EmbeddingError, RateLimited, RateLimitExceeded

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "cloudflare": "CLOUDFLARE_API_KEY",
    "ollama": None,  # Local, no key required
}

# Every litellm provider exception subclasses openai.APIError; some
# (InternalServerError, ServiceUnavailableError) do not subclass litellm.APIError.
_HARD_ERRORS = (openai.APIError,)


class EmbeddingProvider(Protocol):
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LiteLLMEmbedder:
    """Batch text → vector via ``litellm.embedding()``.

    A provider rate limit surfaces as ``RateLimited``; any other provider
    failure, or a vector of the wrong width, as ``EmbeddingError``.
    """

    def __init__(self, config: EmbeddingCfg | None = None) -> None:
        self._config = config or EmbeddingCfg()

    @property
    def model(self) -> str:
        return self._config.model

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = litellm.embedding(
                model=self._config.model,
                input=texts,
                num_retries=0,
            )
        except litellm.RateLimitError as exc:
            raise RateLimited(str(exc)) from exc
        except _HARD_ERRORS as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        vectors = [item["embedding"] for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        for vec in vectors:
            if len(vec) != self._config.dimensions:
                raise EmbeddingError(
                    f"Model '{self._config.model}' returned {len(vec)}-dim vectors; "
                    f"config expects {self._config.dimensions}. Update embedding.dimensions."
                )
        return vectors

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]


class RetryingEmbedder:
    """Wrap a provider with exponential backoff on ``RateLimited``.

    Up to ``max_retries`` attempts; the wait before attempt N+1 (1-based N)
    is ``backoff_base * 2 ** N`` seconds. When every attempt is rate limited
    the batch fails with ``RateLimitExceeded``. Hard errors propagate
    immediately.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_retries: int = 5,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._provider = provider
        self._max_retries = max_retries
        self._retrying = Retrying(
            retry=retry_if_exception_type(RateLimited),
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=backoff_base * 2),
            sleep=sleep,
            before_sleep=self._log_backoff,
        )

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limited, waiting %.1fs (attempt %d/%d)",
            retry_state.next_action.sleep,
            retry_state.attempt_number,
            self._max_retries,
        )

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            return self._retrying(self._provider.embed_batch, texts)
        except RetryError as exc:
            raise RateLimitExceeded(self._max_retries) from exc.last_attempt.exception()
