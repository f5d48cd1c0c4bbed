"""Exception hierarchy shared by the ingest and retrieval pipelines."""

from __future__ import annotations


class KindexError(Exception):
    """Base class for all kindex errors."""


class ConfigError(KindexError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


class MalformedInputError(KindexError, ValueError):
    """Raised when a caller passes input that is rejected before any external call."""


class EmbeddingError(KindexError):
    """Hard failure from the embedding provider."""


class RateLimited(EmbeddingError):
    """The provider signalled a rate limit; the call may be retried."""


class RateLimitExceeded(EmbeddingError):
    """The provider kept rate-limiting past the configured retry ceiling."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Embedding provider: max retries exceeded (rate limited {attempts} times)"
        )
        self.attempts = attempts
