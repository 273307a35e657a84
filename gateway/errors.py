"""
Exceptions raised by the LLM Gateway.

Hierarchy:
    GatewayError
    ├── ConfigurationError (also a ValueError)
    │   ├── UnsupportedProviderError
    │   ├── UnsupportedEmbeddingError
    │   └── ProviderCreationError      RAG stage: provider creation failed
    ├── UpstreamError
    │   ├── NoValidResponseError
    │   ├── DocumentStoreUnavailableError
    │   ├── SearchFailedError          RAG stage: search failed
    │   └── GenerationFailedError      RAG stage: generation failed
    └── NotFoundError

Each class carries the HTTP status the API layer answers with.
Messages stay short: raw vendor bodies are clipped with ``clip()``.
"""

from typing import Any, Dict, Optional

MAX_DIAGNOSTIC_LENGTH = 200


def clip(text: Any, limit: int = MAX_DIAGNOSTIC_LENGTH) -> str:
    """Shorten a diagnostic string so vendor payloads never leak in full."""
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message
        details: Additional structured context
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Client-facing error envelope."""
        return {"error": self.message}


class ConfigurationError(GatewayError, ValueError):
    """Missing or invalid API key, or an unsupported option."""

    status_code = 400


class UnsupportedProviderError(ConfigurationError):
    """The requested model type has no provider."""


class UnsupportedEmbeddingError(ConfigurationError):
    """The requested embedding type is unknown."""


class UpstreamError(GatewayError):
    """A vendor or document-store call failed."""

    status_code = 502


class NoValidResponseError(UpstreamError):
    """The vendor answered, but with zero choices/candidates."""

    def __init__(self, message: str = "no valid response generated", **kwargs):
        super().__init__(message, **kwargs)


class DocumentStoreUnavailableError(UpstreamError):
    """The document store could not be reached or timed out."""

    status_code = 503


class NotFoundError(GatewayError):
    """Session (or other addressed resource) does not exist."""

    status_code = 404


class _StageMixin:
    stage = ""

    @classmethod
    def wrap(cls, err: Exception):
        """Build the stage error; callers raise it ``from err``."""
        return cls(f"{cls.stage} failed: {clip(err)}")


class ProviderCreationError(_StageMixin, ConfigurationError):
    stage = "provider creation"


class SearchFailedError(_StageMixin, UpstreamError):
    stage = "search"


class GenerationFailedError(_StageMixin, UpstreamError):
    stage = "generation"
