"""Configuration module for the LLM Gateway."""

from .settings import (
    Settings,
    LLMConfig,
    EmbeddingConfig,
    VectorStoreConfig,
    RetrievalConfig,
    SessionConfig,
    ServerConfig,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "LLMConfig",
    "EmbeddingConfig",
    "VectorStoreConfig",
    "RetrievalConfig",
    "SessionConfig",
    "ServerConfig",
    "get_settings",
    "reload_settings",
]
