"""
Model and embedding identifiers.

Both sets are closed: a value outside these enums is a configuration
error, never a new provider. Each EmbeddingType maps to exactly one
physical collection and one vector dimension.
"""

from enum import Enum
from typing import Dict, Union

from gateway.errors import UnsupportedEmbeddingError, UnsupportedProviderError


class ModelType(str, Enum):
    """Logical text-generation backends."""

    GEMINI = "gemini"
    OPENAI = "openai"
    WATSONX = "watsonx"


class EmbeddingType(str, Enum):
    """Logical embedding backends."""

    OPENAI_ADA_002 = "openai-ada-002"
    GEMINI = "gemini-embedding"
    OPENAI_3_SMALL = "openai-3-small"
    OPENAI_3_LARGE = "openai-3-large"


OPENAI_DIMENSION = 1536
GEMINI_DIMENSION = 768

DEFAULT_MODEL_TYPE = ModelType.OPENAI
DEFAULT_EMBEDDING_TYPE = EmbeddingType.OPENAI_ADA_002

# text-embedding-3-large is natively 3072-d; it is requested at 1536 so every
# OpenAI collection shares one dimension.
EMBEDDING_DIMENSIONS: Dict[EmbeddingType, int] = {
    EmbeddingType.OPENAI_ADA_002: OPENAI_DIMENSION,
    EmbeddingType.OPENAI_3_SMALL: OPENAI_DIMENSION,
    EmbeddingType.OPENAI_3_LARGE: OPENAI_DIMENSION,
    EmbeddingType.GEMINI: GEMINI_DIMENSION,
}

OPENAI_EMBEDDING_MODELS: Dict[EmbeddingType, str] = {
    EmbeddingType.OPENAI_ADA_002: "text-embedding-ada-002",
    EmbeddingType.OPENAI_3_SMALL: "text-embedding-3-small",
    EmbeddingType.OPENAI_3_LARGE: "text-embedding-3-large",
}

COLLECTION_SUFFIXES: Dict[EmbeddingType, str] = {
    EmbeddingType.OPENAI_ADA_002: "",
    EmbeddingType.GEMINI: "_gemini",
    EmbeddingType.OPENAI_3_SMALL: "_openai3small",
    EmbeddingType.OPENAI_3_LARGE: "_openai3large",
}


def parse_model_type(value: Union[str, ModelType, None]) -> ModelType:
    """Resolve a model identifier, falling back to the default when unset."""
    if value is None or value == "":
        return DEFAULT_MODEL_TYPE
    try:
        return ModelType(value)
    except ValueError:
        raise UnsupportedProviderError(f"Unknown LLM provider: {value}") from None


def parse_embedding_type(value: Union[str, EmbeddingType, None]) -> EmbeddingType:
    """Resolve an embedding identifier, falling back to the default when unset."""
    if value is None or value == "":
        return DEFAULT_EMBEDDING_TYPE
    try:
        return EmbeddingType(value)
    except ValueError:
        raise UnsupportedEmbeddingError(f"Unknown embedding type: {value}") from None


def collection_name(embedding_type: EmbeddingType, base: str = "documents") -> str:
    """Physical collection that holds vectors of the given embedding type."""
    return base + COLLECTION_SUFFIXES[embedding_type]


def dimension_for(embedding_type: EmbeddingType) -> int:
    """Vector dimension implied by the embedding type."""
    return EMBEDDING_DIMENSIONS[embedding_type]
