"""
Embedding Service Module

Routes an EmbeddingType to the vendor embedding call that produces it:
- openai-ada-002: OpenAI text-embedding-ada-002 (1536 dims) - default
- openai-3-small: OpenAI text-embedding-3-small (1536 dims)
- openai-3-large: OpenAI text-embedding-3-large, requested at 1536 dims
- gemini-embedding: Gemini text-embedding-004 (768 dims)

Design Rationale:
- Vendor clients come from ProviderFactory, so keys and models are configured once
- Every vector is checked against the dimension of its embedding type, which is
  what keeps each collection's dimension fixed
"""

import logging
from typing import List, Optional, Union

from config.settings import EmbeddingConfig, LLMConfig
from gateway.constants import (
    EmbeddingType,
    OPENAI_EMBEDDING_MODELS,
    dimension_for,
    parse_embedding_type,
)
from gateway.errors import ConfigurationError, UpstreamError
from gateway.llm_service import ProviderFactory

# Configure logging
logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Main embedding service that provides a unified interface.

    This is the class that other components should use.

    Example:
        service = EmbeddingService(settings.embedding, settings.llm)
        embedding = service.embed_text("Hello world", "openai-3-small")
        embeddings = service.embed_batch(["text1", "text2"], EmbeddingType.GEMINI)
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        llm_config: Optional[LLMConfig] = None,
        factory: Optional[ProviderFactory] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            config: Embedding configuration (default type, Gemini model)
            llm_config: LLM configuration holding vendor API keys
            factory: Provider factory to reuse (built from llm_config if omitted)
        """
        self.config = config or EmbeddingConfig()
        self._factory = factory or ProviderFactory(llm_config or LLMConfig(), self.config)
        self.default_type = parse_embedding_type(self.config.default_type)

        logger.info(f"EmbeddingService initialized, default type={self.default_type.value}")

    def resolve(self, embedding_type: Union[str, EmbeddingType, None]) -> EmbeddingType:
        """Resolve an embedding identifier, using the configured default when unset."""
        return parse_embedding_type(embedding_type or self.default_type)

    def embed_text(
        self,
        text: str,
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed
            embedding_type: Which embedding model to use

        Returns:
            Embedding vector as list of floats
        """
        if not text or not text.strip():
            raise ConfigurationError("Cannot embed empty text")

        resolved = self.resolve(embedding_type)
        logger.debug(f"Embedding text with {resolved.value}")

        if resolved in OPENAI_EMBEDDING_MODELS:
            with self._factory.create_openai() as provider:
                vector = provider.create_embedding_with(resolved, text)
        else:
            with self._factory.create_gemini() as provider:
                vector = provider.create_embedding(text)

        self._check_dimension(resolved, vector)
        return vector

    def embed_batch(
        self,
        texts: List[str],
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of input texts (none may be empty)
            embedding_type: Which embedding model to use

        Returns:
            List of embedding vectors, in input order
        """
        if any(not t or not t.strip() for t in texts):
            raise ConfigurationError("Cannot embed empty text")
        if not texts:
            return []

        resolved = self.resolve(embedding_type)
        logger.debug(f"Embedding batch of {len(texts)} texts with {resolved.value}")

        if resolved in OPENAI_EMBEDDING_MODELS:
            with self._factory.create_openai() as provider:
                vectors = provider.create_batch_embeddings_with(resolved, texts)
        else:
            with self._factory.create_gemini() as provider:
                vectors = provider.create_batch_embeddings(texts)

        for vector in vectors:
            self._check_dimension(resolved, vector)
        return vectors

    def embed_query(
        self,
        query: str,
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> List[float]:
        """
        Embed a user query for retrieval.

        This is a semantic alias for embed_text, used for clarity
        when embedding user queries vs documents.
        """
        return self.embed_text(query, embedding_type)

    @staticmethod
    def _check_dimension(embedding_type: EmbeddingType, vector: List[float]) -> None:
        expected = dimension_for(embedding_type)
        if len(vector) != expected:
            raise UpstreamError(
                f"{embedding_type.value} returned {len(vector)}-dim vector, expected {expected}"
            )

