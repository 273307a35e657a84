"""
RAG Chain Module

Orchestrates the Retrieval-Augmented Generation pipeline:
1. Resolve the embedding type (default openai-ada-002)
2. Vector search in the collection of that embedding type (top-K, default 3)
3. Short-circuit with a fixed answer when nothing relevant is found
4. Build the RAG prompt from the query and the retrieved documents
5. Resolve the model type (default openai) and create a provider
6. Generate, then close the provider whatever the outcome

Design Rationale:
- Each stage either proceeds or ends the request; nothing is retried
- Failures are re-raised as SearchFailedError, ProviderCreationError or
  GenerationFailedError with the original error as ``__cause__``, so callers
  can tell retrieval failures from generation failures
- Configuration errors raised while searching (unknown embedding type,
  missing embedding key) propagate unchanged

RAG Pipeline Flow:
    User Query -> Query Embedding -> Vector Search -> Retrieve Top-K Documents
    -> Build Prompt [Context + Question] -> LLM Generation -> Return Answer
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from config.settings import RetrievalConfig
from gateway.constants import EmbeddingType, ModelType, parse_embedding_type, parse_model_type
from gateway.errors import (
    ConfigurationError,
    GenerationFailedError,
    ProviderCreationError,
    SearchFailedError,
)
from gateway.llm_service import ProviderFactory
from gateway.prompts import build_rag_prompt
from gateway.vector_store import Document, DocumentService

logger = logging.getLogger(__name__)

NO_DOCUMENTS_ANSWER = "No relevant documents were found. Please try a different question."


@dataclass
class RAGResponse:
    """
    Complete response from the RAG chain.

    Attributes:
        answer: The generated answer text (or the no-documents fallback)
        documents: Documents used as context, in search order
        model: Model type that generated the answer (None on fallback)
        embedding_model: Embedding type used for retrieval
        metadata: Timings and counts
    """
    answer: str
    documents: List[Document]
    model: Optional[ModelType]
    embedding_model: EmbeddingType
    metadata: Dict[str, Any] = field(default_factory=dict)


class RAGChain:
    """
    Main RAG Chain that orchestrates retrieval and generation.

    Example:
        rag = RAGChain(documents=document_service, factory=provider_factory)
        answer = rag.generate_response(
            "What are scope 2 emissions?",
            model_type="gemini",
            embedding_type="openai-3-small",
        )
    """

    def __init__(
        self,
        documents: DocumentService,
        factory: ProviderFactory,
        config: Optional[RetrievalConfig] = None,
        default_model: Union[str, ModelType, None] = None,
        default_embedding: Union[str, EmbeddingType, None] = None,
    ):
        """
        Initialize the RAG Chain.

        Args:
            documents: DocumentService used for retrieval
            factory: ProviderFactory used for generation
            config: Retrieval settings (top_k)
            default_model: Model type used when a request names none
            default_embedding: Embedding type used when a request names none
        """
        self.documents = documents
        self.factory = factory
        self.config = config or RetrievalConfig()
        self.top_k = self.config.top_k
        self.default_model = parse_model_type(default_model)
        self.default_embedding = parse_embedding_type(default_embedding)

        logger.info(
            f"RAGChain initialized: top_k={self.top_k}, "
            f"model={self.default_model.value}, embedding={self.default_embedding.value}"
        )

    def query(
        self,
        query: str,
        model_type: Union[str, ModelType, None] = None,
        embedding_type: Union[str, EmbeddingType, None] = None,
        top_k: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> RAGResponse:
        """
        Process a query through the RAG pipeline.

        Args:
            query: User's question (may already carry conversation history)
            model_type: Generation backend (default if unset)
            embedding_type: Retrieval embedding (default if unset)
            top_k: Number of documents to retrieve
            timeout: Seconds allowed for each outbound call

        Returns:
            RAGResponse with answer and the documents used

        Raises:
            ConfigurationError: Unknown embedding type or missing embedding key
            SearchFailedError: Retrieval failed
            ProviderCreationError: Unknown model type or provider could not be created
            GenerationFailedError: The provider call failed
        """
        start_time = time.time()

        # Step 1: Resolve embedding type
        embedding = parse_embedding_type(embedding_type or self.default_embedding)

        # Step 2: Retrieve relevant documents
        try:
            docs = self.documents.search_similar_documents(
                query,
                top_k=top_k or self.top_k,
                embedding_type=embedding,
                timeout=timeout,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"RAG search failed: {e}")
            raise SearchFailedError.wrap(e) from e

        retrieval_time = time.time() - start_time
        logger.debug(f"Retrieved {len(docs)} documents in {retrieval_time:.2f}s")

        # Step 3: Handle case with no relevant documents
        if not docs:
            return RAGResponse(
                answer=NO_DOCUMENTS_ANSWER,
                documents=[],
                model=None,
                embedding_model=embedding,
                metadata={
                    "retrieval_time": retrieval_time,
                    "total_time": time.time() - start_time,
                    "documents_found": 0,
                },
            )

        # Step 4: Build prompt
        prompt = build_rag_prompt(query, docs)

        # Step 5: Resolve model type and create provider
        try:
            model = parse_model_type(model_type or self.default_model)
            provider = self.factory.create(model)
        except Exception as e:
            logger.error(f"RAG provider creation failed: {e}")
            raise ProviderCreationError.wrap(e) from e

        # Step 6: Generate response
        generation_start = time.time()
        try:
            answer = provider.generate_content(prompt, timeout=timeout)
        except Exception as e:
            logger.error(f"RAG generation failed: {e}")
            raise GenerationFailedError.wrap(e) from e
        finally:
            provider.close()

        generation_time = time.time() - generation_start
        total_time = time.time() - start_time

        logger.info(
            f"RAG query completed in {total_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, generation: {generation_time:.2f}s)"
        )

        return RAGResponse(
            answer=answer,
            documents=docs,
            model=model,
            embedding_model=embedding,
            metadata={
                "retrieval_time": retrieval_time,
                "generation_time": generation_time,
                "total_time": total_time,
                "documents_found": len(docs),
                "model_name": provider.model_name,
            },
        )

    def generate_response(
        self,
        query: str,
        model_type: Union[str, ModelType, None] = None,
        embedding_type: Union[str, EmbeddingType, None] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Run the pipeline and return just the answer text.

        Args:
            query: User's question
            model_type: Generation backend (default if unset)
            embedding_type: Retrieval embedding (default if unset)
            timeout: Seconds allowed for each outbound call

        Returns:
            Answer string
        """
        return self.query(query, model_type, embedding_type, timeout=timeout).answer
